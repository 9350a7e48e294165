"""Tests for the control request handling behind the Redis subscriber."""

import asyncio
import threading

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from ecoplug_control import rpc
from ecoplug_control.real_time.poller import ControlPoller
from ecoplug_control.store.memory_store import MemoryStore

from conftest import NOW, device_doc

OFFICE_HOURS = {"startTime": "09:00", "endTime": "17:00", "frequency": "daily"}


class ThreadRecordingPoller(ControlPoller):
    """ControlPoller that remembers which thread ran each store pass."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.threads = []

    def run_tick(self, now=None):
        self.threads.append(threading.get_ident())
        return super().run_tick(now)

    def remove_group_members(self, group_path, outlets):
        self.threads.append(threading.get_ident())
        return super().remove_group_members(group_path, outlets)


@pytest.fixture
def store():
    return MemoryStore(
        {
            "devices": {"Outlet_1": device_doc(control="off", schedule=OFFICE_HOURS)},
            "combined_limit_settings": {
                "COED": {"enabled": True, "selected_outlets": ["Outlet 1", "Outlet 2"]}
            },
        }
    )


@pytest.fixture
def poller(store, settings):
    poller = ThreadRecordingPoller(
        store, settings, scheduler=BackgroundScheduler(), clock=lambda: NOW
    )
    yield poller
    poller.shutdown()


def call(poller, request):
    return asyncio.run(rpc.run_control_action(poller, request))


def test_evaluate_runs_the_tick_off_the_event_loop(poller, store) -> None:
    result = call(poller, {"action": "evaluate"})
    assert result["ok"]
    assert result["report"]["written"] == 1
    assert store.fetch("devices/Outlet_1/control/device") == "on"
    assert poller.threads
    assert threading.get_ident() not in poller.threads


def test_remove_members(poller, store) -> None:
    result = call(
        poller,
        {
            "action": "remove_members",
            "params": {"group": "combined_limit_settings/COED", "outlets": ["Outlet_2"]},
        },
    )
    assert result == {"ok": True}
    assert store.fetch("combined_limit_settings/COED/selected_outlets") == ["Outlet 1"]
    assert threading.get_ident() not in poller.threads


def test_start_and_stop(poller) -> None:
    assert call(poller, {"action": "start"}) == {"ok": True, "running": True}
    assert call(poller, {"action": "stop"}) == {"ok": True, "running": False}


def test_unplug_check(poller) -> None:
    result = call(poller, {"action": "unplug"})
    assert result == {"ok": True, "unplugged": [], "replugged": []}


def test_unknown_action(poller) -> None:
    result = call(poller, {"action": "reboot"})
    assert not result["ok"]
    assert "reboot" in result["error"]


def test_bound_poller_is_shared_by_the_subscriber(poller) -> None:
    rpc.bind_poller(poller)
    try:
        assert rpc.get_poller() is poller
    finally:
        rpc.bind_poller(None)
    with pytest.raises(RuntimeError):
        rpc.get_poller()
