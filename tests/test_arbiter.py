"""Tests for the override gate and the decision arbiter."""

from datetime import datetime

import pytest

from ecoplug_control.control.arbiter import (
    GROUP_LIMIT_REASON,
    DeviceState,
    decide,
    group_enforcement_fields,
    remove_members_fields,
)
from ecoplug_control.control.gate import GateReason, gate, unplug_fields
from ecoplug_control.control.models import CombinedLimitGroup, Device, load_devices

from conftest import NOW, device_doc, logs_on

OFFICE_HOURS = {"startTime": "09:00", "endTime": "17:00", "frequency": "daily"}
EVENING = datetime(2025, 10, 15, 18, 0)


def evaluate(key, documents, groups=None, now=NOW):
    devices = load_devices(documents)
    return decide(devices[key], devices, groups or [], now)


def combined(outlets, limit, **extra):
    document = {"enabled": True, "selected_outlets": outlets, "combined_limit_watts": limit}
    document.update(extra)
    return CombinedLimitGroup.from_document("combined_limit_settings", document)


class TestGate:
    def test_allow(self) -> None:
        assert gate(Device.from_document("Outlet_1", device_doc())).allowed

    def test_bypass(self) -> None:
        result = gate(Device.from_document("Outlet_1", device_doc(main_status="ON")))
        assert result.reason is GateReason.BYPASS

    def test_unplug_wins_over_bypass(self) -> None:
        document = device_doc(main_status="ON", schedule={"disabled_by_unplug": True})
        assert gate(Device.from_document("Outlet_1", document)).reason is GateReason.UNPLUGGED

    def test_unplug_fields_only_list_what_differs(self) -> None:
        document = device_doc(control="off", status="UNPLUG")
        assert unplug_fields(Device.from_document("Outlet_1", document)) == {}
        document = device_doc(control="on", status="ON")
        assert unplug_fields(Device.from_document("Outlet_1", document)) == {
            "control/device": "off",
            "status": "UNPLUG",
        }


class TestDecide:
    def test_schedule_less_device_is_stable(self) -> None:
        decision = evaluate("Outlet_3", {"Outlet_3": device_doc(control="on")})
        assert decision.next_state == "on"
        assert not decision.write
        assert decision.fields == {}

    def test_schedule_less_device_stays_off(self) -> None:
        decision = evaluate("Outlet_3", {"Outlet_3": device_doc(control="off")})
        assert decision.next_state == "off"
        assert not decision.write

    def test_schedule_turns_device_on_inside_window(self) -> None:
        decision = evaluate(
            "Outlet_1", {"Outlet_1": device_doc(control="off", schedule=OFFICE_HOURS)}
        )
        assert decision.state is DeviceState.SCHEDULED_ON
        assert decision.write
        assert decision.fields == {"control/device": "on"}

    def test_schedule_turns_device_off_after_window(self) -> None:
        decision = evaluate(
            "Outlet_1",
            {"Outlet_1": device_doc(control="on", schedule=OFFICE_HOURS)},
            now=EVENING,
        )
        assert decision.state is DeviceState.SCHEDULED_OFF
        assert decision.fields == {"control/device": "off"}

    def test_malformed_schedule_keeps_current_state(self) -> None:
        schedule = {"timeRange": "all day", "frequency": "daily"}
        for control in ("on", "off"):
            decision = evaluate(
                "Outlet_1", {"Outlet_1": device_doc(control=control, schedule=schedule)}
            )
            assert decision.next_state == control
            assert not decision.write

    def test_repeated_evaluation_never_writes_twice(self) -> None:
        documents = {"Outlet_1": device_doc(control="off", schedule=OFFICE_HOURS)}
        first = evaluate("Outlet_1", documents)
        assert first.write
        documents["Outlet_1"]["control"]["device"] = first.next_state
        second = evaluate("Outlet_1", documents)
        assert not second.write
        assert second.fields == {}

    def test_individual_limit_supersedes_schedule(self) -> None:
        document = device_doc(
            control="on",
            power_limit=1.0,
            schedule=OFFICE_HOURS,
            logs=logs_on(NOW.date(), 1.0),
        )
        decision = evaluate("Outlet_1", {"Outlet_1": document})
        assert decision.state is DeviceState.LIMIT_EXCEEDED
        assert decision.next_state == "off"
        assert decision.fields == {"control/device": "off"}

    def test_limit_cutoff_clears_stale_main_status(self) -> None:
        document = device_doc(control="on", main_status="AUTO", power_limit=0.5)
        document["daily_logs"] = logs_on(NOW.date(), 0.7)
        decision = evaluate("Outlet_1", {"Outlet_1": document})
        assert decision.fields == {
            "control/device": "off",
            "relay_control/main_status": "OFF",
        }

    def test_limit_exceeded_device_already_off_is_not_rewritten(self) -> None:
        document = device_doc(control="off", power_limit=0.5, logs=logs_on(NOW.date(), 0.7))
        decision = evaluate("Outlet_1", {"Outlet_1": document})
        assert decision.state is DeviceState.LIMIT_EXCEEDED
        assert not decision.write
        assert decision.fields == {}

    def test_group_limit_supersedes_schedule(self) -> None:
        documents = {
            "Outlet_1": device_doc(control="on", schedule=OFFICE_HOURS, logs=logs_on(NOW.date(), 1.2)),
            "Outlet_2": device_doc(control="on", logs=logs_on(NOW.date(), 0.5)),
            "Outlet_3": device_doc(control="off", logs=logs_on(NOW.date(), 0.3)),
        }
        groups = [combined(["Outlet 1", "Outlet 2", "Outlet 3"], 2000)]
        for key in documents:
            decision = evaluate(key, documents, groups)
            assert decision.state is DeviceState.LIMIT_EXCEEDED
            assert decision.next_state == "off"
        assert not evaluate("Outlet_3", documents, groups).write

    def test_no_limit_group_lets_schedule_govern(self) -> None:
        documents = {
            "Outlet_5": device_doc(
                control="on", schedule=OFFICE_HOURS, logs=logs_on(NOW.date(), 99_999)
            )
        }
        groups = [combined(["Outlet 5"], "No Limit")]
        assert evaluate("Outlet_5", documents, groups).state is DeviceState.SCHEDULED_ON
        evening = evaluate("Outlet_5", documents, groups, now=EVENING)
        assert evening.state is DeviceState.SCHEDULED_OFF
        assert evening.fields == {"control/device": "off"}

    @pytest.mark.parametrize("control", ["on", "off"])
    def test_bypass_never_writes(self, control: str) -> None:
        document = device_doc(
            control=control,
            main_status="ON",
            power_limit=0.1,
            schedule=OFFICE_HOURS,
            logs=logs_on(NOW.date(), 5.0),
        )
        for now in (NOW, EVENING):
            decision = evaluate("Outlet_1", {"Outlet_1": document}, now=now)
            assert decision.state is DeviceState.BYPASSED
            assert decision.next_state is None
            assert not decision.write
            assert decision.fields == {}

    def test_unplugged_device_is_forced_off(self) -> None:
        schedule = dict(OFFICE_HOURS, disabled_by_unplug=True)
        document = device_doc(control="on", status="ON", schedule=schedule)
        decision = evaluate("Outlet_1", {"Outlet_1": document})
        assert decision.state is DeviceState.UNPLUGGED
        assert decision.next_state == "off"
        assert decision.fields == {"control/device": "off", "status": "UNPLUG"}


class TestGroupEnforcement:
    def documents(self, kwh):
        return load_devices({"Outlet_1": device_doc(logs=logs_on(NOW.date(), kwh))})

    def test_exceeded_group_is_cut_off_once(self) -> None:
        group = combined(["Outlet 1"], 1000)
        fields = group_enforcement_fields(group, self.documents(1.5), NOW)
        assert fields["device_control"] == "off"
        assert fields["enforcement_reason"] == GROUP_LIMIT_REASON
        assert fields["last_enforcement"] == NOW.isoformat()

        already_off = combined(["Outlet 1"], 1000, device_control="off")
        assert group_enforcement_fields(already_off, self.documents(1.5), NOW) == {}

    def test_group_back_under_limit_is_reset(self) -> None:
        group = combined(
            ["Outlet 1"], 5000, device_control="off", enforcement_reason=GROUP_LIMIT_REASON
        )
        assert group_enforcement_fields(group, self.documents(1.5), NOW) == {
            "device_control": "on",
            "enforcement_reason": None,
        }

    def test_manual_group_cutoff_is_left_alone(self) -> None:
        group = combined(["Outlet 1"], 5000, device_control="off")
        assert group_enforcement_fields(group, self.documents(1.5), NOW) == {}

    def test_healthy_group_needs_nothing(self) -> None:
        group = combined(["Outlet 1"], 5000)
        assert group_enforcement_fields(group, self.documents(1.5), NOW) == {}

    def test_remove_members(self) -> None:
        group = combined(["Outlet 1", "Outlet 2"], 5000)
        assert remove_members_fields(group, ["Outlet_2"]) == {"selected_outlets": ["Outlet 1"]}
        assert remove_members_fields(group, ["Outlet_1", "outlet 2"]) == {
            "selected_outlets": [],
            "enabled": False,
        }
        assert remove_members_fields(group, ["Outlet 7"]) == {}
