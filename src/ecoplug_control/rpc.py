"""This module handles the Remote Procedure Call (RPC) communication for the control poller.

It exposes a Redis subscriber through FastStream so other services (the
dashboard backend, maintenance scripts) can trigger an immediate evaluation,
start or stop the polling jobs, run an unplug check or remove outlets from a
combined-limit group without waiting for the next tick.

The poller is registered here with `bind_poller` at start-up. Actions that
read or write the store run in a worker thread so the broker's event loop
keeps serving other messages while the HTTP calls are in flight.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, Optional

from faststream.redis import RedisRouter

from ecoplug_control.real_time.poller import ControlPoller
from ecoplug_control.util.config import load_settings
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)
logger.info("The control subscriber is starting at %s", str(datetime.now().astimezone()))

_settings = load_settings()
topic_prefix = _settings.topic_prefix
function_name = _settings.function_name

control_router = RedisRouter(prefix=topic_prefix)

_poller: Optional[ControlPoller] = None


def bind_poller(poller: Optional[ControlPoller]) -> None:
    """Registers the poller that control requests act on."""
    global _poller
    _poller = poller


def get_poller() -> ControlPoller:
    """Returns the poller registered at start-up."""
    if _poller is None:
        raise RuntimeError("The control poller has not been created yet")
    return _poller


async def run_control_action(
    poller: ControlPoller, control_request: Dict[str, Any]
) -> Dict[str, Any]:
    """Runs one control action on `poller`.

    Supported actions:
        `evaluate`: run one full tick now and return its report.
        `start` / `stop`: add or remove the polling jobs.
        `unplug`: run one unplug detection pass.
        `remove_members`: remove `params.outlets` from the group at `params.group`.

    Args:
        poller: The poller to act on.
        control_request: A dictionary with an `action` key and optional `params`.

    Returns:
        A dictionary with an `ok` flag and the action's result.
    """
    action = control_request.get("action")
    params = control_request.get("params") or {}
    logger.info("Received control request %s", action)

    if action == "evaluate":
        report = await asyncio.to_thread(poller.run_tick)
        return {"ok": not report.aborted, "report": report.to_dict()}
    if action == "start":
        poller.start()
        return {"ok": True, "running": poller.is_running}
    if action == "stop":
        poller.stop()
        return {"ok": True, "running": poller.is_running}
    if action == "unplug":
        unplug_report = await asyncio.to_thread(poller.check_unplugged)
        return {
            "ok": not unplug_report.failed,
            "unplugged": unplug_report.unplugged,
            "replugged": unplug_report.replugged,
        }
    if action == "remove_members":
        changed = await asyncio.to_thread(
            poller.remove_group_members,
            str(params.get("group", "")),
            [str(o) for o in params.get("outlets", [])],
        )
        return {"ok": changed}

    logger.warning("Unknown control action %r", action)
    return {"ok": False, "error": f"unknown action {action!r}"}


@control_router.subscriber(function_name)
async def handle_control_request(control_request: Dict[str, Any]) -> Dict[str, Any]:
    """Handles incoming control requests via Redis RPC.

    Args:
        control_request: A dictionary with an `action` key and optional `params`.

    Returns:
        A dictionary with an `ok` flag and the action's result.
    """
    return await run_control_action(get_poller(), control_request)
