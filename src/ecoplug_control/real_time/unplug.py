"""Detects outlets that stopped reporting and marks them as unplugged.

An outlet refreshes `sensor_data/timestamp` every few seconds while it is
powered. When a scheduled outlet's timestamp stays the same for longer than
the unplug timeout it is flagged `disabled_by_unplug`, switched off and shown
as UNPLUG. As soon as the timestamp moves again the flag is cleared.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from ecoplug_control.control.models import (
    CONTROL_OFF,
    CONTROL_ON,
    MAIN_STATUS_OFF,
    STATUS_UNPLUG,
    Device,
    load_devices,
)
from ecoplug_control.errors import StoreError
from ecoplug_control.store.base import DocumentStore, join_path
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)


@dataclass
class UnplugReport:
    unplugged: List[str] = field(default_factory=list)
    replugged: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)


class UnplugDetector:
    """Tracks, per outlet, the last sensor timestamp and when it was first seen.

    Args:
        store: The document store.
        devices_path: Root of the device documents.
        timeout: Seconds a timestamp may stay unchanged before the outlet is
                 considered unplugged.
        clock: Monotonic clock in seconds (injected by tests).
    """

    def __init__(
        self,
        store: DocumentStore,
        devices_path: str = "devices",
        timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._devices_path = devices_path
        self._timeout = timeout
        self._clock = clock
        self._seen: Dict[str, Tuple[Optional[str], float]] = {}

    def check(self) -> UnplugReport:
        """Runs one detection pass over every outlet."""
        report = UnplugReport()
        try:
            devices = load_devices(self._store.fetch(self._devices_path))
        except StoreError as ex:
            LoggingUtil.throttled(
                logger,
                "unplug-fetch",
                logging.WARNING,
                "Skipping unplug check, devices unavailable: %s",
                ex,
            )
            return report

        now = self._clock()
        for device in devices.values():
            schedule = device.schedule
            if schedule is None or not schedule.has_window or not schedule.basis:
                continue
            try:
                self._check_device(device, now, report)
            except StoreError as ex:
                logger.error("Unplug update failed for %s: %s", device.key, ex)
                report.failed.append(device.key)

        # Forget outlets that disappeared from the store
        for key in set(self._seen) - set(devices):
            del self._seen[key]
        return report

    def _check_device(self, device: Device, now: float, report: UnplugReport) -> None:
        timestamp = device.sensor_timestamp
        previous = self._seen.get(device.key)

        if device.is_unplugged:
            if previous is not None and timestamp and previous[0] != timestamp:
                self._mark_replugged(device)
                report.replugged.append(device.key)
                self._seen[device.key] = (timestamp, now)
            elif previous is None:
                self._seen[device.key] = (timestamp, now)
            return

        if previous is None or previous[0] != timestamp or not timestamp:
            self._seen[device.key] = (timestamp, now)
            return

        if now - previous[1] >= self._timeout:
            self._mark_unplugged(device)
            report.unplugged.append(device.key)

    def _mark_unplugged(self, device: Device) -> None:
        logger.info(
            "Outlet %s stopped reporting (timestamp %s), marking it unplugged",
            device.key,
            device.sensor_timestamp,
        )
        self._store.patch(
            join_path(self._devices_path, device.key),
            {
                "schedule/disabled_by_unplug": True,
                "control/device": CONTROL_OFF,
                "relay_control/main_status": MAIN_STATUS_OFF,
                "status": STATUS_UNPLUG,
            },
        )

    def _mark_replugged(self, device: Device) -> None:
        logger.info("Outlet %s is reporting again, clearing unplug state", device.key)
        self._store.patch(
            join_path(self._devices_path, device.key),
            {
                "schedule/disabled_by_unplug": False,
                "status": "ON" if device.control_state == CONTROL_ON else "OFF",
            },
        )
