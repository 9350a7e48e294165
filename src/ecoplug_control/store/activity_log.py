"""Device activity log written for every automatic control change."""

from datetime import datetime
from typing import Optional

from ecoplug_control.control.keys import to_display_name
from ecoplug_control.control.models import Device
from ecoplug_control.errors import StoreError
from ecoplug_control.store.base import DocumentStore
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

SYSTEM_USER = "System"


class ActivityLog:
    """Appends entries to `device_logs`, the history shown on the dashboard.

    A failing log write is reported and otherwise ignored; it never blocks
    the control change it describes.
    """

    def __init__(self, store: DocumentStore, path: str = "device_logs") -> None:
        self._store = store
        self._path = path

    def record(self, device: Device, activity: str, now: datetime) -> Optional[str]:
        entry = {
            "user": SYSTEM_USER,
            "activity": activity,
            "officeRoom": device.office_room or "Unknown",
            "outletSource": to_display_name(device.key),
            "applianceConnected": device.appliance or "Unknown",
            "timestamp": now.isoformat(),
            "userRole": "system",
        }
        try:
            return self._store.push(self._path, entry)
        except StoreError as ex:
            logger.error("Could not log activity for %s: %s", device.key, ex)
            return None
