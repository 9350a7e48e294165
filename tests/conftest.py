"""Shared fixtures and document builders for the control engine tests."""

from datetime import date, datetime
from typing import Any, Dict, Optional

import pytest

from ecoplug_control.control.keys import date_key
from ecoplug_control.util.config import Settings

# Wednesday 15 October 2025, 10:30 local time
NOW = datetime(2025, 10, 15, 10, 30)


def device_doc(
    control: str = "on",
    main_status: str = "OFF",
    power_limit: float = 0,
    schedule: Optional[Dict[str, Any]] = None,
    logs: Optional[Dict[str, Any]] = None,
    status: Optional[str] = None,
) -> Dict[str, Any]:
    """Builds a device document as stored under `devices/<outletKey>`."""
    document: Dict[str, Any] = {
        "control": {"device": control},
        "relay_control": {
            "main_status": main_status,
            "auto_cutoff": {"power_limit": power_limit},
        },
        "office_info": {"office_room": "Registrar"},
        "appliances": "Computer",
        "daily_logs": logs or {},
    }
    if schedule is not None:
        document["schedule"] = schedule
    if status is not None:
        document["status"] = status
    return document


def log_entry(
    kwh: float, avg_power: float = 0.0, hours: float = 0.0
) -> Dict[str, Any]:
    return {
        "total_energy": kwh,
        "avg_power": avg_power,
        "peak_power": avg_power,
        "usage_time_hours": hours,
    }


def logs_on(day: date, kwh: float) -> Dict[str, Any]:
    return {date_key(day): log_entry(kwh)}


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> Settings:
    return Settings(timezone="UTC")
