"""Electricity bill estimates for the dashboard.

These are display figures: they sum the logged energy as measured, without
the runtime-consistency correction used for limit decisions.
"""

import calendar
from datetime import date
from typing import Any, Iterable, Mapping

from ecoplug_control.control.energy import current_month_energy
from ecoplug_control.control.models import Device
from ecoplug_control.control.units import ZERO_ENERGY, Energy
from ecoplug_control.errors import StoreError
from ecoplug_control.store.base import DocumentStore
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)


def fetch_rate(store: DocumentStore, path: str, default: float) -> float:
    """Reads the electricity rate (per kWh) stored at `path`.

    The document holds the rate under `rate` or `value`, or is the bare
    number. Missing, unreadable or non-positive rates fall back to `default`.
    """
    try:
        document: Any = store.fetch(path)
    except StoreError as ex:
        logger.warning("Could not read electricity rate, using default %.2f: %s", default, ex)
        return default

    raw = document
    if isinstance(document, Mapping):
        raw = document.get("rate", document.get("value"))
    try:
        rate = float(raw)
    except (TypeError, ValueError):
        return default
    return rate if rate > 0 else default


def month_to_date_energy(devices: Iterable[Device], today: date) -> Energy:
    total = ZERO_ENERGY
    for device in devices:
        total += current_month_energy(device.daily_logs, today)
    return total


def current_bill(devices: Iterable[Device], rate: float, today: date) -> float:
    """Cost of the energy used so far this month."""
    return month_to_date_energy(devices, today).kwh * rate


def estimated_monthly_bill(devices: Iterable[Device], rate: float, today: date) -> float:
    """Projects the month-to-date daily average over the whole month."""
    days_in_month = calendar.monthrange(today.year, today.month)[1]
    daily_average = month_to_date_energy(devices, today).kwh / today.day
    return daily_average * days_in_month * rate
