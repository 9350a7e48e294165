"""Energy aggregation over the per-day logs of a device.

Every figure is derived from `daily_logs`, a map of `day_YYYY_MM_DD` keys to
`{total_energy, avg_power, peak_power, usage_time_hours}`. Missing days and
malformed entries contribute zero. Sums that feed a limit decision apply the
runtime-consistency correction; display and billing sums do not.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional

from ecoplug_control.control.keys import date_key
from ecoplug_control.control.units import ZERO_ENERGY, Energy, Power
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

DEFAULT_CORRECTION_ACCURACY = 0.95
DEFAULT_CORRECTION_EPSILON_KWH = 0.001


@dataclass(frozen=True)
class Correction:
    """Parameters of the runtime-consistency correction.

    A day's measured energy is replaced by `avg_power * usage_time_hours` when
    the two disagree by more than `accuracy` (ratio) and `epsilon_kwh`
    (absolute difference).
    """

    accuracy: float = DEFAULT_CORRECTION_ACCURACY
    epsilon_kwh: float = DEFAULT_CORRECTION_EPSILON_KWH


@dataclass(frozen=True)
class DailyLog:
    """One day of aggregated readings for a device."""

    total_energy: Energy
    avg_power: Power
    peak_power: Power
    usage_time_hours: float

    @classmethod
    def from_document(cls, document: Any) -> Optional["DailyLog"]:
        if not isinstance(document, dict):
            return None
        return cls(
            total_energy=Energy.from_kwh(_as_float(document.get("total_energy"))),
            avg_power=Power.from_watts(_as_float(document.get("avg_power"))),
            peak_power=Power.from_watts(_as_float(document.get("peak_power"))),
            usage_time_hours=_as_float(document.get("usage_time_hours")),
        )

    def expected_energy(self) -> Energy:
        return Energy.from_power(self.avg_power, self.usage_time_hours)

    def corrected_energy(self, correction: Correction) -> Energy:
        """Returns the measured energy, or the runtime-derived energy on a sensor glitch."""
        if self.usage_time_hours <= 0 or self.avg_power.watts <= 0:
            return self.total_energy

        measured = self.total_energy.kwh
        expected = self.expected_energy().kwh
        largest = max(measured, expected)
        ratio = min(measured, expected) / largest if largest > 0 else 1.0
        if ratio < correction.accuracy and abs(measured - expected) > correction.epsilon_kwh:
            logger.debug(
                "Replacing measured %.4f kWh by runtime-derived %.4f kWh",
                measured,
                expected,
            )
            return self.expected_energy()
        return self.total_energy


def _as_float(value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    # NaN never compares, treat it like a missing reading
    return result if result == result else 0.0


def days_between(start: date, end: date) -> List[date]:
    """Every calendar day from `start` to `end`, both inclusive."""
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def month_days(today: date) -> List[date]:
    """Days of `today`'s month up to and including `today`."""
    return days_between(today.replace(day=1), today)


def sum_energy(
    daily_logs: Optional[Mapping[str, Any]],
    date_keys: Iterable[str],
    correction: Optional[Correction] = None,
) -> Energy:
    """Sums the energy logged under `date_keys`.

    Args:
        daily_logs: The device's `daily_logs` subtree (may be None).
        date_keys: Keys in `day_YYYY_MM_DD` form. Keys without an entry add 0.
        correction: Apply the runtime-consistency correction when given.

    Returns:
        The total as an `Energy`.
    """
    if not daily_logs:
        return ZERO_ENERGY

    total = ZERO_ENERGY
    for key in date_keys:
        log = DailyLog.from_document(daily_logs.get(key))
        if log is None:
            continue
        total += log.corrected_energy(correction) if correction else log.total_energy
    return total


def today_energy(
    daily_logs: Optional[Mapping[str, Any]],
    today: date,
    correction: Optional[Correction] = None,
) -> Energy:
    return sum_energy(daily_logs, [date_key(today)], correction)


def current_month_energy(
    daily_logs: Optional[Mapping[str, Any]],
    today: date,
    correction: Optional[Correction] = None,
) -> Energy:
    """Month-to-date energy: the first of `today`'s month through `today`."""
    return sum_energy(daily_logs, (date_key(d) for d in month_days(today)), correction)


def range_energy(
    daily_logs: Optional[Mapping[str, Any]],
    start: date,
    end: date,
    correction: Optional[Correction] = None,
) -> Energy:
    """Energy between `start` and `end` inclusive; an inverted range sums to zero."""
    if end < start:
        return ZERO_ENERGY
    return sum_energy(daily_logs, (date_key(d) for d in days_between(start, end)), correction)


def usage_hours(daily_logs: Optional[Mapping[str, Any]], start: date, end: date) -> float:
    """Total `usage_time_hours` logged between `start` and `end` inclusive."""
    if not daily_logs or end < start:
        return 0.0
    hours = 0.0
    for day in days_between(start, end):
        log = DailyLog.from_document(daily_logs.get(date_key(day)))
        if log is not None:
            hours += log.usage_time_hours
    return hours


def daily_breakdown(
    daily_logs: Optional[Mapping[str, Any]], start: date, end: date
) -> Dict[date, Energy]:
    """Per-day energy between `start` and `end`, zero for days without a log."""
    if end < start:
        return {}
    return {day: sum_energy(daily_logs, [date_key(day)]) for day in days_between(start, end)}
