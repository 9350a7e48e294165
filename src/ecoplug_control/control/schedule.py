"""Time-of-day and day-of-week schedule evaluation.

A device schedule is stored either as a 24h `startTime`/`endTime` pair or as a
`timeRange` string such as `"8:30 AM - 5:00 PM"`, together with a free-text
`frequency`. Both are parsed once into a `Schedule` and then evaluated against
the current local time by `is_active`.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional, Tuple

from ecoplug_control.errors import ScheduleParseError
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

MINUTES_PER_DAY = 24 * 60

# datetime.weekday() numbering: Monday=0 ... Sunday=6
MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)

# Single letters follow the setup screen (M,T,W,TH,F,SAT,SUN). A bare "s" could
# be Saturday or Sunday and is deliberately absent.
DAY_NAMES: Dict[str, int] = {
    "monday": MONDAY,
    "tuesday": TUESDAY,
    "wednesday": WEDNESDAY,
    "thursday": THURSDAY,
    "friday": FRIDAY,
    "saturday": SATURDAY,
    "sunday": SUNDAY,
    "mon": MONDAY,
    "tue": TUESDAY,
    "tues": TUESDAY,
    "wed": WEDNESDAY,
    "thu": THURSDAY,
    "thur": THURSDAY,
    "thurs": THURSDAY,
    "fri": FRIDAY,
    "sat": SATURDAY,
    "sun": SUNDAY,
    "mo": MONDAY,
    "tu": TUESDAY,
    "we": WEDNESDAY,
    "th": THURSDAY,
    "fr": FRIDAY,
    "sa": SATURDAY,
    "su": SUNDAY,
    "m": MONDAY,
    "t": TUESDAY,
    "w": WEDNESDAY,
    "f": FRIDAY,
}


class FrequencyKind(Enum):
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKENDS = "weekends"
    SPECIFIC = "specific"
    UNRESTRICTED = "unrestricted"


@dataclass(frozen=True)
class Frequency:
    """Which days of the week a schedule applies to.

    `UNRESTRICTED` is produced for empty or unrecognised frequency text and,
    like `DAILY`, matches every day.
    """

    kind: FrequencyKind
    days: FrozenSet[int] = frozenset()

    @classmethod
    def parse(cls, text: Any) -> "Frequency":
        """Parses the stored frequency text.

        Accepts `daily`, `weekdays`, `weekends`, a comma separated list of day
        names or abbreviations, or a single day. A list of day names is read
        like the comma separated form. Entries that do not resolve to exactly
        one day are dropped, and any other stored type is unrestricted.
        """
        if isinstance(text, (list, tuple)):
            text = ",".join(str(entry) for entry in text if entry is not None)
        if text is not None and not isinstance(text, str):
            logger.debug("Ignoring schedule frequency of type %s", type(text).__name__)
            text = None
        normalized = (text or "").strip().lower()
        if normalized == "daily":
            return cls(FrequencyKind.DAILY)
        if normalized == "weekdays":
            return cls(FrequencyKind.WEEKDAYS)
        if normalized == "weekends":
            return cls(FrequencyKind.WEEKENDS)

        days = frozenset(
            DAY_NAMES[entry.strip()]
            for entry in normalized.split(",")
            if entry.strip() in DAY_NAMES
        )
        if not days:
            if normalized:
                logger.debug("Unrecognised schedule frequency %r", text)
            return cls(FrequencyKind.UNRESTRICTED)
        return cls(FrequencyKind.SPECIFIC, days)

    def matches(self, moment: datetime) -> bool:
        weekday = moment.weekday()
        if self.kind is FrequencyKind.WEEKDAYS:
            return weekday <= FRIDAY
        if self.kind is FrequencyKind.WEEKENDS:
            return weekday in (SATURDAY, SUNDAY)
        if self.kind is FrequencyKind.SPECIFIC:
            return weekday in self.days
        return True


@dataclass(frozen=True)
class TimeWindow:
    """A daily window in minutes since midnight, end-exclusive.

    When `end` is earlier than `start` the window spans midnight.
    """

    start: int
    end: int

    def contains(self, minute_of_day: int) -> bool:
        if self.start == self.end:
            return False
        if self.start < self.end:
            return self.start <= minute_of_day < self.end
        return minute_of_day >= self.start or minute_of_day < self.end


@dataclass(frozen=True)
class Schedule:
    """A parsed device schedule.

    `window` is None when the stored time fields were present but malformed;
    `has_window` tells whether any time fields were stored at all.
    """

    has_window: bool
    window: Optional[TimeWindow]
    frequency: Frequency = field(default_factory=lambda: Frequency.parse(None))
    disabled_by_unplug: bool = False
    basis: float = 0.0

    @classmethod
    def from_document(cls, document: Optional[Dict[str, Any]]) -> Optional["Schedule"]:
        """Builds a `Schedule` from the `schedule` subtree of a device document.

        Returns:
            None when the device has no schedule subtree at all.
        """
        if not isinstance(document, dict):
            return None

        has_window = bool(document.get("timeRange") or document.get("startTime"))
        window = None
        if has_window:
            try:
                window = parse_window(document)
            except ScheduleParseError as ex:
                logger.warning("Ignoring malformed schedule window: %s", ex)

        try:
            basis = float(document.get("basis") or 0)
        except (TypeError, ValueError):
            basis = 0.0

        return cls(
            has_window=has_window,
            window=window,
            frequency=Frequency.parse(document.get("frequency")),
            disabled_by_unplug=document.get("disabled_by_unplug") is True,
            basis=basis,
        )


def parse_24h(text: str) -> int:
    """Parses `HH:MM` into minutes since midnight."""
    try:
        hours_text, minutes_text = str(text).strip().split(":")
        hours, minutes = int(hours_text), int(minutes_text)
    except ValueError as ex:
        raise ScheduleParseError(f"invalid 24h time {text!r}") from ex
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ScheduleParseError(f"time out of range {text!r}")
    return hours * 60 + minutes


def parse_12h(text: str) -> int:
    """Parses `h:mm AM` / `h:mm PM` into minutes since midnight.

    12 AM is midnight and 12 PM is noon.
    """
    try:
        clock, modifier = str(text).strip().split()
        hours_text, minutes_text = clock.split(":")
        hours, minutes = int(hours_text), int(minutes_text)
    except ValueError as ex:
        raise ScheduleParseError(f"invalid 12h time {text!r}") from ex

    modifier = modifier.upper()
    if modifier not in ("AM", "PM") or not (1 <= hours <= 12 and 0 <= minutes <= 59):
        raise ScheduleParseError(f"invalid 12h time {text!r}")

    if hours == 12:
        hours = 0
    if modifier == "PM":
        hours += 12
    return hours * 60 + minutes


def parse_time_range(text: str) -> Tuple[int, int]:
    """Parses `"h:mm AM - h:mm PM"` into a (start, end) minute pair."""
    parts = str(text).split(" - ")
    if len(parts) != 2:
        raise ScheduleParseError(f"time range without ' - ' delimiter: {text!r}")
    return parse_12h(parts[0]), parse_12h(parts[1])


def parse_window(document: Dict[str, Any]) -> TimeWindow:
    """Builds the time window of a schedule document.

    The 24h `startTime`/`endTime` pair takes precedence over `timeRange`.

    Raises:
        ScheduleParseError: If the fields are incomplete or malformed.
    """
    start_time = document.get("startTime")
    end_time = document.get("endTime")
    if start_time and end_time:
        return TimeWindow(parse_24h(start_time), parse_24h(end_time))

    time_range = document.get("timeRange")
    if time_range:
        start, end = parse_time_range(time_range)
        return TimeWindow(start, end)

    raise ScheduleParseError("schedule has a start time but no end time")


def is_active(schedule: Optional[Schedule], control_request: str, now: datetime) -> bool:
    """Decides whether a device should be on according to its schedule.

    Args:
        schedule: The parsed schedule, or None when the device has none.
        control_request: The device's current `control.device` value; it is the
                         result for schedule-less devices and a precondition
                         for scheduled ones.
        now: The current local time.

    Returns:
        True if the device should be on.
    """
    requested_on = control_request == "on"
    if schedule is None or not schedule.has_window:
        return requested_on
    if not requested_on:
        return False
    if schedule.window is None:
        # Malformed window: keep whatever the control flag already says
        return requested_on

    minute_of_day = now.hour * 60 + now.minute
    return schedule.window.contains(minute_of_day) and schedule.frequency.matches(now)
