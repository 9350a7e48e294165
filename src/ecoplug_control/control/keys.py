"""Canonical identifiers shared by every component.

Two naming boundaries exist in the stored documents:

- Outlets are keyed by `Outlet_1` under `devices/` but listed as `Outlet 1`
  in combined group membership lists. `canonical_outlet` gives both forms a
  single comparable identity.
- Daily logs are keyed by `day_YYYY_MM_DD`. `date_key` and `parse_date_key`
  are exact inverses for every calendar date.
"""

import re
from datetime import date
from typing import Optional

_WHITESPACE = re.compile(r"[\s_]+")
_DATE_KEY = re.compile(r"^day_(\d{4})_(\d{2})_(\d{2})$")


def canonical_outlet(name: str) -> str:
    """Returns the comparison form of an outlet key or display name.

    >>> canonical_outlet("Outlet 1") == canonical_outlet("outlet_1")
    True
    """
    return _WHITESPACE.sub("_", str(name).strip()).lower()


def to_outlet_key(display_name: str) -> str:
    """Converts a display name (`Outlet 1`) to the store key form (`Outlet_1`).

    Every run of whitespace is replaced, not only the first one.
    """
    return _WHITESPACE.sub("_", str(display_name).strip())


def to_display_name(outlet_key: str) -> str:
    """Converts a store key (`Outlet_1`) to the display name form (`Outlet 1`)."""
    return _WHITESPACE.sub(" ", str(outlet_key).strip())


def same_outlet(first: str, second: str) -> bool:
    return canonical_outlet(first) == canonical_outlet(second)


def date_key(day: date) -> str:
    """Builds the daily log key for `day`, e.g. `day_2025_03_07`."""
    return f"day_{day.year:04d}_{day.month:02d}_{day.day:02d}"


def parse_date_key(key: str) -> Optional[date]:
    """Parses a daily log key back into a date.

    Returns:
        The date, or None when `key` is not a well-formed daily log key or does
        not name a real calendar day.
    """
    match = _DATE_KEY.match(key)
    if match is None:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def month_prefix(day: date) -> str:
    """Prefix shared by every daily log key of `day`'s month, e.g. `day_2025_03_`."""
    return f"day_{day.year:04d}_{day.month:02d}_"
