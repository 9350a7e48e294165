"""Limit classification for a single outlet.

An outlet is governed either by its own `power_limit` (kWh per month) or, when
it is listed in an enabled combined-limit group, by the group's shared monthly
budget. The group always supersedes the individual limit.
"""

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional

from ecoplug_control.control.energy import Correction, current_month_energy
from ecoplug_control.control.keys import canonical_outlet
from ecoplug_control.control.models import CombinedLimitGroup, Device
from ecoplug_control.control.units import ZERO_ENERGY, Energy, group_limit_as_energy
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

# Float sums of daily logs must not miss an inclusive boundary by rounding
ENERGY_TOLERANCE_KWH = 1e-9


class Regime(Enum):
    INDIVIDUAL = "individual"
    GROUPED = "grouped"


@dataclass(frozen=True)
class Classification:
    """Which limit applies to an outlet and whether it is currently exceeded.

    `threshold` is None when the outlet is unlimited (no individual limit, or a
    group set to "No Limit"). `group` is set for the grouped regime.
    """

    regime: Regime
    exceeded: bool
    usage: Energy
    threshold: Optional[Energy]
    group: Optional[CombinedLimitGroup] = None

    @property
    def threshold_watts(self) -> Optional[float]:
        return self.threshold.wh if self.threshold is not None else None


def reached(usage: Energy, threshold: Energy) -> bool:
    """Inclusive comparison: a limit is exceeded once usage equals it."""
    return usage.kwh >= threshold.kwh - ENERGY_TOLERANCE_KWH


def find_group(
    outlet_key: str, groups: Iterable[CombinedLimitGroup]
) -> Optional[CombinedLimitGroup]:
    """Returns the enabled group listing `outlet_key`, if any.

    An outlet should belong to at most one enabled group; when several list
    it, the first one wins and a warning is logged.
    """
    matches = [group for group in groups if group.enabled and group.contains(outlet_key)]
    if len(matches) > 1:
        LoggingUtil.throttled(
            logger,
            f"multiple-groups:{canonical_outlet(outlet_key)}",
            logging.WARNING,
            "Outlet %s is listed in %d enabled groups, using %s",
            outlet_key,
            len(matches),
            matches[0].path,
        )
    return matches[0] if matches else None


def group_usage(
    group: CombinedLimitGroup,
    devices: Mapping[str, Device],
    today: date,
    correction: Optional[Correction] = None,
) -> Energy:
    """Month-to-date energy of every group member, each member counted once.

    Members without a device document contribute nothing.
    """
    by_canonical: Dict[str, Device] = {
        device.canonical_key: device for device in devices.values()
    }
    total = ZERO_ENERGY
    for member in group.member_keys():
        device = by_canonical.get(member)
        if device is None:
            logger.debug("Group %s lists unknown outlet %s", group.path, member)
            continue
        total += current_month_energy(device.daily_logs, today, correction)
    return total


def group_exceeded(
    group: CombinedLimitGroup,
    devices: Mapping[str, Device],
    today: date,
    correction: Optional[Correction] = None,
) -> bool:
    """True when the group's month-to-date usage has reached its budget (inclusive)."""
    if not group.enabled or group.limit_watts is None:
        return False
    return reached(
        group_usage(group, devices, today, correction),
        group_limit_as_energy(group.limit_watts),
    )


def classify(
    device: Device,
    devices: Mapping[str, Device],
    groups: List[CombinedLimitGroup],
    today: date,
    correction: Optional[Correction] = None,
) -> Classification:
    """Determines the limit regime of `device` and whether it is exceeded.

    Args:
        device: The outlet being evaluated.
        devices: Every known outlet, keyed by store key (needed for group sums).
        groups: Every combined-limit group.
        today: Local date whose month is evaluated.
        correction: Runtime-consistency correction for the energy sums.

    Returns:
        The `Classification` of the outlet.
    """
    group = find_group(device.key, groups)
    if group is not None:
        usage = group_usage(group, devices, today, correction)
        if group.limit_watts is None:
            return Classification(Regime.GROUPED, False, usage, None, group)
        threshold = group_limit_as_energy(group.limit_watts)
        return Classification(Regime.GROUPED, reached(usage, threshold), usage, threshold, group)

    usage = current_month_energy(device.daily_logs, today, correction)
    if device.power_limit_kwh > 0:
        threshold = Energy.from_kwh(device.power_limit_kwh)
        return Classification(Regime.INDIVIDUAL, reached(usage, threshold), usage, threshold)
    return Classification(Regime.INDIVIDUAL, False, usage, None)
