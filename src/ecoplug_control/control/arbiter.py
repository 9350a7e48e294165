"""The decision arbiter: one authoritative next state per outlet.

Every evaluation starts from scratch and follows a fixed priority order:

1. the override gate (unplugged, then manual bypass),
2. the limit classifier (combined group limit, else individual limit),
3. the time-of-day / day-of-week schedule.

A decision only carries fields that differ from what is stored, so running it
repeatedly, from any number of pollers, converges without redundant writes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from ecoplug_control.control.energy import Correction
from ecoplug_control.control.gate import GateReason, gate, unplug_fields
from ecoplug_control.control.keys import canonical_outlet
from ecoplug_control.control.limits import (
    Classification,
    Regime,
    classify,
    group_exceeded,
    group_usage,
)
from ecoplug_control.control.models import (
    CONTROL_OFF,
    CONTROL_ON,
    MAIN_STATUS_OFF,
    CombinedLimitGroup,
    Device,
)
from ecoplug_control.control.schedule import is_active
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

GROUP_LIMIT_REASON = "combined_monthly_limit_exceeded"


class DeviceState(Enum):
    UNPLUGGED = "unplugged"
    BYPASSED = "bypassed"
    LIMIT_EXCEEDED = "limit_exceeded"
    SCHEDULED_OFF = "scheduled_off"
    SCHEDULED_ON = "scheduled_on"


@dataclass
class Decision:
    """The outcome of evaluating one outlet.

    Attributes:
        outlet_key: Store key of the outlet (`Outlet_1`).
        state: Which branch of the priority order decided.
        current_state: The stored `control/device` value.
        next_state: The control value the outlet should have, None when the
                    outlet is bypassed and must not be touched.
        write: True when `control/device` has to change.
        fields: Multi-location patch for `devices/<outlet_key>`; empty when
                nothing stored differs.
        classification: The limit classification, when it was evaluated.
    """

    outlet_key: str
    state: DeviceState
    current_state: str
    next_state: Optional[str]
    write: bool = False
    fields: Dict[str, Any] = field(default_factory=dict)
    classification: Optional[Classification] = None

    @property
    def is_enforcement(self) -> bool:
        return self.state in (DeviceState.UNPLUGGED, DeviceState.LIMIT_EXCEEDED)

    def activity(self) -> str:
        """Human readable description used in the device activity log."""
        if self.state is DeviceState.UNPLUGGED:
            return "Auto turned OFF (unplugged)"
        if self.state is DeviceState.LIMIT_EXCEEDED:
            regime = self.classification.regime if self.classification else Regime.INDIVIDUAL
            if regime is Regime.GROUPED:
                return "Auto turned OFF (combined monthly limit exceeded)"
            return "Auto turned OFF (monthly limit exceeded)"
        if self.next_state == CONTROL_ON:
            return "Auto turned ON (schedule)"
        return "Auto turned OFF (schedule)"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outlet": self.outlet_key,
            "state": self.state.value,
            "current": self.current_state,
            "next": self.next_state,
            "write": self.write,
            "fields": dict(self.fields),
        }


def _schedule_seed(device: Device) -> str:
    """Control request handed to the schedule evaluator.

    A device with a usable time window is governed by that window alone. A
    device without one, or with a malformed one, keeps its current state.
    """
    schedule = device.schedule
    if schedule is not None and schedule.has_window and schedule.window is not None:
        return CONTROL_ON
    return device.control_state


def decide(
    device: Device,
    devices: Mapping[str, Device],
    groups: List[CombinedLimitGroup],
    now: datetime,
    correction: Optional[Correction] = None,
) -> Decision:
    """Computes the next control state of one outlet.

    Args:
        device: The outlet to evaluate.
        devices: Every outlet, keyed by store key, for combined group sums.
        groups: Every combined-limit group.
        now: The current local time.
        correction: Runtime-consistency correction applied to limit sums.

    Returns:
        The `Decision` for the outlet.
    """
    current = device.control_state

    verdict = gate(device)
    if verdict.reason is GateReason.UNPLUGGED:
        fields = unplug_fields(device)
        return Decision(
            device.key,
            DeviceState.UNPLUGGED,
            current,
            CONTROL_OFF,
            write=current != CONTROL_OFF,
            fields=fields,
        )
    if verdict.reason is GateReason.BYPASS:
        return Decision(device.key, DeviceState.BYPASSED, current, None)

    classification = classify(device, devices, groups, now.date(), correction)
    if classification.exceeded:
        decision = Decision(
            device.key,
            DeviceState.LIMIT_EXCEEDED,
            current,
            CONTROL_OFF,
            write=current != CONTROL_OFF,
            classification=classification,
        )
        if decision.write:
            decision.fields["control/device"] = CONTROL_OFF
            if device.main_status != MAIN_STATUS_OFF:
                decision.fields["relay_control/main_status"] = MAIN_STATUS_OFF
        return decision

    scheduled_on = is_active(device.schedule, _schedule_seed(device), now)
    next_state = CONTROL_ON if scheduled_on else CONTROL_OFF
    decision = Decision(
        device.key,
        DeviceState.SCHEDULED_ON if scheduled_on else DeviceState.SCHEDULED_OFF,
        current,
        next_state,
        write=next_state != current,
        classification=classification,
    )
    if decision.write:
        decision.fields["control/device"] = next_state
    return decision


def group_enforcement_fields(
    group: CombinedLimitGroup,
    devices: Mapping[str, Device],
    now: datetime,
    correction: Optional[Correction] = None,
) -> Dict[str, Any]:
    """Fields to patch on a group document, empty when it is already correct.

    An exceeded group is marked `device_control = off` with an enforcement
    reason and timestamp. Once usage is back under the budget (or the group is
    disabled or set to "No Limit"), a cutoff set by the engine is cleared.
    """
    if group_exceeded(group, devices, now.date(), correction):
        if group.device_control == CONTROL_OFF:
            return {}
        logger.info(
            "Combined limit of %s reached (%.3f kWh of %.0f W budget)",
            group.path,
            group_usage(group, devices, now.date(), correction).kwh,
            group.limit_watts,
        )
        return {
            "device_control": CONTROL_OFF,
            "enforcement_reason": GROUP_LIMIT_REASON,
            "last_enforcement": now.isoformat(),
        }

    if group.device_control == CONTROL_OFF and group.enforcement_reason == GROUP_LIMIT_REASON:
        logger.info("Combined usage of %s back under its limit, clearing cutoff", group.path)
        # None deletes the field in the store
        return {"device_control": CONTROL_ON, "enforcement_reason": None}
    return {}


def remove_members_fields(
    group: CombinedLimitGroup, outlets: List[str]
) -> Dict[str, Any]:
    """Fields that drop `outlets` from a group, disabling it when it empties.

    Returns an empty dict when none of `outlets` is a member.
    """
    removed = {canonical_outlet(outlet) for outlet in outlets}
    remaining = [
        outlet
        for outlet in group.selected_outlets
        if canonical_outlet(outlet) not in removed
    ]
    if len(remaining) == len(group.selected_outlets):
        return {}
    fields: Dict[str, Any] = {"selected_outlets": remaining}
    if not remaining:
        fields["enabled"] = False
    return fields
