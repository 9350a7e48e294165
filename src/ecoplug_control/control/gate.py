"""Manual override gate evaluated before any automatic decision."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from ecoplug_control.control.models import CONTROL_OFF, STATUS_UNPLUG, Device


class GateReason(Enum):
    UNPLUGGED = "unplugged"
    BYPASS = "bypass"


@dataclass(frozen=True)
class GateResult:
    """`reason` is None when automation is allowed for the device."""

    reason: Optional[GateReason] = None

    @property
    def allowed(self) -> bool:
        return self.reason is None


ALLOW = GateResult()


def gate(device: Device) -> GateResult:
    """Checks the override flags of a device.

    An unplugged device is suppressed before a bypassed one: unplugging forces
    the outlet off even while a human override is active.
    """
    if device.is_unplugged:
        return GateResult(GateReason.UNPLUGGED)
    if device.is_bypassed:
        return GateResult(GateReason.BYPASS)
    return ALLOW


def unplug_fields(device: Device) -> Dict[str, Any]:
    """Fields still needed to put an unplugged device in its forced state.

    Returns an empty dict when `control/device` is already off and `status`
    already reads UNPLUG.
    """
    fields: Dict[str, Any] = {}
    if device.control_state != CONTROL_OFF:
        fields["control/device"] = CONTROL_OFF
    if device.status != STATUS_UNPLUG:
        fields["status"] = STATUS_UNPLUG
    return fields
