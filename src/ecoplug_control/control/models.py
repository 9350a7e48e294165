"""Typed views over the device and combined-limit documents.

The store hands back plain nested dictionaries written by the dashboard and by
the outlet firmware. These classes read the fields the engine needs, coercing
missing or mistyped values to safe defaults with a warning instead of raising.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

from ecoplug_control.control.keys import canonical_outlet
from ecoplug_control.control.schedule import Schedule
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)
T = TypeVar("T", str, bool, int, float)

CONTROL_ON = "on"
CONTROL_OFF = "off"
MAIN_STATUS_ON = "ON"
MAIN_STATUS_OFF = "OFF"
STATUS_UNPLUG = "UNPLUG"
NO_LIMIT = "No Limit"


def get_path(document: Optional[Mapping[str, Any]], *keys: str) -> Any:
    """Walks nested dictionaries, returning None as soon as a level is missing."""
    current: Any = document
    for key in keys:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def get_typed(
    document: Optional[Mapping[str, Any]],
    keys: List[str],
    default_value: T,
    property_type: Type[T],
    owner: str,
) -> T:
    """Safely retrieves a nested value cast to `property_type`.

    Args:
        document: The document to read from.
        keys: The path of keys leading to the value.
        default_value: Returned when the value is missing or cannot be cast.
        property_type: The expected Python type.
        owner: Identifies the document in the warning (e.g. the outlet key).

    Returns:
        The value cast to `property_type`, or `default_value`.
    """
    value = get_path(document, *keys)
    if value is None:
        return default_value
    try:
        return property_type(value)
    except (TypeError, ValueError):
        logger.warning(
            "%s is invalid for '%s' (%r). Using default value %s.",
            "/".join(keys),
            owner,
            value,
            default_value,
        )
        return default_value


@dataclass
class Device:
    """The fields of `devices/<outletKey>` used by the control engine."""

    key: str
    control_state: str
    main_status: str
    power_limit_kwh: float
    schedule: Optional[Schedule]
    status: str
    daily_logs: Dict[str, Any] = field(default_factory=dict)
    office_room: str = ""
    appliance: str = ""
    sensor_timestamp: Optional[str] = None

    @classmethod
    def from_document(cls, key: str, document: Optional[Mapping[str, Any]]) -> "Device":
        control_state = get_typed(document, ["control", "device"], CONTROL_OFF, str, key)
        control_state = control_state.lower()
        if control_state not in (CONTROL_ON, CONTROL_OFF):
            logger.warning("Unknown control state %r for '%s', treating as off", control_state, key)
            control_state = CONTROL_OFF

        power_limit = get_typed(
            document, ["relay_control", "auto_cutoff", "power_limit"], 0.0, float, key
        )
        daily_logs = get_path(document, "daily_logs")
        appliance = get_path(document, "appliances")
        if appliance is None:
            appliance = get_path(document, "office_info", "appliance")
        timestamp = get_path(document, "sensor_data", "timestamp")

        return cls(
            key=key,
            control_state=control_state,
            main_status=get_typed(
                document, ["relay_control", "main_status"], MAIN_STATUS_OFF, str, key
            ).upper(),
            power_limit_kwh=max(power_limit, 0.0),
            schedule=Schedule.from_document(get_path(document, "schedule")),
            status=get_typed(document, ["status"], "", str, key),
            daily_logs=daily_logs if isinstance(daily_logs, dict) else {},
            office_room=get_typed(document, ["office_info", "office_room"], "", str, key),
            appliance=str(appliance) if appliance is not None else "",
            sensor_timestamp=str(timestamp) if timestamp is not None else None,
        )

    @property
    def canonical_key(self) -> str:
        return canonical_outlet(self.key)

    @property
    def is_bypassed(self) -> bool:
        return self.main_status == MAIN_STATUS_ON

    @property
    def is_unplugged(self) -> bool:
        return self.schedule is not None and self.schedule.disabled_by_unplug


@dataclass
class CombinedLimitGroup:
    """A combined monthly limit shared by a set of outlets.

    `path` is where the group document lives, either the global
    `combined_limit_settings` or `combined_limit_settings/<departmentKey>`.
    `limit_watts` is None for the literal "No Limit".
    """

    path: str
    enabled: bool
    selected_outlets: List[str]
    limit_watts: Optional[float]
    device_control: str = CONTROL_ON
    enforcement_reason: Optional[str] = None

    @classmethod
    def from_document(cls, path: str, document: Mapping[str, Any]) -> "CombinedLimitGroup":
        outlets = document.get("selected_outlets") or []
        if isinstance(outlets, dict):
            # Realtime Database returns sparse arrays as index maps
            outlets = list(outlets.values())
        if not isinstance(outlets, list):
            logger.warning("selected_outlets of %s is not a list, ignoring it", path)
            outlets = []

        raw_limit = document.get("combined_limit_watts")
        limit_watts: Optional[float]
        if raw_limit is None or str(raw_limit).strip() == NO_LIMIT:
            limit_watts = None
        else:
            try:
                limit_watts = float(raw_limit)
            except (TypeError, ValueError):
                logger.warning(
                    "combined_limit_watts of %s is invalid (%r), treating as No Limit",
                    path,
                    raw_limit,
                )
                limit_watts = None

        device_control = str(document.get("device_control") or CONTROL_ON).lower()
        reason = document.get("enforcement_reason")

        return cls(
            path=path,
            enabled=document.get("enabled") is True,
            selected_outlets=[str(outlet) for outlet in outlets if outlet],
            limit_watts=limit_watts,
            device_control=device_control,
            enforcement_reason=str(reason) if reason else None,
        )

    @property
    def has_limit(self) -> bool:
        return self.limit_watts is not None

    def member_keys(self) -> List[str]:
        """Canonical keys of the members, deduplicated and in stored order."""
        seen: Dict[str, None] = {}
        for outlet in self.selected_outlets:
            seen.setdefault(canonical_outlet(outlet), None)
        return list(seen)

    def contains(self, outlet_key: str) -> bool:
        return canonical_outlet(outlet_key) in self.member_keys()


def _is_group_document(document: Any) -> bool:
    return isinstance(document, Mapping) and (
        "selected_outlets" in document
        or "enabled" in document
        or "combined_limit_watts" in document
    )


def load_groups(root_path: str, raw: Optional[Mapping[str, Any]]) -> List[CombinedLimitGroup]:
    """Normalises `combined_limit_settings` into a list of groups.

    The subtree is either one global group document or a map of department
    keys to group documents.
    """
    if not isinstance(raw, Mapping):
        return []
    if _is_group_document(raw):
        return [CombinedLimitGroup.from_document(root_path, raw)]

    groups = []
    for department, document in raw.items():
        if _is_group_document(document):
            groups.append(
                CombinedLimitGroup.from_document(f"{root_path}/{department}", document)
            )
    return groups


def load_devices(raw: Optional[Mapping[str, Any]]) -> Dict[str, Device]:
    """Builds a `Device` for every outlet document under `devices/`.

    A document that cannot be read is logged and left out, so the remaining
    outlets are still evaluated.
    """
    if not isinstance(raw, Mapping):
        return {}
    devices = {}
    for key, document in raw.items():
        if not isinstance(document, Mapping):
            continue
        try:
            devices[key] = Device.from_document(key, document)
        except Exception as ex:
            logger.error("Skipping unreadable device document '%s': %s", key, ex, exc_info=True)
    return devices
