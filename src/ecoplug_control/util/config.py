"""Settings for the EcoPlug control engine.

Values are resolved in three layers: the YAML defaults shipped inside the
package, an optional user YAML file (given explicitly or through the
`ECOPLUG_CONFIG` environment variable), and finally individual environment
variables such as `FIREBASE_DATABASE_URL` or `SCHEDULE_INTERVAL`.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

from ecoplug_control.errors import ConfigurationError
from ecoplug_control.util.logging import LoggingUtil

logger = LoggingUtil.get_logger(__name__)

DEFAULTS_PATH = Path(__file__).parent.parent / "config" / "defaults.yaml"


@dataclass
class Settings:
    """Flat view of every tunable used by the engine."""

    database_url: Optional[str] = None
    credentials_path: Optional[str] = None
    store_timeout: float = 10.0

    devices_path: str = "devices"
    combined_limits_path: str = "combined_limit_settings"
    rate_path: str = "rates/canoreco"
    device_logs_path: str = "device_logs"

    schedule_interval: float = 10.0
    limit_interval: float = 30.0
    unplug_interval: float = 5.0
    unplug_timeout: float = 30.0

    correction_accuracy: float = 0.95
    correction_epsilon_kwh: float = 0.001

    default_rate_per_kwh: float = 9.3
    timezone: str = "Asia/Manila"

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    topic_prefix: str = "ecoplug/"
    function_name: str = "control"

    extra: Dict[str, Any] = field(default_factory=dict)


# YAML section/key -> Settings attribute
_YAML_MAPPING: Dict[str, Dict[str, str]] = {
    "store": {
        "database_url": "database_url",
        "credentials": "credentials_path",
        "timeout": "store_timeout",
    },
    "paths": {
        "devices": "devices_path",
        "combined_limits": "combined_limits_path",
        "rate": "rate_path",
        "device_logs": "device_logs_path",
    },
    "polling": {
        "schedule_interval": "schedule_interval",
        "limit_interval": "limit_interval",
        "unplug_interval": "unplug_interval",
        "unplug_timeout": "unplug_timeout",
    },
    "energy": {
        "correction_accuracy": "correction_accuracy",
        "correction_epsilon_kwh": "correction_epsilon_kwh",
    },
    "billing": {"default_rate_per_kwh": "default_rate_per_kwh"},
    "rpc": {
        "redis_host": "redis_host",
        "redis_port": "redis_port",
        "redis_password": "redis_password",
        "topic_prefix": "topic_prefix",
        "function_name": "function_name",
    },
}

# Environment variable -> Settings attribute
_ENV_MAPPING: Dict[str, str] = {
    "FIREBASE_DATABASE_URL": "database_url",
    "FIREBASE_CREDENTIALS": "credentials_path",
    "STORE_TIMEOUT": "store_timeout",
    "SCHEDULE_INTERVAL": "schedule_interval",
    "LIMIT_INTERVAL": "limit_interval",
    "UNPLUG_INTERVAL": "unplug_interval",
    "UNPLUG_TIMEOUT": "unplug_timeout",
    "ECOPLUG_TIMEZONE": "timezone",
    "REDIS_HOST": "redis_host",
    "REDIS_PORT": "redis_port",
    "REDIS_PASSWORD": "redis_password",
}


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r") as file:
            content = yaml.safe_load(file)
    except (OSError, yaml.YAMLError) as ex:
        raise ConfigurationError(f"Cannot read settings file {path}: {ex}") from ex

    if content is None:
        return {}
    if not isinstance(content, dict):
        raise ConfigurationError(f"Settings file {path} must contain a mapping")
    return content


def _apply_yaml(settings: Settings, content: Dict[str, Any]) -> None:
    for section, values in content.items():
        if section == "timezone":
            settings.timezone = str(values)
            continue
        mapping = _YAML_MAPPING.get(section)
        if mapping is None or not isinstance(values, dict):
            settings.extra[section] = values
            continue
        for key, value in values.items():
            attribute = mapping.get(key)
            if attribute is None:
                logger.warning("Unknown setting %s.%s ignored", section, key)
                continue
            _set_typed(settings, attribute, value)


def _set_typed(settings: Settings, attribute: str, value: Any) -> None:
    """Assigns `value` to `attribute`, cast to the type of its default."""
    if value is None:
        setattr(settings, attribute, None)
        return

    default = {f.name: f.default for f in fields(Settings)}[attribute]
    caster: Callable[[Any], Any] = type(default) if default is not None else str
    try:
        setattr(settings, attribute, caster(value))
    except (TypeError, ValueError) as ex:
        raise ConfigurationError(
            f"Invalid value {value!r} for setting '{attribute}'"
        ) from ex


def load_settings(path: Optional[str] = None) -> Settings:
    """Builds the settings from defaults, an optional YAML file and the environment.

    Args:
        path: Optional user YAML file. Falls back to the `ECOPLUG_CONFIG`
              environment variable when not given.

    Returns:
        The resolved `Settings`.

    Raises:
        ConfigurationError: If a settings file is unreadable or a value has
                            the wrong type.
    """
    settings = Settings()
    _apply_yaml(settings, _read_yaml(DEFAULTS_PATH))

    user_path = path or os.getenv("ECOPLUG_CONFIG")
    if user_path:
        logger.info("Loading settings from %s", user_path)
        _apply_yaml(settings, _read_yaml(Path(user_path)))

    for variable, attribute in _ENV_MAPPING.items():
        value = os.getenv(variable)
        if value is not None and value != "":
            _set_typed(settings, attribute, value)

    return settings
