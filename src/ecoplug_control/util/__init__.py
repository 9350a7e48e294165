"""
The `util` module provides general-purpose utilities shared by the control
engine, the store bindings and the application entry point.

- [`logging.py`](src/ecoplug_control/util/logging.py): the `LoggingUtil` class,
  which hands out consistently formatted loggers whose level is controlled by
  the `LOGLEVEL` environment variable, plus a throttling helper for messages
  repeated on every poll tick.

- [`config.py`](src/ecoplug_control/util/config.py): the `Settings` dataclass and
  `load_settings`, which merge the packaged YAML defaults, an optional user YAML
  file and environment overrides.
"""
