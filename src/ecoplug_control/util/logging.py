"""This module provides a centralized utility for configuring and managing application logging.

It defines the `LoggingUtil` class, which offers a static method to retrieve
pre-configured logger instances, and a throttling helper for messages that the
polling loops would otherwise repeat on every tick.
"""

import logging
import os
import threading
import time
from typing import Any, Dict


class LoggingUtil:
    """A utility class for configuring and retrieving loggers.

    Loggers share a single console format and a level controlled by the
    `LOGLEVEL` environment variable. Repeated messages can be rate limited
    through `throttled`, keyed by an arbitrary string.
    """

    _throttle_lock = threading.Lock()
    _last_emitted: Dict[str, float] = {}

    @staticmethod
    def get_logger(logger_name: str) -> logging.Logger:
        """Retrieves a configured logger instance.

        The logger's level is determined by the 'LOGLEVEL' environment variable.
        If 'LOGLEVEL' is not set or is invalid, it defaults to INFO.

        Args:
            logger_name: The name of the logger to retrieve (typically `__name__`
                         of the calling module).

        Returns:
            A configured `logging.Logger` instance.
        """
        logger = logging.getLogger(logger_name)
        log_level = os.getenv("LOGLEVEL", "INFO").upper()

        if log_level not in logging._nameToLevel.keys():
            log_level = "INFO"

        logger.setLevel(log_level)

        log_formatter = logging.Formatter(
            "%(asctime)s - [%(name)s][%(levelname)s] %(message)s"
        )

        # Ensure that handlers are not duplicated if get_logger is called multiple times
        if not logger.handlers:
            console_handler = logging.StreamHandler()
            console_handler.setFormatter(log_formatter)
            logger.addHandler(console_handler)

        return logger

    @staticmethod
    def throttled(
        logger: logging.Logger,
        key: str,
        level: int,
        message: str,
        *args: Any,
        **kwargs: Any,
    ) -> bool:
        """Logs a message at most once per throttle window for a given key.

        The window length is read from the 'LOG_THROTTLE_SECONDS' environment
        variable (default 5 seconds).

        Args:
            logger: The logger to emit through.
            key: Identifies the repeated message (e.g. "fetch-failed:devices").
            level: The logging level.
            message: A %-style format string.
            *args: Format arguments.
            **kwargs: Passed through to `logger.log` (e.g. `exc_info`).

        Returns:
            True if the message was emitted, False if it was suppressed.
        """
        window = float(os.getenv("LOG_THROTTLE_SECONDS", "5"))
        now = time.monotonic()
        with LoggingUtil._throttle_lock:
            last = LoggingUtil._last_emitted.get(key)
            if last is not None and now - last < window:
                return False
            LoggingUtil._last_emitted[key] = now
            # Drop stale keys so long-running pollers do not grow the map
            for stale_key in [
                k for k, t in LoggingUtil._last_emitted.items() if now - t > 2 * window
            ]:
                del LoggingUtil._last_emitted[stale_key]
        logger.log(level, message, *args, **kwargs)
        return True
