"""
Infrastructure module - configuration and logging.
"""

from .config import (
    FixtureSettings,
    FixtureTimings,
    load_settings,
    EXIT_SUCCESS,
    EXIT_FAILURE,
    EXIT_INVARIANT_VIOLATION,
    EXIT_STORE_ERROR,
    EXIT_TIMEOUT,
)

from .logging_config import DailyRotatingFileHandler, RunContextFilter, setup_logging

__all__ = [
    # config
    "FixtureSettings",
    "FixtureTimings",
    "load_settings",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
    "EXIT_INVARIANT_VIOLATION",
    "EXIT_STORE_ERROR",
    "EXIT_TIMEOUT",
    # logging
    "DailyRotatingFileHandler",
    "RunContextFilter",
    "setup_logging",
]
