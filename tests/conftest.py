"""
Pytest configuration and shared fixtures.
"""

import logging
import os

import pytest


SETTINGS_ENV_PREFIXES = ("FIXTURE_", "JOBSTORE_")


@pytest.fixture(autouse=True, scope="function")
def clean_settings_env(monkeypatch):
    """
    Remove fixture settings from the environment before each test.

    Tests that need a setting set it explicitly with monkeypatch.
    """
    for key in list(os.environ):
        if key.startswith(SETTINGS_ENV_PREFIXES):
            monkeypatch.delenv(key, raising=False)
    yield


@pytest.fixture(autouse=True, scope="function")
def reset_package_logger():
    """Undo setup_logging() changes to the package logger after each test."""
    logger = logging.getLogger("src")
    original_level = logger.level
    original_propagate = logger.propagate
    original_handlers = list(logger.handlers)

    yield

    for handler in list(logger.handlers):
        if handler not in original_handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(original_level)
    logger.propagate = original_propagate
