"""
Configuration for the fixture generator.

Settings are pydantic models. load_settings() reads a .env file (if any)
through python-dotenv and then the process environment.

Environment Variables:
- JOBSTORE_CONNECTION_STRING: Store directory or sqlite:///<dir> (default: fixtures)
- JOBSTORE_DATABASE_NAME: Database name (default: jobstore-fixtures)
- JOBSTORE_COLLECTION_PREFIX: Collection prefix (default: jobstore)
- FIXTURE_PREFIX: Archive name prefix (default: JobStore-Sqlite)
- FIXTURE_OUTPUT_DIR: Archive output directory (default: .)
- FIXTURE_WORKER_COUNT: Engine worker threads (default: engine default)
- FIXTURE_RECURRING_CRON: Cron for the recurring job (default: every minute)
- FIXTURE_SCHEDULED_DELAY: Seconds before the scheduled job runs (default: 30)
- FIXTURE_CONTINUATION_DELAY: Seconds before the continuation parent runs (default: 15)
- FIXTURE_LATE_SCHEDULE_DELAY: Seconds for the never-run scheduled job (default: 1800)
- FIXTURE_SHUTDOWN_TIMEOUT: Seconds to wait for engine shutdown (default: 15)
- FIXTURE_GATE_TIMEOUT: Seconds to wait per gate (default: unset, wait forever)
- FIXTURE_QUEUE_POLL_INTERVAL: Idle worker poll interval (default: 15)
- FIXTURE_SCHEDULE_POLL_INTERVAL: Scheduler pass interval (default: 15)
- FIXTURE_LOG_LEVEL: Log level (default: INFO)
- FIXTURE_LOG_DIR: Log file directory (default: logs)
"""

import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import Optional, Type, TypeVar, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError


logger = logging.getLogger(__name__)


# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_INVARIANT_VIOLATION = 2
EXIT_STORE_ERROR = 3
EXIT_TIMEOUT = 4


# =============================================================================
# Defaults
# =============================================================================

DEFAULT_CONNECTION_STRING = "fixtures"
DEFAULT_DATABASE_NAME = "jobstore-fixtures"
DEFAULT_FIXTURE_PREFIX = "JobStore-Sqlite"
DEFAULT_RECURRING_CRON = "* * * * *"
DEFAULT_SERVER_NAME = "test-server"
DEFAULT_LOCK_NAME = "test-lock"


class FixtureTimings(BaseModel):
    """Delays and timeouts for one fixture run. All values are seconds."""

    recurring_cron: str = Field(
        default=DEFAULT_RECURRING_CRON,
        description="Cron expression for the recurring job (5 fields, or 6 with leading seconds)",
    )
    scheduled_delay: float = Field(default=30.0, ge=0, description="Delay of the first scheduled job")
    continuation_delay: float = Field(default=15.0, ge=0, description="Delay of the continuation parent")
    late_schedule_delay: float = Field(
        default=1800.0, gt=0, description="Delay of the second scheduled job, which never runs"
    )
    shutdown_timeout: float = Field(default=15.0, ge=0, description="Bound on engine shutdown")
    gate_timeout: Optional[float] = Field(
        default=None, gt=0, description="Bound on each gate wait; None waits forever"
    )
    queue_poll_interval: float = Field(default=15.0, gt=0, description="Idle worker poll interval")
    signal_check_interval: float = Field(default=0.1, gt=0, description="Idle worker signal check")
    schedule_poll_interval: float = Field(default=15.0, gt=0, description="Scheduler pass interval")

    def as_delta(self, name: str) -> timedelta:
        return timedelta(seconds=getattr(self, name))


class FixtureSettings(BaseModel):
    """Settings for a fixture generation run."""

    connection_string: str = Field(
        default=DEFAULT_CONNECTION_STRING, description="Store directory or sqlite:///<dir>"
    )
    database_name: str = Field(default=DEFAULT_DATABASE_NAME, min_length=1)
    collection_prefix: str = Field(default="jobstore", min_length=1)
    fixture_prefix: str = Field(default=DEFAULT_FIXTURE_PREFIX, min_length=1)
    output_dir: Path = Field(default=Path("."), description="Directory for the archive")
    worker_count: Optional[int] = Field(default=None, ge=1, le=100)
    queues: list[str] = Field(default_factory=lambda: ["default"], min_length=1)
    server_name: str = Field(default=DEFAULT_SERVER_NAME, description="Server announced after shutdown")
    lock_name: str = Field(default=DEFAULT_LOCK_NAME, description="Lock acquired after shutdown")
    lock_ttl: float = Field(default=30.0, gt=0, description="TTL of the post-shutdown lock")
    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("logs"))
    timings: FixtureTimings = Field(default_factory=FixtureTimings)


# =============================================================================
# Environment Helpers
# =============================================================================

def _get_env_str(key: str, default: str) -> str:
    """Get string value from environment variable."""
    val = os.getenv(key)
    if val is None or not val.strip():
        return default
    return val.strip()


def _get_env_int(key: str, default: Optional[int]) -> Optional[int]:
    """Get integer value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return int(val)
        except ValueError:
            logger.warning(f"[Config] Invalid integer for {key}: {val}, using default: {default}")
    return default


def _get_env_float(key: str, default: Optional[float]) -> Optional[float]:
    """Get float value from environment variable."""
    val = os.getenv(key)
    if val is not None:
        try:
            return float(val)
        except ValueError:
            logger.warning(f"[Config] Invalid number for {key}: {val}, using default: {default}")
    return default


ModelT = TypeVar("ModelT", bound=BaseModel)


def _validate_with_fallback(
    model: Type[ModelT],
    values: dict,
    env_keys: dict[str, str],
) -> ModelT:
    """
    Build a settings model, dropping values that fail validation.

    A rejected value is logged with its environment variable and replaced
    by the field default.

    Args:
        model: Settings model class
        values: Field values read from the environment
        env_keys: Field name -> environment variable, for warnings
    """
    values = dict(values)
    while True:
        try:
            return model(**values)
        except ValidationError as e:
            rejected = {error["loc"][0] for error in e.errors() if error["loc"]}
            rejected &= set(values)
            if not rejected:
                raise
            for name in sorted(rejected):
                default = model.model_fields[name].get_default(call_default_factory=True)
                logger.warning(
                    f"[Config] Invalid value for {env_keys.get(name, name)}: "
                    f"{values.pop(name)}, using default: {default}"
                )


_TIMING_ENV_KEYS = {
    "recurring_cron": "FIXTURE_RECURRING_CRON",
    "scheduled_delay": "FIXTURE_SCHEDULED_DELAY",
    "continuation_delay": "FIXTURE_CONTINUATION_DELAY",
    "late_schedule_delay": "FIXTURE_LATE_SCHEDULE_DELAY",
    "shutdown_timeout": "FIXTURE_SHUTDOWN_TIMEOUT",
    "gate_timeout": "FIXTURE_GATE_TIMEOUT",
    "queue_poll_interval": "FIXTURE_QUEUE_POLL_INTERVAL",
    "schedule_poll_interval": "FIXTURE_SCHEDULE_POLL_INTERVAL",
}

_SETTINGS_ENV_KEYS = {
    "connection_string": "JOBSTORE_CONNECTION_STRING",
    "database_name": "JOBSTORE_DATABASE_NAME",
    "collection_prefix": "JOBSTORE_COLLECTION_PREFIX",
    "fixture_prefix": "FIXTURE_PREFIX",
    "output_dir": "FIXTURE_OUTPUT_DIR",
    "worker_count": "FIXTURE_WORKER_COUNT",
    "log_level": "FIXTURE_LOG_LEVEL",
    "log_dir": "FIXTURE_LOG_DIR",
}


def load_settings(env_file: Optional[Union[str, Path]] = None) -> FixtureSettings:
    """
    Load settings from a .env file and the environment.

    Variables already set in the environment win over the .env file.
    Values that do not parse or are out of range are logged and replaced
    by their defaults.

    Args:
        env_file: Path to a .env file (None = search from the working directory)

    Returns:
        Validated FixtureSettings
    """
    if env_file is not None:
        load_dotenv(env_file, override=False)
    else:
        load_dotenv(override=False)

    defaults = FixtureTimings()
    timings = _validate_with_fallback(
        FixtureTimings,
        {
            "recurring_cron": _get_env_str("FIXTURE_RECURRING_CRON", defaults.recurring_cron),
            "scheduled_delay": _get_env_float("FIXTURE_SCHEDULED_DELAY", defaults.scheduled_delay),
            "continuation_delay": _get_env_float(
                "FIXTURE_CONTINUATION_DELAY", defaults.continuation_delay
            ),
            "late_schedule_delay": _get_env_float(
                "FIXTURE_LATE_SCHEDULE_DELAY", defaults.late_schedule_delay
            ),
            "shutdown_timeout": _get_env_float("FIXTURE_SHUTDOWN_TIMEOUT", defaults.shutdown_timeout),
            "gate_timeout": _get_env_float("FIXTURE_GATE_TIMEOUT", defaults.gate_timeout),
            "queue_poll_interval": _get_env_float(
                "FIXTURE_QUEUE_POLL_INTERVAL", defaults.queue_poll_interval
            ),
            "schedule_poll_interval": _get_env_float(
                "FIXTURE_SCHEDULE_POLL_INTERVAL", defaults.schedule_poll_interval
            ),
        },
        _TIMING_ENV_KEYS,
    )

    return _validate_with_fallback(
        FixtureSettings,
        {
            "connection_string": _get_env_str("JOBSTORE_CONNECTION_STRING", DEFAULT_CONNECTION_STRING),
            "database_name": _get_env_str("JOBSTORE_DATABASE_NAME", DEFAULT_DATABASE_NAME),
            "collection_prefix": _get_env_str("JOBSTORE_COLLECTION_PREFIX", "jobstore"),
            "fixture_prefix": _get_env_str("FIXTURE_PREFIX", DEFAULT_FIXTURE_PREFIX),
            "output_dir": Path(_get_env_str("FIXTURE_OUTPUT_DIR", ".")),
            "worker_count": _get_env_int("FIXTURE_WORKER_COUNT", None),
            "log_level": _get_env_str("FIXTURE_LOG_LEVEL", "INFO").upper(),
            "log_dir": Path(_get_env_str("FIXTURE_LOG_DIR", "logs")),
            "timings": timings,
        },
        _SETTINGS_ENV_KEYS,
    )
