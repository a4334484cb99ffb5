"""
Fixture Generator Test Fixtures.

Timings are scaled down so an end-to-end run finishes in a few seconds;
every gate wait is bounded so a stall fails instead of hanging.
"""

import json
import time
import zipfile
from datetime import timedelta
from pathlib import Path
from typing import Callable, Generator

import pytest

from src.infra.config import FixtureSettings, FixtureTimings
from src.jobstore import DocumentStore, Job, JobStorage, ServerContext


@pytest.fixture
def fast_timings() -> FixtureTimings:
    return FixtureTimings(
        recurring_cron="* * * * * *",
        scheduled_delay=0.3,
        continuation_delay=0.2,
        late_schedule_delay=1800,
        shutdown_timeout=5.0,
        gate_timeout=20.0,
        queue_poll_interval=0.2,
        signal_check_interval=0.02,
        schedule_poll_interval=0.05,
    )


@pytest.fixture
def settings(tmp_path: Path, fast_timings: FixtureTimings) -> FixtureSettings:
    store_dir = tmp_path / "store"
    store_dir.mkdir()
    return FixtureSettings(
        connection_string=str(store_dir),
        database_name="JobStore-Fixture",
        output_dir=tmp_path / "out",
        worker_count=2,
        log_dir=tmp_path / "logs",
        timings=fast_timings,
    )


@pytest.fixture
def store(settings: FixtureSettings) -> Generator[DocumentStore, None, None]:
    with DocumentStore.connect(settings.connection_string, settings.database_name) as s:
        yield s


@pytest.fixture
def storage(store: DocumentStore) -> JobStorage:
    return JobStorage(store)


def read_archive(path: Path) -> dict:
    """Parse every entry of a fixture archive into a list of documents."""
    with zipfile.ZipFile(path) as archive:
        return {
            name: json.loads(archive.read(name).decode("utf-8"))
            for name in archive.namelist()
        }


def wait_until(predicate: Callable[[], bool], timeout: float = 10.0, interval: float = 0.02) -> bool:
    """Poll predicate until it returns True or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


def populate_without_signals(storage: JobStorage) -> None:
    """Fill every collection except signal."""
    storage.create_job(Job.create("test.job", ["X"]))
    storage.increment_counter("stats:succeeded")
    storage.announce_server("test-server", ServerContext(1, ["default"]))
    storage.acquire_distributed_lock("test-lock", timedelta(seconds=30))
