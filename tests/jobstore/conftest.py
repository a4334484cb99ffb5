"""
Job Store Test Fixtures.

Base fixtures:
  - Empty store in a temporary directory
  - JobStorage and QueueManager on that store
  - JobRegistry with no handlers

Processing fixtures use sub-second intervals so background work
finishes quickly; waits are bounded so a stall fails instead of hanging.
"""

import time
from pathlib import Path
from typing import Callable, Generator

import pytest

from src.jobstore import (
    DocumentStore,
    JobStorage,
    JobRegistry,
    QueueManager,
    ServerOptions,
)


# Upper bound for any wait on background processing
WAIT_TIMEOUT = 10.0


def wait_until(predicate: Callable[[], bool], timeout: float = WAIT_TIMEOUT, interval: float = 0.02) -> bool:
    """Poll predicate until it returns True or the timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def store_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "store"
    directory.mkdir()
    return directory


@pytest.fixture
def store(store_dir: Path) -> Generator[DocumentStore, None, None]:
    """Create a fresh DocumentStore with an empty database."""
    with DocumentStore.connect(store_dir, "JobStore-Test") as s:
        yield s


@pytest.fixture
def storage(store: DocumentStore) -> JobStorage:
    return JobStorage(store)


# =============================================================================
# Component Fixtures
# =============================================================================


@pytest.fixture
def queue_manager(storage: JobStorage) -> QueueManager:
    return QueueManager(storage)


@pytest.fixture
def registry() -> JobRegistry:
    return JobRegistry()


@pytest.fixture
def fast_options() -> ServerOptions:
    """Server options with fast polling for tests."""
    return ServerOptions(
        server_name="pytest",
        worker_count=2,
        shutdown_timeout=5.0,
        queue_poll_interval=0.2,
        signal_check_interval=0.02,
        schedule_poll_interval=0.05,
        heartbeat_interval=0.1,
    )
