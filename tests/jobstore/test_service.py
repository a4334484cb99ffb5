"""
JobServer tests.

End-to-end processing with fast intervals: immediate, delayed,
continuation and recurring jobs, plus lifecycle bookkeeping.
"""

import threading
from datetime import timedelta

import pytest

from src.jobstore import (
    JobRegistry,
    JobServer,
    JobState,
    JobStorage,
    QueueManager,
    ServerOptions,
)
from src.jobstore.cron import EVERY_SECOND

from .conftest import wait_until


@pytest.fixture
def calls() -> list:
    return []


@pytest.fixture
def server(storage: JobStorage, registry: JobRegistry, fast_options: ServerOptions, calls):
    lock = threading.Lock()

    def record(*args):
        with lock:
            calls.append(list(args))

    registry.register("test.job", record)
    srv = JobServer(storage, registry, fast_options)
    yield srv
    srv.stop()


class TestLifecycle:
    """Start, stop and server records."""

    def test_announces_and_removes_server(self, server: JobServer, storage: JobStorage):
        server.start()

        servers = storage.list_servers()
        assert [s.server_id for s in servers] == [server.server_id]
        assert servers[0].worker_count == 2
        assert server.server_id.startswith("pytest:")
        assert server.is_running

        assert server.stop() is True
        assert storage.list_servers() == []
        assert not server.is_running

    def test_start_twice_raises(self, server: JobServer):
        server.start()
        with pytest.raises(RuntimeError):
            server.start()

    def test_context_manager(self, storage: JobStorage, registry: JobRegistry, fast_options):
        with JobServer(storage, registry, fast_options) as srv:
            assert srv.is_running
        assert storage.list_servers() == []

    def test_invalid_options(self):
        with pytest.raises(ValueError):
            ServerOptions(worker_count=0)
        with pytest.raises(ValueError):
            ServerOptions(queues=[])


class TestProcessing:
    """Jobs of every kind reach Succeeded."""

    def test_immediate_job(
        self, server: JobServer, queue_manager: QueueManager, storage: JobStorage, calls
    ):
        server.start()
        job = queue_manager.enqueue("test.job", ["X"])

        assert wait_until(lambda: storage.get_job(job.job_id).state_name == JobState.SUCCEEDED)
        assert calls == [["X"]]

    def test_delayed_job(
        self, server: JobServer, queue_manager: QueueManager, storage: JobStorage, calls
    ):
        server.start()
        job = queue_manager.schedule("test.job", timedelta(milliseconds=200), ["later"])

        assert wait_until(lambda: storage.get_job(job.job_id).state_name == JobState.SUCCEEDED)
        assert calls == [["later"]]

    def test_continuation_runs_after_parent(
        self, server: JobServer, queue_manager: QueueManager, storage: JobStorage, calls
    ):
        server.start()
        parent = queue_manager.schedule("test.job", timedelta(milliseconds=100), ["parent"])
        child = queue_manager.continue_with(parent.job_id, "test.job", ["child"])

        assert wait_until(lambda: storage.get_job(child.job_id).state_name == JobState.SUCCEEDED)
        assert calls == [["parent"], ["child"]]

    def test_recurring_job_fires(
        self, server: JobServer, queue_manager: QueueManager, storage: JobStorage, calls
    ):
        server.start()
        queue_manager.add_or_update_recurring("every-second", "test.job", EVERY_SECOND, ["tick"])

        assert wait_until(lambda: ["tick"] in calls)
        assert storage.get_recurring_job("every-second").last_job_id is not None
