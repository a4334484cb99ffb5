"""
Job Server - processing host for the job store.

Orchestrates the processing components:
- Dispatcher (worker pool)
- DelayedJobScheduler (scheduled -> enqueued)
- RecurringJobScheduler (cron -> enqueued)
- ServerHeartbeat (server record liveness)

Usage:
    with JobServer(storage, registry, ServerOptions(worker_count=4)) as server:
        ...  # jobs run in the background
    # server stopped, record removed
"""

import logging
import os
import socket
from dataclasses import dataclass, field
from typing import Any, Optional, Callable

from .entities import Job, ServerContext, generate_uuid
from .dispatcher import Dispatcher
from .executor import Executor, JobRegistry
from .persistence import JobStorage
from .queue_manager import QueueManager
from .schedulers import (
    BackgroundProcess,
    DelayedJobScheduler,
    RecurringJobScheduler,
    ServerHeartbeat,
)


logger = logging.getLogger(__name__)


def default_worker_count() -> int:
    return min(20, (os.cpu_count() or 1) * 5)


@dataclass
class ServerOptions:
    """Processing server settings. Intervals are in seconds."""

    server_name: Optional[str] = None
    worker_count: int = field(default_factory=default_worker_count)
    queues: list = field(default_factory=lambda: ["default"])
    shutdown_timeout: float = 15.0
    queue_poll_interval: float = 15.0
    signal_check_interval: float = 0.1
    schedule_poll_interval: float = 15.0
    heartbeat_interval: float = 30.0

    def __post_init__(self):
        if self.worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {self.worker_count}")
        if not self.queues:
            raise ValueError("queues must not be empty")


class JobServer:
    """
    Runs workers and background processes against a JobStorage.

    Provides:
    - Component wiring
    - Server announcement on start
    - Graceful shutdown bounded by a timeout, removing the server record
    """

    def __init__(
        self,
        storage: JobStorage,
        registry: JobRegistry,
        options: Optional[ServerOptions] = None,
    ):
        """
        Initialize JobServer with all components.

        Args:
            storage: JobStorage shared with clients
            registry: Handlers for the job types this server runs
            options: Server settings
        """
        self.storage = storage
        self.registry = registry
        self.options = options or ServerOptions()

        name = self.options.server_name or socket.gethostname()
        self.server_id = f"{name}:{os.getpid()}:{generate_uuid()[:8]}"

        self.queue_manager = QueueManager(storage)
        self.executor = Executor(storage, registry)
        self.dispatcher = Dispatcher(
            storage=storage,
            queue_manager=self.queue_manager,
            executor=self.executor,
            server_id=self.server_id,
            queues=self.options.queues,
            worker_count=self.options.worker_count,
            poll_interval=self.options.queue_poll_interval,
            signal_check_interval=self.options.signal_check_interval,
        )
        self.processes: list[BackgroundProcess] = [
            DelayedJobScheduler(
                storage, self.queue_manager, interval=self.options.schedule_poll_interval
            ),
            RecurringJobScheduler(
                storage, self.queue_manager, interval=self.options.schedule_poll_interval
            ),
            ServerHeartbeat(
                storage, self.server_id, interval=self.options.heartbeat_interval
            ),
        ]

        self._started = False

    def set_on_job_completed(self, callback: Callable[[Job], None]) -> None:
        self.dispatcher.set_on_job_completed(callback)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """
        Announce the server and start workers and background processes.

        Raises:
            RuntimeError: If already started
        """
        if self._started:
            raise RuntimeError("Job server already started")

        logger.info(f"Starting job server {self.server_id}...")

        self.storage.announce_server(
            self.server_id,
            ServerContext(
                worker_count=self.options.worker_count,
                queues=list(self.options.queues),
            ),
        )

        self.dispatcher.start()
        for process in self.processes:
            process.start()

        self._started = True
        logger.info("Job server started")

    def stop(self, timeout: Optional[float] = None) -> bool:
        """
        Stop the server gracefully.

        Workers finish their current job. The server record is removed
        even if the timeout is reached.

        Args:
            timeout: Maximum wait (defaults to options.shutdown_timeout)

        Returns:
            True if every component stopped within the timeout
        """
        if not self._started:
            return True

        if timeout is None:
            timeout = self.options.shutdown_timeout

        logger.info(f"Stopping job server {self.server_id}...")

        self.dispatcher.send_stop()
        for process in self.processes:
            process.send_stop()

        clean = self.dispatcher.wait_for_shutdown(timeout)
        for process in self.processes:
            clean = process.wait_for_shutdown(timeout) and clean

        self.storage.remove_server(self.server_id)
        self._started = False

        if clean:
            logger.info("Job server stopped")
        else:
            logger.warning(f"Job server stopped with components still running after {timeout}s")
        return clean

    @property
    def is_running(self) -> bool:
        return self._started and self.dispatcher.is_running()

    def __enter__(self) -> "JobServer":
        self.start()
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.stop()
