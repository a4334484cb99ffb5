"""
Dispatcher for the job store.

- Runs a pool of worker threads pulling from the server's queues
- Moves each fetched job Enqueued -> Processing and hands it to Executor
- Enqueues continuations after a job succeeds
- Idles until a queue signal arrives or the poll interval passes

What Dispatcher MUST NOT do:
- Execute the job itself
- Retry failed jobs
- Move scheduled or recurring jobs into queues
"""

import logging
import threading
import time
from enum import Enum
from typing import Optional, Callable

from .entities import Job, JobState
from .errors import ConcurrencyViolationError
from .executor import Executor
from .persistence import JobStorage
from .queue_manager import QueueManager


logger = logging.getLogger(__name__)


class DispatcherState(str, Enum):
    """Dispatcher lifecycle states."""

    STOPPED = "STOPPED"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"


class Dispatcher:
    """
    Pulls jobs from queues and dispatches them to the executor.

    Worker loop:
    1. Fetch the oldest unfetched job from the first non-empty queue
    2. Transition Enqueued -> Processing
    3. Execute
    4. On success, enqueue continuations
    5. Notify the completion callback
    6. If nothing was fetched, idle until signaled
    """

    def __init__(
        self,
        storage: JobStorage,
        queue_manager: QueueManager,
        executor: Executor,
        server_id: str,
        queues: Optional[list[str]] = None,
        worker_count: int = 1,
        poll_interval: float = 15.0,
        signal_check_interval: float = 0.1,
    ):
        """
        Initialize Dispatcher.

        Args:
            storage: JobStorage for fetch and state changes
            queue_manager: QueueManager for continuations
            executor: Executor running the handlers
            server_id: Owning server, recorded on Processing entries
            queues: Queues to pull from, in priority order
            worker_count: Number of worker threads
            poll_interval: Longest idle wait without a signal
            signal_check_interval: How often an idle worker checks for signals
        """
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")

        self.storage = storage
        self.queue_manager = queue_manager
        self.executor = executor
        self.server_id = server_id
        self.queues = list(queues or ["default"])
        self.worker_count = worker_count
        self.poll_interval = poll_interval
        self.signal_check_interval = signal_check_interval

        self._state = DispatcherState.STOPPED
        self._threads: list[threading.Thread] = []
        self._stop_event = threading.Event()

        self._on_job_completed: Optional[Callable[[Job], None]] = None

    @property
    def state(self) -> DispatcherState:
        return self._state

    def set_on_job_completed(self, callback: Callable[[Job], None]) -> None:
        """Set callback invoked with each job after it reaches a final state."""
        self._on_job_completed = callback

    # =========================================================================
    # Single Dispatch Operation
    # =========================================================================

    def dispatch_one(self, worker_id: str = "worker") -> Optional[Job]:
        """
        Attempt to fetch and execute a single job.

        Returns:
            The job in its final state, or None if no job was available
        """
        fetched = self.storage.fetch_next_job(self.queues)
        if fetched is None:
            return None

        try:
            job = self.storage.set_job_state(
                fetched.job_id,
                JobState.PROCESSING,
                reason=None,
                data={"server_id": self.server_id, "worker_id": worker_id},
                expected_state=JobState.ENQUEUED,
            )
        except ConcurrencyViolationError as e:
            logger.warning(f"Job {fetched.job_id} changed state after fetch: {e}")
            return None

        logger.info(f"Dispatched job {job.job_id} (type={job.job_type}) to {worker_id}")

        job = self.executor.execute(job)

        if job.state_name == JobState.SUCCEEDED and job.continuations:
            self.queue_manager.enqueue_continuations(job.job_id)

        if self._on_job_completed is not None:
            try:
                self._on_job_completed(job)
            except Exception as e:
                logger.error(f"Error in completion callback: {e}")

        return job

    # =========================================================================
    # Worker Pool
    # =========================================================================

    def start(self) -> None:
        """Start the worker threads."""
        if self._state != DispatcherState.STOPPED:
            raise RuntimeError(f"Cannot start dispatcher in {self._state.value} state")

        self._stop_event.clear()
        self._state = DispatcherState.RUNNING

        self._threads = []
        for index in range(self.worker_count):
            worker_id = f"{self.server_id}:worker:{index + 1}"
            thread = threading.Thread(
                target=self._worker_loop,
                args=(worker_id,),
                name=worker_id,
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

        logger.info(
            f"Dispatcher started with {self.worker_count} worker(s) on queues {self.queues}"
        )

    def send_stop(self) -> None:
        """Ask workers to stop after their current job."""
        if self._state == DispatcherState.RUNNING:
            logger.info("Stopping dispatcher...")
            self._state = DispatcherState.STOPPING
        self._stop_event.set()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for all workers to exit.

        Args:
            timeout: Maximum seconds to wait in total (None = wait forever)

        Returns:
            True if every worker exited, False if the timeout was reached
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        for thread in self._threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(timeout=remaining)

        alive = [thread.name for thread in self._threads if thread.is_alive()]
        if alive:
            logger.warning(f"Workers did not stop within timeout: {alive}")
            return False

        self._threads = []
        self._state = DispatcherState.STOPPED
        logger.info("Dispatcher stopped")
        return True

    def stop(self, timeout: Optional[float] = 30.0) -> bool:
        """Stop the workers gracefully."""
        if self._state == DispatcherState.STOPPED:
            return True
        self.send_stop()
        return self.wait_for_shutdown(timeout)

    def is_running(self) -> bool:
        return self._state == DispatcherState.RUNNING

    def _worker_loop(self, worker_id: str) -> None:
        logger.debug(f"Worker {worker_id} started")

        while not self._stop_event.is_set():
            try:
                job = self.dispatch_one(worker_id)
                if job is None:
                    self._idle_wait()
            except Exception as e:
                logger.error(f"Error in worker {worker_id}: {e}", exc_info=True)
                self._stop_event.wait(self.signal_check_interval)

        logger.debug(f"Worker {worker_id} ended")

    def _idle_wait(self) -> None:
        """Wait until a queue is signaled, the poll interval passes, or stop."""
        deadline = time.monotonic() + self.poll_interval

        while not self._stop_event.is_set():
            for queue in self.queues:
                if self.storage.consume_signal(queue):
                    return

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            self._stop_event.wait(min(self.signal_check_interval, remaining))
