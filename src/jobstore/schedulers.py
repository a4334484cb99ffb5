"""
Background processes for the job store server.

- DelayedJobScheduler: moves due Scheduled jobs into their queues
- RecurringJobScheduler: triggers recurring jobs whose cron time has come
- ServerHeartbeat: keeps the server record's last_heartbeat current

Each process runs run_once() on its own thread every interval until
stopped. The two schedulers take a distributed lock per pass so several
servers sharing a store do not double-trigger.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Optional

from .entities import to_iso, utcnow
from .errors import DistributedLockTimeoutError, InvalidOperationError
from .persistence import JobStorage
from .queue_manager import QueueManager


logger = logging.getLogger(__name__)


SCHEDULE_POLLER_LOCK = "schedule-poller:lock"
RECURRING_JOBS_LOCK = "recurring-jobs:lock"

# Lock settings for one scheduler pass
PASS_LOCK_TTL = timedelta(minutes=1)
PASS_LOCK_TIMEOUT = timedelta(seconds=1)


class BackgroundProcess:
    """
    Periodic task on a daemon thread.

    Subclasses implement run_once(). Errors are logged and the loop
    continues on the next interval.
    """

    name = "background-process"

    def __init__(self, interval: float):
        self.interval = interval
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def run_once(self, now: Optional[datetime] = None) -> int:
        raise NotImplementedError

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError(f"{self.name} already started")

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.debug(f"{self.name} started (interval={self.interval}s)")

    def send_stop(self) -> None:
        self._stop_event.set()

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        if self._thread is None:
            return True

        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(f"{self.name} did not stop within timeout")
            return False

        self._thread = None
        logger.debug(f"{self.name} stopped")
        return True

    def stop(self, timeout: Optional[float] = 30.0) -> bool:
        self.send_stop()
        return self.wait_for_shutdown(timeout)

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Error in {self.name}: {e}", exc_info=True)
            self._stop_event.wait(self.interval)


class DelayedJobScheduler(BackgroundProcess):
    """Enqueues Scheduled jobs whose enqueue time has passed."""

    name = "delayed-job-scheduler"

    def __init__(
        self,
        storage: JobStorage,
        queue_manager: QueueManager,
        interval: float = 15.0,
        batch_size: int = 1000,
    ):
        super().__init__(interval)
        self.storage = storage
        self.queue_manager = queue_manager
        self.batch_size = batch_size

    def run_once(self, now: Optional[datetime] = None) -> int:
        """
        Enqueue every due scheduled job.

        Args:
            now: Reference time (defaults to current UTC time)

        Returns:
            Number of jobs enqueued in this pass
        """
        now_str = to_iso(now or utcnow())

        try:
            lock = self.storage.acquire_distributed_lock(
                SCHEDULE_POLLER_LOCK, PASS_LOCK_TTL, timeout=PASS_LOCK_TIMEOUT
            )
        except DistributedLockTimeoutError:
            logger.debug("Schedule poller lock held elsewhere, skipping pass")
            return 0

        enqueued = 0
        with lock:
            for job_id in self.storage.get_due_scheduled(now_str, limit=self.batch_size):
                if self.queue_manager.enqueue_scheduled(job_id) is not None:
                    enqueued += 1

        if enqueued:
            logger.info(f"Enqueued {enqueued} scheduled job(s)")
        return enqueued


class RecurringJobScheduler(BackgroundProcess):
    """Triggers recurring jobs whose next execution has come."""

    name = "recurring-job-scheduler"

    def __init__(
        self,
        storage: JobStorage,
        queue_manager: QueueManager,
        interval: float = 15.0,
    ):
        super().__init__(interval)
        self.storage = storage
        self.queue_manager = queue_manager

    def run_once(self, now: Optional[datetime] = None) -> int:
        """
        Trigger every due recurring job once.

        A recurring job that missed several occurrences is triggered once
        and its next execution moves past the reference time.

        Returns:
            Number of jobs triggered in this pass
        """
        now = now or utcnow()
        now_str = to_iso(now)

        try:
            lock = self.storage.acquire_distributed_lock(
                RECURRING_JOBS_LOCK, PASS_LOCK_TTL, timeout=PASS_LOCK_TIMEOUT
            )
        except DistributedLockTimeoutError:
            logger.debug("Recurring jobs lock held elsewhere, skipping pass")
            return 0

        triggered = 0
        with lock:
            for recurring_job in self.storage.get_recurring_jobs():
                if not recurring_job.is_due(now_str):
                    continue
                try:
                    self.queue_manager.trigger_recurring(recurring_job, now)
                except InvalidOperationError as e:
                    logger.error(f"Cannot trigger recurring job '{recurring_job.recurring_job_id}': {e}")
                    continue
                triggered += 1

        return triggered


class ServerHeartbeat(BackgroundProcess):
    """Refreshes the server record while the server runs."""

    name = "server-heartbeat"

    def __init__(self, storage: JobStorage, server_id: str, interval: float = 30.0):
        super().__init__(interval)
        self.storage = storage
        self.server_id = server_id

    def run_once(self, now: Optional[datetime] = None) -> int:
        if not self.storage.heartbeat(self.server_id):
            logger.warning(f"Server {self.server_id} record missing during heartbeat")
            return 0
        return 1
