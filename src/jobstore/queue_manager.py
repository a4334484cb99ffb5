"""
Queue Manager for the job store.

Client-side job creation and the state moves that feed queues:
- enqueue: Immediate execution
- schedule: Execution after a delay
- continue_with: Execution after a parent job succeeds
- add_or_update_recurring: Cron-driven execution

What QueueManager MUST NOT do:
- Execute jobs (Executor's responsibility)
- Poll for due work (background processes call in here)
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from .cron import parse_cron, next_occurrence
from .entities import (
    Job,
    JobState,
    RecurringJob,
    to_iso,
    utcnow,
)
from .errors import (
    ConcurrencyViolationError,
    JobNotFoundError,
)
from .persistence import JobStorage


logger = logging.getLogger(__name__)


DEFAULT_QUEUE = "default"

# TTL for the per-parent lock guarding continuation bookkeeping
CONTINUATION_LOCK_TTL = timedelta(seconds=30)


class QueueManager:
    """
    Creates jobs and moves them into queues.

    Key behaviors:
    - Enqueue: Job stored as Enqueued, queue signaled
    - Schedule: Job stored as Scheduled, added to the schedule set
    - Continuation: Job stored as Awaiting, appended to its parent;
      enqueued at once if the parent already succeeded
    - Recurring: Hash stored with next_execution from the cron expression
    """

    def __init__(self, storage: JobStorage):
        """
        Initialize QueueManager.

        Args:
            storage: JobStorage for persistence
        """
        self.storage = storage

    # =========================================================================
    # Job Creation
    # =========================================================================

    def enqueue(
        self,
        job_type: str,
        args: Optional[list] = None,
        queue: str = DEFAULT_QUEUE,
    ) -> Job:
        """
        Create a job for immediate execution.

        Args:
            job_type: Registered job type
            args: Positional handler arguments
            queue: Target queue

        Returns:
            The created Job
        """
        job = Job.create(
            job_type=job_type,
            args=args,
            state=JobState.ENQUEUED,
            queue=queue,
        )
        self.storage.create_job(job)
        self.storage.signal_queue(queue)

        logger.info(f"Enqueued job {job.job_id} ({job_type}) on queue '{queue}'")
        return job

    def schedule(
        self,
        job_type: str,
        delay: timedelta,
        args: Optional[list] = None,
        queue: str = DEFAULT_QUEUE,
    ) -> Job:
        """
        Create a job that is enqueued once the delay has passed.

        Returns:
            The created Job in Scheduled state
        """
        enqueue_at = to_iso(utcnow() + delay)
        job = Job.create(
            job_type=job_type,
            args=args,
            state=JobState.SCHEDULED,
            queue=queue,
            state_data={"enqueue_at": enqueue_at},
        )
        self.storage.create_job(job)
        self.storage.add_to_schedule(job.job_id, enqueue_at)

        logger.info(f"Scheduled job {job.job_id} ({job_type}) for {enqueue_at}")
        return job

    def continue_with(
        self,
        parent_id: str,
        job_type: str,
        args: Optional[list] = None,
        queue: str = DEFAULT_QUEUE,
    ) -> Job:
        """
        Create a job that runs after its parent succeeds.

        Raises:
            JobNotFoundError: If the parent job does not exist
        """
        if self.storage.get_job(parent_id) is None:
            raise JobNotFoundError(parent_id)

        job = Job.create(
            job_type=job_type,
            args=args,
            state=JobState.AWAITING,
            queue=queue,
            parent_id=parent_id,
            state_data={"parent_id": parent_id},
        )
        self.storage.create_job(job)

        with self.storage.acquire_distributed_lock(
            f"job:{parent_id}:continuations", CONTINUATION_LOCK_TTL
        ):
            parent = self.storage.add_continuation(parent_id, job.job_id)

            if parent.state_name == JobState.SUCCEEDED:
                job = self.storage.enqueue_job(
                    job.job_id,
                    reason="Parent already succeeded",
                    expected_state=JobState.AWAITING,
                )

        logger.info(f"Created continuation {job.job_id} ({job_type}) of {parent_id}")
        return job

    def add_or_update_recurring(
        self,
        recurring_job_id: str,
        job_type: str,
        cron: str,
        args: Optional[list] = None,
        queue: str = DEFAULT_QUEUE,
    ) -> RecurringJob:
        """
        Register or replace a recurring job.

        Raises:
            InvalidOperationError: If the cron expression is invalid
        """
        parse_cron(cron)

        existing = self.storage.get_recurring_job(recurring_job_id)
        now = utcnow()

        recurring_job = RecurringJob(
            recurring_job_id=recurring_job_id,
            job_type=job_type,
            cron=cron,
            args=list(args or []),
            queue=queue,
            next_execution=to_iso(next_occurrence(cron, now)),
        )
        if existing is not None:
            recurring_job.created_at = existing.created_at
            recurring_job.last_execution = existing.last_execution
            recurring_job.last_job_id = existing.last_job_id

        self.storage.save_recurring_job(recurring_job)

        logger.info(
            f"Registered recurring job '{recurring_job_id}' ({job_type}, cron='{cron}'), "
            f"next at {recurring_job.next_execution}"
        )
        return recurring_job

    def remove_recurring(self, recurring_job_id: str) -> bool:
        return self.storage.remove_recurring_job(recurring_job_id)

    # =========================================================================
    # State Moves (called by background processes and workers)
    # =========================================================================

    def enqueue_scheduled(self, job_id: str) -> Optional[Job]:
        """
        Move a due scheduled job into its queue.

        Returns:
            The enqueued Job, or None if another process moved it first
        """
        if not self.storage.remove_from_schedule(job_id):
            return None

        try:
            job = self.storage.enqueue_job(
                job_id,
                reason="Triggered by delayed job scheduler",
                expected_state=JobState.SCHEDULED,
            )
        except ConcurrencyViolationError as e:
            logger.warning(f"Scheduled job {job_id} changed state before enqueue: {e}")
            return None

        logger.info(f"Enqueued scheduled job {job_id}")
        return job

    def enqueue_continuations(self, parent_id: str) -> list[Job]:
        """
        Enqueue every Awaiting continuation of a succeeded parent.

        Returns:
            The continuations that were enqueued
        """
        enqueued = []

        with self.storage.acquire_distributed_lock(
            f"job:{parent_id}:continuations", CONTINUATION_LOCK_TTL
        ):
            parent = self.storage.get_job(parent_id)
            if parent is None:
                raise JobNotFoundError(parent_id)

            for child_id in parent.continuations:
                child = self.storage.get_job(child_id)
                if child is None or child.state_name != JobState.AWAITING:
                    continue

                enqueued.append(
                    self.storage.enqueue_job(
                        child_id,
                        reason=f"Continuation of {parent_id}",
                        expected_state=JobState.AWAITING,
                    )
                )

        if enqueued:
            logger.info(f"Enqueued {len(enqueued)} continuation(s) of {parent_id}")
        return enqueued

    def trigger_recurring(self, recurring_job: RecurringJob, now: datetime) -> Job:
        """
        Enqueue one execution of a recurring job and advance its schedule.

        Args:
            recurring_job: The due recurring job
            now: Trigger time (aware datetime)

        Returns:
            The enqueued Job

        Raises:
            InvalidOperationError: If the stored cron expression is invalid;
                nothing is enqueued
        """
        next_execution = next_occurrence(recurring_job.cron, now)

        job = Job.create(
            job_type=recurring_job.job_type,
            args=recurring_job.args,
            state=JobState.ENQUEUED,
            queue=recurring_job.queue,
            reason="Triggered by recurring job scheduler",
            state_data={"recurring_job_id": recurring_job.recurring_job_id},
        )
        self.storage.create_job(job)
        self.storage.signal_queue(job.queue)

        self.storage.update_recurring_job(
            recurring_job.recurring_job_id,
            last_execution=to_iso(now),
            last_job_id=job.job_id,
            next_execution=to_iso(next_execution),
        )

        logger.info(
            f"Triggered recurring job '{recurring_job.recurring_job_id}' as {job.job_id}"
        )
        return job
