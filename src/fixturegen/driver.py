"""
Job Driver - fixed submission repertoire for a fixture run.

Submits one job per category through the engine client and registers
the handlers that open the matching gate when the engine runs them.

Repertoire:
- Recurring: cron-driven, opens RECURRING on every firing
- Scheduled: delayed, opens SCHEDULED
- Enqueued: immediate, opens ENQUEUED
- Continuation: delayed parent (opens nothing) chained to a child that
  opens CONTINUATION
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Optional

from src.infra.config import FixtureTimings
from src.jobstore.entities import now_iso
from src.jobstore.executor import JobRegistry
from src.jobstore.queue_manager import QueueManager

from .signals import JobCategory, SignalBus


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

JOB_TYPES = {
    JobCategory.RECURRING: "fixtures.recurring",
    JobCategory.SCHEDULED: "fixtures.scheduled",
    JobCategory.ENQUEUED: "fixtures.enqueued",
    JobCategory.CONTINUATION: "fixtures.continuation",
}

RECURRING_JOB_ID = "fixtures-recurring-job"

RECURRING_PAYLOAD = "Recurring job"
SCHEDULED_PAYLOAD = "Scheduled job"
ENQUEUED_PAYLOAD = "Enqueued job"
CONTINUATION_PARENT_PAYLOAD = "ContinueWith job"
CONTINUATION_CHILD_PAYLOAD = "ContinueWith job continued"
LATE_SCHEDULED_PAYLOAD = "Scheduled job (*)"
LATE_ENQUEUED_PAYLOAD = "Enqueued job (*)"


class TriggerKind(str, Enum):
    """How a submission is handed to the engine."""

    IMMEDIATE = "IMMEDIATE"
    DELAY = "DELAY"
    RECURRING = "RECURRING"
    CONTINUATION_OF = "CONTINUATION_OF"


@dataclass(frozen=True)
class Trigger:
    kind: TriggerKind
    delay: Optional[timedelta] = None
    cron: Optional[str] = None
    parent_id: Optional[str] = None

    @classmethod
    def immediate(cls) -> "Trigger":
        return cls(TriggerKind.IMMEDIATE)

    @classmethod
    def after(cls, delay: timedelta) -> "Trigger":
        return cls(TriggerKind.DELAY, delay=delay)

    @classmethod
    def recurring(cls, cron: str) -> "Trigger":
        return cls(TriggerKind.RECURRING, cron=cron)

    @classmethod
    def continuation_of(cls, parent_id: str) -> "Trigger":
        return cls(TriggerKind.CONTINUATION_OF, parent_id=parent_id)


@dataclass(frozen=True)
class Submission:
    """
    A job handed to the engine.

    Fire-and-forget: completion is observed only through the gate.
    job_id is the engine job ID, or the recurring job ID for recurring
    submissions.
    """

    category: JobCategory
    payload: str
    trigger: Trigger
    job_id: str

    @property
    def args(self) -> list:
        return build_args(self.category, self.payload, self.trigger)


@dataclass(frozen=True)
class TraceEntry:
    category: JobCategory
    payload: str
    continued: Optional[bool] = None
    recorded_at: str = field(default_factory=now_iso)


def build_args(category: JobCategory, payload: str, trigger: Trigger) -> list:
    """Handler arguments for a submission."""
    if category == JobCategory.CONTINUATION:
        return [payload, trigger.kind == TriggerKind.CONTINUATION_OF]
    return [payload]


class JobDriver:
    """
    Submits the repertoire and bridges handler calls to gates.

    One driver per run; the registry and bus are owned by that run.
    """

    def __init__(
        self,
        queue_manager: QueueManager,
        registry: JobRegistry,
        signals: SignalBus,
        timings: Optional[FixtureTimings] = None,
        queue: str = "default",
    ):
        """
        Initialize JobDriver.

        Args:
            queue_manager: Engine client used for submissions
            registry: Registry the engine resolves handlers from
            signals: Gates opened by the handlers
            timings: Delays for the repertoire
            queue: Queue all submissions go to
        """
        self.queue_manager = queue_manager
        self.registry = registry
        self.signals = signals
        self.timings = timings or FixtureTimings()
        self.queue = queue

        self._trace: list[TraceEntry] = []
        self._trace_lock = threading.Lock()

    # =========================================================================
    # Handlers
    # =========================================================================

    def register_handlers(self) -> None:
        """Register one handler per category in the run's registry."""
        self.registry.register(JOB_TYPES[JobCategory.RECURRING], self.execute_recurring_job)
        self.registry.register(JOB_TYPES[JobCategory.SCHEDULED], self.execute_scheduled_job)
        self.registry.register(JOB_TYPES[JobCategory.ENQUEUED], self.execute_enqueued_job)
        self.registry.register(
            JOB_TYPES[JobCategory.CONTINUATION], self.execute_continuation_job
        )

    def execute_recurring_job(self, argument: str) -> None:
        self._record(JobCategory.RECURRING, argument)
        self.signals.set(JobCategory.RECURRING)

    def execute_scheduled_job(self, argument: str) -> None:
        self._record(JobCategory.SCHEDULED, argument)
        self.signals.set(JobCategory.SCHEDULED)

    def execute_enqueued_job(self, argument: str) -> None:
        self._record(JobCategory.ENQUEUED, argument)
        self.signals.set(JobCategory.ENQUEUED)

    def execute_continuation_job(self, argument: str, continued: bool) -> None:
        """Only the chained child opens the CONTINUATION gate."""
        self._record(JobCategory.CONTINUATION, argument, continued)
        if continued:
            self.signals.set(JobCategory.CONTINUATION)

    def _record(
        self,
        category: JobCategory,
        payload: str,
        continued: Optional[bool] = None,
    ) -> None:
        entry = TraceEntry(category=category, payload=payload, continued=continued)
        with self._trace_lock:
            self._trace.append(entry)

        suffix = f" (continued={continued})" if continued is not None else ""
        logger.info(f"[{category.value}] {payload}{suffix}")

    @property
    def trace(self) -> list[TraceEntry]:
        """Handler calls so far, in call order."""
        with self._trace_lock:
            return list(self._trace)

    # =========================================================================
    # Submissions
    # =========================================================================

    def submit(self, category: JobCategory, payload: str, trigger: Trigger) -> Submission:
        """
        Hand one job to the engine.

        Returns:
            The Submission with the engine-assigned ID
        """
        job_type = JOB_TYPES[category]
        args = build_args(category, payload, trigger)

        if trigger.kind == TriggerKind.IMMEDIATE:
            job_id = self.queue_manager.enqueue(job_type, args, queue=self.queue).job_id
        elif trigger.kind == TriggerKind.DELAY:
            job_id = self.queue_manager.schedule(
                job_type, trigger.delay, args, queue=self.queue
            ).job_id
        elif trigger.kind == TriggerKind.RECURRING:
            job_id = self.queue_manager.add_or_update_recurring(
                RECURRING_JOB_ID, job_type, trigger.cron, args, queue=self.queue
            ).recurring_job_id
        else:
            job_id = self.queue_manager.continue_with(
                trigger.parent_id, job_type, args, queue=self.queue
            ).job_id

        logger.debug(f"Submitted {category.value} '{payload}' as {job_id} ({trigger.kind.value})")
        return Submission(category=category, payload=payload, trigger=trigger, job_id=job_id)

    def submit_initial_wave(self) -> list[Submission]:
        """Submit the recurring, scheduled, enqueued and continuation jobs."""
        timings = self.timings

        submissions = [
            self.submit(
                JobCategory.RECURRING,
                RECURRING_PAYLOAD,
                Trigger.recurring(timings.recurring_cron),
            ),
            self.submit(
                JobCategory.SCHEDULED,
                SCHEDULED_PAYLOAD,
                Trigger.after(timings.as_delta("scheduled_delay")),
            ),
            self.submit(JobCategory.ENQUEUED, ENQUEUED_PAYLOAD, Trigger.immediate()),
        ]

        parent = self.submit(
            JobCategory.CONTINUATION,
            CONTINUATION_PARENT_PAYLOAD,
            Trigger.after(timings.as_delta("continuation_delay")),
        )
        child = self.submit(
            JobCategory.CONTINUATION,
            CONTINUATION_CHILD_PAYLOAD,
            Trigger.continuation_of(parent.job_id),
        )
        submissions.extend([parent, child])

        logger.info(f"Submitted initial wave of {len(submissions)} jobs")
        return submissions

    def submit_late_schedule(self) -> Submission:
        """Scheduled job far enough out that it stays pending in the fixture."""
        return self.submit(
            JobCategory.SCHEDULED,
            LATE_SCHEDULED_PAYLOAD,
            Trigger.after(self.timings.as_delta("late_schedule_delay")),
        )

    def submit_late_enqueue(self) -> Submission:
        """Enqueued job submitted right before shutdown."""
        return self.submit(JobCategory.ENQUEUED, LATE_ENQUEUED_PAYLOAD, Trigger.immediate())
