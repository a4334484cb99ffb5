"""
Snapshot Gate - wait/submit ordering for a fixture run.

Order:
1. Submit the initial wave
2. Wait SCHEDULED, then submit a far-future scheduled job
3. Wait CONTINUATION, RECURRING, ENQUEUED
4. Submit a second enqueued job
5. Stop the engine, bounded by the shutdown timeout

The second-wave jobs are never awaited; they stay in the store as
pending or queued records.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

from .driver import JobDriver, Submission
from .signals import JobCategory, SignalBus


logger = logging.getLogger(__name__)


# Gates awaited after the first scheduled job ran, in order
FOLLOW_UP_WAIT_ORDER = (
    JobCategory.CONTINUATION,
    JobCategory.RECURRING,
    JobCategory.ENQUEUED,
)


class StoppableServer(Protocol):
    def stop(self, timeout: Optional[float] = None) -> bool:
        ...


@dataclass
class SnapshotReport:
    """Outcome of a gate run."""

    initial_wave: list[Submission] = field(default_factory=list)
    late_schedule: Optional[Submission] = None
    late_enqueue: Optional[Submission] = None
    awaited: list[JobCategory] = field(default_factory=list)
    clean_shutdown: bool = False

    @property
    def submissions(self) -> list[Submission]:
        result = list(self.initial_wave)
        if self.late_schedule is not None:
            result.append(self.late_schedule)
        if self.late_enqueue is not None:
            result.append(self.late_enqueue)
        return result


class SnapshotGate:
    """
    Drives one run to quiescence and stops the engine.

    Exactly four gate waits and one bounded shutdown; no sleeps.
    """

    def __init__(
        self,
        driver: JobDriver,
        signals: SignalBus,
        server: StoppableServer,
        shutdown_timeout: float = 15.0,
        gate_timeout: Optional[float] = None,
    ):
        """
        Initialize SnapshotGate.

        Args:
            driver: Submits jobs and owns the handlers
            signals: Gates opened by the handlers
            server: Running engine server
            shutdown_timeout: Bound on the engine shutdown
            gate_timeout: Bound on each gate wait (None = wait forever)
        """
        self.driver = driver
        self.signals = signals
        self.server = server
        self.shutdown_timeout = shutdown_timeout
        self.gate_timeout = gate_timeout

    def run(self) -> SnapshotReport:
        """
        Run the submission and wait sequence.

        Returns:
            SnapshotReport with every submission made

        Raises:
            SignalTimeoutError: If a gate_timeout is set and a gate stays unset
        """
        report = SnapshotReport()

        report.initial_wave = self.driver.submit_initial_wave()

        self._wait(JobCategory.SCHEDULED, report)
        report.late_schedule = self.driver.submit_late_schedule()

        for category in FOLLOW_UP_WAIT_ORDER:
            self._wait(category, report)

        report.late_enqueue = self.driver.submit_late_enqueue()

        logger.info(f"All gates set, stopping engine (timeout={self.shutdown_timeout}s)")
        report.clean_shutdown = self.server.stop(timeout=self.shutdown_timeout)
        if not report.clean_shutdown:
            logger.warning("Engine did not stop cleanly within the shutdown timeout")

        return report

    def _wait(self, category: JobCategory, report: SnapshotReport) -> None:
        self.signals.wait(category, timeout=self.gate_timeout)
        report.awaited.append(category)
