"""
Executor for the job store.

- Resolves a job's type to a registered handler
- Runs the handler with the job's positional arguments
- Records Succeeded or Failed with execution data

What Executor MUST NOT do:
- Fetch jobs (Dispatcher's responsibility)
- Retry failed jobs
- Enqueue continuations
"""

import logging
import threading
import time
from typing import Any, Callable

from .entities import Job
from .errors import UnknownJobTypeError
from .persistence import JobStorage


logger = logging.getLogger(__name__)


JobHandler = Callable[..., Any]


class JobRegistry:
    """Maps job type names to callables."""

    def __init__(self):
        self._handlers: dict[str, JobHandler] = {}
        self._lock = threading.Lock()

    def register(self, job_type: str, handler: JobHandler) -> None:
        """
        Register a handler for a job type.

        Registering the same type again replaces the handler.
        """
        with self._lock:
            if job_type in self._handlers:
                logger.debug(f"Replacing handler for job type '{job_type}'")
            self._handlers[job_type] = handler

    def resolve(self, job_type: str) -> JobHandler:
        """
        Get the handler for a job type.

        Raises:
            UnknownJobTypeError: If no handler is registered
        """
        with self._lock:
            handler = self._handlers.get(job_type)
        if handler is None:
            raise UnknownJobTypeError(job_type)
        return handler

    def __contains__(self, job_type: str) -> bool:
        with self._lock:
            return job_type in self._handlers

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._handlers)


class Executor:
    """
    Runs a claimed job to a terminal state.

    The job must already be in Processing state.
    """

    def __init__(self, storage: JobStorage, registry: JobRegistry):
        """
        Initialize Executor.

        Args:
            storage: JobStorage for state transitions
            registry: JobRegistry resolving job types
        """
        self.storage = storage
        self.registry = registry

    def execute(self, job: Job) -> Job:
        """
        Execute a job and record the outcome.

        Handler exceptions are recorded as Failed and do not propagate.

        Args:
            job: Job in Processing state

        Returns:
            The job in its terminal state
        """
        started = time.monotonic()

        try:
            handler = self.registry.resolve(job.job_type)
            handler(*job.args)
        except Exception as e:
            duration = time.monotonic() - started
            logger.exception(f"Job {job.job_id} ({job.job_type}) failed: {e}")
            return self.storage.mark_failed(
                job.job_id,
                reason="An exception occurred during performance of the job",
                data={
                    "exception_type": type(e).__name__,
                    "exception_message": str(e),
                    "duration": round(duration * 1000),
                },
            )

        duration = time.monotonic() - started
        result = self.storage.mark_succeeded(
            job.job_id,
            data={"performance_duration": round(duration * 1000)},
        )

        logger.info(
            f"Job {job.job_id} ({job.job_type}) succeeded in {duration:.3f}s"
        )
        return result
