"""
Job store exceptions.

Raised by the document store, the job storage layer and the processing
server. The fixture generator never catches these; they propagate to the
caller as fatal errors.
"""


class JobStoreError(Exception):
    """Base exception for all job store errors."""
    pass


class StoreConnectionError(JobStoreError):
    """Raised when the document store cannot be opened or has been closed."""

    def __init__(self, connection_string: str, reason: str):
        self.connection_string = connection_string
        self.reason = reason
        super().__init__(f"Cannot connect to store '{connection_string}': {reason}")


class InvalidOperationError(JobStoreError):
    """
    Raised when an operation violates job store rules.

    Examples:
    - Continuation requested for a job that does not exist
    - Invalid cron expression for a recurring job
    - Handler registered twice for the same job type
    """
    pass


class JobNotFoundError(JobStoreError):
    """Raised when a requested job does not exist."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class UnknownJobTypeError(JobStoreError):
    """Raised when no handler is registered for a job type."""

    def __init__(self, job_type: str):
        self.job_type = job_type
        super().__init__(f"No handler registered for job type: {job_type}")


class DuplicateKeyError(JobStoreError):
    """Raised when inserting a document whose _id already exists."""

    def __init__(self, collection_name: str, document_id: str):
        self.collection_name = collection_name
        self.document_id = document_id
        super().__init__(
            f"Duplicate key in collection '{collection_name}': {document_id}"
        )


class DistributedLockTimeoutError(JobStoreError):
    """Raised when a distributed lock could not be acquired in time."""

    def __init__(self, resource: str, timeout: float):
        self.resource = resource
        self.timeout = timeout
        super().__init__(
            f"Could not acquire distributed lock '{resource}' within {timeout}s"
        )


class ConcurrencyViolationError(JobStoreError):
    """
    Raised when a concurrent state change is detected.

    Used for guarded state transitions where the job was already moved
    to another state by a different worker.
    """

    def __init__(self, job_id: str, expected_state: str, actual_state: str):
        self.job_id = job_id
        self.expected_state = expected_state
        self.actual_state = actual_state
        super().__init__(
            f"Concurrency violation for job {job_id}: "
            f"expected state '{expected_state}', got '{actual_state}'"
        )
