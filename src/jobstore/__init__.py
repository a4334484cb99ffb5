"""
Job Store Core Module.

Document-store backed job engine:
- Collections per prefix (job, stateData, locks, server, schema, signal)
- Enqueued, scheduled, continuation and recurring jobs
- Worker pool with queue signals and background schedulers
"""

from .entities import (
    JobState,
    Job,
    RecurringJob,
    StateChange,
    ServerContext,
    ServerRecord,
    LockRecord,
)
from .errors import (
    JobStoreError,
    StoreConnectionError,
    InvalidOperationError,
    JobNotFoundError,
    UnknownJobTypeError,
    DuplicateKeyError,
    DistributedLockTimeoutError,
    ConcurrencyViolationError,
)
from .database import DocumentStore, Collection, Document
from .schema import (
    SchemaVersion,
    CollectionNames,
    REQUIRED_SCHEMA_VERSION,
    DEFAULT_COLLECTION_PREFIX,
)
from .persistence import JobStorage, DistributedLock, read_schema_version
from .queue_manager import QueueManager
from .executor import Executor, JobRegistry
from .dispatcher import Dispatcher, DispatcherState
from .schedulers import DelayedJobScheduler, RecurringJobScheduler, ServerHeartbeat
from .service import JobServer, ServerOptions

__all__ = [
    # Entities
    "JobState",
    "Job",
    "RecurringJob",
    "StateChange",
    "ServerContext",
    "ServerRecord",
    "LockRecord",
    # Errors
    "JobStoreError",
    "StoreConnectionError",
    "InvalidOperationError",
    "JobNotFoundError",
    "UnknownJobTypeError",
    "DuplicateKeyError",
    "DistributedLockTimeoutError",
    "ConcurrencyViolationError",
    # Store
    "DocumentStore",
    "Collection",
    "Document",
    "SchemaVersion",
    "CollectionNames",
    "REQUIRED_SCHEMA_VERSION",
    "DEFAULT_COLLECTION_PREFIX",
    # Persistence
    "JobStorage",
    "DistributedLock",
    "read_schema_version",
    # Client
    "QueueManager",
    # Processing
    "Executor",
    "JobRegistry",
    "Dispatcher",
    "DispatcherState",
    "DelayedJobScheduler",
    "RecurringJobScheduler",
    "ServerHeartbeat",
    "JobServer",
    "ServerOptions",
]
