"""
Job Storage for the job store.

Domain operations on top of DocumentStore collections:
- <prefix>.job        Job documents with state history
- <prefix>.stateData  Schedule set, recurring-job hashes, counters
- <prefix>.locks      Distributed locks
- <prefix>.server     Announced processing servers
- <prefix>.schema     Schema version document
- <prefix>.signal     Per-queue wake-up signals

Provides:
- Guarded job state transitions with append-only history
- Atomic fetch of the next enqueued job
- Distributed lock acquisition with TTL takeover
- Server announcement and heartbeat
"""

import logging
import time
from datetime import timedelta
from typing import Optional, Any

from .database import DocumentStore, Document
from .entities import (
    Job,
    JobState,
    RecurringJob,
    ServerContext,
    ServerRecord,
    LockRecord,
    StateChange,
    generate_uuid,
    now_iso,
    to_iso,
    utcnow,
)
from .errors import (
    ConcurrencyViolationError,
    DistributedLockTimeoutError,
    DuplicateKeyError,
    JobNotFoundError,
)
from .schema import CollectionNames, REQUIRED_SCHEMA_VERSION, DEFAULT_COLLECTION_PREFIX


logger = logging.getLogger(__name__)


SCHEDULE_SET_KEY = "schedule"
RECURRING_JOBS_SET_KEY = "recurring-jobs"
SCHEMA_DOCUMENT_ID = "schema"

# Seconds between lock acquisition attempts
LOCK_POLL_INTERVAL = 0.05
DEFAULT_LOCK_TIMEOUT = timedelta(seconds=10)

# How long finished jobs are kept before they may be cleaned up
DEFAULT_JOB_EXPIRATION = timedelta(days=1)


def read_schema_version(store: DocumentStore, prefix: str = DEFAULT_COLLECTION_PREFIX) -> int:
    """
    Schema version recorded in a store, without modifying it.

    A store without a schema document reports the current version.
    """
    names = CollectionNames(prefix)
    doc = store.get_collection(names.schema).find_by_id(SCHEMA_DOCUMENT_ID)
    if doc is None:
        return int(REQUIRED_SCHEMA_VERSION)
    return int(doc["version"])


class DistributedLock:
    """
    Handle for an acquired distributed lock.

    The lock record stays in the locks collection until release() is
    called or its TTL passes and another owner takes it over.
    """

    def __init__(self, storage: "JobStorage", record: LockRecord):
        self.storage = storage
        self.record = record
        self._released = False

    @property
    def resource(self) -> str:
        return self.record.resource

    @property
    def owner(self) -> str:
        return self.record.owner

    def release(self) -> None:
        if self._released:
            return
        self.storage.release_distributed_lock(self.record.resource, self.record.owner)
        self._released = True

    def __enter__(self) -> "DistributedLock":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.release()


class JobStorage:
    """
    Persistence for jobs and engine bookkeeping.

    Does NOT execute jobs or decide when they run; QueueManager and the
    background processes do that through this class.
    """

    def __init__(
        self,
        store: DocumentStore,
        prefix: str = DEFAULT_COLLECTION_PREFIX,
        job_expiration: timedelta = DEFAULT_JOB_EXPIRATION,
    ):
        """
        Initialize job storage.

        Args:
            store: DocumentStore holding the collections
            prefix: Collection name prefix
            job_expiration: Lifetime of finished jobs
        """
        self.store = store
        self.names = CollectionNames(prefix)
        self.job_expiration = job_expiration
        self._init_schema()

    def _init_schema(self) -> None:
        """Create collections and record the schema version."""
        for name in self.names.all():
            self.store.create_collection(name)

        self.store.get_collection(self.names.schema).replace_one(
            {
                "_id": SCHEMA_DOCUMENT_ID,
                "version": int(REQUIRED_SCHEMA_VERSION),
                "updated_at": now_iso(),
            },
            upsert=True,
        )

    @property
    def jobs(self):
        return self.store.get_collection(self.names.job)

    @property
    def state_data(self):
        return self.store.get_collection(self.names.state_data)

    @property
    def locks(self):
        return self.store.get_collection(self.names.locks)

    @property
    def servers(self):
        return self.store.get_collection(self.names.server)

    @property
    def signals(self):
        return self.store.get_collection(self.names.signal)

    @property
    def schema_version(self) -> int:
        """Schema version recorded in the store."""
        return read_schema_version(self.store, self.names.prefix)

    # =========================================================================
    # Job Operations
    # =========================================================================

    def create_job(self, job: Job) -> Job:
        """Persist a new job."""
        self.jobs.insert_one(job.to_document())
        logger.debug(f"Created job {job.job_id} ({job.job_type}, {job.state_name.value})")
        return job

    def get_job(self, job_id: str) -> Optional[Job]:
        """Get a job by ID."""
        doc = self.jobs.find_by_id(job_id)
        if doc is None:
            return None
        return Job.from_document(doc)

    def list_jobs_by_state(self, state: JobState, limit: Optional[int] = None) -> list[Job]:
        """List jobs in a state, oldest first."""
        docs = self.jobs.find({"state_name": state.value}, sort="created_at", limit=limit)
        return [Job.from_document(doc) for doc in docs]

    def count_jobs_by_state(self, state: JobState) -> int:
        return self.jobs.count({"state_name": state.value})

    def set_job_state(
        self,
        job_id: str,
        state: JobState,
        reason: Optional[str] = None,
        data: Optional[dict] = None,
        expected_state: Optional[JobState] = None,
        **fields: Any,
    ) -> Job:
        """
        Move a job to a new state and append a history entry.

        Args:
            job_id: Job to update
            state: New state
            reason: Human-readable reason stored with the history entry
            data: State-specific data stored with the history entry
            expected_state: If set, only transition from this state
            **fields: Extra top-level job fields to write (fetched_at, expire_at)

        Raises:
            JobNotFoundError: If the job does not exist
            ConcurrencyViolationError: If expected_state does not match
        """
        change = StateChange(name=state, reason=reason, data=data or {})

        filter: dict = {"_id": job_id}
        if expected_state is not None:
            filter["state_name"] = expected_state.value

        doc = self.jobs.find_one_and_update(
            filter,
            set={"state_name": state.value, **fields},
            push={"state_history": change.to_document()},
        )

        if doc is None:
            current = self.get_job(job_id)
            if current is None:
                raise JobNotFoundError(job_id)
            raise ConcurrencyViolationError(
                job_id,
                expected_state=expected_state.value if expected_state else "<any>",
                actual_state=current.state_name.value,
            )

        return Job.from_document(doc)

    def enqueue_job(
        self,
        job_id: str,
        reason: Optional[str] = None,
        expected_state: Optional[JobState] = None,
    ) -> Job:
        """Move a job into its queue and signal waiting workers."""
        job = self.set_job_state(
            job_id,
            JobState.ENQUEUED,
            reason=reason,
            expected_state=expected_state,
            fetched_at=None,
        )
        self.signal_queue(job.queue)
        return job

    def fetch_next_job(self, queues: list[str]) -> Optional[Job]:
        """
        Atomically claim the oldest unfetched enqueued job.

        Queues are tried in the given order.
        """
        for queue in queues:
            doc = self.jobs.find_one_and_update(
                {
                    "state_name": JobState.ENQUEUED.value,
                    "queue": queue,
                    "fetched_at": None,
                },
                set={"fetched_at": now_iso()},
                sort="created_at",
            )
            if doc is not None:
                return Job.from_document(doc)
        return None

    def mark_succeeded(self, job_id: str, data: Optional[dict] = None) -> Job:
        """Record successful completion and bump the succeeded counter."""
        expire_at = to_iso(utcnow() + self.job_expiration)
        job = self.set_job_state(
            job_id,
            JobState.SUCCEEDED,
            reason="Completed",
            data=data,
            expected_state=JobState.PROCESSING,
            expire_at=expire_at,
        )
        self.increment_counter("stats:succeeded")
        return job

    def mark_failed(self, job_id: str, reason: str, data: Optional[dict] = None) -> Job:
        """Record failed execution and bump the failed counter."""
        job = self.set_job_state(
            job_id,
            JobState.FAILED,
            reason=reason,
            data=data,
            expected_state=JobState.PROCESSING,
        )
        self.increment_counter("stats:failed")
        return job

    # =========================================================================
    # Continuations
    # =========================================================================

    def add_continuation(self, parent_id: str, child_id: str) -> Job:
        """Append a continuation to its parent and return the parent."""
        doc = self.jobs.find_one_and_update(
            {"_id": parent_id},
            push={"continuations": child_id},
        )
        if doc is None:
            raise JobNotFoundError(parent_id)
        return Job.from_document(doc)

    # =========================================================================
    # Queue Signals
    # =========================================================================

    def signal_queue(self, queue: str) -> None:
        """Record that a queue has new work."""
        self.signals.replace_one(
            {"_id": queue, "signaled": True, "updated_at": now_iso()},
            upsert=True,
        )

    def consume_signal(self, queue: str) -> bool:
        """Clear a pending queue signal. Returns True if one was pending."""
        doc = self.signals.find_one_and_update(
            {"_id": queue, "signaled": True},
            set={"signaled": False, "updated_at": now_iso()},
        )
        return doc is not None

    # =========================================================================
    # Schedule Set
    # =========================================================================

    def add_to_schedule(self, job_id: str, enqueue_at: str) -> None:
        self.state_data.replace_one(
            {
                "_id": f"{SCHEDULE_SET_KEY}:{job_id}",
                "key": SCHEDULE_SET_KEY,
                "type": "Set",
                "value": job_id,
                "score": enqueue_at,
            },
            upsert=True,
        )

    def get_due_scheduled(self, now: Optional[str] = None, limit: int = 100) -> list[str]:
        """Job IDs whose enqueue time has passed, earliest first."""
        docs = self.state_data.find(
            {
                "key": SCHEDULE_SET_KEY,
                "type": "Set",
                "score": {"$lte": now or now_iso()},
            },
            sort="score",
            limit=limit,
        )
        return [doc["value"] for doc in docs]

    def remove_from_schedule(self, job_id: str) -> bool:
        """Remove a schedule entry. Only one caller sees True."""
        return self.state_data.delete_one(f"{SCHEDULE_SET_KEY}:{job_id}")

    def list_scheduled(self) -> list[Document]:
        return self.state_data.find({"key": SCHEDULE_SET_KEY, "type": "Set"}, sort="score")

    # =========================================================================
    # Recurring Jobs
    # =========================================================================

    def save_recurring_job(self, recurring_job: RecurringJob) -> RecurringJob:
        """Create or replace a recurring job hash and index it."""
        self.state_data.replace_one(recurring_job.to_document(), upsert=True)
        self.state_data.replace_one(
            {
                "_id": f"{RECURRING_JOBS_SET_KEY}:{recurring_job.recurring_job_id}",
                "key": RECURRING_JOBS_SET_KEY,
                "type": "Set",
                "value": recurring_job.recurring_job_id,
                "score": 0,
            },
            upsert=True,
        )
        return recurring_job

    def get_recurring_job(self, recurring_job_id: str) -> Optional[RecurringJob]:
        doc = self.state_data.find_by_id(f"recurring-job:{recurring_job_id}")
        if doc is None:
            return None
        return RecurringJob.from_document(doc)

    def get_recurring_jobs(self) -> list[RecurringJob]:
        """All recurring jobs in the recurring-jobs set."""
        members = self.state_data.find(
            {"key": RECURRING_JOBS_SET_KEY, "type": "Set"},
            sort="value",
        )
        result = []
        for member in members:
            recurring_job = self.get_recurring_job(member["value"])
            if recurring_job is not None:
                result.append(recurring_job)
        return result

    def update_recurring_job(self, recurring_job_id: str, **fields: Any) -> Optional[RecurringJob]:
        doc = self.state_data.find_one_and_update(
            {"_id": f"recurring-job:{recurring_job_id}"},
            set=fields,
        )
        if doc is None:
            return None
        return RecurringJob.from_document(doc)

    def remove_recurring_job(self, recurring_job_id: str) -> bool:
        removed = self.state_data.delete_one(f"recurring-job:{recurring_job_id}")
        self.state_data.delete_one(f"{RECURRING_JOBS_SET_KEY}:{recurring_job_id}")
        return removed

    # =========================================================================
    # Counters
    # =========================================================================

    def increment_counter(self, key: str, amount: int = 1) -> int:
        doc = self.state_data.increment(
            key,
            "value",
            amount=amount,
            defaults={"key": key, "type": "Counter"},
        )
        return doc["value"]

    def get_counter(self, key: str) -> int:
        doc = self.state_data.find_by_id(key)
        return doc["value"] if doc is not None else 0

    # =========================================================================
    # Servers
    # =========================================================================

    def announce_server(self, server_id: str, context: ServerContext) -> ServerRecord:
        """Create or refresh the record of a processing server."""
        record = ServerRecord(
            server_id=server_id,
            worker_count=context.worker_count,
            queues=list(context.queues),
        )
        self.servers.replace_one(record.to_document(), upsert=True)
        logger.info(
            f"Announced server {server_id} "
            f"(workers={context.worker_count}, queues={context.queues})"
        )
        return record

    def heartbeat(self, server_id: str) -> bool:
        doc = self.servers.find_one_and_update(
            {"_id": server_id},
            set={"last_heartbeat": now_iso()},
        )
        return doc is not None

    def remove_server(self, server_id: str) -> bool:
        return self.servers.delete_one(server_id)

    def list_servers(self) -> list[ServerRecord]:
        return [ServerRecord.from_document(doc) for doc in self.servers.find_all()]

    # =========================================================================
    # Distributed Locks
    # =========================================================================

    def acquire_distributed_lock(
        self,
        resource: str,
        ttl: timedelta,
        timeout: timedelta = DEFAULT_LOCK_TIMEOUT,
    ) -> DistributedLock:
        """
        Acquire a named lock stored in the locks collection.

        An existing lock whose expire_at has passed is taken over.

        Args:
            resource: Lock name
            ttl: How long the lock stays valid without release
            timeout: How long to keep trying

        Returns:
            DistributedLock handle

        Raises:
            DistributedLockTimeoutError: If the lock is held past timeout
        """
        owner = generate_uuid()
        deadline = time.monotonic() + timeout.total_seconds()

        while True:
            now = utcnow()
            record = LockRecord(
                resource=resource,
                owner=owner,
                acquired_at=to_iso(now),
                expire_at=to_iso(now + ttl),
            )

            try:
                self.locks.insert_one(record.to_document())
                logger.debug(f"Acquired lock {resource}")
                return DistributedLock(self, record)
            except DuplicateKeyError:
                # Take over an expired lock
                taken = self.locks.find_one_and_update(
                    {"_id": resource, "expire_at": {"$lte": record.acquired_at}},
                    set={
                        "owner": owner,
                        "acquired_at": record.acquired_at,
                        "expire_at": record.expire_at,
                    },
                )
                if taken is not None:
                    logger.info(f"Took over expired lock {resource}")
                    return DistributedLock(self, record)

            if time.monotonic() >= deadline:
                raise DistributedLockTimeoutError(resource, timeout.total_seconds())

            time.sleep(LOCK_POLL_INTERVAL)

    def release_distributed_lock(self, resource: str, owner: str) -> bool:
        """Release a lock if still owned by the given owner."""
        return self.locks.delete_many({"_id": resource, "owner": owner}) > 0

    def get_lock(self, resource: str) -> Optional[LockRecord]:
        doc = self.locks.find_by_id(resource)
        if doc is None:
            return None
        return LockRecord.from_document(doc)
