"""
Job Store Domain Entities.

- Job: Single unit of work with its state history
- RecurringJob: Cron-driven job definition stored as a hash
- ServerContext / ServerRecord: Processing server announcement
- LockRecord: Distributed lock held in the locks collection

Entities are stored as JSON documents; every entity provides
to_document() / from_document() for the collection layout.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Any
import uuid


ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


class JobState(str, Enum):
    """
    Job state names.

    - ENQUEUED: Waiting in a queue for a worker
    - SCHEDULED: Waiting for its enqueue time
    - AWAITING: Continuation waiting for its parent to succeed
    - PROCESSING: Picked up by a worker
    - SUCCEEDED: Handler returned normally
    - FAILED: Handler raised
    - DELETED: Removed from processing
    """

    ENQUEUED = "Enqueued"
    SCHEDULED = "Scheduled"
    AWAITING = "Awaiting"
    PROCESSING = "Processing"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    DELETED = "Deleted"


def generate_uuid() -> str:
    """Generate a new UUID string."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Get current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """
    Format a datetime as a fixed-width ISO string.

    Fixed width keeps stored timestamps comparable as plain strings.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(ISO_FORMAT)


def parse_iso(value: str) -> datetime:
    """Parse a timestamp written by to_iso()."""
    return datetime.strptime(value, ISO_FORMAT).replace(tzinfo=timezone.utc)


def now_iso() -> str:
    """Get current time as ISO format string."""
    return to_iso(utcnow())


@dataclass
class StateChange:
    """One entry in a job's state history."""

    name: JobState
    reason: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    data: dict = field(default_factory=dict)

    def to_document(self) -> dict:
        return {
            "name": self.name.value,
            "reason": self.reason,
            "created_at": self.created_at,
            "data": self.data,
        }

    @classmethod
    def from_document(cls, doc: dict) -> "StateChange":
        return cls(
            name=JobState(doc["name"]),
            reason=doc.get("reason"),
            created_at=doc["created_at"],
            data=doc.get("data") or {},
        )


@dataclass
class Job:
    """
    Single unit of work.

    Mutability rules:
    - job_id, job_type, args, queue, parent_id, created_at: Immutable
    - state_name, fetched_at, expire_at: Changed only through JobStorage
    - state_history: Append-only
    - continuations: Append-only
    """

    job_id: str
    job_type: str
    args: list
    state_name: JobState
    queue: str = "default"
    parent_id: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    fetched_at: Optional[str] = None
    expire_at: Optional[str] = None
    continuations: list = field(default_factory=list)
    state_history: list = field(default_factory=list)

    @classmethod
    def create(
        cls,
        job_type: str,
        args: Optional[list] = None,
        state: JobState = JobState.ENQUEUED,
        queue: str = "default",
        parent_id: Optional[str] = None,
        reason: Optional[str] = None,
        state_data: Optional[dict] = None,
    ) -> "Job":
        """Create a new Job with generated ID and an initial state entry."""
        now = now_iso()
        initial = StateChange(
            name=state,
            reason=reason,
            created_at=now,
            data=state_data or {},
        )
        return cls(
            job_id=generate_uuid(),
            job_type=job_type,
            args=list(args or []),
            state_name=state,
            queue=queue,
            parent_id=parent_id,
            created_at=now,
            state_history=[initial.to_document()],
        )

    @property
    def history(self) -> list[StateChange]:
        """State history as StateChange entries, oldest first."""
        return [StateChange.from_document(entry) for entry in self.state_history]

    def is_terminal(self) -> bool:
        """Check if job is in a final state."""
        return self.state_name in (
            JobState.SUCCEEDED,
            JobState.FAILED,
            JobState.DELETED,
        )

    def to_document(self) -> dict:
        return {
            "_id": self.job_id,
            "job_type": self.job_type,
            "args": self.args,
            "state_name": self.state_name.value,
            "queue": self.queue,
            "parent_id": self.parent_id,
            "created_at": self.created_at,
            "fetched_at": self.fetched_at,
            "expire_at": self.expire_at,
            "continuations": self.continuations,
            "state_history": self.state_history,
        }

    @classmethod
    def from_document(cls, doc: dict) -> "Job":
        return cls(
            job_id=doc["_id"],
            job_type=doc["job_type"],
            args=list(doc.get("args") or []),
            state_name=JobState(doc["state_name"]),
            queue=doc.get("queue", "default"),
            parent_id=doc.get("parent_id"),
            created_at=doc["created_at"],
            fetched_at=doc.get("fetched_at"),
            expire_at=doc.get("expire_at"),
            continuations=list(doc.get("continuations") or []),
            state_history=list(doc.get("state_history") or []),
        )


@dataclass
class RecurringJob:
    """
    Cron-driven job definition.

    Stored as a Hash entry in the stateData collection and indexed by
    the "recurring-jobs" set.
    """

    recurring_job_id: str
    job_type: str
    cron: str
    args: list = field(default_factory=list)
    queue: str = "default"
    created_at: str = field(default_factory=now_iso)
    next_execution: Optional[str] = None
    last_execution: Optional[str] = None
    last_job_id: Optional[str] = None

    @property
    def key(self) -> str:
        return f"recurring-job:{self.recurring_job_id}"

    def is_due(self, now: str) -> bool:
        return self.next_execution is not None and self.next_execution <= now

    def to_document(self) -> dict:
        return {
            "_id": self.key,
            "key": self.key,
            "type": "Hash",
            "recurring_job_id": self.recurring_job_id,
            "job_type": self.job_type,
            "cron": self.cron,
            "args": self.args,
            "queue": self.queue,
            "created_at": self.created_at,
            "next_execution": self.next_execution,
            "last_execution": self.last_execution,
            "last_job_id": self.last_job_id,
        }

    @classmethod
    def from_document(cls, doc: dict) -> "RecurringJob":
        return cls(
            recurring_job_id=doc["recurring_job_id"],
            job_type=doc["job_type"],
            cron=doc["cron"],
            args=list(doc.get("args") or []),
            queue=doc.get("queue", "default"),
            created_at=doc["created_at"],
            next_execution=doc.get("next_execution"),
            last_execution=doc.get("last_execution"),
            last_job_id=doc.get("last_job_id"),
        )


@dataclass
class ServerContext:
    """Worker configuration reported when a server announces itself."""

    worker_count: int
    queues: list = field(default_factory=lambda: ["default"])


@dataclass
class ServerRecord:
    """Announced processing server."""

    server_id: str
    worker_count: int
    queues: list
    started_at: str = field(default_factory=now_iso)
    last_heartbeat: str = field(default_factory=now_iso)

    def to_document(self) -> dict:
        return {
            "_id": self.server_id,
            "worker_count": self.worker_count,
            "queues": self.queues,
            "started_at": self.started_at,
            "last_heartbeat": self.last_heartbeat,
        }

    @classmethod
    def from_document(cls, doc: dict) -> "ServerRecord":
        return cls(
            server_id=doc["_id"],
            worker_count=doc["worker_count"],
            queues=list(doc.get("queues") or []),
            started_at=doc["started_at"],
            last_heartbeat=doc["last_heartbeat"],
        )


@dataclass
class LockRecord:
    """Distributed lock held in the locks collection."""

    resource: str
    owner: str
    acquired_at: str
    expire_at: str

    def is_expired(self, now: str) -> bool:
        return self.expire_at <= now

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.resource,
            "owner": self.owner,
            "acquired_at": self.acquired_at,
            "expire_at": self.expire_at,
        }

    @classmethod
    def from_document(cls, doc: dict) -> "LockRecord":
        return cls(
            resource=doc["_id"],
            owner=doc["owner"],
            acquired_at=doc["acquired_at"],
            expire_at=doc["expire_at"],
        )
