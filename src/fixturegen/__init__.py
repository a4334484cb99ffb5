"""
Fixture generator for job store schema-migration tests.

Drives the job engine through a fixed repertoire, waits on completion
gates, and exports the quiescent store as a versioned zip archive.
"""

from .errors import FixtureError, SignalTimeoutError, ExportInvariantViolation
from .signals import JobCategory, SignalGate, SignalBus
from .driver import JobDriver, Submission, Trigger, TriggerKind, TraceEntry
from .snapshot_gate import SnapshotGate, SnapshotReport
from .exporter import StoreExporter, ExportResult
from .version_policy import EmptyCollectionRule, VersionPolicy, VersionRule, DEFAULT_RULES
from .generator import FixtureGenerator, FixtureRun, export_store

__all__ = [
    # Errors
    "FixtureError",
    "SignalTimeoutError",
    "ExportInvariantViolation",
    # Signals
    "JobCategory",
    "SignalGate",
    "SignalBus",
    # Driver
    "JobDriver",
    "Submission",
    "Trigger",
    "TriggerKind",
    "TraceEntry",
    # Gate
    "SnapshotGate",
    "SnapshotReport",
    # Export
    "StoreExporter",
    "ExportResult",
    "EmptyCollectionRule",
    "VersionPolicy",
    "VersionRule",
    "DEFAULT_RULES",
    # Run
    "FixtureGenerator",
    "FixtureRun",
    "export_store",
]
