"""
Fixture Generator - end-to-end fixture run.

1. Drop and recreate the store
2. Start the engine with the run's handlers
3. Drive the Snapshot Gate until the engine is stopped
4. Write post-shutdown records (server announcement, held lock)
5. Export the quiescent store through a fresh connection
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Optional

from src.infra.config import FixtureSettings
from src.jobstore.database import DocumentStore
from src.jobstore.entities import ServerContext
from src.jobstore.executor import JobRegistry
from src.jobstore.persistence import JobStorage, read_schema_version
from src.jobstore.queue_manager import QueueManager
from src.jobstore.service import JobServer, ServerOptions

from .driver import JobDriver, TraceEntry
from .exporter import ExportResult, StoreExporter
from .signals import SignalBus
from .snapshot_gate import SnapshotGate, SnapshotReport
from .version_policy import VersionPolicy


logger = logging.getLogger(__name__)


@dataclass
class FixtureRun:
    """Result of a fixture generation run."""

    schema_version: int
    export: ExportResult
    report: SnapshotReport
    trace: list[TraceEntry] = field(default_factory=list)

    @property
    def archive_path(self) -> Optional[Path]:
        return self.export.path


def export_store(
    settings: FixtureSettings,
    policy: VersionPolicy,
    schema_version: Optional[int] = None,
    output_dir: Optional[Path] = None,
) -> ExportResult:
    """
    Export an existing store as a fixture archive.

    Args:
        settings: Store location and prefixes
        policy: Archive naming and allowed-empty rules
        schema_version: Version to export as (None = version recorded in the store)
        output_dir: Archive directory (None = settings.output_dir)

    Returns:
        ExportResult of the written archive
    """
    with DocumentStore.connect(settings.connection_string, settings.database_name) as store:
        if schema_version is None:
            schema_version = read_schema_version(store, settings.collection_prefix)

        rule = policy.resolve(schema_version)
        path = Path(output_dir or settings.output_dir) / rule.archive_name

        logger.info(
            f"Exporting schema version {schema_version} to {path} "
            f"(allowed empty: {sorted(rule.allowed_empty) or 'none'})"
        )
        return StoreExporter(store).export(path, rule.allowed_empty, schema_version)


class FixtureGenerator:
    """Runs the engine through the fixture repertoire and exports the store."""

    def __init__(self, settings: FixtureSettings, policy: Optional[VersionPolicy] = None):
        self.settings = settings
        self.policy = policy or VersionPolicy(
            fixture_prefix=settings.fixture_prefix,
            collection_prefix=settings.collection_prefix,
        )

    def _server_options(self) -> ServerOptions:
        timings = self.settings.timings
        options = ServerOptions(
            queues=list(self.settings.queues),
            shutdown_timeout=timings.shutdown_timeout,
            queue_poll_interval=timings.queue_poll_interval,
            signal_check_interval=timings.signal_check_interval,
            schedule_poll_interval=timings.schedule_poll_interval,
        )
        if self.settings.worker_count is not None:
            options.worker_count = self.settings.worker_count
        return options

    def generate(self, output_dir: Optional[Path] = None) -> FixtureRun:
        """
        Produce one fixture archive.

        Args:
            output_dir: Archive directory (None = settings.output_dir)

        Returns:
            FixtureRun describing the archive and the run

        Raises:
            SignalTimeoutError: If a gate timeout is configured and expires
            ExportInvariantViolation: If a collection is unexpectedly empty
            JobStoreError: On store failures
        """
        settings = self.settings
        timings = settings.timings

        with DocumentStore.connect(settings.connection_string, settings.database_name) as store:
            store.drop_database()

            storage = JobStorage(store, prefix=settings.collection_prefix)
            schema_version = storage.schema_version

            registry = JobRegistry()
            signals = SignalBus()
            driver = JobDriver(
                QueueManager(storage),
                registry,
                signals,
                timings=timings,
                queue=settings.queues[0],
            )
            driver.register_handlers()

            server = JobServer(storage, registry, self._server_options())
            server.start()

            gate = SnapshotGate(
                driver,
                signals,
                server,
                shutdown_timeout=timings.shutdown_timeout,
                gate_timeout=timings.gate_timeout,
            )
            try:
                report = gate.run()
            except BaseException:
                logger.error(f"Fixture run aborted, pending gates: {[c.value for c in signals.pending()]}")
                server.stop(timeout=timings.shutdown_timeout)
                raise

            self._write_post_shutdown_records(storage)

        export = export_store(settings, self.policy, schema_version, output_dir)

        logger.info(f"Fixture written to {export.path}")
        return FixtureRun(
            schema_version=schema_version,
            export=export,
            report=report,
            trace=driver.trace,
        )

    def _write_post_shutdown_records(self, storage: JobStorage) -> None:
        """Server and lock records that only exist while no engine runs."""
        settings = self.settings
        worker_count = settings.worker_count or self._server_options().worker_count

        storage.announce_server(
            settings.server_name,
            ServerContext(worker_count=worker_count, queues=list(settings.queues)),
        )
        storage.acquire_distributed_lock(settings.lock_name, timedelta(seconds=settings.lock_ttl))
        logger.info(f"Acquired lock '{settings.lock_name}' for the fixture (not released)")
