"""
End-to-end fixture generation tests.

Runs the real engine with scaled-down timings.
"""

from pathlib import Path

import pytest

from src.fixturegen import (
    ExportInvariantViolation,
    FixtureGenerator,
    JobCategory,
    StoreExporter,
    VersionPolicy,
)
from src.fixturegen.driver import (
    CONTINUATION_CHILD_PAYLOAD,
    CONTINUATION_PARENT_PAYLOAD,
    LATE_ENQUEUED_PAYLOAD,
    LATE_SCHEDULED_PAYLOAD,
)
from src.fixturegen.generator import export_store
from src.infra.config import FixtureSettings
from src.jobstore import (
    DocumentStore,
    JobRegistry,
    JobServer,
    JobState,
    JobStorage,
    QueueManager,
    ServerOptions,
    read_schema_version,
)

from .conftest import populate_without_signals, read_archive, wait_until


def _jobs_by_payload(entries: dict) -> dict:
    return {doc["args"][0]: doc for doc in entries["jobstore.job.json"]}


@pytest.fixture(scope="function")
def fixture_run(settings: FixtureSettings):
    return FixtureGenerator(settings).generate()


class TestFullRun:
    """A complete generation run."""

    def test_archive_named_by_version(self, fixture_run, settings: FixtureSettings):
        assert fixture_run.schema_version == 12
        assert fixture_run.archive_path == settings.output_dir / "JobStore-Sqlite-Schema-012.zip"
        assert fixture_run.archive_path.exists()

    def test_every_collection_exported_and_non_empty(self, fixture_run):
        entries = read_archive(fixture_run.archive_path)

        assert sorted(entries) == sorted(
            f"jobstore.{suffix}.json"
            for suffix in ("job", "stateData", "locks", "server", "schema", "signal")
        )
        for name, documents in entries.items():
            assert documents, f"{name} is empty"

    def test_gates_awaited_in_order(self, fixture_run):
        assert fixture_run.report.awaited == [
            JobCategory.SCHEDULED,
            JobCategory.CONTINUATION,
            JobCategory.RECURRING,
            JobCategory.ENQUEUED,
        ]
        assert fixture_run.report.clean_shutdown is True

    def test_continuation_follows_parent(self, fixture_run):
        payloads = [entry.payload for entry in fixture_run.trace]

        assert payloads.index(CONTINUATION_PARENT_PAYLOAD) < payloads.index(
            CONTINUATION_CHILD_PAYLOAD
        )

    def test_late_scheduled_job_pending(self, fixture_run):
        jobs = _jobs_by_payload(read_archive(fixture_run.archive_path))

        late = jobs[LATE_SCHEDULED_PAYLOAD]
        assert late["state_name"] == JobState.SCHEDULED.value
        assert late["job_type"] == "fixtures.scheduled"

    def test_late_enqueued_job_recorded(self, fixture_run):
        jobs = _jobs_by_payload(read_archive(fixture_run.archive_path))

        # Submitted right before shutdown; it may or may not have run
        assert jobs[LATE_ENQUEUED_PAYLOAD]["state_name"] in (
            JobState.ENQUEUED.value,
            JobState.PROCESSING.value,
            JobState.SUCCEEDED.value,
        )

    def test_first_wave_succeeded(self, fixture_run):
        jobs = _jobs_by_payload(read_archive(fixture_run.archive_path))

        for payload in (
            "Scheduled job",
            "Enqueued job",
            CONTINUATION_PARENT_PAYLOAD,
            CONTINUATION_CHILD_PAYLOAD,
        ):
            assert jobs[payload]["state_name"] == JobState.SUCCEEDED.value

    def test_post_shutdown_records(self, fixture_run):
        entries = read_archive(fixture_run.archive_path)

        servers = entries["jobstore.server.json"]
        assert [s["_id"] for s in servers] == ["test-server"]
        assert servers[0]["worker_count"] == 2
        assert servers[0]["queues"] == ["default"]

        locks = entries["jobstore.locks.json"]
        assert [lock["_id"] for lock in locks] == ["test-lock"]

    def test_recurring_hash_exported(self, fixture_run):
        entries = read_archive(fixture_run.archive_path)
        hashes = [d for d in entries["jobstore.stateData.json"] if d.get("type") == "Hash"]

        assert len(hashes) == 1
        assert hashes[0]["last_job_id"] is not None

    def test_rerun_starts_from_empty_store(self, fixture_run, settings: FixtureSettings):
        second = FixtureGenerator(settings).generate()

        assert second.export.counts["jobstore.server"] == 1
        assert second.export.counts["jobstore.locks"] == 1


class TestScenarios:
    """Focused store scenarios."""

    def test_immediate_job_appears_in_export(self, settings: FixtureSettings, tmp_path: Path):
        """A single immediate job "X" is exported as a job record."""
        with DocumentStore.connect(settings.connection_string, settings.database_name) as store:
            storage = JobStorage(store)
            registry = JobRegistry()
            registry.register("test.job", lambda argument: None)
            options = ServerOptions(
                server_name="pytest",
                worker_count=1,
                queue_poll_interval=0.2,
                signal_check_interval=0.02,
                schedule_poll_interval=0.05,
            )

            with JobServer(storage, registry, options):
                QueueManager(storage).enqueue("test.job", ["X"])
                assert wait_until(lambda: storage.count_jobs_by_state(JobState.SUCCEEDED) == 1)

            allowed = {storage.names.locks, storage.names.server}
            result = StoreExporter(store).export(tmp_path / "a.zip", allowed)

        jobs = read_archive(result.path)["jobstore.job.json"]
        assert [job["args"] for job in jobs] == [["X"]]
        assert jobs[0]["state_name"] == JobState.SUCCEEDED.value

    def test_export_existing_store_as_older_version(self, settings: FixtureSettings):
        """An existing store without signals exports as version 10 but not 12."""
        with DocumentStore.connect(settings.connection_string, settings.database_name) as store:
            storage = JobStorage(store)
            populate_without_signals(storage)
            assert read_schema_version(store, "jobstore") == 12

        policy = VersionPolicy()
        result = export_store(settings, policy, schema_version=10)
        assert result.path.name == "JobStore-Sqlite-Schema-010.zip"

        with pytest.raises(ExportInvariantViolation):
            export_store(settings, policy)
