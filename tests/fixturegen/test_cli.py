"""
CLI tests.
"""

import json
from pathlib import Path
from unittest.mock import patch

from src.fixturegen import cli
from src.fixturegen.errors import ExportInvariantViolation, SignalTimeoutError
from src.infra.config import (
    EXIT_INVARIANT_VIOLATION,
    EXIT_STORE_ERROR,
    EXIT_SUCCESS,
    EXIT_TIMEOUT,
)
from src.jobstore import DocumentStore, JobStorage

from .conftest import populate_without_signals


class TestParser:

    def test_policy_defaults_to_current_version(self):
        args = cli.create_parser().parse_args(["policy"])
        assert args.schema_version == 12

    def test_generate_options(self):
        args = cli.create_parser().parse_args(
            ["-v", "generate", "-o", "out", "--gate-timeout", "30"]
        )
        assert args.verbose is True
        assert args.output_dir == "out"
        assert args.gate_timeout == 30.0


class TestCommands:

    def test_policy_prints_json(self, tmp_path: Path, monkeypatch, capsys):
        monkeypatch.setenv("FIXTURE_LOG_DIR", str(tmp_path / "logs"))
        code = cli.main(["policy", "--schema-version", "10"])

        assert code == EXIT_SUCCESS
        output = json.loads(capsys.readouterr().out)
        assert output == {
            "version": 10,
            "archive_name": "JobStore-Sqlite-Schema-010.zip",
            "allowed_empty": ["jobstore.signal"],
        }

    def test_export_invariant_exit_code(self, settings, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("FIXTURE_LOG_DIR", str(tmp_path / "logs"))
        with DocumentStore.connect(settings.connection_string, settings.database_name) as store:
            populate_without_signals(JobStorage(store))

        base = [
            "export",
            "--connection-string", settings.connection_string,
            "--database-name", settings.database_name,
            "-o", str(tmp_path / "out"),
        ]

        assert cli.main(base + ["--schema-version", "12"]) == EXIT_INVARIANT_VIOLATION
        assert cli.main(base + ["--schema-version", "10"]) == EXIT_SUCCESS
        assert (tmp_path / "out" / "JobStore-Sqlite-Schema-010.zip").exists()

    def test_export_missing_store_exit_code(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("FIXTURE_LOG_DIR", str(tmp_path / "logs"))
        code = cli.main(["export", "--connection-string", str(tmp_path / "missing")])
        assert code == EXIT_STORE_ERROR

    def test_generate_maps_timeout(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("FIXTURE_LOG_DIR", str(tmp_path / "logs"))
        with patch.object(cli, "FixtureGenerator") as generator:
            generator.return_value.generate.side_effect = SignalTimeoutError("ENQUEUED", 1.0)
            assert cli.main(["generate", "--gate-timeout", "1"]) == EXIT_TIMEOUT

        settings = generator.call_args.args[0]
        assert settings.timings.gate_timeout == 1.0

    def test_generate_maps_invariant(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("FIXTURE_LOG_DIR", str(tmp_path / "logs"))
        with patch.object(cli, "FixtureGenerator") as generator:
            generator.return_value.generate.side_effect = ExportInvariantViolation("jobstore.job")
            assert cli.main(["generate"]) == EXIT_INVARIANT_VIOLATION
