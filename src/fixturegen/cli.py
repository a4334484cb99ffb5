"""
CLI entry point for the fixture generator.

Commands:
- generate: Run the engine through the fixture repertoire and export the store
- export: Export an existing store
- policy: Show the archive name and allowed-empty collections for a version
"""

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional

from src.infra.config import (
    FixtureSettings,
    load_settings,
    EXIT_SUCCESS,
    EXIT_FAILURE,
    EXIT_INVARIANT_VIOLATION,
    EXIT_STORE_ERROR,
    EXIT_TIMEOUT,
)
from src.infra.logging_config import setup_logging
from src.jobstore.entities import generate_uuid
from src.jobstore.errors import JobStoreError
from src.jobstore.schema import REQUIRED_SCHEMA_VERSION

from .errors import ExportInvariantViolation, SignalTimeoutError
from .generator import FixtureGenerator, export_store
from .version_policy import VersionPolicy


logger = logging.getLogger(__name__)


def _apply_overrides(settings: FixtureSettings, args: argparse.Namespace) -> FixtureSettings:
    """Command line values win over environment settings."""
    update = {}
    if getattr(args, "connection_string", None):
        update["connection_string"] = args.connection_string
    if getattr(args, "database_name", None):
        update["database_name"] = args.database_name
    if getattr(args, "output_dir", None):
        update["output_dir"] = Path(args.output_dir)
    if getattr(args, "gate_timeout", None) is not None:
        update["timings"] = settings.timings.model_copy(
            update={"gate_timeout": args.gate_timeout}
        )
    return settings.model_copy(update=update) if update else settings


def _policy_for(settings: FixtureSettings) -> VersionPolicy:
    return VersionPolicy(
        fixture_prefix=settings.fixture_prefix,
        collection_prefix=settings.collection_prefix,
    )


def _run_guarded(action, settings: FixtureSettings) -> int:
    """Run a command body, mapping failures to exit codes."""
    try:
        return action(settings)
    except ExportInvariantViolation as e:
        logger.error(f"[FixtureGen] Export invariant violated: {e}")
        return EXIT_INVARIANT_VIOLATION
    except SignalTimeoutError as e:
        logger.error(f"[FixtureGen] Timed out: {e}")
        return EXIT_TIMEOUT
    except JobStoreError as e:
        logger.error(f"[FixtureGen] Store error: {e}")
        return EXIT_STORE_ERROR
    except OSError as e:
        logger.error(f"[FixtureGen] Cannot write archive: {e}")
        return EXIT_FAILURE


def cmd_generate(args: argparse.Namespace, settings: FixtureSettings) -> int:
    """
    Execute generate command.

    Returns:
        Exit code
    """
    def action(settings: FixtureSettings) -> int:
        run = FixtureGenerator(settings, _policy_for(settings)).generate()
        print(f"Fixture: {run.archive_path}")
        for name, count in run.export.counts.items():
            print(f"  {name}: {count}")
        return EXIT_SUCCESS

    return _run_guarded(action, settings)


def cmd_export(args: argparse.Namespace, settings: FixtureSettings) -> int:
    """Export an existing store without running the engine."""
    def action(settings: FixtureSettings) -> int:
        result = export_store(settings, _policy_for(settings), args.schema_version)
        print(f"Fixture: {result.path}")
        for name, count in result.counts.items():
            print(f"  {name}: {count}")
        return EXIT_SUCCESS

    return _run_guarded(action, settings)


def cmd_policy(args: argparse.Namespace, settings: FixtureSettings) -> int:
    rule = _policy_for(settings).resolve(args.schema_version)
    print(json.dumps(
        {
            "version": rule.version,
            "archive_name": rule.archive_name,
            "allowed_empty": sorted(rule.allowed_empty),
        },
        indent=2,
    ))
    return EXIT_SUCCESS


def create_parser() -> argparse.ArgumentParser:
    """
    Create argument parser.

    Returns:
        Configured ArgumentParser
    """
    parser = argparse.ArgumentParser(
        prog="jobstore-fixtures",
        description="Job store fixture generator - versioned store snapshots for migration tests",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    parser.add_argument(
        "--env-file",
        help="Path to a .env file (default: search from the working directory)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # generate command
    generate_parser = subparsers.add_parser("generate", help="Run the engine and export a fixture")
    _add_store_arguments(generate_parser)
    generate_parser.add_argument(
        "--gate-timeout",
        type=float,
        help="Seconds to wait per gate before failing (default: wait forever)"
    )

    # export command
    export_parser = subparsers.add_parser("export", help="Export an existing store")
    _add_store_arguments(export_parser)
    export_parser.add_argument(
        "--schema-version",
        type=int,
        help="Schema version to export as (default: version recorded in the store)"
    )

    # policy command
    policy_parser = subparsers.add_parser("policy", help="Show the version policy")
    policy_parser.add_argument(
        "--schema-version",
        type=int,
        default=int(REQUIRED_SCHEMA_VERSION),
        help=f"Schema version (default: {int(REQUIRED_SCHEMA_VERSION)})"
    )

    return parser


def _add_store_arguments(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument(
        "-o", "--output-dir",
        help="Archive output directory"
    )
    subparser.add_argument(
        "--connection-string",
        help="Store directory or sqlite:///<dir>"
    )
    subparser.add_argument(
        "--database-name",
        help="Database name"
    )


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    settings = _apply_overrides(load_settings(args.env_file), args)

    log_level = "DEBUG" if args.verbose else settings.log_level
    setup_logging(log_level, settings.log_dir, run_id=generate_uuid()[:8])

    if args.command == "generate":
        return cmd_generate(args, settings)
    elif args.command == "export":
        return cmd_export(args, settings)
    elif args.command == "policy":
        return cmd_policy(args, settings)
    else:
        parser.print_help()
        return EXIT_SUCCESS
