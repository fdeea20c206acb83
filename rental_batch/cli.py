"""
Command-line entry point for the daily rent batch.

Usage:
    rental-batch [--config PATH] [--database-url URL] init-db
    rental-batch [--config PATH] [--database-url URL] run [--date YYYY-MM-DD] [--force]
    rental-batch [--config PATH] [--database-url URL] status

Examples:
    # Create tables in the configured database
    rental-batch init-db

    # Run today's batch (no-op if it already completed today)
    rental-batch run

    # Re-run a specific date
    rental-batch run --date 2026-02-10 --force

``run`` and ``status`` print one JSON document on stdout; logs go to
stderr as JSON lines.  ``run`` exits 1 when the batch did not succeed.
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict, replace
from datetime import date

from rental_kernel.db.engine import create_tables, init_engine_from_url, session_scope
from rental_kernel.domain.clock import Clock
from rental_kernel.exceptions import ConfigurationError
from rental_kernel.logging_config import configure_logging, get_logger
from rental_config import load_settings
from rental_config.schema import RentalSettings
from rental_batch.coordinator import BatchRunCoordinator

logger = get_logger("batch.cli")

EXIT_OK = 0
EXIT_BATCH_FAILED = 1
EXIT_CONFIG_ERROR = 2


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="rental-batch",
        description="Daily rent batch: recompute due obligations, notify, clean up.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Settings YAML file (default: $RENTAL_CONFIG or the bundled settings.yaml).",
    )
    parser.add_argument(
        "--database-url",
        default=None,
        help="Database URL; overrides the settings file and $RENTAL_DATABASE_URL.",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run the daily batch.")
    run.add_argument(
        "--date",
        type=lambda s: date.fromisoformat(s),
        default=None,
        help="As-of date (YYYY-MM-DD). Default: today.",
    )
    run.add_argument(
        "--force",
        action="store_true",
        help="Run even if a batch already completed for this date.",
    )

    commands.add_parser("status", help="Show statistics of the last completed run.")
    commands.add_parser("init-db", help="Create the database tables.")

    return parser.parse_args(argv)


def _prepare(args: argparse.Namespace) -> RentalSettings:
    settings = load_settings(args.config)
    if args.database_url:
        settings = replace(settings, database_url=args.database_url)

    configure_logging(level=settings.log_level)
    init_engine_from_url(settings.database_url)
    return settings


def _init_db() -> int:
    import rental_batch.models  # noqa: F401

    create_tables()
    print(json.dumps({"tables_created": True}))
    return EXIT_OK


def _run(args: argparse.Namespace, settings: RentalSettings, clock: Clock | None) -> int:
    with session_scope() as session:
        coordinator = BatchRunCoordinator.from_session(session, settings, clock=clock)
        report = coordinator.run_daily_batch(as_of=args.date, force=args.force)

    print(json.dumps(report.summary(), indent=2))
    return EXIT_OK if report.overall_success else EXIT_BATCH_FAILED


def _status(settings: RentalSettings, clock: Clock | None) -> int:
    with session_scope() as session:
        coordinator = BatchRunCoordinator.from_session(session, settings, clock=clock)
        stats = coordinator.last_run_statistics()

    print(json.dumps(asdict(stats), indent=2, default=str))
    return EXIT_OK


def main(argv: list[str] | None = None, clock: Clock | None = None) -> int:
    args = _parse_args(argv)

    try:
        settings = _prepare(args)
    except ConfigurationError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    logger.info("cli_command_started", extra={"command": args.command})

    if args.command == "init-db":
        return _init_db()
    if args.command == "run":
        return _run(args, settings, clock)
    return _status(settings, clock)


if __name__ == "__main__":
    sys.exit(main())
