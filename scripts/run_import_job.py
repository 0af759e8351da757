#!/usr/bin/env python3
"""
Drive a configured import job from the command line.

Jobs come from the active import config (get_active_config).  The GitHub
token is read from the environment variable the config names
(GITHUB_TOKEN by default); without one the API allows 60 calls an hour.

Usage:
    python3 scripts/run_import_job.py <command> --job <job_id> [options]

Commands:
    jobs     List configured jobs
    status   Show progress
    start    Create the job (lists page 1) or resume it
    drive    Advance one batch
    run      Start/resume and drive until completed, failed, or interrupted
    pause    Pause a running job
    resume   Resume a paused or failed job
    reset    Delete the job record

Examples:
    # Import everyone matching the configured location terms
    python3 scripts/run_import_job.py run --job github-newfoundland

    # One batch of 10, keeping 20 calls in reserve
    python3 scripts/run_import_job.py drive --job github-newfoundland \\
        --batch-size 10 --safety-margin 20
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

COMMANDS = ("jobs", "status", "start", "drive", "run", "pause", "resume", "reset")


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Drive a resumable, rate-limit-aware import job.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("command", choices=COMMANDS, help="What to do.")
    parser.add_argument(
        "--job",
        help="Job id (must be a source in the active config).",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config YAML (default: import_config/sets/default.yaml).",
    )
    parser.add_argument(
        "--db-url",
        default=None,
        help="Database URL (default: database.url from the config).",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Items per batch (default: engine.batch_size).",
    )
    parser.add_argument(
        "--safety-margin",
        type=int,
        default=None,
        help="API calls to keep in reserve (default: engine.safety_margin).",
    )
    parser.add_argument(
        "--max-batches",
        type=int,
        default=None,
        help="run: stop after this many batches.",
    )
    parser.add_argument(
        "--poll-delay-ms",
        type=int,
        default=None,
        help="run: delay between batches (default: engine.poll_delay_ms).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Emit structured JSON logs to stderr.",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Log level used with --verbose (default: INFO).",
    )
    return parser.parse_args(argv)


def _print_progress(progress) -> None:
    print(f"Job:        {progress.job_id}")
    print(f"Status:     {progress.status.value}")
    print(
        f"Progress:   {progress.processed_items}/{progress.total_items} "
        f"({progress.percent_complete}%), page {progress.current_page}/{progress.total_pages}"
    )
    print(
        f"Outcomes:   imported={progress.imported_count} "
        f"skipped={progress.skipped_count} errors={progress.error_count}"
    )
    if progress.rate_limit_remaining is not None:
        reset = progress.rate_limit_reset_at.isoformat() if progress.rate_limit_reset_at else "?"
        print(f"Rate limit: {progress.rate_limit_remaining} remaining, resets {reset}")
    if progress.waiting_for_rate_limit:
        print("Waiting for the rate limit window to reset.")
    if progress.last_error:
        print(f"Last error: {progress.last_error}")
    for entry in progress.recent_activity[-10:]:
        print(f"  [{entry.outcome.value}] {entry.message}")


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    # Lazy imports so we fail fast on args first
    from import_config import get_active_config, github_token
    from import_jobs.domain.types import DriveOptions
    from import_jobs.orchestrator import ImportOrchestrator
    from import_kernel.db.engine import (
        create_tables,
        get_session,
        get_session_factory,
        init_engine_from_url,
    )
    from import_kernel.exceptions import ImportKernelError
    from import_kernel.logging_config import configure_logging

    if args.verbose:
        configure_logging(level=args.log_level, stream=sys.stderr)

    try:
        config = get_active_config(args.config)
    except Exception as e:
        print(f"ERROR: Failed to load config: {e}", file=sys.stderr)
        return 1

    if args.command == "jobs":
        for source in config.sources:
            print(f"{source.job_id:<24} {source.kind:<8} {source.description}")
        return 0

    if not args.job:
        print("ERROR: --job is required for this command.", file=sys.stderr)
        return 1
    if args.job not in config.job_ids:
        names = list(config.job_ids) or ["(none defined)"]
        print(f"ERROR: Job {args.job!r} not found in config.", file=sys.stderr)
        print(f"Available jobs: {names}", file=sys.stderr)
        return 1

    try:
        init_engine_from_url(args.db_url or config.database.url, echo=config.database.echo)
        create_tables()
    except Exception as e:
        print(f"ERROR: Database init failed: {e}", file=sys.stderr)
        return 1

    session = get_session()
    try:
        orchestrator = ImportOrchestrator.from_config(
            session, config, token=github_token(config),
        )
        driver = orchestrator.create_driver()
        options = DriveOptions(
            batch_size=args.batch_size or orchestrator.defaults.batch_size,
            safety_margin=(
                orchestrator.defaults.safety_margin
                if args.safety_margin is None
                else args.safety_margin
            ),
        )

        if args.command == "status":
            progress = driver.get_progress(args.job)
        elif args.command == "start":
            progress = driver.start(args.job)
        elif args.command == "drive":
            progress = driver.drive_batch(args.job, options)
        elif args.command == "pause":
            progress = driver.pause(args.job)
        elif args.command == "resume":
            progress = driver.resume(args.job)
        elif args.command == "reset":
            progress = driver.reset(args.job)
            print(f"Job {args.job} reset.")
        else:
            driver.start(args.job)
            runner = orchestrator.create_runner(
                get_session_factory(),
                poll_delay_ms=args.poll_delay_ms,
                options=options,
            )
            try:
                progress = runner.run(args.job, max_batches=args.max_batches)
            except KeyboardInterrupt:
                print("Interrupted; the job resumes from its last batch.")
                progress = driver.get_progress(args.job)

        _print_progress(progress)
        return 0
    except ImportKernelError as e:
        session.rollback()
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
