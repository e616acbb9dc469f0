"""
cronlink command-line interface.
"""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from cronlink import __version__
from cronlink.config import Settings, setup_logging
from cronlink.engine import ScheduleEngine, run_job
from cronlink.errors import CronlinkError
from cronlink.loader import load_schedule

logger = logging.getLogger("cronlink")

DEFAULT_HISTORY_COUNT = 10


def command_run(schedule_path: Path, settings: Settings, drain: bool) -> int:
    schedule = load_schedule(schedule_path, settings)
    total = len(schedule.jobs)
    for idx, name in enumerate(schedule.jobs, start=1):
        logger.info("Initializing (%s/%s) job: %s", idx, total, name)
    engine = ScheduleEngine(schedule)
    engine.run(drain=drain)
    return 0


def command_exec(schedule_path: Path, settings: Settings, job_name: str) -> int:
    schedule = load_schedule(schedule_path, settings)
    run = run_job(schedule, job_name)
    return 0 if run.success else 1


def command_validate(schedule_path: Path, settings: Settings) -> int:
    schedule = load_schedule(schedule_path, settings, load_runs=False)
    print(f"Schedule valid: {schedule_path}")
    print(f"Total jobs: {len(schedule.jobs)}")
    for name, job in schedule.jobs.items():
        trigger = f"cron '{job.cron}'" if job.cron else "triggered only"
        print(f"- {name}: {trigger}, retries={job.retries}")
    return 0


def command_history(schedule_path: Path, settings: Settings, job_name: str, count: int) -> int:
    schedule = load_schedule(schedule_path, settings, load_runs=False)
    job = schedule.get_job(job_name)
    runs = job.recorder.read_last(job.name, count)
    if not runs:
        print(f"No recorded runs for {job.name}.")
        return 0
    for run in runs:
        print(
            f"{run.triggered_at.isoformat()}  status={run.status:<4} "
            f"duration={run.duration:.2f}s  trigger={run.triggered_by}"
        )
    return 0


def command_show(schedule_path: Path, settings: Settings, job_name: str, include_runs: bool) -> int:
    schedule = load_schedule(schedule_path, settings, load_runs=include_runs)
    print(schedule.get_job(job_name).to_yaml(include_runs=include_runs), end="")
    return 0


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="cronlink job scheduler")
    parser.add_argument("--version", action="version", version=f"cronlink {__version__}")
    parser.add_argument("--home", help="Directory for job run logs (default: $CRONLINK_HOME or ~/.cronlink)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-file", help="Also write scheduler logs to this file")
    parser.add_argument(
        "--suppress-logs",
        action="store_true",
        default=None,
        help="Do not mirror job output to stdout",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the scheduler until SIGINT/SIGTERM")
    run_parser.add_argument("schedule", help="Path to schedule YAML")
    run_parser.add_argument(
        "--drain",
        action="store_true",
        help="On shutdown, wait for in-flight jobs to finish",
    )

    exec_parser = subparsers.add_parser("exec", help="Run one job once, now")
    exec_parser.add_argument("schedule", help="Path to schedule YAML")
    exec_parser.add_argument("job", help="Job name")

    validate_parser = subparsers.add_parser("validate", help="Validate a schedule")
    validate_parser.add_argument("schedule", help="Path to schedule YAML")

    history_parser = subparsers.add_parser("history", help="Show recent runs of a job")
    history_parser.add_argument("schedule", help="Path to schedule YAML")
    history_parser.add_argument("job", help="Job name")
    history_parser.add_argument(
        "--count",
        type=int,
        default=DEFAULT_HISTORY_COUNT,
        help=f"Number of runs (default: {DEFAULT_HISTORY_COUNT})",
    )

    show_parser = subparsers.add_parser("show", help="Print a job definition as YAML")
    show_parser.add_argument("schedule", help="Path to schedule YAML")
    show_parser.add_argument("job", help="Job name")
    show_parser.add_argument("--runs", action="store_true", help="Include recent runs")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level, args.log_file)
    settings = Settings.from_env(home=args.home, suppress_logs=args.suppress_logs)
    schedule_path = Path(args.schedule).resolve()

    try:
        if args.command == "run":
            return command_run(schedule_path, settings, drain=args.drain)
        if args.command == "exec":
            return command_exec(schedule_path, settings, args.job)
        if args.command == "validate":
            return command_validate(schedule_path, settings)
        if args.command == "history":
            if args.count <= 0:
                raise CronlinkError("--count must be >= 1")
            return command_history(schedule_path, settings, args.job, args.count)
        if args.command == "show":
            return command_show(schedule_path, settings, args.job, args.runs)
        raise CronlinkError(f"Unsupported command: {args.command}")
    except CronlinkError as exc:
        logger.error(str(exc))
        return 1
    except Exception as exc:  # pragma: no cover - defensive
        logger.exception("Unexpected error: %s", exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
