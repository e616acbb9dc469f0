"""
YAML schedule definitions.

    timezone: Europe/Amsterdam        # optional
    on_error:                         # applied to every job
      notify_webhook: [https://example.org/hook]
    jobs:
      backup:
        cron: "0 3 * * *"
        command: [rsync, -a, "{{ .src }}", /backup]
        params: {src: /srv/data}
        retries: 2
        on_success:
          trigger_job: [report]
      report:
        command: ./report.sh
"""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from cronlink.config import (
    Settings,
    ensure_int,
    ensure_known_keys,
    ensure_str,
    ensure_str_list,
    ensure_str_map,
    parse_timezone,
)
from cronlink.errors import ConfigError
from cronlink.models import OnEvent
from cronlink.schedule import OVERLAP_PARALLEL, VALID_OVERLAPS, JobSpec, Schedule

logger = logging.getLogger(__name__)

TOP_LEVEL_KEYS = {"jobs", "on_success", "on_error", "timezone"}
JOB_KEYS = {
    "cron",
    "command",
    "params",
    "env",
    "working_directory",
    "retries",
    "on_success",
    "on_error",
    "overlap",
}
ON_EVENT_KEYS = {"trigger_job", "notify_webhook", "notify_slack_webhook"}


def parse_command(raw: Any, field_path: str) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, (dict, bool)):
        raise ConfigError(f"Error: {field_path} must be a string or a list of strings.")
    if not isinstance(raw, list):
        return [str(raw)]
    command: List[str] = []
    for idx, item in enumerate(raw):
        if isinstance(item, (dict, list)) or item is None:
            raise ConfigError(f"Error: {field_path}[{idx}] must be a scalar value.")
        command.append(str(item))
    return command


def parse_on_event(raw: Any, field_path: str) -> OnEvent:
    if raw is None:
        return OnEvent()
    if not isinstance(raw, dict):
        raise ConfigError(f"Error: {field_path} must be a mapping.")
    ensure_known_keys(raw, ON_EVENT_KEYS, field_path)
    return OnEvent(
        trigger_job=ensure_str_list(raw.get("trigger_job"), f"{field_path}.trigger_job"),
        notify_webhook=ensure_str_list(raw.get("notify_webhook"), f"{field_path}.notify_webhook"),
        notify_slack_webhook=ensure_str_list(
            raw.get("notify_slack_webhook"), f"{field_path}.notify_slack_webhook"
        ),
    )


def parse_job(name: str, raw: Any) -> JobSpec:
    path = f"jobs.{name}"
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigError(f"Error: {path} must be a mapping.")
    ensure_known_keys(raw, JOB_KEYS, path)

    overlap = ensure_str(raw.get("overlap"), f"{path}.overlap", OVERLAP_PARALLEL).lower()
    if overlap not in VALID_OVERLAPS:
        raise ConfigError(
            f'Error: {path}.overlap must be one of {sorted(VALID_OVERLAPS)}, got "{overlap}".'
        )

    return JobSpec(
        name=name,
        cron=ensure_str(raw.get("cron"), f"{path}.cron"),
        command=parse_command(raw.get("command"), f"{path}.command"),
        params=ensure_str_map(raw.get("params"), f"{path}.params"),
        env=ensure_str_map(raw.get("env"), f"{path}.env"),
        working_directory=ensure_str(raw.get("working_directory"), f"{path}.working_directory"),
        retries=ensure_int(raw.get("retries"), f"{path}.retries", 0, 0),
        on_success=parse_on_event(raw.get("on_success"), f"{path}.on_success"),
        on_error=parse_on_event(raw.get("on_error"), f"{path}.on_error"),
        overlap=overlap,
    )


def parse_schedule(payload: Any, settings: Settings) -> Schedule:
    """Build and validate a schedule from an already parsed YAML document."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ConfigError("Error: Top-level schedule must be a mapping.")
    ensure_known_keys(payload, TOP_LEVEL_KEYS, "schedule")

    if payload.get("timezone") is not None:
        settings = replace(settings, timezone=parse_timezone(payload["timezone"], "timezone"))

    jobs_raw = payload.get("jobs")
    if not isinstance(jobs_raw, dict) or not jobs_raw:
        raise ConfigError("Error: jobs must be a non-empty mapping of job name to job spec.")

    jobs: Dict[str, JobSpec] = {}
    for name, job_raw in jobs_raw.items():
        if not isinstance(name, str) or not name.strip():
            raise ConfigError(f"Error: job names must be non-empty strings, got {name!r}.")
        jobs[name] = parse_job(name, job_raw)

    schedule = Schedule(
        jobs=jobs,
        settings=settings,
        on_success=parse_on_event(payload.get("on_success"), "on_success"),
        on_error=parse_on_event(payload.get("on_error"), "on_error"),
    )
    schedule.validate()
    return schedule


def load_schedule(path: Path, settings: Optional[Settings] = None, load_runs: bool = True) -> Schedule:
    settings = settings or Settings.from_env()
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Error: Schedule file not found: {path}")
    try:
        payload = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigError(f"Error: Failed to parse YAML in {path}: {exc}") from exc

    schedule = parse_schedule(payload, settings)
    if load_runs:
        schedule.load_runs()
    logger.info("Loaded %s job(s) from %s", len(schedule.jobs), path)
    return schedule
