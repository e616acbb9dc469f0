"""
cronlink

Cron-style job scheduler with retries, job chaining, webhook notifications
and an append-only run history.
"""

from cronlink.config import Settings
from cronlink.engine import EngineState, ScheduleEngine, run_job
from cronlink.errors import ConfigError, CronlinkError, JobNotFoundError, NotificationError
from cronlink.loader import load_schedule, parse_schedule
from cronlink.models import JobRun, OnEvent
from cronlink.recorder import RunRecorder
from cronlink.runner import run_with_retry
from cronlink.schedule import JobSpec, Schedule

__version__ = "0.1.0"
__all__ = [
    "ConfigError",
    "CronlinkError",
    "EngineState",
    "JobNotFoundError",
    "JobRun",
    "JobSpec",
    "NotificationError",
    "OnEvent",
    "RunRecorder",
    "Schedule",
    "ScheduleEngine",
    "Settings",
    "load_schedule",
    "parse_schedule",
    "run_job",
    "run_with_retry",
]
