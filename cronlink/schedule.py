"""
Job definitions and the schedule that owns them.
"""

from __future__ import annotations

import logging
import threading
import weakref
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

import yaml
from croniter import CroniterBadDateError, croniter

from cronlink.config import Settings
from cronlink.errors import ConfigError, JobNotFoundError
from cronlink.models import EventActions, JobRun, OnEvent, merge_actions
from cronlink.recorder import RunRecorder

logger = logging.getLogger(__name__)

OVERLAP_PARALLEL = "parallel"
OVERLAP_SKIP = "skip"
VALID_OVERLAPS = {OVERLAP_PARALLEL, OVERLAP_SKIP}
CRON_FIELD_COUNT = 5


def is_valid_cron(expr: str) -> bool:
    """True for a five-field cron expression that matches at least one instant."""
    if not isinstance(expr, str) or len(expr.split()) != CRON_FIELD_COUNT:
        return False
    if not croniter.is_valid(expr):
        return False
    # "0 0 31 2 *" parses but never fires.
    try:
        croniter(expr, local_now()).get_next(datetime)
    except CroniterBadDateError:
        return False
    return True


def next_fire_after(expr: str, reference: datetime) -> datetime:
    return croniter(expr, reference).get_next(datetime)


def local_now(tz=None) -> datetime:
    if tz is not None:
        return datetime.now(tz=tz)
    return datetime.now().astimezone()


@dataclass
class JobSpec:
    name: str = ""
    cron: str = ""
    command: List[str] = field(default_factory=list)
    params: Dict[str, str] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    working_directory: str = ""
    retries: int = 0
    on_success: OnEvent = field(default_factory=OnEvent)
    on_error: OnEvent = field(default_factory=OnEvent)
    overlap: str = OVERLAP_PARALLEL

    next_fire: Optional[datetime] = field(default=None, repr=False, compare=False)
    _schedule_ref: Optional[Callable[[], Optional["Schedule"]]] = field(
        default=None, repr=False, compare=False
    )
    _runs: Deque[JobRun] = field(default_factory=deque, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    _inflight: int = field(default=0, repr=False, compare=False)
    _fallback_recorder: Optional[RunRecorder] = field(default=None, repr=False, compare=False)

    def attach(self, schedule: "Schedule", name: str) -> None:
        self.name = name
        self._schedule_ref = weakref.ref(schedule)
        self._runs = deque(self._runs, maxlen=schedule.settings.history_size)

    @property
    def schedule(self) -> Optional["Schedule"]:
        if self._schedule_ref is None:
            return None
        return self._schedule_ref()

    @property
    def settings(self) -> Settings:
        schedule = self.schedule
        if schedule is not None:
            return schedule.settings
        return Settings.from_env()

    @property
    def recorder(self) -> RunRecorder:
        schedule = self.schedule
        if schedule is not None:
            return schedule.recorder
        if self._fallback_recorder is None:
            self._fallback_recorder = RunRecorder(self.settings.home)
        return self._fallback_recorder

    def now(self) -> datetime:
        schedule = self.schedule
        if schedule is not None:
            return schedule.now()
        return local_now()

    def validate_cron(self) -> None:
        if self.cron and not is_valid_cron(self.cron):
            raise ConfigError(f"cron string for job '{self.name}' not valid")

    def actions_for(self, success: bool) -> EventActions:
        schedule = self.schedule
        if schedule is not None:
            return schedule.actions_for(self, success)
        return merge_actions(self.on_success if success else self.on_error)

    def set_next_fire(self, reference: datetime) -> None:
        if not self.cron:
            return
        try:
            self.next_fire = next_fire_after(self.cron, reference)
        except CroniterBadDateError as exc:
            logger.warning("[%s] No next fire time for cron '%s': %s", self.name, self.cron, exc)
            self.next_fire = None

    def is_due(self, now: datetime) -> bool:
        return bool(self.cron) and self.next_fire is not None and now >= self.next_fire

    # recent-run cache

    @property
    def runs(self) -> List[JobRun]:
        with self._lock:
            return list(self._runs)

    def remember(self, run: JobRun) -> None:
        with self._lock:
            if self._runs.maxlen is None:
                self._runs = deque(self._runs, maxlen=self.settings.history_size)
            self._runs.append(run)

    def load_runs(self) -> None:
        count = self.settings.history_size
        try:
            runs = self.recorder.read_last(self.name, count)
        except OSError as exc:
            logger.warning("[%s] Could not load job logs: %s", self.name, exc)
            runs = []
        with self._lock:
            self._runs = deque(runs, maxlen=count)

    # in-flight accounting, used by the engine's overlap policy

    @property
    def inflight(self) -> int:
        with self._lock:
            return self._inflight

    def mark_started(self) -> None:
        with self._lock:
            self._inflight += 1

    def mark_finished(self) -> None:
        with self._lock:
            self._inflight = max(self._inflight - 1, 0)

    def to_dict(self, include_runs: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": self.name}
        if self.cron:
            payload["cron"] = self.cron
        payload["command"] = list(self.command)
        if self.params:
            payload["params"] = dict(self.params)
        if self.env:
            payload["env"] = dict(self.env)
        if self.working_directory:
            payload["working_directory"] = self.working_directory
        if self.retries:
            payload["retries"] = self.retries
        if self.overlap != OVERLAP_PARALLEL:
            payload["overlap"] = self.overlap
        if self.on_success.to_dict():
            payload["on_success"] = self.on_success.to_dict()
        if self.on_error.to_dict():
            payload["on_error"] = self.on_error.to_dict()
        if include_runs:
            payload["runs"] = [run.to_dict() for run in self.runs]
        return payload

    def to_yaml(self, include_runs: bool = False) -> str:
        return yaml.safe_dump(self.to_dict(include_runs=include_runs), sort_keys=False)


class Schedule:
    """Registry of jobs plus the schedule-wide event defaults."""

    def __init__(
        self,
        jobs: Dict[str, JobSpec],
        settings: Settings,
        on_success: Optional[OnEvent] = None,
        on_error: Optional[OnEvent] = None,
        recorder: Optional[RunRecorder] = None,
    ) -> None:
        self.jobs = jobs
        self.settings = settings
        self.on_success = on_success or OnEvent()
        self.on_error = on_error or OnEvent()
        self.recorder = recorder or RunRecorder(settings.home)
        self.clock: Optional[Callable[[], datetime]] = None

    def now(self) -> datetime:
        if self.clock is not None:
            return self.clock()
        return local_now(self.settings.timezone)

    def validate(self) -> None:
        global_refs = self.on_success.trigger_job + self.on_error.trigger_job
        for ref in global_refs:
            if ref not in self.jobs:
                raise ConfigError(
                    f"cannot find spec of job '{ref}' that is referenced in the schedule defaults"
                )
        for name, job in self.jobs.items():
            job.name = name
            job.validate_cron()
            for ref in job.on_success.trigger_job + job.on_error.trigger_job:
                if ref not in self.jobs:
                    raise ConfigError(
                        f"cannot find spec of job '{ref}' that is referenced in job '{name}'"
                    )
            if job.overlap not in VALID_OVERLAPS:
                raise ConfigError(
                    f"overlap for job '{name}' must be one of {sorted(VALID_OVERLAPS)}"
                )
        for name, job in self.jobs.items():
            job.attach(self, name)

    def get_job(self, name: str) -> JobSpec:
        try:
            return self.jobs[name]
        except KeyError:
            raise JobNotFoundError(name) from None

    def actions_for(self, job: JobSpec, success: bool) -> EventActions:
        if success:
            return merge_actions(job.on_success, self.on_success)
        return merge_actions(job.on_error, self.on_error)

    def load_runs(self) -> None:
        for job in self.jobs.values():
            job.load_runs()
