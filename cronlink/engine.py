"""
Schedule engine: one-second tick loop, due-job dispatch and the stop protocol.
"""

from __future__ import annotations

import logging
import signal
import threading
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Set

from cronlink.models import JobRun
from cronlink.runner import run_once, run_with_retry
from cronlink.schedule import OVERLAP_SKIP, JobSpec, Schedule

logger = logging.getLogger(__name__)

TICK_SECONDS = 1.0
MANUAL_TRIGGER = "manual"
CRON_TRIGGER = "cron"
STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class EngineState(Enum):
    LOADING = "loading"
    VALIDATING = "validating"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


def run_job(schedule: Schedule, job_name: str) -> JobRun:
    """Run ``job_name`` once, without retries, and finalize the attempt."""
    job = schedule.get_job(job_name)
    return run_once(job, MANUAL_TRIGGER, {})


class ScheduleEngine:
    def __init__(self, schedule: Schedule, tick_seconds: float = TICK_SECONDS) -> None:
        self.schedule = schedule
        self.tick_seconds = tick_seconds
        self.state = EngineState.LOADING
        self._stop_event = threading.Event()
        self._signal_received: Optional[int] = None
        self._lock = threading.Lock()
        self._idle = threading.Condition(self._lock)
        self._inflight: Set[threading.Thread] = set()

    # lifecycle

    def validate(self) -> None:
        self.state = EngineState.VALIDATING
        self.schedule.validate()

    def start(self, now: Optional[datetime] = None) -> None:
        now = now or self.schedule.now()
        for job in self.schedule.jobs.values():
            job.set_next_fire(now)
        self.state = EngineState.RUNNING

    def stop(self) -> None:
        if self.state is EngineState.RUNNING:
            self.state = EngineState.STOPPING
        self._stop_event.set()

    def run(self, drain: bool = False) -> None:
        """
        Block until a stop is requested (``stop()``, SIGINT or SIGTERM).

        Dispatched jobs are not cancelled. With ``drain`` the engine waits
        for them before returning; otherwise it returns immediately.
        """
        self.validate()
        self.start()
        previous = self._install_signal_handlers()
        logger.info("Starting scheduler with %s job(s)", len(self.schedule.jobs))
        try:
            while not self._stop_requested():
                self.tick()
                self._stop_event.wait(self.tick_seconds)
            if self._signal_received is not None:
                logger.info("%s signal received, exiting...", signal.Signals(self._signal_received).name)
        finally:
            self.state = EngineState.STOPPING
            self._restore_signal_handlers(previous)
            if drain:
                logger.info("Waiting for %s in-flight job(s)", self.inflight_count)
                self.wait_idle()
            self.state = EngineState.STOPPED
            logger.info("Scheduler stopped")

    # scheduling

    def tick(self, now: Optional[datetime] = None) -> List[str]:
        now = now or self.schedule.now()
        dispatched: List[str] = []
        for job in self.schedule.jobs.values():
            if not job.cron:
                continue
            if job.next_fire is None:
                job.set_next_fire(now)
                continue
            if not job.is_due(now):
                continue
            job.set_next_fire(now)
            if job.overlap == OVERLAP_SKIP and job.inflight:
                logger.info("[%s] Skipping overlapping run (%s in flight)", job.name, job.inflight)
                continue
            self.dispatch(job, CRON_TRIGGER)
            dispatched.append(job.name)
        return dispatched

    def dispatch(
        self,
        job: JobSpec,
        trigger: str,
        params: Optional[Mapping[str, str]] = None,
    ) -> threading.Thread:
        job.mark_started()
        thread = threading.Thread(
            target=self._work,
            args=(job, trigger, dict(params or {})),
            daemon=True,
            name=f"cronlink-{job.name}",
        )
        with self._lock:
            self._inflight.add(thread)
        thread.start()
        return thread

    def _work(self, job: JobSpec, trigger: str, params: Dict[str, str]) -> None:
        try:
            run_with_retry(job, trigger, params)
        except Exception:  # pragma: no cover - defensive
            logger.exception("[%s] Job dispatch crashed (trigger=%s)", job.name, trigger)
        finally:
            job.mark_finished()
            with self._idle:
                self._inflight.discard(threading.current_thread())
                self._idle.notify_all()

    @property
    def inflight_count(self) -> int:
        with self._lock:
            return len(self._inflight)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: not self._inflight, timeout)

    def run_job(self, job_name: str) -> JobRun:
        return run_job(self.schedule, job_name)

    # signals

    def _stop_requested(self) -> bool:
        return self._signal_received is not None or self._stop_event.is_set()

    def _handle_signal(self, signum: int, _frame: Any) -> None:
        # Runs between bytecodes of the main thread: plain assignments only, no locks.
        self._signal_received = signum
        if self.state is EngineState.RUNNING:
            self.state = EngineState.STOPPING

    def _install_signal_handlers(self) -> Dict[int, Any]:
        if threading.current_thread() is not threading.main_thread():
            return {}
        previous: Dict[int, Any] = {}
        for sig in STOP_SIGNALS:
            previous[sig] = signal.signal(sig, self._handle_signal)
        return previous

    def _restore_signal_handlers(self, previous: Dict[int, Any]) -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)
