"""
Single-attempt job execution as an external process.
"""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import time
from typing import Dict, List, Mapping, Optional

from cronlink.models import STATUS_NOT_COMPLETED, JobRun
from cronlink.schedule import JobSpec
from cronlink.templating import render_args

logger = logging.getLogger(__name__)

SIGNAL_EXIT_BASE = 128


def build_argv(command: List[str], params: Mapping[str, str]) -> List[str]:
    if len(command) == 1:
        return [command[0]]
    return [command[0], *render_args(command[1:], params)]


def build_env(overrides: Mapping[str, str]) -> Dict[str, str]:
    env = os.environ.copy()
    env.update({key: str(value) for key, value in overrides.items()})
    return env


def exit_status(returncode: int) -> int:
    # Negative return codes mean "killed by signal"; keep them apart from the sentinel.
    if returncode < 0:
        return SIGNAL_EXIT_BASE - returncode
    return returncode


def decode_output(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _echo(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def execute(job: JobSpec, trigger: str, params: Optional[Mapping[str, str]] = None) -> JobRun:
    """
    Run one attempt of ``job`` and block until the process exits or fails to start.

    The job's own ``params`` are template defaults; ``params`` passed in win.
    """
    params = {**job.params, **(params or {})}
    suppress_logs = job.settings.suppress_logs
    logger.info("[%s] Job triggered (trigger=%s)", job.name, trigger)

    run = JobRun(
        name=job.name,
        triggered_at=job.now(),
        triggered_by=trigger,
        status=STATUS_NOT_COMPLETED,
        params=params,
        job=job,
    )
    started = time.monotonic()
    try:
        if not job.command:
            run.log = "Job unable to start: no command specified"
            logger.warning("[%s] %s (trigger=%s)", job.name, run.log, trigger)
            if not suppress_logs:
                _echo(run.log + "\n")
            return run

        argv = build_argv(job.command, params)
        try:
            process = subprocess.Popen(
                argv,
                cwd=job.working_directory or None,
                env=build_env(job.env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except (OSError, ValueError) as exc:
            run.log = f"job unable to start: {exc}"
            logger.warning("[%s] Job unable to start (trigger=%s): %s", job.name, trigger, exc)
            if not suppress_logs:
                _echo(run.log + "\n")
            return run

        # Binary pipe: line endings reach the log exactly as the job wrote them.
        captured: List[bytes] = []
        with process:
            for chunk in process.stdout or ():
                captured.append(chunk)
                if not suppress_logs:
                    _echo(decode_output(chunk))
            returncode = process.wait()

        run.log = decode_output(b"".join(captured))
        run.status = exit_status(returncode)
        if run.status == 0:
            logger.debug("[%s] Job exited with status 0", job.name)
        else:
            logger.warning("[%s] Exit code %s", job.name, run.status)
        return run
    finally:
        run.duration = time.monotonic() - started
