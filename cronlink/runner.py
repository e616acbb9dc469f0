"""
Retry controller: bounded attempts with a constant backoff, finalizing each one.
"""

from __future__ import annotations

import logging
import time
from typing import Mapping, Optional

from cronlink.cascade import cascade
from cronlink.executor import execute
from cronlink.models import JobRun
from cronlink.schedule import JobSpec

logger = logging.getLogger(__name__)


def retry_trigger(trigger: str, attempt: int) -> str:
    return f"{trigger}[retry={attempt}]"


def finalize(job: JobSpec, run: JobRun) -> JobRun:
    """Persist ``run``, add it to the job's recent runs, then run its cascade."""
    actions = job.actions_for(run.success)
    run.triggered = list(actions.trigger_job)
    job.recorder.append(run)
    job.remember(run)
    cascade(job, run, run_with_retry, actions)
    return run


def run_once(job: JobSpec, trigger: str, params: Optional[Mapping[str, str]] = None) -> JobRun:
    return finalize(job, execute(job, trigger, params))


def run_with_retry(
    job: JobSpec,
    trigger: str,
    params: Optional[Mapping[str, str]] = None,
    delay: Optional[float] = None,
) -> JobRun:
    """
    Run ``job`` up to ``retries + 1`` times and return the last attempt.

    Every attempt is finalized, so each failed retry fires the error actions
    on its own. The first successful attempt ends the loop.
    """
    if delay is None:
        delay = job.settings.retry_delay
    attempts = max(job.retries, 0) + 1

    run = None
    for attempt in range(attempts):
        descriptor = trigger if attempt == 0 else retry_trigger(trigger, attempt)
        run = run_once(job, descriptor, params)
        if run.success:
            break
        if attempt + 1 < attempts:
            logger.debug(
                "[%s] Job exited unsuccessfully (status=%s), retrying in %ss",
                job.name,
                run.status,
                delay,
            )
            time.sleep(delay)
    return run
