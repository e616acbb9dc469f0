"""
Event cascade: fire dependent jobs and webhooks for a finished run, then wait.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Mapping, Optional

from cronlink.errors import NotificationError
from cronlink.models import EventActions, JobRun
from cronlink.notifier import GENERIC, SLACK, webhook_call
from cronlink.schedule import JobSpec

logger = logging.getLogger(__name__)

RunDependent = Callable[[JobSpec, str, Mapping[str, str]], JobRun]


def parent_trigger(job: JobSpec) -> str:
    return f"job[{job.name}]"


def notify(run: JobRun, url: str, kind: str, timeout: float) -> Optional[bytes]:
    try:
        body = webhook_call(run, url, kind=kind, timeout=timeout)
    except NotificationError as exc:
        logger.warning("[%s] Webhook notify failed (%s): %s", run.name, kind, exc)
        return None
    logger.debug("[%s] Webhook %s responded: %s", run.name, url, body.decode("utf-8", "replace"))
    return body


def _run_dependent(run_dependent: RunDependent, dependent: JobSpec, trigger: str) -> None:
    try:
        run_dependent(dependent, trigger, {})
    except Exception:  # pragma: no cover - defensive
        logger.exception("[%s] Triggered job crashed (trigger=%s)", dependent.name, trigger)


def cascade(
    job: JobSpec,
    run: JobRun,
    run_dependent: RunDependent,
    actions: Optional[EventActions] = None,
) -> None:
    """
    Fire every action for the outcome of ``run`` concurrently and return
    only when all of them have finished.

    Dependent jobs go through ``run_dependent`` (the retry controller), so a
    chain of triggers keeps the caller blocked until the whole chain resolves.
    Webhook failures are logged and never interrupt the other actions.
    """
    if actions is None:
        actions = job.actions_for(run.success)
    if not actions:
        return

    schedule = job.schedule
    timeout = job.settings.webhook_timeout
    trigger = parent_trigger(job)
    threads: List[threading.Thread] = []

    def start(target, *args) -> None:
        thread = threading.Thread(target=target, args=args, daemon=True, name=f"cronlink-{job.name}")
        thread.start()
        threads.append(thread)

    for name in actions.trigger_job:
        dependent = schedule.jobs.get(name) if schedule is not None else None
        if dependent is None:
            logger.warning("[%s] Cannot trigger unknown job %s", job.name, name)
            continue
        logger.debug("[%s] Triggering job %s", job.name, name)
        start(_run_dependent, run_dependent, dependent, trigger)

    for url in actions.notify_webhook:
        logger.debug("[%s] Calling webhook %s", job.name, url)
        start(notify, run, url, GENERIC, timeout)

    for url in actions.notify_slack_webhook:
        logger.debug("[%s] Calling slack webhook %s", job.name, url)
        start(notify, run, url, SLACK, timeout)

    for thread in threads:
        thread.join()
