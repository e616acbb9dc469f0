"""
Webhook notifications for finished job runs.
"""

from __future__ import annotations

import json
from typing import Any, Dict
from urllib import error as urllib_error
from urllib import request as urllib_request

from cronlink.config import DEFAULT_WEBHOOK_TIMEOUT_SECONDS
from cronlink.errors import NotificationError
from cronlink.models import JobRun

GENERIC = "generic"
SLACK = "slack"
PAYLOAD_KINDS = {GENERIC, SLACK}


def generic_payload(run: JobRun) -> Dict[str, Any]:
    return run.to_dict()


def slack_payload(run: JobRun) -> Dict[str, Any]:
    return {
        "text": f"{run.name} finished with status {run.status}, triggered by {run.triggered_by}",
        "job": run.name,
        "status": run.status,
        "triggered_by": run.triggered_by,
        "triggered_at": run.triggered_at.isoformat(),
    }


def build_payload(run: JobRun, kind: str) -> Dict[str, Any]:
    if kind not in PAYLOAD_KINDS:
        raise NotificationError(f'Unsupported webhook payload kind "{kind}".')
    if kind == SLACK:
        return slack_payload(run)
    return generic_payload(run)


def webhook_call(
    run: JobRun,
    url: str,
    kind: str = GENERIC,
    timeout: float = DEFAULT_WEBHOOK_TIMEOUT_SECONDS,
) -> bytes:
    """POST ``run`` to ``url`` and return the response body."""
    body = json.dumps(build_payload(run, kind)).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    try:
        req = urllib_request.Request(url=url, data=body, method="POST", headers=headers)
        with urllib_request.urlopen(req, timeout=max(0.1, timeout)) as response:
            payload = response.read()
            if not 200 <= response.status < 300:
                raise NotificationError(f"webhook {url} answered with status {response.status}")
            return payload
    except urllib_error.HTTPError as exc:
        raise NotificationError(f"webhook {url} answered with status {exc.code}") from exc
    except urllib_error.URLError as exc:
        raise NotificationError(f"webhook {url} unreachable: {exc.reason}") from exc
    except (OSError, ValueError) as exc:
        raise NotificationError(f"webhook {url} failed: {exc}") from exc
