from __future__ import annotations

import socket
from datetime import datetime, timezone

import pytest

from cronlink.errors import NotificationError
from cronlink.models import JobRun
from cronlink.notifier import GENERIC, SLACK, build_payload, webhook_call


def _run(status: int = 0) -> JobRun:
    return JobRun(
        name="backup",
        triggered_at=datetime(2026, 3, 1, 3, 0, tzinfo=timezone.utc),
        triggered_by="cron",
        status=status,
        log="done\n",
        duration=2.0,
    )


def _closed_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_generic_payload_mirrors_run() -> None:
    run = _run()
    assert build_payload(run, GENERIC) == run.to_dict()


def test_slack_payload_summarizes_run() -> None:
    payload = build_payload(_run(status=1), SLACK)
    assert payload["text"] == "backup finished with status 1, triggered by cron"
    assert payload["job"] == "backup"
    assert payload["status"] == 1


def test_unknown_payload_kind_rejected() -> None:
    with pytest.raises(NotificationError, match="Unsupported"):
        build_payload(_run(), "teams")


def test_webhook_call_posts_json(webhook_server) -> None:
    body = webhook_call(_run(), webhook_server.url + "/hook", kind=GENERIC, timeout=5)
    assert body == b"received"
    path, payload = webhook_server.requests[0]
    assert path == "/hook"
    assert payload["name"] == "backup"
    assert payload["status"] == 0
    assert payload["log"] == "done\n"


def test_webhook_call_slack_shape(webhook_server) -> None:
    webhook_call(_run(), webhook_server.url + "/slack", kind=SLACK, timeout=5)
    _, payload = webhook_server.requests[0]
    assert payload["text"].startswith("backup finished with status 0")


def test_non_2xx_is_a_notification_error(webhook_server) -> None:
    with pytest.raises(NotificationError, match="status 500"):
        webhook_call(_run(), webhook_server.url + "/fail", timeout=5)


def test_unreachable_endpoint_is_a_notification_error() -> None:
    with pytest.raises(NotificationError, match="unreachable"):
        webhook_call(_run(), f"http://127.0.0.1:{_closed_port()}/hook", timeout=2)


def test_invalid_url_is_a_notification_error() -> None:
    with pytest.raises(NotificationError, match="webhook not-a-url failed"):
        webhook_call(_run(), "not-a-url")
