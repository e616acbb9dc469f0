from __future__ import annotations

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

from cronlink.config import Settings
from cronlink.models import OnEvent
from cronlink.schedule import JobSpec, Schedule


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(home=tmp_path / "runs", suppress_logs=True, retry_delay=0.0)


@pytest.fixture
def make_schedule(settings: Settings) -> Callable[..., Schedule]:
    def factory(
        jobs: Dict[str, JobSpec],
        on_success: Optional[OnEvent] = None,
        on_error: Optional[OnEvent] = None,
    ) -> Schedule:
        schedule = Schedule(jobs=jobs, settings=settings, on_success=on_success, on_error=on_error)
        schedule.validate()
        return schedule

    return factory


class _WebhookHandler(BaseHTTPRequestHandler):
    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length", 0))
        body = json.loads(self.rfile.read(length).decode("utf-8"))
        if self.path.startswith("/slow"):
            time.sleep(0.5)
        with self.server.lock:
            self.server.requests.append((self.path, body))
        status = 500 if self.path.startswith("/fail") else 200
        self.send_response(status)
        self.send_header("Content-Type", "text/plain")
        self.end_headers()
        self.wfile.write(b"received")

    def log_message(self, *args: object) -> None:
        pass


@pytest.fixture
def webhook_server():
    server = ThreadingHTTPServer(("127.0.0.1", 0), _WebhookHandler)
    server.requests = []
    server.lock = threading.Lock()
    server.url = f"http://127.0.0.1:{server.server_address[1]}"
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
