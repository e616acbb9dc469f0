from __future__ import annotations

from pathlib import Path
from zoneinfo import ZoneInfo

import pytest
import yaml

from cronlink.config import Settings
from cronlink.errors import ConfigError
from cronlink.loader import load_schedule, parse_command, parse_schedule
from cronlink.models import JobRun


def _write_schedule(tmp_path: Path, payload: dict) -> Path:
    path = tmp_path / "schedule.yaml"
    path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return path


def _full_payload() -> dict:
    return {
        "timezone": "Europe/Amsterdam",
        "on_success": {"notify_webhook": ["http://example.invalid/ok"]},
        "on_error": {"notify_slack_webhook": ["http://example.invalid/slack"], "trigger_job": ["alert"]},
        "jobs": {
            "backup": {
                "cron": "0 3 * * *",
                "command": ["rsync", "-a", "{{ .src }}", "/backup"],
                "params": {"src": "/srv/data", "depth": 3},
                "env": {"RSYNC_RSH": "ssh", "DRY_RUN": False},
                "working_directory": "/tmp",
                "retries": 2,
                "on_success": {"trigger_job": ["report"]},
            },
            "report": {"command": "./report.sh", "overlap": "skip"},
            "alert": {"command": ["echo", "alert"]},
        },
    }


def test_load_full_schedule(tmp_path: Path, settings: Settings) -> None:
    schedule = load_schedule(_write_schedule(tmp_path, _full_payload()), settings)

    backup = schedule.jobs["backup"]
    assert backup.name == "backup"
    assert backup.cron == "0 3 * * *"
    assert backup.command == ["rsync", "-a", "{{ .src }}", "/backup"]
    assert backup.params == {"src": "/srv/data", "depth": "3"}
    assert backup.env == {"RSYNC_RSH": "ssh", "DRY_RUN": "false"}
    assert backup.working_directory == "/tmp"
    assert backup.retries == 2
    assert backup.on_success.trigger_job == ["report"]
    assert backup.schedule is schedule

    report = schedule.jobs["report"]
    assert report.command == ["./report.sh"]
    assert report.cron == ""
    assert report.overlap == "skip"

    assert schedule.on_error.trigger_job == ["alert"]
    assert schedule.settings.timezone == ZoneInfo("Europe/Amsterdam")
    assert backup.actions_for(False).trigger_job == ["alert"]
    assert backup.actions_for(True).trigger_job == ["report"]


def test_parse_command_normalizes_shapes() -> None:
    assert parse_command("ls -la", "c") == ["ls -la"]
    assert parse_command(["ls", "-la"], "c") == ["ls", "-la"]
    assert parse_command(["sleep", 5], "c") == ["sleep", "5"]
    assert parse_command(None, "c") == []
    with pytest.raises(ConfigError):
        parse_command({"bin": "ls"}, "c")
    with pytest.raises(ConfigError):
        parse_command(["ls", ["nested"]], "c")


def test_invalid_cron_is_fatal(settings: Settings) -> None:
    payload = {"jobs": {"nightly": {"cron": "every night", "command": "true"}}}
    with pytest.raises(ConfigError, match="cron string for job 'nightly' not valid"):
        parse_schedule(payload, settings)


def test_six_field_cron_is_rejected(settings: Settings) -> None:
    payload = {"jobs": {"fast": {"cron": "*/10 * * * * *", "command": "true"}}}
    with pytest.raises(ConfigError, match="not valid"):
        parse_schedule(payload, settings)


def test_dangling_local_trigger_is_fatal(settings: Settings) -> None:
    payload = {"jobs": {"a": {"command": "true", "on_success": {"trigger_job": ["missing"]}}}}
    with pytest.raises(ConfigError, match="cannot find spec of job 'missing'"):
        parse_schedule(payload, settings)


def test_dangling_global_trigger_is_fatal(settings: Settings) -> None:
    payload = {"on_error": {"trigger_job": ["missing"]}, "jobs": {"a": {"command": "true"}}}
    with pytest.raises(ConfigError, match="cannot find spec of job 'missing'"):
        parse_schedule(payload, settings)


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"jobs": {}}, "jobs must be a non-empty mapping"),
        ({"jobs": ["a"]}, "jobs must be a non-empty mapping"),
        ({"jobs": {"a": {"command": "true"}}, "port": 8081}, "Unknown keys in schedule"),
        ({"jobs": {"a": {"command": "true", "schedule": "daily"}}}, "Unknown keys in jobs.a"),
        ({"jobs": {"a": {"command": "true", "retries": -1}}}, "jobs.a.retries must be >= 0"),
        ({"jobs": {"a": {"command": "true", "retries": "two"}}}, "jobs.a.retries must be an integer"),
        ({"jobs": {"a": {"command": "true", "overlap": "queue"}}}, "jobs.a.overlap must be one of"),
        ({"jobs": {"a": {"command": "true", "on_error": {"email": ["x"]}}}}, "Unknown keys in jobs.a.on_error"),
        ({"jobs": {"a": {"command": "true", "on_error": {"trigger_job": "b"}}}}, "must be a list of strings"),
        ({"jobs": {"a": {"command": "true"}}, "timezone": "Mars/Base"}, "Invalid timezone"),
        ("just a string", "Top-level schedule must be a mapping"),
    ],
)
def test_definition_errors(settings: Settings, payload, message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        parse_schedule(payload, settings)


def test_missing_file(tmp_path: Path, settings: Settings) -> None:
    with pytest.raises(ConfigError, match="Schedule file not found"):
        load_schedule(tmp_path / "nope.yaml", settings)


def test_broken_yaml(tmp_path: Path, settings: Settings) -> None:
    path = tmp_path / "schedule.yaml"
    path.write_text("jobs: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Failed to parse YAML"):
        load_schedule(path, settings)


def test_load_seeds_recent_runs(tmp_path: Path, settings: Settings) -> None:
    path = _write_schedule(tmp_path, {"jobs": {"a": {"command": "true"}}})
    first = load_schedule(path, settings)
    first.recorder.append(
        JobRun(name="a", triggered_at=first.now(), triggered_by="manual", status=0)
    )

    second = load_schedule(path, settings)
    assert [run.triggered_by for run in second.jobs["a"].runs] == ["manual"]
    assert load_schedule(path, settings, load_runs=False).jobs["a"].runs == []
