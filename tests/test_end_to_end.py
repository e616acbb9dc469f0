from __future__ import annotations

import json
from pathlib import Path

import yaml

from cronlink.engine import run_job
from cronlink.loader import load_schedule
from cronlink.models import STATUS_NOT_COMPLETED
from cronlink.runner import run_with_retry


def _load(tmp_path: Path, settings, jobs: dict):
    path = tmp_path / "schedule.yaml"
    path.write_text(yaml.safe_dump({"jobs": jobs}), encoding="utf-8")
    return load_schedule(path, settings)


def test_templated_echo(tmp_path: Path, settings) -> None:
    schedule = _load(tmp_path, settings, {"A": {"command": ["echo", "{{.msg}}"], "retries": 0}})

    run = run_with_retry(schedule.jobs["A"], "cron", {"msg": "hello"})

    assert run.status == 0
    assert run.log == "hello\n"


def test_permanent_failure_is_recorded_three_times(tmp_path: Path, settings) -> None:
    schedule = _load(tmp_path, settings, {"B": {"command": ["false"], "retries": 2}})

    run = run_with_retry(schedule.jobs["B"], "cron")

    assert run.status != 0
    lines = (settings.home / "B.job.jsonl").read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["triggered_by"] for line in lines] == ["cron", "cron[retry=1]", "cron[retry=2]"]


def test_empty_command_keeps_sentinel(tmp_path: Path, settings) -> None:
    schedule = _load(tmp_path, settings, {"C": {"command": []}})

    run = run_job(schedule, "C")

    assert run.status == STATUS_NOT_COMPLETED
    assert "no command specified" in run.log
    recorded = schedule.recorder.read_last("C", 10)
    assert [r.status for r in recorded] == [STATUS_NOT_COMPLETED]


def test_chain_history_survives_reload(tmp_path: Path, settings) -> None:
    jobs = {
        "extract": {"command": ["echo", "rows"], "on_success": {"trigger_job": ["load"]}},
        "load": {"command": ["true"]},
    }
    schedule = _load(tmp_path, settings, jobs)
    run = run_job(schedule, "extract")
    assert run.triggered == ["load"]

    reloaded = _load(tmp_path, settings, jobs)
    assert [r.triggered_by for r in reloaded.jobs["load"].runs] == ["job[extract]"]
    assert reloaded.jobs["extract"].runs[0].triggered == ["load"]
