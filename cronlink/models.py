"""
Plain data types: event specs, merged event actions and job run records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

if TYPE_CHECKING:  # pragma: no cover
    from cronlink.schedule import JobSpec

STATUS_NOT_COMPLETED = -1


@dataclass(frozen=True)
class OnEvent:
    trigger_job: List[str] = field(default_factory=list)
    notify_webhook: List[str] = field(default_factory=list)
    notify_slack_webhook: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        payload: Dict[str, List[str]] = {}
        if self.trigger_job:
            payload["trigger_job"] = list(self.trigger_job)
        if self.notify_webhook:
            payload["notify_webhook"] = list(self.notify_webhook)
        if self.notify_slack_webhook:
            payload["notify_slack_webhook"] = list(self.notify_slack_webhook)
        return payload


@dataclass(frozen=True)
class EventActions:
    """Everything to fire for one outcome, local actions first."""

    trigger_job: List[str]
    notify_webhook: List[str]
    notify_slack_webhook: List[str]

    def __bool__(self) -> bool:
        return bool(self.trigger_job or self.notify_webhook or self.notify_slack_webhook)


def merge_actions(*events: Optional[OnEvent]) -> EventActions:
    jobs: List[str] = []
    webhooks: List[str] = []
    slack_webhooks: List[str] = []
    for event in events:
        if event is None:
            continue
        jobs.extend(event.trigger_job)
        webhooks.extend(event.notify_webhook)
        slack_webhooks.extend(event.notify_slack_webhook)
    return EventActions(trigger_job=jobs, notify_webhook=webhooks, notify_slack_webhook=slack_webhooks)


@dataclass
class JobRun:
    name: str
    triggered_at: datetime
    triggered_by: str
    status: int = STATUS_NOT_COMPLETED
    log: str = ""
    triggered: List[str] = field(default_factory=list)
    duration: float = 0.0
    params: Dict[str, str] = field(default_factory=dict)
    job: Optional["JobSpec"] = field(default=None, repr=False, compare=False)

    @property
    def success(self) -> bool:
        return self.status == 0

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "status": self.status,
            "log": self.log,
            "name": self.name,
            "triggered_at": self.triggered_at.isoformat(),
            "triggered_by": self.triggered_by,
        }
        if self.triggered:
            payload["triggered"] = list(self.triggered)
        payload["duration"] = round(self.duration, 6)
        if self.params:
            payload["params"] = dict(self.params)
        return payload

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "JobRun":
        return JobRun(
            name=str(payload["name"]),
            triggered_at=datetime.fromisoformat(payload["triggered_at"]),
            triggered_by=str(payload.get("triggered_by", "")),
            status=int(payload.get("status", STATUS_NOT_COMPLETED)),
            log=str(payload.get("log", "")),
            triggered=[str(item) for item in payload.get("triggered") or []],
            duration=float(payload.get("duration") or 0.0),
            params={str(k): str(v) for k, v in (payload.get("params") or {}).items()},
        )
