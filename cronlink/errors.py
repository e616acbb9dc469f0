"""
Exception hierarchy for cronlink.
"""

from __future__ import annotations


class CronlinkError(Exception):
    """Base error for cronlink."""


class ConfigError(CronlinkError):
    """Schedule definition or settings validation error."""


class JobNotFoundError(CronlinkError, KeyError):
    """Raised when a job name is not part of the schedule."""

    def __init__(self, job_name: str, source: str = "schedule") -> None:
        self.job_name = job_name
        super().__init__(f'cannot find job "{job_name}" in {source}')

    def __str__(self) -> str:
        return str(self.args[0])


class NotificationError(CronlinkError):
    """Webhook delivery failure."""


class TemplateError(CronlinkError):
    """Malformed argument template or unknown template name."""
