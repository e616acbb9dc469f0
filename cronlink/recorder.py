"""
Append-only run history: one JSON line per finalized run, one file per job.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path
from typing import Dict, Iterator, List

from cronlink.models import JobRun

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".job.jsonl"
READ_BLOCK_SIZE = 4096


class RunRecorder:
    """Writes and tails the per-job ``<name>.job.jsonl`` files under ``directory``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def path_for(self, job_name: str) -> Path:
        return self.directory / f"{job_name}{LOG_SUFFIX}"

    def _lock_for(self, job_name: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(job_name)
            if lock is None:
                lock = threading.Lock()
                self._locks[job_name] = lock
            return lock

    def append(self, run: JobRun) -> bool:
        """Append ``run`` to its job log. Failures are logged, never raised."""
        log_path = self.path_for(run.name)
        line = json.dumps(run.to_dict(), separators=(",", ":")) + "\n"
        try:
            with self._lock_for(run.name):
                log_path.parent.mkdir(parents=True, exist_ok=True)
                with log_path.open("a", encoding="utf-8") as handle:
                    handle.write(line)
        except OSError as exc:
            logger.warning("[%s] Can't write job log %s: %s", run.name, log_path, exc)
            return False
        return True

    def read_last(self, job_name: str, count: int) -> List[JobRun]:
        """
        Return up to ``count`` most recent runs of ``job_name``, oldest first.

        The file is read backwards in blocks, so memory use depends on
        ``count`` and the line length, never on the size of the log.
        A missing log yields an empty list. Unreadable lines are skipped and
        do not count towards ``count``.
        """
        if count <= 0:
            return []
        log_path = self.path_for(job_name)
        if not log_path.exists():
            return []

        runs: List[JobRun] = []
        with log_path.open("rb") as handle:
            for raw in reverse_lines(handle):
                try:
                    runs.append(JobRun.from_dict(json.loads(raw.decode("utf-8"))))
                except (ValueError, KeyError, TypeError) as exc:
                    logger.debug("[%s] Skipping unreadable job log line: %s", job_name, exc)
                    continue
                if len(runs) == count:
                    break
        runs.reverse()
        return runs


def reverse_lines(handle, block_size: int = READ_BLOCK_SIZE) -> Iterator[bytes]:
    """Yield the non-blank lines of a binary file, newest first."""
    handle.seek(0, os.SEEK_END)
    position = handle.tell()
    pending = b""

    while position > 0:
        step = min(block_size, position)
        position -= step
        handle.seek(position)
        chunk = handle.read(step) + pending
        parts = chunk.split(b"\n")
        # parts[0] may be the tail of a line that starts in an earlier block.
        pending = parts[0]
        for part in reversed(parts[1:]):
            if part.strip():
                yield part

    if pending.strip():
        yield pending
