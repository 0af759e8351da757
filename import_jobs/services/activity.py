"""
ActivityLog -- bounded, process-local log of per-item outcomes.

Outcome records are transient: they feed the ``recent_activity`` list of
the progress view so an operator can see imports, skips and per-item
error messages without a separate log store.  They are not persisted and
do not survive a restart; counters in the job record are the durable
truth.
"""

from __future__ import annotations

import threading
from collections import deque
from datetime import datetime

from import_jobs.domain.types import DEFAULT_ACTIVITY_LIMIT, ActivityEntry, ItemOutcome


class ActivityLog:
    """Rolling per-job activity buffer, newest last."""

    def __init__(self, limit: int = DEFAULT_ACTIVITY_LIMIT):
        if limit <= 0:
            raise ValueError(f"Activity log limit must be positive: {limit}")
        self._limit = limit
        self._entries: dict[str, deque[ActivityEntry]] = {}
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    def record(
        self,
        job_id: str,
        identity_key: str,
        outcome: ItemOutcome,
        message: str,
        at: datetime | None = None,
    ) -> ActivityEntry:
        entry = ActivityEntry(
            identity_key=identity_key, outcome=outcome, message=message, at=at,
        )
        with self._lock:
            buf = self._entries.setdefault(job_id, deque(maxlen=self._limit))
            buf.append(entry)
        return entry

    def recent(self, job_id: str) -> tuple[ActivityEntry, ...]:
        with self._lock:
            return tuple(self._entries.get(job_id, ()))

    def clear(self, job_id: str) -> None:
        with self._lock:
            self._entries.pop(job_id, None)
