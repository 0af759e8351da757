"""
Pure progress projection.

Contract:
    ``project_progress(job, activity, now)`` turns a stored job record (plus
    the transient activity log) into the client view.  ``next_poll_delay``
    tells an external ticker how long to wait before its next
    ``drive_batch`` call.  Both are PURE and never touch stored state.

Architecture: import_jobs/domain.  ZERO I/O.
"""

from __future__ import annotations

from datetime import datetime

from import_jobs.domain.types import (
    ActivityEntry,
    ImportJob,
    ImportJobStatus,
    ImportProgress,
)

_RESUMABLE = frozenset({ImportJobStatus.PAUSED, ImportJobStatus.ERROR})


def idle_progress(job_id: str) -> ImportProgress:
    """Default view for a job id that has no record."""
    return ImportProgress(job_id=job_id, status=ImportJobStatus.IDLE)


def percent_complete(job: ImportJob) -> float:
    if job.total_items <= 0:
        return 100.0 if job.status == ImportJobStatus.COMPLETED else 0.0
    pct = 100.0 * job.processed_items / job.total_items
    return round(min(pct, 100.0), 1)


def is_waiting_for_rate_limit(job: ImportJob, now: datetime) -> bool:
    return (
        job.status == ImportJobStatus.PAUSED
        and job.rate_limit_remaining == 0
        and job.rate_limit_reset_at is not None
        and job.rate_limit_reset_at > now
    )


def project_progress(
    job: ImportJob | None,
    activity: tuple[ActivityEntry, ...] = (),
    now: datetime | None = None,
    job_id: str | None = None,
) -> ImportProgress:
    """Build the client view of ``job``.

    ``job_id`` is only needed when ``job`` is None (the Idle default).
    Without ``now`` the view never reports waiting for a rate limit.
    """
    if job is None:
        return idle_progress(job_id or "")

    waiting = now is not None and is_waiting_for_rate_limit(job, now)

    return ImportProgress(
        job_id=job.job_id,
        status=job.status,
        total_items=job.total_items,
        processed_items=job.processed_items,
        current_page=job.current_page,
        total_pages=job.total_pages,
        imported_count=job.imported_count,
        skipped_count=job.skipped_count,
        error_count=job.error_count,
        percent_complete=percent_complete(job),
        rate_limit_remaining=job.rate_limit_remaining,
        rate_limit_reset_at=job.rate_limit_reset_at,
        last_error=job.last_error,
        last_activity_at=job.last_activity_at,
        created_at=job.created_at,
        paused_for_rate_limit=job.paused_for_rate_limit,
        can_resume=job.status in _RESUMABLE,
        waiting_for_rate_limit=waiting,
        recent_activity=tuple(activity),
    )


def next_poll_delay(
    progress: ImportProgress,
    now: datetime,
    poll_delay_seconds: float,
) -> float | None:
    """How long a ticker should wait before driving the job again.

    Returns:
        - ``poll_delay_seconds`` while RUNNING.
        - Seconds until the quota resets (never less than the poll delay)
          while PAUSED by the rate-limit gate or a rate-limited call.
        - None when there is nothing to drive (idle, completed, error, or
          paused by an operator).
    """
    if progress.status == ImportJobStatus.RUNNING:
        return poll_delay_seconds
    if (
        progress.status == ImportJobStatus.PAUSED
        and progress.paused_for_rate_limit
        and progress.rate_limit_reset_at is not None
    ):
        wait = (progress.rate_limit_reset_at - now).total_seconds()
        return max(wait, poll_delay_seconds)
    return None
