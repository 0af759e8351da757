"""
ImportJobDriver -- resumable, rate-limit-aware batch import state machine.

Contract:
    Control surface for one import job id: ``start`` (create-or-resume),
    ``resume``, ``drive_batch`` (advance one bounded batch), ``pause``,
    ``reset`` and ``get_progress``.  Every call returns an ImportProgress.

Architecture: import_jobs/services.  Imports from import_jobs.domain,
    import_jobs.sources.base, services.job_store, services.activity and
    the kernel.

Invariants enforced:
    - Counters: imported + skipped + error == processed after every call;
      processed never decreases while RUNNING and never exceeds total.
    - Durability: each transition is persisted through ImportJobStore
      before control returns.
    - Item isolation: a failing item is counted and the batch continues.
    - Cursor: (current_page, page_offset) names the next identity; a page
      is left only once all of its stored identities were processed, so
      upstream pages shorter than page_size are never skipped.
    - Rate limits: a batch only starts with ``batch_size + safety_margin``
      calls left; a rate-limited item pauses the job and is not counted.
    - Clock injection: all timestamps come from the injected Clock.

Non-goals:
    - Does NOT sleep or loop.  An external ticker (services.runner, the
      CLI, a cron job) calls ``drive_batch`` repeatedly.
    - Does NOT serialize concurrent calls for the same job id.
"""

from __future__ import annotations

import math
from dataclasses import replace
from typing import Any, Mapping

from sqlalchemy.orm import Session

from import_kernel.domain.clock import Clock, SystemClock
from import_kernel.exceptions import InvalidDriveOptionsError, RateLimitedError
from import_kernel.logging_config import LogContext, get_logger

from import_jobs.domain.progress import project_progress
from import_jobs.domain.rate_limit import allow, exhausted_snapshot
from import_jobs.domain.types import (
    BasicIdentity,
    DriveOptions,
    ImportJob,
    ImportJobStatus,
    ImportProgress,
    ItemOutcome,
    ListPage,
    RateLimitSnapshot,
)
from import_jobs.services.activity import ActivityLog
from import_jobs.services.job_store import ImportJobStore
from import_jobs.sources.base import ImportSource, SourceRegistry

logger = get_logger("jobs.driver")

_RESUMABLE = (ImportJobStatus.PAUSED, ImportJobStatus.ERROR)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _snapshot_fields(snapshot: RateLimitSnapshot | None) -> dict:
    if snapshot is None:
        return {}
    return {
        "rate_limit_remaining": snapshot.remaining,
        "rate_limit_limit": snapshot.limit,
        "rate_limit_reset_at": snapshot.reset_at,
    }


def _total_pages(total: int, page_size: int) -> int:
    return math.ceil(total / page_size) if total > 0 else 0


class ImportJobDriver:
    """Batch driver for import jobs.

    Contract:
        - ``start()`` on an unknown job lists page 1 and creates a RUNNING
          record; on PAUSED/ERROR it resumes; on RUNNING/COMPLETED it is a
          no-op.
        - ``drive_batch()`` processes at most ``batch_size`` identities and
          is a no-op unless the job is RUNNING.
        - ``pause()`` is cooperative; it only writes PAUSED.
        - ``reset()`` deletes the record and its candidates.

    Non-goals:
        - Does NOT own the session lifecycle beyond the store's commits.
    """

    def __init__(
        self,
        session: Session,
        sources: SourceRegistry,
        clock: Clock | None = None,
        activity: ActivityLog | None = None,
        defaults: DriveOptions | None = None,
    ):
        self._store = ImportJobStore(session)
        self._sources = sources
        self._clock = clock or SystemClock()
        self._activity = activity or ActivityLog()
        self._defaults = defaults or DriveOptions()

    @property
    def store(self) -> ImportJobStore:
        return self._store

    @property
    def activity(self) -> ActivityLog:
        return self._activity

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_progress(self, job_id: str) -> ImportProgress:
        """Client view of the job; the Idle default if it does not exist."""
        job = self._store.load(job_id)
        return self._progress(job_id, job)

    def _progress(self, job_id: str, job: ImportJob | None) -> ImportProgress:
        return project_progress(
            job,
            self._activity.recent(job_id),
            now=self._clock.now(),
            job_id=job_id,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def start(self, job_id: str) -> ImportProgress:
        """Create a new job, or resume a paused/errored one.

        Raises:
            SourceNotRegisteredError: If ``job_id`` has no registered source
                and no record exists yet.
        """
        with LogContext.bind(job_id=job_id):
            existing = self._store.load(job_id)

            if existing is None:
                return self._create(self._sources.get(job_id))

            if existing.status == ImportJobStatus.RUNNING:
                logger.info("import_job_already_running")
                return self._progress(job_id, existing)

            if existing.status in _RESUMABLE:
                return self._resume(existing)

            logger.info(
                "import_job_start_ignored",
                extra={"status": existing.status.value},
            )
            return self._progress(job_id, existing)

    def resume(self, job_id: str) -> ImportProgress:
        """Resume a PAUSED or ERROR job from its stored cursor."""
        with LogContext.bind(job_id=job_id):
            existing = self._store.load(job_id)
            if existing is not None and existing.status in _RESUMABLE:
                return self._resume(existing)
            return self._progress(job_id, existing)

    def pause(self, job_id: str) -> ImportProgress:
        """Mark a RUNNING job PAUSED; observed by the next ``drive_batch``."""
        with LogContext.bind(job_id=job_id):
            existing = self._store.load(job_id)
            if existing is None or existing.status != ImportJobStatus.RUNNING:
                return self._progress(job_id, existing)

            job = self._store.update(
                job_id,
                status=ImportJobStatus.PAUSED,
                paused_for_rate_limit=False,
                last_activity_at=self._clock.now(),
            )
            logger.info(
                "import_job_paused",
                extra={"reason": "operator", "processed_items": job.processed_items},
            )
            return self._progress(job_id, job)

    def reset(self, job_id: str) -> ImportProgress:
        """Delete the job record outright.  Irreversible."""
        with LogContext.bind(job_id=job_id):
            existed = self._store.delete(job_id)
            self._activity.clear(job_id)
            logger.info("import_job_reset", extra={"existed": existed})
            return self._progress(job_id, None)

    def _create(self, source: ImportSource) -> ImportProgress:
        job_id = source.job_id
        now = self._clock.now()
        page_size = source.fetcher.page_size
        base = ImportJob(
            job_id=job_id,
            status=ImportJobStatus.RUNNING,
            page_size=page_size,
            last_activity_at=now,
            created_at=now,
        )

        try:
            page = source.fetcher.fetch(1)
        except RateLimitedError as exc:
            job = self._store.create(
                replace(
                    base,
                    status=ImportJobStatus.PAUSED,
                    paused_for_rate_limit=True,
                    last_error=f"Rate limited until {exc.reset_at.isoformat()}",
                    **_snapshot_fields(exhausted_snapshot(exc.reset_at, remaining=exc.remaining)),
                )
            )
            logger.warning(
                "import_job_start_rate_limited",
                extra={"reset_at": exc.reset_at},
            )
            return self._progress(job_id, job)
        except Exception as exc:
            job = self._store.create(
                replace(
                    base,
                    status=ImportJobStatus.ERROR,
                    last_error=_describe(exc),
                )
            )
            logger.warning("import_job_start_failed", exc_info=True)
            return self._progress(job_id, job)

        total = max(page.total, len(page.identities))
        status = ImportJobStatus.RUNNING
        if not page.identities or total <= 0:
            status = ImportJobStatus.COMPLETED

        job = self._store.create(
            replace(
                base,
                status=status,
                total_items=total,
                total_pages=_total_pages(total, page_size),
                **_snapshot_fields(page.rate_limit),
            )
        )
        if status == ImportJobStatus.RUNNING:
            self._store.save_candidates(job_id, 1, page.identities)

        logger.info(
            "import_job_started",
            extra={
                "status": status.value,
                "total_items": total,
                "total_pages": job.total_pages,
                "page_size": page_size,
                "rate_limit_remaining": job.rate_limit_remaining,
            },
        )
        return self._progress(job_id, job)

    def _resume(self, existing: ImportJob) -> ImportProgress:
        job = self._store.update(
            existing.job_id,
            status=ImportJobStatus.RUNNING,
            last_error=None,
            paused_for_rate_limit=False,
            last_activity_at=self._clock.now(),
        )
        logger.info(
            "import_job_resumed",
            extra={
                "previous_status": existing.status.value,
                "processed_items": job.processed_items,
                "current_page": job.current_page,
            },
        )
        return self._progress(job.job_id, job)

    # -------------------------------------------------------------------------
    # Drive
    # -------------------------------------------------------------------------

    def drive_batch(
        self,
        job_id: str,
        options: DriveOptions | Mapping[str, Any] | None = None,
    ) -> ImportProgress:
        """Advance the job by one batch.

        Raises:
            InvalidDriveOptionsError: If ``options`` (a DriveOptions or a
                mapping of its fields) is invalid.  Validation happens
                before any state is read.
            SourceNotRegisteredError: If the job's source is not registered.
        """
        opts = self._defaults if options is None else options
        if not isinstance(opts, DriveOptions):
            try:
                opts = DriveOptions(**dict(opts))
            except (TypeError, ValueError) as exc:
                raise InvalidDriveOptionsError("options", options, str(exc)) from exc

        with LogContext.bind(job_id=job_id):
            job = self._store.load(job_id)
            if job is None or job.status != ImportJobStatus.RUNNING:
                return self._progress(job_id, job)

            source = self._sources.get(job_id)

            # Pre-batch gate against the last known snapshot.
            decision = allow(job.rate_limit, opts.required_budget, self._clock.now())
            if not decision.ok:
                remaining = job.rate_limit_remaining
                job = self._store.update(
                    job_id,
                    status=ImportJobStatus.PAUSED,
                    paused_for_rate_limit=True,
                    rate_limit_reset_at=decision.wait_until,
                    last_error=f"Paused: only {remaining} API requests remaining",
                    last_activity_at=self._clock.now(),
                )
                logger.info(
                    "import_job_paused",
                    extra={
                        "reason": "rate_limit_budget",
                        "rate_limit_remaining": remaining,
                        "required_budget": opts.required_budget,
                        "wait_until": decision.wait_until,
                    },
                )
                return self._progress(job_id, job)

            identities = self._store.load_candidates(job_id, job.current_page)
            page: ListPage | None = None
            if not identities:
                try:
                    page = source.fetcher.fetch(job.current_page)
                except RateLimitedError as exc:
                    return self._pause_rate_limited(job, exc)
                except Exception as exc:
                    return self._fail(job, exc)
                identities = page.identities

            total = job.total_items
            snapshot = job.rate_limit
            if page is not None:
                total = max(page.total, job.processed_items)
                if page.rate_limit is not None:
                    snapshot = page.rate_limit
                if identities:
                    self._store.save_candidates(job_id, job.current_page, identities)

            if not identities:
                return self._complete(
                    job, job.processed_items, snapshot, reason="source_exhausted",
                )

            if job.page_offset >= len(identities):
                return self._next_page(job, total, snapshot)

            take = max(0, min(opts.batch_size, total - job.processed_items))
            batch = identities[job.page_offset:job.page_offset + take]
            if not batch:
                return self._complete(job, total, snapshot, reason="no_remaining_items")

            return self._process_batch(
                job, source, batch, len(identities), total, snapshot, opts,
            )

    def _process_batch(
        self,
        job: ImportJob,
        source: ImportSource,
        batch: tuple[BasicIdentity, ...],
        page_length: int,
        total: int,
        snapshot: RateLimitSnapshot | None,
        opts: DriveOptions,
    ) -> ImportProgress:
        job_id = job.job_id
        imported = job.imported_count
        skipped = job.skipped_count
        errors = job.error_count
        attempted = 0
        pause_reason: str | None = None

        for identity in batch:
            with LogContext.bind(identity_key=identity.key):
                try:
                    result = source.processor.process(identity)
                except RateLimitedError as exc:
                    snapshot = exhausted_snapshot(exc.reset_at, snapshot, exc.remaining)
                    pause_reason = f"Rate limited until {exc.reset_at.isoformat()}"
                    self._activity.record(
                        job_id, identity.key, ItemOutcome.RATE_LIMITED,
                        pause_reason, at=self._clock.now(),
                    )
                    logger.info(
                        "import_item_rate_limited",
                        extra={"reset_at": exc.reset_at},
                    )
                    break
                except Exception as exc:
                    attempted += 1
                    errors += 1
                    self._activity.record(
                        job_id, identity.key, ItemOutcome.ERROR,
                        f"{identity.key}: {_describe(exc)}", at=self._clock.now(),
                    )
                    logger.warning("import_item_failed", exc_info=True)
                    continue

                attempted += 1
                if result.outcome in (ItemOutcome.IMPORTED, ItemOutcome.MERGED):
                    imported += 1
                else:
                    skipped += 1
                self._activity.record(
                    job_id, identity.key, result.outcome,
                    f"{result.label} ({result.outcome.value})", at=self._clock.now(),
                )
                if result.rate_limit is not None:
                    snapshot = result.rate_limit

                # Mid-batch gate: stop before the quota runs dry.
                if not allow(snapshot, opts.safety_margin, self._clock.now()).ok:
                    pause_reason = (
                        f"Paused: rate limit low ({snapshot.remaining} remaining)"
                    )
                    break

        processed = job.processed_items + attempted
        current_page = job.current_page
        page_offset = job.page_offset + attempted
        if page_offset >= page_length:
            self._store.discard_candidates(job_id, current_page)
            current_page += 1
            page_offset = 0

        complete = processed >= total
        total_pages = _total_pages(total, job.page_size)
        if not complete:
            # Short upstream pages push the cursor past the size-derived count.
            total_pages = max(total_pages, current_page)

        if complete:
            status = ImportJobStatus.COMPLETED
        elif pause_reason is not None:
            status = ImportJobStatus.PAUSED
        else:
            status = ImportJobStatus.RUNNING

        updated = self._store.update(
            job_id,
            status=status,
            total_items=total,
            total_pages=total_pages,
            processed_items=processed,
            current_page=current_page,
            page_offset=page_offset,
            imported_count=imported,
            skipped_count=skipped,
            error_count=errors,
            last_error=pause_reason if status == ImportJobStatus.PAUSED else None,
            paused_for_rate_limit=status == ImportJobStatus.PAUSED,
            last_activity_at=self._clock.now(),
            **_snapshot_fields(snapshot),
        )
        if complete:
            self._store.discard_candidates(job_id)

        logger.info(
            "import_batch_completed",
            extra={
                "status": status.value,
                "attempted": attempted,
                "processed_items": processed,
                "total_items": total,
                "imported_count": imported,
                "skipped_count": skipped,
                "error_count": errors,
                "current_page": current_page,
                "rate_limit_remaining": updated.rate_limit_remaining,
            },
        )
        return self._progress(job_id, updated)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def _complete(
        self,
        job: ImportJob,
        total: int,
        snapshot: RateLimitSnapshot | None,
        reason: str,
    ) -> ImportProgress:
        updated = self._store.update(
            job.job_id,
            status=ImportJobStatus.COMPLETED,
            total_items=max(total, job.processed_items),
            last_error=None,
            paused_for_rate_limit=False,
            last_activity_at=self._clock.now(),
            **_snapshot_fields(snapshot),
        )
        self._store.discard_candidates(job.job_id)
        logger.info(
            "import_job_completed",
            extra={"reason": reason, "processed_items": updated.processed_items},
        )
        return self._progress(job.job_id, updated)

    def _next_page(
        self,
        job: ImportJob,
        total: int,
        snapshot: RateLimitSnapshot | None,
    ) -> ImportProgress:
        """Step past a stored page whose identities were all processed."""
        self._store.discard_candidates(job.job_id, job.current_page)
        updated = self._store.update(
            job.job_id,
            current_page=job.current_page + 1,
            page_offset=0,
            total_items=total,
            last_activity_at=self._clock.now(),
            **_snapshot_fields(snapshot),
        )
        logger.info(
            "import_page_exhausted",
            extra={
                "page": job.current_page,
                "processed_items": job.processed_items,
            },
        )
        return self._progress(job.job_id, updated)

    def _pause_rate_limited(
        self, job: ImportJob, exc: RateLimitedError,
    ) -> ImportProgress:
        snapshot = exhausted_snapshot(exc.reset_at, job.rate_limit, exc.remaining)
        updated = self._store.update(
            job.job_id,
            status=ImportJobStatus.PAUSED,
            paused_for_rate_limit=True,
            last_error=f"Rate limited until {exc.reset_at.isoformat()}",
            last_activity_at=self._clock.now(),
            **_snapshot_fields(snapshot),
        )
        logger.info(
            "import_job_paused",
            extra={"reason": "rate_limited", "wait_until": exc.reset_at},
        )
        return self._progress(job.job_id, updated)

    def _fail(self, job: ImportJob, exc: Exception) -> ImportProgress:
        updated = self._store.update(
            job.job_id,
            status=ImportJobStatus.ERROR,
            paused_for_rate_limit=False,
            last_error=_describe(exc),
            last_activity_at=self._clock.now(),
        )
        logger.warning(
            "import_page_fetch_failed",
            extra={"current_page": job.current_page},
            exc_info=True,
        )
        return self._progress(job.job_id, updated)
