"""
ImportJobStore -- durable single-record-per-job persistence.

Contract:
    ``load`` / ``create`` / ``update`` / ``delete`` on the job record, plus
    the candidate-page Resume Context (``load_candidates`` /
    ``save_candidates`` / ``discard_candidates``).  Every mutating call is
    one committed transaction, so the driver never returns control with
    unpersisted state.

Architecture: import_jobs/services.  Imports from import_jobs.domain,
    import_jobs.models and the kernel.

Non-goals:
    - Does NOT lock.  Load-then-update is not atomic across callers; the
      caller serializes calls per job id (see services.runner.JobLocks).
"""

from __future__ import annotations

import dataclasses
from typing import Any, Iterable

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from import_kernel.exceptions import ImportJobNotFoundError
from import_kernel.logging_config import get_logger

from import_jobs.domain.types import BasicIdentity, ImportJob, ImportJobStatus
from import_jobs.models.job import ImportCandidateModel, ImportJobModel

logger = get_logger("jobs.store")

_IMMUTABLE_FIELDS = frozenset({"job_id", "created_at"})
_UPDATABLE_FIELDS = frozenset(
    f.name for f in dataclasses.fields(ImportJob)
) - _IMMUTABLE_FIELDS


class ImportJobStore:
    """SQLAlchemy-backed store for import job records.

    Contract:
        - ``load()`` returns None for an unknown job id (never raises).
        - ``update()`` raises ImportJobNotFoundError for an unknown job id
          and ValueError for fields that are not part of ImportJob.
        - ``delete()`` removes the record and all its candidates.
    """

    def __init__(self, session: Session):
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    # -------------------------------------------------------------------------
    # Job record
    # -------------------------------------------------------------------------

    def load(self, job_id: str) -> ImportJob | None:
        model = self._session.get(ImportJobModel, job_id, populate_existing=True)
        if model is None:
            return None
        return model.to_dto()

    def create(self, job: ImportJob) -> ImportJob:
        """Insert a new job record.

        Any stale candidates left under the same id are removed first.
        """
        self._session.execute(
            delete(ImportCandidateModel).where(
                ImportCandidateModel.job_id == job.job_id,
            )
        )
        model = ImportJobModel.from_dto(job)
        self._session.add(model)
        self._session.commit()

        logger.debug(
            "import_job_record_created",
            extra={"job_id": job.job_id, "status": job.status.value},
        )
        return model.to_dto()

    def update(self, job_id: str, /, **changes: Any) -> ImportJob:
        """Apply ``changes`` to the stored record in one committed write.

        Raises:
            ImportJobNotFoundError: If no record exists for ``job_id``.
            ValueError: If a key is not an updatable ImportJob field.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(
                f"Cannot update import job fields: {sorted(unknown)}"
            )

        model = self._session.get(ImportJobModel, job_id)
        if model is None:
            raise ImportJobNotFoundError(job_id)

        for name, value in changes.items():
            if isinstance(value, ImportJobStatus):
                value = value.value
            setattr(model, name, value)

        self._session.commit()
        return model.to_dto()

    def delete(self, job_id: str) -> bool:
        """Delete the record and its candidates.  Returns False if absent."""
        self._session.execute(
            delete(ImportCandidateModel).where(
                ImportCandidateModel.job_id == job_id,
            )
        )
        model = self._session.get(ImportJobModel, job_id)
        existed = model is not None
        if model is not None:
            self._session.delete(model)
        self._session.commit()

        logger.debug(
            "import_job_record_deleted",
            extra={"job_id": job_id, "existed": existed},
        )
        return existed

    # -------------------------------------------------------------------------
    # Resume context (persisted candidate pages)
    # -------------------------------------------------------------------------

    def load_candidates(self, job_id: str, page: int) -> tuple[BasicIdentity, ...]:
        """Identities stored for ``page``, in their original order."""
        rows = self._session.execute(
            select(ImportCandidateModel)
            .where(
                ImportCandidateModel.job_id == job_id,
                ImportCandidateModel.page == page,
            )
            .order_by(ImportCandidateModel.position)
        ).scalars().all()
        return tuple(row.to_identity() for row in rows)

    def save_candidates(
        self,
        job_id: str,
        page: int,
        identities: Iterable[BasicIdentity],
    ) -> int:
        """Replace the stored identities of ``page``.  Returns the count."""
        self._session.execute(
            delete(ImportCandidateModel).where(
                ImportCandidateModel.job_id == job_id,
                ImportCandidateModel.page == page,
            )
        )
        count = 0
        for position, identity in enumerate(identities):
            self._session.add(
                ImportCandidateModel.from_identity(
                    identity, job_id=job_id, page=page, position=position,
                )
            )
            count += 1
        self._session.commit()
        return count

    def discard_candidates(self, job_id: str, page: int | None = None) -> None:
        """Drop the stored identities of one page, or of every page."""
        stmt = delete(ImportCandidateModel).where(
            ImportCandidateModel.job_id == job_id,
        )
        if page is not None:
            stmt = stmt.where(ImportCandidateModel.page == page)
        self._session.execute(stmt)
        self._session.commit()
