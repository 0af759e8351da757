"""
ORM models for import job persistence.

Contract:
    ImportJobModel holds exactly one row per job id: status, counters,
    page cursor and the last observed rate-limit snapshot.
    ImportCandidateModel holds the identities of the page(s) the cursor is
    on, so a restarted process resumes against the same list it was
    working through instead of re-deriving it from a possibly shifted
    upstream listing.

Architecture: import_jobs/models. Imports from import_kernel.db.base only.

Invariants enforced:
    - One record per job id (``id`` is the primary key).
    - One candidate per (job, page, position); candidates are deleted with
      their job.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from import_kernel.db.base import Base, TimestampedBase, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from import_jobs.domain.types import BasicIdentity, ImportJob


class ImportJobModel(TimestampedBase):
    """Persistent import job record (one row per job id)."""

    __tablename__ = "import_jobs"

    __table_args__ = (
        Index("ix_import_jobs_status", "status"),
    )

    id: Mapped[str] = mapped_column(String(200), primary_key=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_page: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    # Identities of current_page already processed.
    page_offset: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_pages: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    page_size: Mapped[int] = mapped_column(Integer, default=30, nullable=False)
    imported_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    error_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rate_limit_remaining: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rate_limit_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rate_limit_reset_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    paused_for_rate_limit: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False,
    )
    last_activity_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )

    candidates: Mapped[list["ImportCandidateModel"]] = relationship(
        "ImportCandidateModel",
        back_populates="job",
        cascade="all, delete-orphan",
    )

    def to_dto(self) -> ImportJob:
        from import_jobs.domain.types import ImportJob, ImportJobStatus

        return ImportJob(
            job_id=self.id,
            status=ImportJobStatus(self.status),
            total_items=self.total_items,
            processed_items=self.processed_items,
            current_page=self.current_page,
            page_offset=self.page_offset,
            total_pages=self.total_pages,
            page_size=self.page_size,
            imported_count=self.imported_count,
            skipped_count=self.skipped_count,
            error_count=self.error_count,
            rate_limit_remaining=self.rate_limit_remaining,
            rate_limit_limit=self.rate_limit_limit,
            rate_limit_reset_at=self.rate_limit_reset_at,
            last_error=self.last_error,
            paused_for_rate_limit=self.paused_for_rate_limit,
            last_activity_at=self.last_activity_at,
            created_at=self.created_at,
        )

    @classmethod
    def from_dto(cls, dto: ImportJob) -> ImportJobModel:
        return cls(
            id=dto.job_id,
            status=dto.status.value,
            total_items=dto.total_items,
            processed_items=dto.processed_items,
            current_page=dto.current_page,
            page_offset=dto.page_offset,
            total_pages=dto.total_pages,
            page_size=dto.page_size,
            imported_count=dto.imported_count,
            skipped_count=dto.skipped_count,
            error_count=dto.error_count,
            rate_limit_remaining=dto.rate_limit_remaining,
            rate_limit_limit=dto.rate_limit_limit,
            rate_limit_reset_at=dto.rate_limit_reset_at,
            last_error=dto.last_error,
            paused_for_rate_limit=dto.paused_for_rate_limit,
            last_activity_at=dto.last_activity_at,
            created_at=dto.created_at,
        )


class ImportCandidateModel(Base):
    """One identity of a persisted candidate page."""

    __tablename__ = "import_job_candidates"

    __table_args__ = (
        UniqueConstraint("job_id", "page", "position", name="uq_import_candidate_slot"),
        Index("ix_import_candidates_job_page", "job_id", "page"),
    )

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)
    job_id: Mapped[str] = mapped_column(
        String(200),
        ForeignKey("import_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    page: Mapped[int] = mapped_column(Integer, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    identity_key: Mapped[str] = mapped_column(String(500), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    job: Mapped["ImportJobModel"] = relationship(
        "ImportJobModel",
        back_populates="candidates",
    )

    def to_identity(self) -> BasicIdentity:
        from import_jobs.domain.types import BasicIdentity

        return BasicIdentity.from_payload(self.payload)

    @classmethod
    def from_identity(
        cls, identity: BasicIdentity, job_id: str, page: int, position: int,
    ) -> ImportCandidateModel:
        return cls(
            job_id=job_id,
            page=page,
            position=position,
            identity_key=identity.key,
            payload=identity.to_payload(),
        )
