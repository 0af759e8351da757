"""
Module: import_kernel.db.base
Responsibility: The ORM foundation for job records and candidate pages.  Provides
    the column type conventions (UUIDs as strings, timezone-aware UTC datetimes)
    and the TimestampedBase mixin for created/updated timestamps.
Architecture position: Kernel > DB.  import_jobs.models builds on it; nothing
    in the kernel sits below it.  MUST NOT import from import_jobs,
    import_config, or any outer layer.

Invariants enforced:
    - Aware timestamps: every datetime column round-trips as a timezone-aware
      UTC datetime, including on SQLite which stores naive values.
    - Portable UUIDs: UUID columns are stored as String(36).

Failure modes:
    - ValueError from UTCDateTime if a naive datetime is written (callers must
      obtain time from an injected Clock, which is always aware).
"""

from datetime import datetime, timezone
from typing import ClassVar
from uuid import UUID as PyUUID

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


class UUIDString(TypeDecorator):
    """
    UUID kept as String(36) so SQLite and PostgreSQL share one schema.

    Candidate rows use it for their surrogate key; job rows are keyed by
    their string job id instead.
    """

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime normalized to UTC.

    Contract:
        PostgreSQL keeps the offset natively; SQLite drops it.  Values are
        converted to UTC before binding and re-tagged as UTC on load, so the
        engine can compare stored timestamps against ``Clock.now()`` safely.

    Guarantees:
        - process_bind_param rejects naive datetimes.
        - process_result_value always returns an aware UTC datetime (or None).
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError(f"Naive datetime not allowed: {value!r}")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Base(DeclarativeBase):
    """
    Declarative base for import_jobs and import_job_candidates.

    Contract:
        Every ORM model inherits from Base (or TimestampedBase).  Models
        declare their own primary keys; job records are keyed by a stable
        string id rather than a generated UUID.

    Guarantees:
        - datetime maps to UTCDateTime -- always timezone-aware.
        - UUID maps to UUIDString.
        - int maps to Integer (SQLite-friendly autoincrement).
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: UTCDateTime(),
        PyUUID: UUIDString(),
        int: Integer,
    }


class TimestampedBase(Base):
    """
    Abstract base with row creation / modification timestamps.

    Guarantees:
        - created_at is set by the writer (injected clock) on INSERT.
        - updated_at is set to server NOW() on INSERT and refreshed on every
          UPDATE (via onupdate=func.now()).
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
