"""
import_jobs.domain.types -- Pure frozen dataclasses for the import engine.

ZERO I/O.

Follows the pattern of the batch DTOs: frozen dataclasses with ``str``
enum status fields and tuples for immutable collections.

Invariants enforced:
    - All DTOs are frozen (immutable snapshots of stored or fetched state).
    - ImportJob counters satisfy
      ``imported_count + skipped_count + error_count == processed_items``
      (maintained by the driver, checked by ``ImportJob.counters_consistent``).
    - DriveOptions rejects out-of-range parameters at construction time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from import_kernel.exceptions import InvalidDriveOptionsError

DEFAULT_BATCH_SIZE = 5
DEFAULT_SAFETY_MARGIN = 5
DEFAULT_POLL_DELAY_MS = 500
DEFAULT_ACTIVITY_LIMIT = 50


# =============================================================================
# Status enums
# =============================================================================


class ImportJobStatus(str, Enum):
    """Job-level lifecycle status."""

    IDLE = "idle"  # No record (projection default only, never stored)
    RUNNING = "running"  # Accepting drive_batch calls
    PAUSED = "paused"  # Rate limit gate or operator pause
    COMPLETED = "completed"  # Source exhausted or all items processed
    ERROR = "error"  # Listing failed; start() retries


class ItemOutcome(str, Enum):
    """Result of handing one identity to the item processor."""

    IMPORTED = "imported"  # New entry created
    MERGED = "merged"  # Folded into an existing entry (counted as imported)
    SKIPPED = "skipped"  # Already present, nothing to do
    ERROR = "error"  # Activity log only; processors raise instead
    RATE_LIMITED = "rate_limited"  # Activity log only; item retried later


# =============================================================================
# External service DTOs
# =============================================================================


@dataclass(frozen=True)
class RateLimitSnapshot:
    """Last observed external quota: calls left and when the window resets."""

    remaining: int
    limit: int
    reset_at: datetime


@dataclass(frozen=True)
class BasicIdentity:
    """Minimal reference to a candidate entity before its detail is fetched.

    ``key`` is the dedup key (e.g. a GitHub login).  ``data`` carries whatever
    the list endpoint returned (id, avatar url, ...), JSON-serializable.
    """

    key: str
    url: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {"key": self.key, "url": self.url, "data": dict(self.data)}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> BasicIdentity:
        return cls(
            key=payload["key"],
            url=payload.get("url"),
            data=payload.get("data") or {},
        )


@dataclass(frozen=True)
class ListPage:
    """One page returned by a list fetcher."""

    identities: tuple[BasicIdentity, ...]
    total: int
    rate_limit: RateLimitSnapshot | None = None


@dataclass(frozen=True)
class ItemResult:
    """Returned by an item processor for one identity."""

    outcome: ItemOutcome
    label: str
    rate_limit: RateLimitSnapshot | None = None


# =============================================================================
# Job DTOs
# =============================================================================


@dataclass(frozen=True)
class ImportJob:
    """Immutable snapshot of one durable job record."""

    job_id: str
    status: ImportJobStatus
    total_items: int = 0
    processed_items: int = 0
    current_page: int = 1
    page_offset: int = 0
    total_pages: int = 0
    page_size: int = 30
    imported_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    rate_limit_remaining: int | None = None
    rate_limit_limit: int | None = None
    rate_limit_reset_at: datetime | None = None
    last_error: str | None = None
    paused_for_rate_limit: bool = False
    last_activity_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def rate_limit(self) -> RateLimitSnapshot | None:
        """Stored quota snapshot, or None if never observed."""
        if self.rate_limit_remaining is None or self.rate_limit_reset_at is None:
            return None
        return RateLimitSnapshot(
            remaining=self.rate_limit_remaining,
            limit=self.rate_limit_limit or 0,
            reset_at=self.rate_limit_reset_at,
        )

    @property
    def counters_consistent(self) -> bool:
        return (
            self.imported_count + self.skipped_count + self.error_count
            == self.processed_items
        )


@dataclass(frozen=True)
class ActivityEntry:
    """Transient outcome record surfaced in the progress view."""

    identity_key: str
    outcome: ItemOutcome
    message: str
    at: datetime | None = None


def _is_count(value: object) -> bool:
    # bool is an int subclass; True must not read as a batch of one.
    return isinstance(value, int) and not isinstance(value, bool)


@dataclass(frozen=True)
class DriveOptions:
    """Per-call parameters for ``drive_batch``.

    ``required_budget`` is what the rate-limit gate demands before a batch
    starts; ``safety_margin`` alone is what it demands between items.
    """

    batch_size: int = DEFAULT_BATCH_SIZE
    safety_margin: int = DEFAULT_SAFETY_MARGIN

    def __post_init__(self) -> None:
        if not _is_count(self.batch_size) or self.batch_size <= 0:
            raise InvalidDriveOptionsError(
                "batch_size", self.batch_size, "must be a positive integer",
            )
        if not _is_count(self.safety_margin) or self.safety_margin < 0:
            raise InvalidDriveOptionsError(
                "safety_margin", self.safety_margin,
                "must be a non-negative integer",
            )

    @property
    def required_budget(self) -> int:
        return self.batch_size + self.safety_margin


@dataclass(frozen=True)
class GateDecision:
    """Result of the rate-limit gate."""

    ok: bool
    wait_until: datetime | None = None


@dataclass(frozen=True)
class ImportProgress:
    """Client-facing, read-only view of a job.

    Returned by every control-surface call.
    """

    job_id: str
    status: ImportJobStatus
    total_items: int = 0
    processed_items: int = 0
    current_page: int = 1
    total_pages: int = 0
    imported_count: int = 0
    skipped_count: int = 0
    error_count: int = 0
    percent_complete: float = 0.0
    rate_limit_remaining: int | None = None
    rate_limit_reset_at: datetime | None = None
    last_error: str | None = None
    last_activity_at: datetime | None = None
    created_at: datetime | None = None
    paused_for_rate_limit: bool = False
    can_resume: bool = False
    waiting_for_rate_limit: bool = False
    recent_activity: tuple[ActivityEntry, ...] = ()
