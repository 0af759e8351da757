"""
import_jobs.domain -- Pure types and decision functions for the import engine.

ZERO I/O.  All types are frozen dataclasses; the rate-limit gate and the
progress projection are pure functions of their arguments.
"""

from import_jobs.domain.types import (
    ActivityEntry,
    BasicIdentity,
    DriveOptions,
    GateDecision,
    ImportJob,
    ImportJobStatus,
    ImportProgress,
    ItemOutcome,
    ItemResult,
    ListPage,
    RateLimitSnapshot,
)

__all__ = [
    "ActivityEntry",
    "BasicIdentity",
    "DriveOptions",
    "GateDecision",
    "ImportJob",
    "ImportJobStatus",
    "ImportProgress",
    "ItemOutcome",
    "ItemResult",
    "ListPage",
    "RateLimitSnapshot",
]
