"""
Pure rate-limit gate.

Contract:
    ``allow(snapshot, required_budget, now)`` is PURE -- no I/O, no side
    effects.  The driver calls it before each batch (budget =
    ``batch_size + safety_margin``) and after every processed item (budget =
    ``safety_margin``).

Architecture: import_jobs/domain.  ZERO I/O.  ``now`` comes from the
    caller's injected Clock.
"""

from __future__ import annotations

from datetime import datetime

from import_jobs.domain.types import GateDecision, RateLimitSnapshot


def allow(
    snapshot: RateLimitSnapshot | None,
    required_budget: int,
    now: datetime,
) -> GateDecision:
    """Decide whether enough quota is left to spend ``required_budget`` calls.

    Rules, in order:
        1. No snapshot yet -- allow; the first external call will report one.
        2. Snapshot window already reset (``reset_at <= now``) -- allow; the
           stored ``remaining`` describes an expired window.
        3. ``remaining < required_budget`` -- deny, wait until ``reset_at``.
        4. Otherwise allow.
    """
    if snapshot is None:
        return GateDecision(ok=True)
    if snapshot.reset_at <= now:
        return GateDecision(ok=True)
    if snapshot.remaining < required_budget:
        return GateDecision(ok=False, wait_until=snapshot.reset_at)
    return GateDecision(ok=True)


def exhausted_snapshot(
    reset_at: datetime,
    previous: RateLimitSnapshot | None = None,
    remaining: int = 0,
) -> RateLimitSnapshot:
    """Snapshot to store after the service refused a call outright."""
    return RateLimitSnapshot(
        remaining=remaining,
        limit=previous.limit if previous is not None else 0,
        reset_at=reset_at,
    )


def seconds_until_reset(snapshot: RateLimitSnapshot | None, now: datetime) -> float:
    """Seconds left in the current quota window (0 if unknown or elapsed)."""
    if snapshot is None:
        return 0.0
    return max(0.0, (snapshot.reset_at - now).total_seconds())
