"""
Tests for import_jobs.domain.rate_limit -- the pure rate-limit gate.
"""

from datetime import datetime, timedelta, timezone

import pytest

from import_jobs.domain.rate_limit import allow, exhausted_snapshot, seconds_until_reset
from import_jobs.domain.types import RateLimitSnapshot

NOW = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)
LATER = NOW + timedelta(minutes=30)


def snapshot(remaining, reset_at=LATER, limit=5000):
    return RateLimitSnapshot(remaining=remaining, limit=limit, reset_at=reset_at)


class TestAllow:

    def test_no_snapshot_allows(self):
        assert allow(None, 10, NOW).ok

    @pytest.mark.parametrize("remaining,budget,ok", [
        (3, 10, False),
        (9, 10, False),
        (10, 10, True),
        (4999, 10, True),
        (0, 0, True),
    ])
    def test_budget_threshold(self, remaining, budget, ok):
        assert allow(snapshot(remaining), budget, NOW).ok is ok

    def test_denial_waits_until_reset(self):
        decision = allow(snapshot(3), 10, NOW)
        assert decision.wait_until == LATER

    def test_elapsed_window_allows_even_when_exhausted(self):
        assert allow(snapshot(0, reset_at=NOW), 10, NOW).ok
        assert allow(snapshot(0, reset_at=NOW - timedelta(seconds=1)), 10, NOW).ok

    def test_pure(self):
        s = snapshot(3)
        first = allow(s, 10, NOW)
        second = allow(s, 10, NOW)
        assert first == second
        assert s.remaining == 3


class TestExhaustedSnapshot:

    def test_keeps_previous_limit(self):
        result = exhausted_snapshot(LATER, previous=snapshot(7, limit=60))
        assert result == RateLimitSnapshot(0, 60, LATER)

    def test_without_previous(self):
        assert exhausted_snapshot(LATER, remaining=2) == RateLimitSnapshot(2, 0, LATER)


class TestSecondsUntilReset:

    def test_unknown_is_zero(self):
        assert seconds_until_reset(None, NOW) == 0.0

    def test_future(self):
        assert seconds_until_reset(snapshot(0), NOW) == 1800.0

    def test_elapsed_clamped(self):
        assert seconds_until_reset(snapshot(0, reset_at=NOW - timedelta(minutes=1)), NOW) == 0.0
