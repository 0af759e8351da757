"""
Tests for import_jobs.domain.progress -- progress projection and poll delay.
"""

from datetime import datetime, timedelta, timezone

from import_jobs.domain.progress import (
    idle_progress,
    next_poll_delay,
    percent_complete,
    project_progress,
)
from import_jobs.domain.types import (
    ActivityEntry,
    ImportJob,
    ImportJobStatus,
    ItemOutcome,
)

NOW = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_job(**overrides):
    fields = dict(
        job_id="job",
        status=ImportJobStatus.RUNNING,
        total_items=12,
        processed_items=5,
        imported_count=4,
        skipped_count=1,
        total_pages=1,
    )
    fields.update(overrides)
    return ImportJob(**fields)


class TestProjectProgress:

    def test_missing_job_projects_idle(self):
        progress = project_progress(None, job_id="job")
        assert progress == idle_progress("job")
        assert progress.status == ImportJobStatus.IDLE
        assert progress.can_resume is False
        assert progress.processed_items == 0

    def test_copies_counters_and_cursor(self):
        progress = project_progress(make_job(current_page=2), now=NOW)
        assert progress.job_id == "job"
        assert progress.processed_items == 5
        assert progress.imported_count == 4
        assert progress.skipped_count == 1
        assert progress.current_page == 2
        assert progress.percent_complete == 41.7

    def test_can_resume_only_when_paused_or_error(self):
        for status, expected in [
            (ImportJobStatus.RUNNING, False),
            (ImportJobStatus.PAUSED, True),
            (ImportJobStatus.ERROR, True),
            (ImportJobStatus.COMPLETED, False),
        ]:
            assert project_progress(make_job(status=status)).can_resume is expected

    def test_waiting_for_rate_limit(self):
        job = make_job(
            status=ImportJobStatus.PAUSED,
            rate_limit_remaining=0,
            rate_limit_reset_at=NOW + timedelta(minutes=5),
        )
        assert project_progress(job, now=NOW).waiting_for_rate_limit is True
        later = NOW + timedelta(minutes=6)
        assert project_progress(job, now=later).waiting_for_rate_limit is False

    def test_not_waiting_with_quota_left(self):
        job = make_job(
            status=ImportJobStatus.PAUSED,
            rate_limit_remaining=3,
            rate_limit_reset_at=NOW + timedelta(minutes=5),
        )
        assert project_progress(job, now=NOW).waiting_for_rate_limit is False

    def test_includes_activity(self):
        entry = ActivityEntry("octocat", ItemOutcome.IMPORTED, "octocat (imported)", NOW)
        progress = project_progress(make_job(), [entry], now=NOW)
        assert progress.recent_activity == (entry,)


class TestPercentComplete:

    def test_completed_empty_job_is_done(self):
        assert percent_complete(make_job(
            status=ImportJobStatus.COMPLETED, total_items=0, processed_items=0,
            imported_count=0, skipped_count=0,
        )) == 100.0

    def test_running_empty_job_is_zero(self):
        assert percent_complete(make_job(
            total_items=0, processed_items=0, imported_count=0, skipped_count=0,
        )) == 0.0

    def test_capped_at_hundred(self):
        assert percent_complete(make_job(total_items=4, processed_items=5)) == 100.0


class TestNextPollDelay:

    def test_running_uses_poll_delay(self):
        progress = project_progress(make_job())
        assert next_poll_delay(progress, NOW, 0.5) == 0.5

    def test_rate_limit_pause_waits_for_reset(self):
        progress = project_progress(make_job(
            status=ImportJobStatus.PAUSED,
            paused_for_rate_limit=True,
            rate_limit_remaining=0,
            rate_limit_reset_at=NOW + timedelta(seconds=90),
        ))
        assert next_poll_delay(progress, NOW, 0.5) == 90.0

    def test_elapsed_reset_falls_back_to_poll_delay(self):
        progress = project_progress(make_job(
            status=ImportJobStatus.PAUSED,
            paused_for_rate_limit=True,
            rate_limit_remaining=0,
            rate_limit_reset_at=NOW - timedelta(seconds=5),
        ))
        assert next_poll_delay(progress, NOW, 0.5) == 0.5

    def test_operator_pause_stops_polling(self):
        progress = project_progress(make_job(
            status=ImportJobStatus.PAUSED,
            rate_limit_reset_at=NOW + timedelta(seconds=90),
        ))
        assert next_poll_delay(progress, NOW, 0.5) is None

    def test_terminal_states_stop_polling(self):
        for status in (ImportJobStatus.COMPLETED, ImportJobStatus.ERROR):
            progress = project_progress(make_job(status=status))
            assert next_poll_delay(progress, NOW, 0.5) is None
        assert next_poll_delay(idle_progress("job"), NOW, 0.5) is None
