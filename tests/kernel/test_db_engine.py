"""
Tests for import_kernel.db: engine lifecycle, session_scope, and the
UTCDateTime column type.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import inspect, text

from import_kernel.db.base import UTCDateTime
from import_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    is_postgres,
    reset_engine,
    session_scope,
)

from import_jobs.domain.types import BasicIdentity, ImportJob, ImportJobStatus
from import_jobs.services.job_store import ImportJobStore


@pytest.fixture
def memory_engine():
    engine = init_engine_from_url("sqlite:///:memory:")
    yield engine
    reset_engine()


class TestEngineLifecycle:

    def test_uninitialized_engine_raises(self):
        reset_engine()
        with pytest.raises(RuntimeError, match="not initialized"):
            get_engine()
        with pytest.raises(RuntimeError):
            get_session()

    def test_create_tables_registers_job_tables(self, memory_engine):
        create_tables()
        tables = set(inspect(memory_engine).get_table_names())
        assert {"import_jobs", "import_job_candidates"} <= tables

    def test_drop_tables(self, memory_engine):
        create_tables()
        drop_tables()
        assert inspect(memory_engine).get_table_names() == []

    def test_sqlite_enforces_candidate_cascade(self, memory_engine):
        create_tables()
        with session_scope() as session:
            store = ImportJobStore(session)
            store.create(ImportJob(
                job_id="job",
                status=ImportJobStatus.RUNNING,
                created_at=datetime(2026, 2, 1, tzinfo=timezone.utc),
            ))
            store.save_candidates("job", 1, [BasicIdentity("amy"), BasicIdentity("bob")])

        with session_scope() as session:
            session.execute(text("DELETE FROM import_jobs WHERE id = 'job'"))

        with session_scope() as session:
            count = session.execute(text("SELECT count(*) FROM import_job_candidates")).scalar()
            assert count == 0

    def test_sqlite_is_not_postgres(self, memory_engine):
        assert not is_postgres()

    def test_sessions_share_the_memory_database(self, memory_engine):
        with session_scope() as session:
            session.execute(text("CREATE TABLE t (x INTEGER)"))
            session.execute(text("INSERT INTO t VALUES (1)"))
        with session_scope() as session:
            assert session.execute(text("SELECT x FROM t")).scalar() == 1


class TestSessionScope:

    def test_rolls_back_on_error(self, memory_engine):
        with session_scope() as session:
            session.execute(text("CREATE TABLE t (x INTEGER)"))

        with pytest.raises(ZeroDivisionError):
            with session_scope() as session:
                session.execute(text("INSERT INTO t VALUES (2)"))
                1 / 0

        with session_scope() as session:
            assert session.execute(text("SELECT count(*) FROM t")).scalar() == 0


class TestUTCDateTime:

    def test_rejects_naive_datetime(self):
        with pytest.raises(ValueError, match="Naive"):
            UTCDateTime().process_bind_param(datetime(2026, 2, 1), None)

    def test_normalizes_to_utc(self):
        st_johns = timezone(timedelta(hours=-3, minutes=-30))
        value = datetime(2026, 2, 1, 8, 30, tzinfo=st_johns)
        bound = UTCDateTime().process_bind_param(value, None)
        assert bound == datetime(2026, 2, 1, 12, 0, tzinfo=timezone.utc)
        assert bound.tzinfo == timezone.utc

    def test_loaded_naive_values_are_tagged_utc(self):
        loaded = UTCDateTime().process_result_value(datetime(2026, 2, 1, 12, 0), None)
        assert loaded.tzinfo == timezone.utc

    def test_none_passes_through(self):
        assert UTCDateTime().process_bind_param(None, None) is None
        assert UTCDateTime().process_result_value(None, None) is None
