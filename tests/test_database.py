"""
Tests for database.py - schema and SQLite transaction control.
"""

import pytest
from sqlalchemy import delete, insert, inspect, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from jerbs.database import (
    SCHEMA_VERSION,
    Job,
    create_schema,
    create_store_engine,
    has_schema,
    read_only,
    read_schema_version,
    set_journal_mode,
)


@pytest.fixture
def engine(tmp_path):
    """Engine on a fresh file with the schema created."""
    db_engine = create_store_engine(tmp_path / "test.db")
    with db_engine.begin() as conn:
        create_schema(conn)
    yield db_engine
    db_engine.dispose()


class TestSchema:
    """Test schema creation and version bookkeeping."""

    def test_create_schema_creates_tables(self, engine):
        with engine.connect() as conn:
            tables = set(inspect(conn).get_table_names())
        assert {"meta", "jobs"} <= tables

    def test_schema_version_recorded(self, engine):
        with engine.connect() as conn:
            assert has_schema(conn)
            assert read_schema_version(conn) == SCHEMA_VERSION

    def test_empty_file_has_no_schema(self, tmp_path):
        """A brand new SQLite file reports no version."""
        empty = create_store_engine(tmp_path / "empty.db")
        with empty.connect() as conn:
            assert not has_schema(conn)
            assert read_schema_version(conn) is None
        empty.dispose()

    def test_set_journal_mode_wal(self, engine):
        assert set_journal_mode(engine, "wal") == "wal"

    def test_set_journal_mode_rejects_unknown(self, engine):
        with pytest.raises(ValueError):
            set_journal_mode(engine, "memory; DROP TABLE jobs")


class TestJobTable:
    """Test the constraints on the jobs table."""

    def test_negative_remaining_count_rejected(self, engine):
        """The CHECK constraint backs up argument validation."""
        with pytest.raises(IntegrityError):
            with Session(engine) as session, session.begin():
                session.add(Job(payload=b"x", total_count=1, remaining_count=-1))

    def test_ids_are_never_reused(self, engine):
        """AUTOINCREMENT keeps ids increasing even if the newest row disappears."""
        with engine.begin() as conn:
            first = conn.execute(
                insert(Job).values(payload=b"a", total_count=1, remaining_count=1)
            ).inserted_primary_key[0]
            conn.execute(delete(Job).where(Job.id == first))
            second = conn.execute(
                insert(Job).values(payload=b"b", total_count=1, remaining_count=1)
            ).inserted_primary_key[0]
        assert second > first

    def test_payload_round_trips_binary(self, engine):
        blob = bytes(range(256))
        with Session(engine) as session, session.begin():
            job = Job(payload=blob, total_count=2, remaining_count=2)
            session.add(job)
            session.flush()
            job_id = job.id
        with Session(engine) as session:
            assert session.get(Job, job_id).payload == blob

    def test_timestamps_set_on_insert(self, engine):
        with Session(engine) as session, session.begin():
            job = Job(payload=b"x", total_count=1, remaining_count=1)
            session.add(job)
            session.flush()
            assert job.created_at is not None
            assert job.updated_at is not None


class TestTransactionModes:
    """Test the explicit BEGIN IMMEDIATE / BEGIN DEFERRED handling."""

    def test_writer_excludes_other_writers(self, engine, tmp_path):
        """A second writer cannot start while the first holds the write lock."""
        set_journal_mode(engine, "wal")
        impatient = create_store_engine(tmp_path / "test.db", busy_timeout=0.1)
        try:
            with engine.begin() as conn:
                conn.execute(select(Job.id)).all()
                with pytest.raises(OperationalError, match="locked"):
                    with impatient.begin() as other:
                        other.execute(select(Job.id)).all()
        finally:
            impatient.dispose()

    def test_reader_not_blocked_by_writer(self, engine, tmp_path):
        """Deferred snapshots can read while a write transaction is open."""
        set_journal_mode(engine, "wal")
        other = create_store_engine(tmp_path / "test.db", busy_timeout=0.1)
        try:
            with engine.begin() as conn:
                conn.execute(insert(Job).values(payload=b"a", total_count=1, remaining_count=1))
                with read_only(other).connect() as reader:
                    # uncommitted insert is invisible to the snapshot
                    assert reader.execute(select(Job.id)).all() == []
        finally:
            other.dispose()

    def test_rollback_discards_changes(self, engine):
        with pytest.raises(RuntimeError):
            with engine.begin() as conn:
                conn.execute(insert(Job).values(payload=b"a", total_count=1, remaining_count=1))
                raise RuntimeError("abort")
        with engine.connect() as conn:
            assert conn.execute(select(Job.id)).all() == []
