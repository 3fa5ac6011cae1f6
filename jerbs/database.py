"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for job storage. Every connection runs with
pysqlite's implicit transaction handling switched off and opens its
transactions explicitly: BEGIN IMMEDIATE for writers, so the write lock is
held from the first read, and BEGIN DEFERRED for read-only snapshots.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    LargeBinary,
    create_engine,
    event,
    inspect,
    select,
    text,
)
from sqlalchemy.engine import URL, Connection, Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

SCHEMA_VERSION = 1

# Execution option read by the "begin" listener to pick the BEGIN flavour.
BEGIN_MODE_OPTION = "jerbs_begin_mode"
BEGIN_IMMEDIATE = "IMMEDIATE"
BEGIN_DEFERRED = "DEFERRED"

JOURNAL_MODES = ("wal", "delete", "truncate", "persist")

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Meta(Base):
    """Single-row table recording the schema version of the store file."""

    __tablename__ = "meta"

    id = Column(Integer, primary_key=True)
    version = Column(Integer, nullable=False)


class Job(Base):
    """A repeatable unit of work."""

    __tablename__ = "jobs"
    __table_args__ = (
        CheckConstraint("remaining_count >= 0", name="ck_jobs_remaining_non_negative"),
        CheckConstraint("total_count >= 0", name="ck_jobs_total_non_negative"),
        # take and list only ever look at available jobs, oldest first
        Index("ix_jobs_available", "id", sqlite_where=text("remaining_count > 0")),
        {"sqlite_autoincrement": True},
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    payload = Column(LargeBinary, nullable=False)
    total_count = Column(Integer, nullable=False)
    remaining_count = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=_utcnow)
    updated_at = Column(DateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    def __repr__(self) -> str:
        return f"<Job id={self.id} remaining={self.remaining_count}/{self.total_count}>"


def create_store_engine(db_path: Path, busy_timeout: float = 30.0) -> Engine:
    """
    Create an engine for the store file at db_path.

    Args:
        db_path: Path to SQLite database file
        busy_timeout: Seconds to wait on another process's lock before failing

    Returns:
        SQLAlchemy engine with explicit transaction control
    """
    engine = create_engine(
        URL.create("sqlite", database=str(db_path)),
        connect_args={"timeout": busy_timeout},
        # one short transaction per process; no point keeping connections around
        poolclass=NullPool,
    )

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        # stop pysqlite from emitting its own BEGIN; _on_begin does it instead
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA synchronous=FULL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Connection):
        mode = conn.get_execution_options().get(BEGIN_MODE_OPTION, BEGIN_IMMEDIATE)
        conn.exec_driver_sql(f"BEGIN {mode}")

    return engine


def read_only(engine: Engine) -> Engine:
    """Return a view of engine whose transactions begin DEFERRED."""
    return engine.execution_options(**{BEGIN_MODE_OPTION: BEGIN_DEFERRED})


def set_journal_mode(engine: Engine, mode: str) -> str:
    """
    Persistently switch the store file's journal mode.

    Must run outside a transaction, so it goes through the raw DBAPI
    connection rather than a Session.

    Returns:
        The journal mode SQLite reports after the change
    """
    if mode not in JOURNAL_MODES:
        raise ValueError(f"Unsupported journal mode: {mode}")
    raw = engine.raw_connection()
    try:
        cursor = raw.cursor()
        cursor.execute(f"PRAGMA journal_mode={mode}")
        row = cursor.fetchone()
        cursor.close()
    finally:
        raw.close()
    return row[0]


def has_schema(connection: Connection) -> bool:
    tables = set(inspect(connection).get_table_names())
    return Meta.__tablename__ in tables


def create_schema(connection: Connection) -> None:
    """Create all tables and record the schema version. Caller owns the transaction."""
    Base.metadata.create_all(connection)
    connection.execute(Meta.__table__.insert().values(id=1, version=SCHEMA_VERSION))


def read_schema_version(connection: Connection) -> Optional[int]:
    """
    Read the recorded schema version.

    Returns:
        The version, or None if the store has no schema at all
    """
    tables = set(inspect(connection).get_table_names())
    if Meta.__tablename__ not in tables or Job.__tablename__ not in tables:
        return None
    return connection.execute(select(Meta.version).where(Meta.id == 1)).scalar()
