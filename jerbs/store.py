"""
Persistent job store.

One SQLite file holds the job table. Any number of independent processes
may open the same file at once; each operation runs as a single
transaction and the file's own locking is the only coordination between
them. Writers take the write lock up front (BEGIN IMMEDIATE), readers
work from a deferred snapshot.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

from sqlalchemy import exc
from sqlalchemy.orm import Session, sessionmaker

from . import allocation, query
from .database import (
    SCHEMA_VERSION,
    Job,
    create_schema,
    create_store_engine,
    has_schema,
    read_only,
    read_schema_version,
    set_journal_mode,
)
from .env import Settings
from .errors import (
    InvalidArgument,
    NoJobsAvailable,
    JobNotFound,
    StoreAlreadyExists,
    StoreCorrupt,
    StoreIOError,
    StoreNotFound,
    StoreTooNew,
)
from .logger import get_logger
from .records import JobInfo, TakenJob
from .schema import MAX_COUNT, validate_edit, validate_job_id, validate_new_job

PathLike = Union[str, Path]


@contextmanager
def _translate_errors(path: Path) -> Iterator[None]:
    """Turn SQLAlchemy/sqlite3 failures into store errors, chaining the original."""
    try:
        yield
    except exc.IntegrityError as e:
        raise InvalidArgument(f"Rejected by store constraints: {e.orig}") from e
    except exc.OperationalError as e:
        get_logger().error("Store operation failed", path=str(path), error=str(e.orig))
        raise StoreIOError(f"Store {path}: {e.orig}") from e
    except exc.DatabaseError as e:
        # sqlite3 reports SQLITE_CORRUPT and SQLITE_NOTADB as plain DatabaseError
        get_logger().error("Store is unreadable", path=str(path), error=str(e.orig))
        raise StoreCorrupt(f"Store {path} is unreadable: {e.orig}") from e
    except OSError as e:
        raise StoreIOError(f"Store {path}: {e}") from e


def _check_errors(errors: List[str]) -> None:
    if errors:
        raise InvalidArgument("; ".join(errors))


def _check_id_range(job_id: int) -> None:
    # ids are assigned from 1 and fit a SQLite INTEGER; nothing else can exist
    if not 0 < job_id <= MAX_COUNT:
        raise JobNotFound(job_id)


class JobStore:
    """
    Handle on one store file.

    Use JobStore.init to create a store and JobStore.open to open an
    existing one. Instances are cheap; CLI invocations open, run one
    operation and close.
    """

    def __init__(self, path: Path, engine, settings: Settings):
        self.path = path
        self.settings = settings
        self._engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        self._snapshots = sessionmaker(bind=read_only(engine), expire_on_commit=False)
        self._logger = get_logger()

    @classmethod
    def init(cls, path: PathLike, settings: Optional[Settings] = None) -> "JobStore":
        """
        Create a new, empty store.

        An absent path or a zero-length file is accepted.
        If the schema is written but the journal mode cannot be changed,
        the store is still returned and a warning is logged.

        Raises:
            StoreAlreadyExists: If anything else is already at path
            StoreIOError: If the file cannot be created
        """
        settings = settings or Settings()
        path = Path(path)
        if path.exists() and (not path.is_file() or path.stat().st_size > 0):
            raise StoreAlreadyExists(path)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError(f"Cannot create directory for {path}: {e}") from e

        engine = create_store_engine(path, settings.busy_timeout)
        try:
            with _translate_errors(path):
                with engine.begin() as conn:
                    # another init may have won the race for an empty file
                    if has_schema(conn):
                        raise StoreAlreadyExists(path)
                    create_schema(conn)
        except BaseException:
            engine.dispose()
            raise

        # The schema is committed from here on. A failed switch leaves a
        # usable store in the default rollback journal.
        try:
            journal_mode = set_journal_mode(engine, settings.journal_mode)
        except (exc.DBAPIError, sqlite3.Error) as e:
            journal_mode = None
            get_logger().warning(
                "Could not set journal mode",
                path=str(path),
                journal_mode=settings.journal_mode,
                error=str(e),
            )

        store = cls(path, engine, settings)
        store._logger.info(
            "Initialized store",
            path=str(path),
            schema_version=SCHEMA_VERSION,
            journal_mode=journal_mode,
        )
        return store

    @classmethod
    def open(cls, path: PathLike, settings: Optional[Settings] = None) -> "JobStore":
        """
        Open an existing store.

        Raises:
            StoreNotFound: If path does not exist
            StoreCorrupt: If the file is not a store this code can read
            StoreTooNew: If the schema is newer than SCHEMA_VERSION
        """
        settings = settings or Settings()
        path = Path(path)
        if not path.exists():
            raise StoreNotFound(path)
        if not path.is_file():
            raise StoreCorrupt(f"Store {path} is not a regular file")

        engine = create_store_engine(path, settings.busy_timeout)
        try:
            with _translate_errors(path):
                with read_only(engine).connect() as conn:
                    version = read_schema_version(conn)
            if version is None:
                raise StoreCorrupt(f"Store {path} has no job table; run init first")
            if version > SCHEMA_VERSION:
                raise StoreTooNew(version, SCHEMA_VERSION)
        except BaseException:
            engine.dispose()
            raise

        store = cls(path, engine, settings)
        store._logger.debug("Opened store", path=str(path), schema_version=version)
        return store

    def close(self) -> None:
        self._engine.dispose()

    def __enter__(self) -> "JobStore":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Session inside a write transaction (BEGIN IMMEDIATE).

        Commits when the block exits normally and rolls back on any
        exception, so no partial change is ever visible to other processes.
        """
        with _translate_errors(self.path):
            with self._sessions.begin() as session:
                yield session

    @contextmanager
    def snapshot(self) -> Iterator[Session]:
        """Session inside a read-only transaction (BEGIN DEFERRED)."""
        with _translate_errors(self.path):
            with self._snapshots.begin() as session:
                yield session

    def create_job(self, payload: bytes, count: int) -> int:
        """
        Add a job with count units of work.

        Returns:
            The new job's id, larger than any id handed out before
        """
        _check_errors(validate_new_job(payload, count))

        with self.transaction() as session:
            job = Job(payload=bytes(payload), total_count=count, remaining_count=count)
            session.add(job)
            session.flush()
            job_id = job.id

        self._logger.record_create()
        self._logger.info("Created job", job_id=job_id, count=count, payload_bytes=len(payload))
        return job_id

    def edit_job(
        self,
        job_id: int,
        payload: Optional[bytes] = None,
        count: Optional[int] = None,
    ) -> JobInfo:
        """
        Replace a job's payload and/or set its remaining count.

        Setting the count also moves total_count so that total minus
        remaining still equals the units already taken.

        Raises:
            JobNotFound: If no job has this id
            InvalidArgument: On a negative count or non-bytes payload
        """
        _check_errors(validate_edit(job_id, payload, count))
        _check_id_range(job_id)

        with self.transaction() as session:
            job = session.get(Job, job_id)
            if job is None:
                raise JobNotFound(job_id)
            if payload is not None:
                job.payload = bytes(payload)
            if count is not None:
                dispatched = job.total_count - job.remaining_count
                job.total_count = min(dispatched + count, MAX_COUNT)
                job.remaining_count = count
            session.flush()
            info = JobInfo.from_row(job)

        self._logger.record_edit()
        self._logger.info(
            "Edited job",
            job_id=job_id,
            payload_changed=payload is not None,
            remaining=info.remaining_count,
        )
        return info

    def get_job(self, job_id: int) -> JobInfo:
        _check_errors(validate_job_id(job_id))
        _check_id_range(job_id)
        with self.snapshot() as session:
            return query.get_job(session, job_id)

    def list_available(self) -> List[JobInfo]:
        """Jobs with remaining work at one point in time, ascending by id."""
        with self.snapshot() as session:
            return query.list_available(session)

    def take_next(self, worker: Optional[str] = None) -> TakenJob:
        """
        Atomically take one unit of the oldest available job.

        Args:
            worker: Opaque caller id, only logged

        Raises:
            NoJobsAvailable: If every job is exhausted. Never waits.
        """
        if worker is not None and not isinstance(worker, str):
            raise InvalidArgument(f"Worker id must be text, got {type(worker).__name__}")

        try:
            with self.transaction() as session:
                taken = allocation.take_next(session)
        except NoJobsAvailable:
            self._logger.record_empty_take()
            self._logger.debug("No jobs available", worker=worker)
            raise

        self._logger.record_take(worker)
        self._logger.info(
            "Took job",
            job_id=taken.id,
            worker=worker,
            remaining=taken.remaining_count,
        )
        return taken
