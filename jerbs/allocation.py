"""
Allocation of work units ("take").

Responsibilities:
- Pick the oldest job that still has remaining units.
- Decrement its remaining count by exactly one.

Non-Responsibilities:
- No locking of its own. The caller must hold a write transaction
  (JobStore.transaction) so no other process can interleave between the
  select and the decrement.
- No waiting. An empty queue is reported at once.

Invariant:
remaining_count never goes below zero, so a job is never handed out more
times than it has units.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from .database import Job
from .errors import NoJobsAvailable
from .records import TakenJob


def next_available(session: Session):
    """Oldest job with work left, or None."""
    stmt = (
        select(Job)
        .where(Job.remaining_count > 0)
        .order_by(Job.id)
        .limit(1)
    )
    return session.scalars(stmt).first()


def take_next(session: Session) -> TakenJob:
    """
    Allocate one unit of the oldest available job.

    Args:
        session: Session inside a write transaction

    Returns:
        The job's id and payload, with the count left after this take

    Raises:
        NoJobsAvailable: If every job is exhausted
    """
    job = next_available(session)
    if job is None:
        raise NoJobsAvailable()

    job.remaining_count = job.remaining_count - 1
    session.flush()

    return TakenJob(
        id=job.id,
        payload=bytes(job.payload),
        remaining_count=job.remaining_count,
    )
