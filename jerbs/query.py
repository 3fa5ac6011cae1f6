"""Read-only lookups over the job table."""

from typing import List

from sqlalchemy import select
from sqlalchemy.orm import Session

from .database import Job
from .errors import JobNotFound
from .records import JobInfo


def list_available(session: Session) -> List[JobInfo]:
    """
    Every job with remaining work, oldest first.

    Run inside one transaction so the result reflects a single point in time.
    """
    stmt = select(Job).where(Job.remaining_count > 0).order_by(Job.id)
    return [JobInfo.from_row(job) for job in session.scalars(stmt)]


def get_job(session: Session, job_id: int) -> JobInfo:
    """Look up one job, available or not. Raises JobNotFound."""
    job = session.get(Job, job_id)
    if job is None:
        raise JobNotFound(job_id)
    return JobInfo.from_row(job)
