"""Immutable views of job rows handed back to callers once a transaction ends."""

from dataclasses import dataclass


@dataclass(frozen=True)
class JobInfo:
    id: int
    payload: bytes
    remaining_count: int
    total_count: int

    @property
    def dispatched_count(self) -> int:
        """Units handed out by take so far."""
        return self.total_count - self.remaining_count

    @classmethod
    def from_row(cls, job) -> "JobInfo":
        return cls(
            id=job.id,
            payload=bytes(job.payload),
            remaining_count=job.remaining_count,
            total_count=job.total_count,
        )


@dataclass(frozen=True)
class TakenJob:
    """One unit allocated by take. remaining_count is the count after the decrement."""

    id: int
    payload: bytes
    remaining_count: int
