"""Command-line work-stealing scheduler backed by a shared SQLite store."""

__version__ = "0.2.0"

from .errors import (
    InvalidArgument,
    JerbsError,
    JobNotFound,
    NoJobsAvailable,
    StoreAlreadyExists,
    StoreCorrupt,
    StoreIOError,
    StoreNotFound,
    StoreTooNew,
)
from .records import JobInfo, TakenJob
from .store import JobStore

__all__ = [
    "InvalidArgument",
    "JerbsError",
    "JobInfo",
    "JobNotFound",
    "JobStore",
    "NoJobsAvailable",
    "StoreAlreadyExists",
    "StoreCorrupt",
    "StoreIOError",
    "StoreNotFound",
    "StoreTooNew",
    "TakenJob",
]
