"""
Error types raised by the job store.

Every failure the store can report has its own exception class so callers
(and the CLI) can tell them apart. Each class carries the process exit
status the CLI uses for it.
"""


class JerbsError(Exception):
    """Base class for all store errors."""

    exit_code = 1


class NoJobsAvailable(JerbsError):
    """Raised by take when no job has remaining work. Routine, not a fault."""

    exit_code = 2

    def __init__(self, message: str = "No jobs available"):
        super().__init__(message)


class StoreNotFound(JerbsError):
    """The store file does not exist."""

    exit_code = 3

    def __init__(self, path):
        self.path = path
        super().__init__(f"Store not found: {path}")


class StoreAlreadyExists(JerbsError):
    """Init was asked to create a store where one (or other data) already exists."""

    exit_code = 4

    def __init__(self, path):
        self.path = path
        super().__init__(f"Store already exists: {path}")


class StoreCorrupt(JerbsError):
    """The store file is unreadable or lacks the expected schema."""

    exit_code = 5


class StoreTooNew(StoreCorrupt):
    """The store was written by a newer schema version than this code supports."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Store schema is from a newer version of jerbs "
            f"(found version {found}, max supported {supported})"
        )


class JobNotFound(JerbsError):
    """No job with this id exists in the store."""

    exit_code = 6

    def __init__(self, job_id: int):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidArgument(JerbsError):
    """Bad count, payload, id or configuration value."""

    exit_code = 7


class StoreIOError(JerbsError):
    """Underlying storage failure: lock timeout, disk full, permission denied."""

    exit_code = 8
