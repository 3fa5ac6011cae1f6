from typing import Any, List, Optional

# SQLite stores INTEGER columns as signed 64-bit values.
MAX_COUNT = 2**63 - 1


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def validate_count(count: Any) -> List[str]:
    errors: List[str] = []
    if not _is_int(count):
        errors.append(f"Count must be an integer, got {type(count).__name__}")
    elif count < 0:
        errors.append(f"Count must be non-negative, got {count}")
    elif count > MAX_COUNT:
        errors.append(f"Count must be at most {MAX_COUNT}, got {count}")
    return errors


def validate_payload(payload: Any) -> List[str]:
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return []
    return [f"Payload must be bytes, got {type(payload).__name__}"]


def validate_job_id(job_id: Any) -> List[str]:
    if not _is_int(job_id):
        return [f"Job id must be an integer, got {type(job_id).__name__}"]
    return []


def validate_new_job(payload: Any, count: Any) -> List[str]:
    """
    Returns a list of validation error messages for a job about to be created.
    Empty list means valid.
    """
    return validate_payload(payload) + validate_count(count)


def validate_edit(job_id: Any, payload: Optional[Any], count: Optional[Any]) -> List[str]:
    """
    Same as validate_new_job, for an edit. Fields left as None are not
    being changed and are not checked.
    """
    errors = validate_job_id(job_id)
    if payload is not None:
        errors += validate_payload(payload)
    if count is not None:
        errors += validate_count(count)
    return errors
