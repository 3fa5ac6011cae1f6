"""
Text renderings of job listings.

format_stable is meant for scripts: one line per job,
``id<TAB>remaining<TAB>payload``, with the payload escaped so it never
contains a tab or newline. format_verbose is for people and may change.
"""

from typing import Iterable, List

from .records import JobInfo

_ESCAPES = {
    "\\": "\\\\",
    "\t": "\\t",
    "\n": "\\n",
    "\r": "\\r",
}

PREVIEW_WIDTH = 60


def escape_payload(payload: bytes) -> str:
    """
    Render payload bytes on one line.

    UTF-8 text passes through; backslash, tab, newline and carriage return
    use C escapes; other ASCII control characters and bytes that are not
    valid UTF-8 become \\xNN, C1 control characters \\uNNNN.
    """
    out = []
    for ch in payload.decode("utf-8", errors="surrogateescape"):
        code = ord(ch)
        if ch in _ESCAPES:
            out.append(_ESCAPES[ch])
        elif 0xDC80 <= code <= 0xDCFF:
            # surrogateescape maps an undecodable byte b to U+DC00 + b
            out.append(f"\\x{code - 0xDC00:02x}")
        elif code < 0x20 or code == 0x7F:
            out.append(f"\\x{code:02x}")
        elif 0x80 <= code < 0xA0:
            out.append(f"\\u{code:04x}")
        else:
            out.append(ch)
    return "".join(out)


def format_stable(jobs: Iterable[JobInfo]) -> List[str]:
    return [f"{job.id}\t{job.remaining_count}\t{escape_payload(job.payload)}" for job in jobs]


def _preview(payload: bytes) -> str:
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError:
        return f"<binary, {len(payload)} bytes>"
    text = " ".join(text.split())
    if len(text) > PREVIEW_WIDTH:
        text = text[: PREVIEW_WIDTH - 3] + "..."
    return text


def format_verbose(jobs: Iterable[JobInfo]) -> List[str]:
    jobs = list(jobs)
    if not jobs:
        return ["No jobs available."]
    lines = [f"{len(jobs)} job(s) available:", ""]
    for job in jobs:
        lines.append(f"ID: {job.id}")
        lines.append(f"  Remaining: {job.remaining_count} of {job.total_count}")
        lines.append(f"  Taken: {job.dispatched_count}")
        lines.append(f"  Data: {_preview(job.payload)}")
        lines.append("")
    return lines
