"""
Admissions domain constants and simple helpers.

Why:
- Centralize binding statuses, release causes and the class/stream code maps so
  the service, the repositories and the web adapter never drift apart.
- Keep the terms aligned with the glossary (bucket, dropped pool, ceiling).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import FormatError

STATUS_ACTIVE = "active"
STATUS_HISTORICAL = "historical"
BINDING_STATUSES = frozenset({STATUS_ACTIVE, STATUS_HISTORICAL})

CAUSE_DELETED = "deleted"
CAUSE_FLAGGED = "flagged"
CAUSE_READMITTED = "re-admitted"
RELEASE_CAUSES = frozenset({CAUSE_DELETED, CAUSE_FLAGGED, CAUSE_READMITTED})

# Senior 1..6 -> A..F. Overridable through ADMISSIONS_CLASS_CODES.
DEFAULT_CLASS_CODES: Mapping[str, str] = {
    "Senior 1": "A",
    "Senior 2": "B",
    "Senior 3": "C",
    "Senior 4": "D",
    "Senior 5": "E",
    "Senior 6": "F",
}


@dataclass
class ActiveBinding:
    access_number: str
    student_id: str
    class_name: str
    stream: str
    status: str = STATUS_ACTIVE


@dataclass(frozen=True)
class Snapshot:
    """Student data copied into a DroppedEntry at park time; never updated."""

    student_name: Optional[str] = None
    admission_id: Optional[str] = None


@dataclass
class DroppedEntry:
    access_number: str
    class_name: str
    stream: str
    student_name: Optional[str]
    admission_id: Optional[str]
    reason: str
    dropped_at: str
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "access_number": self.access_number,
            "class_name": self.class_name,
            "stream": self.stream,
            "student_name": self.student_name,
            "admission_id": self.admission_id,
            "reason": self.reason,
            "dropped_at": self.dropped_at,
        }


@dataclass(frozen=True)
class Allocation:
    access_number: str
    admission_id: str
    sequence: int


def class_code(class_name: str, codes: Optional[Mapping[str, str]] = None) -> str:
    """Return the one-letter class code for a class name."""
    table = DEFAULT_CLASS_CODES if codes is None else codes
    code = table.get((class_name or "").strip())
    if not code:
        raise FormatError("unknown_class")
    return code


def stream_code(stream: str) -> str:
    """Return the one-letter stream code: first letter of the stream, upper-cased."""
    trimmed = (stream or "").strip()
    if not trimmed or not trimmed[0].isalpha() or not trimmed[0].isascii():
        raise FormatError("invalid_stream")
    return trimmed[0].upper()


def dropped_reason(cause: str, flag_status: Optional[str] = None) -> str:
    """Reason text stored on a DroppedEntry (`deleted` or `flagged:<status>`)."""
    if cause == CAUSE_FLAGGED:
        status = (flag_status or "").strip().lower() or "left"
        return f"{CAUSE_FLAGGED}:{status}"
    if cause == CAUSE_DELETED:
        return CAUSE_DELETED
    raise ValueError("invalid_cause")


__all__ = [
    "STATUS_ACTIVE",
    "STATUS_HISTORICAL",
    "BINDING_STATUSES",
    "CAUSE_DELETED",
    "CAUSE_FLAGGED",
    "CAUSE_READMITTED",
    "RELEASE_CAUSES",
    "DEFAULT_CLASS_CODES",
    "ActiveBinding",
    "Snapshot",
    "DroppedEntry",
    "Allocation",
    "class_code",
    "stream_code",
    "dropped_reason",
]
