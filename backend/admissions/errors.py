"""
Error taxonomy for the access-number allocator.

Each error carries a stable snake_case ``code`` (also its ``str()``), matching
the ``ValueError("invalid_title")`` convention used by the services, and
derives from the builtin callers already handle for that situation.
"""

from __future__ import annotations


class AdmissionsError(Exception):
    """Base class for allocator errors."""

    default_code = "admissions_error"

    def __init__(self, code: str | None = None, *, access_number: str | None = None) -> None:
        self.code = code or self.default_code
        self.access_number = access_number
        super().__init__(self.code)


class FormatError(AdmissionsError, ValueError):
    """Malformed access number, class, stream, sequence or year."""

    default_code = "invalid_access_number"


class ConflictError(AdmissionsError, ValueError):
    """The access number is currently bound active (double residency guard)."""

    default_code = "access_number_active"


class DuplicateParkError(ConflictError):
    """The access number is already parked in the dropped pool."""

    default_code = "access_number_already_parked"


class AlreadyActiveError(ConflictError):
    """Reuse raced with another admission that bound the number first."""

    default_code = "access_number_already_active"


class BindingExistsError(ConflictError):
    """A binding row already exists for the access number (storage uniqueness)."""

    default_code = "binding_exists"


class NotParkedError(AdmissionsError, LookupError):
    """The access number is not in the dropped pool."""

    default_code = "access_number_not_parked"


class StaleStateError(AdmissionsError, LookupError):
    """The binding disappeared between read and write; retry with a fresh read."""

    default_code = "stale_binding"


class AllocationExhaustedError(AdmissionsError, RuntimeError):
    """Retry budget exceeded under contention."""

    default_code = "allocation_exhausted"


__all__ = [
    "AdmissionsError",
    "FormatError",
    "ConflictError",
    "DuplicateParkError",
    "AlreadyActiveError",
    "BindingExistsError",
    "NotParkedError",
    "StaleStateError",
    "AllocationExhaustedError",
]
