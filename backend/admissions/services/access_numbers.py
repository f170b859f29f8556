"""Access-number lifecycle service (Clean Architecture boundary).

Why:
    Encapsulates the allocation, release and dropped-pool rules so that the web
    adapter and maintenance tools stay thin and the rules can be unit-tested
    against an in-memory repository.

Rules:
    - New numbers fill the smallest gap in a bucket, skipping numbers that are
      bound active, parked in the dropped pool, or retained as historical.
    - Releasing the bucket's ceiling number frees it; releasing any lower number
      parks it in the dropped pool, from where only an explicit reuse takes it.
    - Re-admission keeps the old binding as historical forever.

Concurrency:
    Every read-compute-write sequence runs under a lock scoped to the bucket's
    class/stream codes. Storage-level uniqueness (``BindingExistsError``) is
    retried with the conflicting sequence excluded, up to ``max_attempts``.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading
from typing import Dict, Iterator, List, Optional, Protocol, Set, Tuple

from ..codec import admission_id, decode, encode, is_placeholder
from ..config import AdmissionsConfig
from ..domain import (
    CAUSE_READMITTED,
    RELEASE_CAUSES,
    STATUS_ACTIVE,
    STATUS_HISTORICAL,
    ActiveBinding,
    Allocation,
    DroppedEntry,
    Snapshot,
    class_code,
    dropped_reason,
    stream_code,
)
from ..errors import (
    AllocationExhaustedError,
    AlreadyActiveError,
    BindingExistsError,
    ConflictError,
    DuplicateParkError,
    FormatError,
    NotParkedError,
    StaleStateError,
)

logger = logging.getLogger("registrar.admissions")


class AccessNumberRepoProtocol(Protocol):
    def list_bindings(
        self,
        class_name: Optional[str] = None,
        stream: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[ActiveBinding]:
        ...

    def get_binding(self, access_number: str) -> Optional[ActiveBinding]:
        ...

    def create_binding(self, access_number: str, student_id: str, class_name: str, stream: str) -> None:
        ...

    def update_binding_status(self, access_number: str, status: str) -> bool:
        ...

    def delete_binding(self, access_number: str) -> bool:
        ...

    def list_dropped(self, class_name: Optional[str] = None, stream: Optional[str] = None) -> List[DroppedEntry]:
        ...

    def get_dropped(self, access_number: str) -> List[DroppedEntry]:
        ...

    def add_dropped(self, entry: DroppedEntry) -> DroppedEntry:
        ...

    def remove_dropped(self, access_number: str) -> int:
        ...

    def delete_dropped_entries(self, entry_ids: List[int]) -> int:
        ...


@dataclass(frozen=True)
class ReleaseOutcome:
    access_number: str
    action: str  # "freed" | "parked" | "retained" | "ignored"
    entry: Optional[DroppedEntry] = None

    def to_dict(self) -> dict:
        return {
            "access_number": self.access_number,
            "action": self.action,
            "dropped": self.entry.to_dict() if self.entry else None,
        }


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _normalize_number(value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise FormatError("invalid_access_number")
    trimmed = value.strip()
    return trimmed if is_placeholder(trimmed) else trimmed.upper()


def _normalize_bucket_part(value: object, code: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise FormatError(code)
    return value.strip()


@dataclass
class AccessNumbersService:
    """Use cases for student access numbers (framework-independent)."""

    repo: AccessNumberRepoProtocol
    config: AdmissionsConfig = field(default_factory=AdmissionsConfig)
    _locks: Dict[Tuple[str, str], threading.RLock] = field(default_factory=dict, init=False, repr=False)
    _locks_guard: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    # --- Buckets --------------------------------------------------------------
    def bucket_codes(self, class_name: str, stream: str) -> Tuple[str, str]:
        return class_code(class_name, self.config.class_codes), stream_code(stream)

    @contextmanager
    def bucket_lock(self, codes: Tuple[str, str]) -> Iterator[None]:
        """Serialize read-compute-write sections for one class/stream code pair."""
        with self._locks_guard:
            lock = self._locks.get(codes)
            if lock is None:
                lock = self._locks[codes] = threading.RLock()
        with lock:
            yield

    def _sequences(self, numbers: List[str], codes: Tuple[str, str]) -> Set[int]:
        """Sequences of ``numbers`` that decode into the ``codes`` pair.

        Streams of one class that share a first letter share a code pair, so
        the scan covers the whole class and filters on the decoded codes.
        """
        sequences: Set[int] = set()
        for number in numbers:
            if is_placeholder(number):
                continue
            try:
                parts = decode(number)
            except FormatError:
                logger.warning("Skipping malformed access number %r", number)
                continue
            if (parts.class_code, parts.stream_code) == codes:
                sequences.add(parts.sequence)
        return sequences

    def _binding_sequences(self, class_name: str, stream: str, status: str) -> Set[int]:
        codes = self.bucket_codes(class_name, stream)
        bindings = self.repo.list_bindings(class_name, status=status)
        return self._sequences([b.access_number for b in bindings], codes)

    # --- Active set view ------------------------------------------------------
    def active_sequences(self, class_name: str, stream: str) -> Set[int]:
        return self._binding_sequences(class_name, stream, STATUS_ACTIVE)

    def historical_sequences(self, class_name: str, stream: str) -> Set[int]:
        return self._binding_sequences(class_name, stream, STATUS_HISTORICAL)

    def max_sequence(self, class_name: str, stream: str) -> Optional[int]:
        active = self.active_sequences(class_name, stream)
        return max(active) if active else None

    def parked_sequences(self, class_name: str, stream: str) -> Set[int]:
        codes = self.bucket_codes(class_name, stream)
        return self._sequences([e.access_number for e in self.repo.list_dropped(class_name)], codes)

    # --- Sequence allocator ---------------------------------------------------
    def next_sequence(self, class_name: str, stream: str) -> int:
        """Smallest positive sequence that is not active, parked or historical."""
        return self._next_sequence(class_name, stream, set())

    def _next_sequence(self, class_name: str, stream: str, also_taken: Set[int]) -> int:
        taken = (
            self.active_sequences(class_name, stream)
            | self.parked_sequences(class_name, stream)
            | self.historical_sequences(class_name, stream)
            | also_taken
        )
        candidate = 1
        while candidate in taken:
            candidate += 1
        return candidate

    def _allocation(self, codes: Tuple[str, str], sequence: int, year: Optional[int]) -> Allocation:
        yr = year if year is not None else datetime.now(timezone.utc).year
        return Allocation(
            access_number=encode(codes[0], codes[1], sequence, self.config.width),
            admission_id=admission_id(codes[0], codes[1], sequence, yr, self.config.width),
            sequence=sequence,
        )

    def allocate(self, class_name: str, stream: str, year: Optional[int] = None) -> Allocation:
        """Compute the next access number and its admission ID without persisting."""
        class_name = _normalize_bucket_part(class_name, "invalid_class")
        stream = _normalize_bucket_part(stream, "invalid_stream")
        codes = self.bucket_codes(class_name, stream)
        with self.bucket_lock(codes):
            return self._allocation(codes, self.next_sequence(class_name, stream), year)

    def admit(self, student_id: str, class_name: str, stream: str, year: Optional[int] = None) -> Allocation:
        """Allocate and bind a fresh access number for a student in one critical section."""
        if not isinstance(student_id, str) or not student_id.strip():
            raise ValueError("invalid_student_id")
        class_name = _normalize_bucket_part(class_name, "invalid_class")
        stream = _normalize_bucket_part(stream, "invalid_stream")
        codes = self.bucket_codes(class_name, stream)
        collided: Set[int] = set()
        for attempt in range(1, self.config.max_attempts + 1):
            with self.bucket_lock(codes):
                allocation = self._allocation(codes, self._next_sequence(class_name, stream, collided), year)
                try:
                    self.repo.create_binding(allocation.access_number, student_id.strip(), class_name, stream)
                except BindingExistsError:
                    logger.warning(
                        "Access number %s already bound (attempt %d/%d); recomputing",
                        allocation.access_number,
                        attempt,
                        self.config.max_attempts,
                    )
                    collided.add(allocation.sequence)
                    continue
            logger.info("Admitted student to %s/%s with %s", class_name, stream, allocation.access_number)
            return allocation
        raise AllocationExhaustedError()

    # --- Dropped pool ---------------------------------------------------------
    def list_dropped(self, class_name: Optional[str] = None, stream: Optional[str] = None) -> List[DroppedEntry]:
        return self.repo.list_dropped(
            class_name.strip() if class_name else None,
            stream.strip() if stream else None,
        )

    def park(
        self,
        access_number: str,
        class_name: str,
        stream: str,
        snapshot: Optional[Snapshot] = None,
        reason: str = "deleted",
    ) -> DroppedEntry:
        number = _normalize_number(access_number)
        class_name = _normalize_bucket_part(class_name, "invalid_class")
        stream = _normalize_bucket_part(stream, "invalid_stream")
        codes = self.bucket_codes(class_name, stream)
        with self.bucket_lock(codes):
            return self._park_locked(number, class_name, stream, codes, snapshot or Snapshot(), reason)

    def _park_locked(
        self,
        number: str,
        class_name: str,
        stream: str,
        codes: Tuple[str, str],
        snapshot: Snapshot,
        reason: str,
    ) -> DroppedEntry:
        parts = decode(number)
        if (parts.class_code, parts.stream_code) != codes:
            raise FormatError("bucket_mismatch", access_number=number)
        if self.repo.get_dropped(number):
            raise DuplicateParkError(access_number=number)
        binding = self.repo.get_binding(number)
        if binding is not None:
            if binding.status == STATUS_HISTORICAL:
                raise ConflictError("access_number_historical", access_number=number)
            raise ConflictError(access_number=number)
        entry = self.repo.add_dropped(
            DroppedEntry(
                access_number=number,
                class_name=class_name,
                stream=stream,
                student_name=snapshot.student_name,
                admission_id=snapshot.admission_id,
                reason=reason,
                dropped_at=_now_iso(),
            )
        )
        logger.info("Parked %s in dropped pool (%s)", number, reason)
        return entry

    def _parked_entries(self, number: str) -> List[DroppedEntry]:
        entries = self.repo.get_dropped(number)
        if not entries:
            raise NotParkedError(access_number=number)
        return entries

    def reuse(self, access_number: str, *, student_id: Optional[str] = None, year: Optional[int] = None) -> Allocation:
        """Take a parked number out of the dropped pool.

        With ``student_id`` the binding is created in the same critical section.
        If another writer bound the number first, the active binding wins and
        the entry stays consumed; any other failure restores the entry. Without
        ``student_id`` the caller persists the binding.
        """
        number = _normalize_number(access_number)
        if student_id is not None and (not isinstance(student_id, str) or not student_id.strip()):
            raise ValueError("invalid_student_id")
        parts = decode(number)
        codes = (parts.class_code, parts.stream_code)
        with self.bucket_lock(codes):
            entries = self._parked_entries(number)
            first = entries[0]
            binding = self.repo.get_binding(number)
            if binding is not None:
                if binding.status == STATUS_ACTIVE:
                    raise AlreadyActiveError(access_number=number)
                raise ConflictError("access_number_historical", access_number=number)
            allocation = self._allocation(codes, parts.sequence, year)
            if not self.repo.remove_dropped(number):
                # Consumed by another process between the read and the delete.
                raise NotParkedError(access_number=number)
            if student_id:
                try:
                    self.repo.create_binding(number, student_id.strip(), first.class_name, first.stream)
                except BindingExistsError:
                    logger.warning("%s was bound by another writer during reuse; dropped entry not restored", number)
                    raise AlreadyActiveError(access_number=number)
                except Exception:
                    for entry in entries:
                        self.repo.add_dropped(entry)
                    raise
        logger.info("Reused dropped access number %s", number)
        return allocation

    def discard(self, access_number: str) -> int:
        """Remove a parked number without binding it; it rejoins gap-filling."""
        number = _normalize_number(access_number)
        parts = decode(number)
        with self.bucket_lock((parts.class_code, parts.stream_code)):
            removed = self.repo.remove_dropped(number)
        if not removed:
            raise NotParkedError(access_number=number)
        logger.info("Discarded %s from dropped pool", number)
        return removed

    # --- Release policy -------------------------------------------------------
    def release(
        self,
        access_number: str,
        class_name: str,
        stream: str,
        cause: str,
        snapshot: Optional[Snapshot] = None,
        *,
        flag_status: Optional[str] = None,
    ) -> ReleaseOutcome:
        """Apply the release policy when a student is deleted, flagged or re-admitted."""
        if cause not in RELEASE_CAUSES:
            raise ValueError("invalid_cause")
        number = _normalize_number(access_number)
        if is_placeholder(number):
            return ReleaseOutcome(access_number=number, action="ignored")
        class_name = _normalize_bucket_part(class_name, "invalid_class")
        stream = _normalize_bucket_part(stream, "invalid_stream")
        codes = self.bucket_codes(class_name, stream)
        attempt = 1
        while True:
            try:
                with self.bucket_lock(codes):
                    return self._release_locked(number, class_name, stream, codes, cause, snapshot or Snapshot(), flag_status)
            except StaleStateError:
                logger.warning("Stale binding for %s (attempt %d/%d)", number, attempt, self.config.max_attempts)
                if attempt >= self.config.max_attempts:
                    raise
            attempt += 1

    def _release_locked(
        self,
        number: str,
        class_name: str,
        stream: str,
        codes: Tuple[str, str],
        cause: str,
        snapshot: Snapshot,
        flag_status: Optional[str],
    ) -> ReleaseOutcome:
        parts = decode(number)
        if (parts.class_code, parts.stream_code) != codes:
            raise FormatError("bucket_mismatch", access_number=number)
        binding = self.repo.get_binding(number)
        if binding is None:
            raise StaleStateError(access_number=number)
        if (binding.class_name, binding.stream) != (class_name, stream):
            raise FormatError("bucket_mismatch", access_number=number)
        if binding.status == STATUS_HISTORICAL:
            raise ConflictError("access_number_historical", access_number=number)

        if cause == CAUSE_READMITTED:
            if not self.repo.update_binding_status(number, STATUS_HISTORICAL):
                raise StaleStateError(access_number=number)
            logger.info("%s retained as historical after re-admission", number)
            return ReleaseOutcome(access_number=number, action="retained")

        ceiling = self.max_sequence(class_name, stream)
        if ceiling is None:
            raise StaleStateError(access_number=number)
        if not self.repo.delete_binding(number):
            raise StaleStateError(access_number=number)
        if parts.sequence >= ceiling:
            logger.info("%s returned to the pool (ceiling of %s/%s)", number, class_name, stream)
            return ReleaseOutcome(access_number=number, action="freed")

        existing = self.repo.get_dropped(number)
        if existing:
            logger.warning("%s was already parked; keeping the existing dropped entry", number)
            return ReleaseOutcome(access_number=number, action="parked", entry=existing[0])
        try:
            entry = self._park_locked(number, class_name, stream, codes, snapshot, dropped_reason(cause, flag_status))
        except Exception:
            self.repo.create_binding(number, binding.student_id, binding.class_name, binding.stream)
            raise
        return ReleaseOutcome(access_number=number, action="parked", entry=entry)


__all__ = ["AccessNumberRepoProtocol", "AccessNumbersService", "ReleaseOutcome"]
