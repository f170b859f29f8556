"""Dropped-pool repair: double residency and duplicate parks.

Why:
    Access numbers have been observed both bound active and parked at the same
    time, and parked twice. ``reconcile`` fixes both in one all-or-nothing
    write; ``audit`` reports the same plan (plus malformed numbers) read-only.

Rules:
    - Active wins: every dropped entry whose number is bound active is removed.
    - Duplicate parks collapse to the oldest entry.
"""

from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass, field
import logging
from typing import Dict, List, Optional, Tuple

from ..codec import decode, is_placeholder
from ..domain import STATUS_ACTIVE, DroppedEntry
from ..errors import FormatError
from .access_numbers import AccessNumbersService

logger = logging.getLogger("registrar.admissions.reconcile")


@dataclass
class RepairReport:
    conflicts: List[DroppedEntry] = field(default_factory=list)
    duplicates: List[DroppedEntry] = field(default_factory=list)
    malformed: List[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def total(self) -> int:
        return len(self.conflicts) + len(self.duplicates)

    def is_empty(self) -> bool:
        return self.total == 0

    def to_dict(self) -> dict:
        return {
            "dry_run": self.dry_run,
            "total": self.total,
            "conflicts": [e.to_dict() for e in self.conflicts],
            "duplicates": [e.to_dict() for e in self.duplicates],
            "malformed": list(self.malformed),
        }


@dataclass
class ReconcileService:
    """Maintenance use cases over the dropped pool."""

    service: AccessNumbersService

    def _plan(self, class_name: Optional[str], stream: Optional[str]) -> RepairReport:
        repo = self.service.repo
        entries = repo.list_dropped(class_name, stream)
        active = {b.access_number for b in repo.list_bindings(status=STATUS_ACTIVE)}
        report = RepairReport()
        groups: Dict[str, List[DroppedEntry]] = {}
        for entry in entries:
            groups.setdefault(entry.access_number, []).append(entry)
        for number, group in groups.items():
            if number in active:
                report.conflicts.extend(group)
            elif len(group) > 1:
                report.duplicates.extend(group[1:])
        return report

    def _bucket_codes(self, entries: List[DroppedEntry]) -> List[Tuple[str, str]]:
        codes = set()
        for entry in entries:
            try:
                parts = decode(entry.access_number)
            except FormatError:
                continue
            codes.add((parts.class_code, parts.stream_code))
        return sorted(codes)

    def reconcile(self, class_name: Optional[str] = None, stream: Optional[str] = None) -> RepairReport:
        """Remove conflicting and duplicate dropped entries in one atomic write."""
        scoped = self.service.repo.list_dropped(class_name, stream)
        with ExitStack() as stack:
            # Sorted acquisition keeps concurrent reconciles deadlock-free.
            for codes in self._bucket_codes(scoped):
                stack.enter_context(self.service.bucket_lock(codes))
            report = self._plan(class_name, stream)
            ids = [e.id for e in report.conflicts + report.duplicates if e.id is not None]
            if ids:
                self.service.repo.delete_dropped_entries(ids)
        for entry in report.conflicts:
            logger.info("Removed %s from dropped pool: number is bound active", entry.access_number)
        for entry in report.duplicates:
            logger.info("Collapsed duplicate dropped entry %s (id=%s)", entry.access_number, entry.id)
        return report

    def audit(self, class_name: Optional[str] = None, stream: Optional[str] = None) -> RepairReport:
        """Report what ``reconcile`` would repair, plus malformed numbers. Read-only."""
        report = self._plan(class_name, stream)
        report.dry_run = True
        repo = self.service.repo
        numbers = [b.access_number for b in repo.list_bindings(class_name, stream)]
        numbers += [e.access_number for e in repo.list_dropped(class_name, stream)]
        for number in numbers:
            if is_placeholder(number):
                continue
            try:
                decode(number)
            except FormatError:
                if number not in report.malformed:
                    report.malformed.append(number)
        return report


__all__ = ["RepairReport", "ReconcileService"]
