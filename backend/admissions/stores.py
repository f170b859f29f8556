"""
In-memory access-number repository for development and tests.

Why: Keep the allocator runnable without Postgres. For production, use
``DBAccessNumberRepo`` which enforces the same uniqueness in the database.

Records are copied on the way in and out so callers cannot mutate stored state.
"""
from __future__ import annotations

from dataclasses import replace
import threading
from typing import Dict, List, Optional

from .domain import STATUS_ACTIVE, ActiveBinding, DroppedEntry
from .errors import BindingExistsError


class InMemoryAccessNumberRepo:
    def __init__(self) -> None:
        self._bindings: Dict[str, ActiveBinding] = {}
        self._dropped: Dict[int, DroppedEntry] = {}
        self._next_id = 1
        self._mutex = threading.Lock()

    # --- Bindings -------------------------------------------------------------
    def list_bindings(
        self,
        class_name: Optional[str] = None,
        stream: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[ActiveBinding]:
        with self._mutex:
            rows = [
                replace(b)
                for b in self._bindings.values()
                if (class_name is None or b.class_name == class_name)
                and (stream is None or b.stream == stream)
                and (status is None or b.status == status)
            ]
        return sorted(rows, key=lambda b: b.access_number)

    def get_binding(self, access_number: str) -> Optional[ActiveBinding]:
        with self._mutex:
            rec = self._bindings.get(access_number)
            return replace(rec) if rec else None

    def create_binding(self, access_number: str, student_id: str, class_name: str, stream: str) -> None:
        with self._mutex:
            if access_number in self._bindings:
                raise BindingExistsError(access_number=access_number)
            self._bindings[access_number] = ActiveBinding(
                access_number=access_number,
                student_id=student_id,
                class_name=class_name,
                stream=stream,
                status=STATUS_ACTIVE,
            )

    def update_binding_status(self, access_number: str, status: str) -> bool:
        with self._mutex:
            rec = self._bindings.get(access_number)
            if not rec:
                return False
            rec.status = status
            return True

    def delete_binding(self, access_number: str) -> bool:
        with self._mutex:
            return self._bindings.pop(access_number, None) is not None

    # --- Dropped pool ---------------------------------------------------------
    def list_dropped(self, class_name: Optional[str] = None, stream: Optional[str] = None) -> List[DroppedEntry]:
        with self._mutex:
            rows = [
                replace(e)
                for e in self._dropped.values()
                if (class_name is None or e.class_name == class_name) and (stream is None or e.stream == stream)
            ]
        return sorted(rows, key=lambda e: (e.dropped_at, e.id or 0))

    def get_dropped(self, access_number: str) -> List[DroppedEntry]:
        return [e for e in self.list_dropped() if e.access_number == access_number]

    def add_dropped(self, entry: DroppedEntry) -> DroppedEntry:
        with self._mutex:
            stored = replace(entry, id=self._next_id)
            self._next_id += 1
            self._dropped[stored.id] = stored
            return replace(stored)

    def remove_dropped(self, access_number: str) -> int:
        with self._mutex:
            ids = [i for i, e in self._dropped.items() if e.access_number == access_number]
            for i in ids:
                del self._dropped[i]
            return len(ids)

    def delete_dropped_entries(self, entry_ids: List[int]) -> int:
        with self._mutex:
            removed = 0
            for i in entry_ids:
                if self._dropped.pop(i, None) is not None:
                    removed += 1
            return removed


__all__ = ["InMemoryAccessNumberRepo"]
