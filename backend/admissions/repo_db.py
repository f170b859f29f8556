"""
Postgres-backed repository for student access numbers.

Tables:
- ``public.student_access_bindings``: one row per access number (primary key),
  status ``active`` or ``historical``. The primary key is the storage-level
  uniqueness the allocator's retry loop relies on.
- ``public.dropped_access_numbers``: the dropped pool. Not unique on purpose so
  legacy duplicates can be loaded and collapsed by reconcile.

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection.
- Returns the domain dataclasses; timestamps are ISO strings built in SQL.
"""
from __future__ import annotations

import logging
import os
from typing import Any, List, Optional, Tuple

from .domain import STATUS_ACTIVE, ActiveBinding, DroppedEntry
from .errors import BindingExistsError

try:
    import psycopg
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    UniqueViolation = None  # type: ignore
    HAVE_PSYCOPG = False
else:  # pragma: no cover - import errors handled above
    try:
        from psycopg.errors import UniqueViolation  # type: ignore
    except Exception:  # pragma: no cover - fallback when errors module unavailable
        UniqueViolation = None  # type: ignore

logger = logging.getLogger("registrar.admissions.db")

SCHEMA_SQL = """
create table if not exists public.student_access_bindings (
    access_number text primary key,
    student_id text not null,
    class_name text not null,
    stream text not null,
    status text not null default 'active' check (status in ('active', 'historical')),
    created_at timestamptz not null default now(),
    updated_at timestamptz not null default now()
);
create index if not exists student_access_bindings_bucket_idx
    on public.student_access_bindings (class_name, stream, status);
create table if not exists public.dropped_access_numbers (
    id bigserial primary key,
    access_number text not null,
    class_name text not null,
    stream text not null,
    student_name text,
    admission_id text,
    reason text not null,
    dropped_at timestamptz not null default now()
);
create index if not exists dropped_access_numbers_number_idx
    on public.dropped_access_numbers (access_number);
"""

_DROPPED_COLUMNS_SQL = """
    id,
    access_number,
    class_name,
    stream,
    student_name,
    admission_id,
    reason,
    to_char(dropped_at at time zone 'utc', 'YYYY-MM-DD"T"HH24:MI:SS"+00:00"')
"""


def _default_dsn() -> str:
    host = os.getenv("TEST_DB_HOST", "127.0.0.1")
    port = os.getenv("TEST_DB_PORT", "54322")
    return f"postgresql://registrar:registrar@{host}:{port}/postgres"


def _dsn() -> str:
    candidates = [
        os.getenv("ADMISSIONS_DATABASE_URL"),
        os.getenv("DATABASE_URL"),
        _default_dsn(),
    ]
    for dsn in candidates:
        if dsn:
            return dsn
    raise RuntimeError("Database DSN unavailable for DBAccessNumberRepo")


def _is_unique_violation(exc: BaseException) -> bool:
    sqlstate = getattr(exc, "sqlstate", None) or getattr(exc, "pgcode", None)
    return bool(UniqueViolation and isinstance(exc, UniqueViolation)) or sqlstate == "23505"


def _binding_row(row: Tuple) -> ActiveBinding:
    return ActiveBinding(
        access_number=row[0],
        student_id=row[1],
        class_name=row[2],
        stream=row[3],
        status=row[4],
    )


def _dropped_row(row: Tuple) -> DroppedEntry:
    return DroppedEntry(
        id=int(row[0]),
        access_number=row[1],
        class_name=row[2],
        stream=row[3],
        student_name=row[4],
        admission_id=row[5],
        reason=row[6],
        dropped_at=row[7],
    )


class DBAccessNumberRepo:
    def __init__(self, dsn: Optional[str] = None) -> None:
        """Initialize a Postgres-backed repository.

        Does not open a connection eagerly; connections are per-call.
        """
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBAccessNumberRepo")
        self._dsn = dsn or _dsn()

    def ensure_schema(self) -> None:
        """Create the tables and indexes if missing (idempotent)."""
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
            conn.commit()
        logger.info("Access-number schema ensured")

    # --- Bindings -------------------------------------------------------------
    def list_bindings(
        self,
        class_name: Optional[str] = None,
        stream: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[ActiveBinding]:
        clauses: List[str] = []
        params: List[Any] = []
        if class_name is not None:
            clauses.append("class_name = %s")
            params.append(class_name)
        if stream is not None:
            clauses.append("stream = %s")
            params.append(stream)
        if status is not None:
            clauses.append("status = %s")
            params.append(status)
        where = f"where {' and '.join(clauses)}" if clauses else ""
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    select access_number, student_id, class_name, stream, status
                      from public.student_access_bindings
                      {where}
                     order by access_number
                    """,
                    tuple(params),
                )
                rows = cur.fetchall()
        return [_binding_row(r) for r in rows]

    def get_binding(self, access_number: str) -> Optional[ActiveBinding]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    select access_number, student_id, class_name, stream, status
                      from public.student_access_bindings
                     where access_number = %s
                    """,
                    (access_number,),
                )
                row = cur.fetchone()
        return _binding_row(row) if row else None

    def create_binding(self, access_number: str, student_id: str, class_name: str, stream: str) -> None:
        with psycopg.connect(self._dsn) as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        insert into public.student_access_bindings (access_number, student_id, class_name, stream, status)
                        values (%s, %s, %s, %s, %s)
                        """,
                        (access_number, student_id, class_name, stream, STATUS_ACTIVE),
                    )
                conn.commit()
            except Exception as exc:
                if _is_unique_violation(exc):
                    conn.rollback()
                    raise BindingExistsError(access_number=access_number) from exc
                raise

    def update_binding_status(self, access_number: str, status: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    update public.student_access_bindings
                       set status = %s, updated_at = now()
                     where access_number = %s
                    """,
                    (status, access_number),
                )
                updated = cur.rowcount
            conn.commit()
        return bool(updated)

    def delete_binding(self, access_number: str) -> bool:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "delete from public.student_access_bindings where access_number = %s",
                    (access_number,),
                )
                deleted = cur.rowcount
            conn.commit()
        return bool(deleted)

    # --- Dropped pool ---------------------------------------------------------
    def list_dropped(self, class_name: Optional[str] = None, stream: Optional[str] = None) -> List[DroppedEntry]:
        clauses: List[str] = []
        params: List[Any] = []
        if class_name is not None:
            clauses.append("class_name = %s")
            params.append(class_name)
        if stream is not None:
            clauses.append("stream = %s")
            params.append(stream)
        where = f"where {' and '.join(clauses)}" if clauses else ""
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_DROPPED_COLUMNS_SQL} from public.dropped_access_numbers {where} order by dropped_at, id",
                    tuple(params),
                )
                rows = cur.fetchall()
        return [_dropped_row(r) for r in rows]

    def get_dropped(self, access_number: str) -> List[DroppedEntry]:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_DROPPED_COLUMNS_SQL} from public.dropped_access_numbers "
                    "where access_number = %s order by dropped_at, id",
                    (access_number,),
                )
                rows = cur.fetchall()
        return [_dropped_row(r) for r in rows]

    def add_dropped(self, entry: DroppedEntry) -> DroppedEntry:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"""
                    insert into public.dropped_access_numbers
                        (access_number, class_name, stream, student_name, admission_id, reason, dropped_at)
                    values (%s, %s, %s, %s, %s, %s, coalesce(%s::timestamptz, now()))
                    returning {_DROPPED_COLUMNS_SQL}
                    """,
                    (
                        entry.access_number,
                        entry.class_name,
                        entry.stream,
                        entry.student_name,
                        entry.admission_id,
                        entry.reason,
                        entry.dropped_at or None,
                    ),
                )
                row = cur.fetchone()
                if row is None:
                    raise RuntimeError("dropped_access_numbers insert returned no row")
            conn.commit()
        return _dropped_row(row)

    def remove_dropped(self, access_number: str) -> int:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "delete from public.dropped_access_numbers where access_number = %s",
                    (access_number,),
                )
                removed = cur.rowcount
            conn.commit()
        return int(removed or 0)

    def delete_dropped_entries(self, entry_ids: List[int]) -> int:
        """Delete the given entries in a single transaction (all or nothing)."""
        if not entry_ids:
            return 0
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "delete from public.dropped_access_numbers where id = any(%s)",
                    (list(entry_ids),),
                )
                removed = cur.rowcount
            conn.commit()
        return int(removed or 0)


__all__ = ["DBAccessNumberRepo", "SCHEMA_SQL", "HAVE_PSYCOPG"]
