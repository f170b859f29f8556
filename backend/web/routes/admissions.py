"""
Admissions API routes for student access numbers.

Why:
    Expose allocation, release, the dropped pool and reconcile to the admission
    workflow. The adapter validates request shapes and maps domain errors to
    HTTP responses; all rules live in ``admissions.services``.

Notes:
    - Persistence: ``ADMISSIONS_BACKEND=db`` selects the Postgres repo; the
      default is the in-memory repo. Tests call `set_repo` for isolation.
    - Cache policy: responses carry "private, no-store".
"""

from __future__ import annotations

import logging
from typing import Literal, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field
from pydantic.functional_validators import field_validator

from admissions.config import AdmissionsConfig, is_prod_like, load_admissions_config
from admissions.domain import Snapshot
from admissions.errors import (
    AdmissionsError,
    AllocationExhaustedError,
    ConflictError,
    FormatError,
    NotParkedError,
    StaleStateError,
)
from admissions.services.access_numbers import AccessNumbersService
from admissions.services.reconcile import ReconcileService
from admissions.stores import InMemoryAccessNumberRepo

admissions_router = APIRouter(tags=["Admissions"])
logger = logging.getLogger("registrar.web.admissions")


def _build_default_repo(config: AdmissionsConfig):
    """Prefer the DB repo when configured.

    Outside production/staging an unavailable DB repo falls back to in-memory;
    in production the error propagates so the dropped pool is never volatile.
    """
    if config.backend != "db":
        return InMemoryAccessNumberRepo()
    try:
        from admissions.repo_db import DBAccessNumberRepo

        return DBAccessNumberRepo(config.database_url)
    except Exception as exc:
        if is_prod_like():
            logger.error("Admissions DB repo unavailable in production: %s", exc.__class__.__name__)
            raise
        logger.warning("Admissions repo unavailable (%s); using in-memory fallback", exc)
        return InMemoryAccessNumberRepo()


_CONFIG: Optional[AdmissionsConfig] = None
_SERVICE: Optional[AccessNumbersService] = None


def _get_service() -> AccessNumbersService:
    global _CONFIG, _SERVICE
    if _SERVICE is None:
        _CONFIG = _CONFIG or load_admissions_config()
        _SERVICE = AccessNumbersService(_build_default_repo(_CONFIG), config=_CONFIG)
    return _SERVICE


def set_repo(repo, config: Optional[AdmissionsConfig] = None) -> None:
    """Allow tests to swap the access-number repository (and config)."""
    global _CONFIG, _SERVICE
    _CONFIG = config or _CONFIG or AdmissionsConfig()
    _SERVICE = AccessNumbersService(repo, config=_CONFIG)


# --- Request models --------------------------------------------------------------

class _BucketPayload(BaseModel):
    class_name: str = Field(..., min_length=1, max_length=64)
    stream: str = Field(..., min_length=1, max_length=64)

    @field_validator("class_name", "stream")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class AllocatePayload(_BucketPayload):
    year: Optional[int] = Field(default=None, ge=1900, le=9999)
    student_id: Optional[str] = Field(default=None, max_length=128)


class ReusePayload(BaseModel):
    student_id: Optional[str] = Field(default=None, max_length=128)
    year: Optional[int] = Field(default=None, ge=1900, le=9999)


class ReleasePayload(_BucketPayload):
    access_number: str = Field(..., min_length=1, max_length=64)
    cause: Literal["deleted", "flagged", "re-admitted"]
    flag_status: Optional[str] = Field(default=None, max_length=32)
    student_name: Optional[str] = Field(default=None, max_length=200)
    admission_id: Optional[str] = Field(default=None, max_length=64)


class ReconcilePayload(BaseModel):
    class_name: Optional[str] = Field(default=None, max_length=64)
    stream: Optional[str] = Field(default=None, max_length=64)
    dry_run: bool = False


# --- Helpers ---------------------------------------------------------------------

def _json_private(payload, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(content=payload, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _error_response(exc: Exception) -> JSONResponse:
    """Map allocator errors to HTTP status codes with a stable detail code."""
    detail = getattr(exc, "code", None) or str(exc) or "invalid_input"
    if isinstance(exc, NotParkedError):
        return _json_private({"error": "not_found", "detail": detail}, status_code=404)
    if isinstance(exc, (StaleStateError, ConflictError)):
        return _json_private({"error": "conflict", "detail": detail}, status_code=409)
    if isinstance(exc, AllocationExhaustedError):
        return _json_private({"error": "unavailable", "detail": detail}, status_code=503)
    if isinstance(exc, (FormatError, ValueError)):
        return _json_private({"error": "bad_request", "detail": detail}, status_code=400)
    logger.error("Unmapped admissions error: %s", exc.__class__.__name__)
    return _json_private({"error": "internal_error"}, status_code=500)


def _allocation_dict(allocation) -> dict:
    return {
        "access_number": allocation.access_number,
        "admission_id": allocation.admission_id,
        "sequence": allocation.sequence,
    }


# --- Routes ----------------------------------------------------------------------

@admissions_router.get("/api/admissions/dropped")
async def list_dropped(class_name: Optional[str] = None, stream: Optional[str] = None):
    """List parked access numbers, optionally filtered by class and stream."""
    entries = _get_service().list_dropped(class_name, stream)
    return _json_private([e.to_dict() for e in entries])


@admissions_router.post("/api/admissions/allocate")
async def allocate(payload: AllocatePayload):
    """Allocate the next access number; binds it too when `student_id` is given."""
    service = _get_service()
    try:
        if payload.student_id:
            allocation = service.admit(payload.student_id, payload.class_name, payload.stream, payload.year)
        else:
            allocation = service.allocate(payload.class_name, payload.stream, payload.year)
    except (AdmissionsError, ValueError) as exc:
        return _error_response(exc)
    return _json_private(_allocation_dict(allocation), status_code=201)


@admissions_router.post("/api/admissions/dropped/{access_number}/reuse")
async def reuse_dropped(access_number: str, payload: Optional[ReusePayload] = None):
    body = payload or ReusePayload()
    try:
        allocation = _get_service().reuse(access_number, student_id=body.student_id, year=body.year)
    except (AdmissionsError, ValueError) as exc:
        return _error_response(exc)
    return _json_private(_allocation_dict(allocation))


@admissions_router.delete("/api/admissions/dropped/{access_number}")
async def discard_dropped(access_number: str):
    try:
        _get_service().discard(access_number)
    except (AdmissionsError, ValueError) as exc:
        return _error_response(exc)
    return Response(status_code=204, headers={"Cache-Control": "private, no-store"})


@admissions_router.post("/api/admissions/release")
async def release(payload: ReleasePayload):
    """Apply the release policy for a deleted, flagged or re-admitted student."""
    snapshot = Snapshot(student_name=payload.student_name, admission_id=payload.admission_id)
    try:
        outcome = _get_service().release(
            payload.access_number,
            payload.class_name,
            payload.stream,
            payload.cause,
            snapshot,
            flag_status=payload.flag_status,
        )
    except (AdmissionsError, ValueError) as exc:
        return _error_response(exc)
    return _json_private(outcome.to_dict())


@admissions_router.post("/api/admissions/reconcile")
async def reconcile(payload: Optional[ReconcilePayload] = None):
    body = payload or ReconcilePayload()
    resolver = ReconcileService(_get_service())
    if body.dry_run:
        report = resolver.audit(body.class_name, body.stream)
    else:
        report = resolver.reconcile(body.class_name, body.stream)
    return _json_private(report.to_dict())


__all__ = ["admissions_router", "set_repo"]
