"""
Admissions configuration parsing and validation.

Intent:
    Provide a single place to read environment variables that control the
    access-number width, the retry budget, the class code map and the
    repository backend used by the web adapter.

Why:
    Centralising configuration keeps validation and defaults explicit and lets
    tests exercise config behaviour without booting the web app.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import os
from typing import Dict, Mapping, Optional

from .codec import DEFAULT_WIDTH
from .domain import DEFAULT_CLASS_CODES


@dataclass(frozen=True)
class AdmissionsConfig:
    width: int = DEFAULT_WIDTH
    max_attempts: int = 5
    backend: str = "memory"  # "memory" | "db"
    class_codes: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_CLASS_CODES))
    database_url: Optional[str] = None


def _int_env(name: str, default: int, *, low: int, high: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value < low or value > high:
        raise ValueError(f"{name} out of range ({low}..{high}), got: {value}")
    return value


def _parse_class_codes(raw: Optional[str]) -> Dict[str, str]:
    """Parse ``"Senior 1=A,Senior 2=B"`` into a mapping."""
    if raw is None or not raw.strip():
        return dict(DEFAULT_CLASS_CODES)
    codes: Dict[str, str] = {}
    for item in raw.split(","):
        if not item.strip():
            continue
        name, sep, code = item.partition("=")
        name, code = name.strip(), code.strip().upper()
        if not sep or not name or len(code) != 1 or not ("A" <= code <= "Z"):
            raise ValueError(f"ADMISSIONS_CLASS_CODES entry is invalid: {item.strip()!r}")
        codes[name] = code
    if len(set(codes.values())) != len(codes):
        raise ValueError("ADMISSIONS_CLASS_CODES must map each class to a distinct letter")
    return codes


def is_prod_like() -> bool:
    env = (os.getenv("REGISTRAR_ENV") or "dev").lower()
    return env in {"prod", "production", "stage", "staging"}


def load_admissions_config() -> AdmissionsConfig:
    """
    Parse and validate admissions configuration from environment variables.

    Behavior:
        - `ACCESS_NUMBER_WIDTH` (1..6, default 2) and `ACCESS_NUMBER_MAX_ATTEMPTS`
          (1..50, default 5).
        - `ADMISSIONS_BACKEND` selects "memory" or "db" (default: memory);
          the in-memory backend is refused in production/staging.
        - `ADMISSIONS_DATABASE_URL` wins over `DATABASE_URL`.
    """
    width = _int_env("ACCESS_NUMBER_WIDTH", DEFAULT_WIDTH, low=1, high=6)
    attempts = _int_env("ACCESS_NUMBER_MAX_ATTEMPTS", 5, low=1, high=50)

    backend = (os.getenv("ADMISSIONS_BACKEND") or "memory").strip().lower()
    if backend not in {"memory", "db"}:
        raise ValueError("ADMISSIONS_BACKEND must be 'memory' or 'db'")
    if backend == "memory" and is_prod_like():
        raise ValueError("ADMISSIONS_BACKEND=memory is not allowed in production/staging environments.")

    class_codes = _parse_class_codes(os.getenv("ADMISSIONS_CLASS_CODES"))
    dsn = os.getenv("ADMISSIONS_DATABASE_URL") or os.getenv("DATABASE_URL") or None

    return AdmissionsConfig(
        width=width,
        max_attempts=attempts,
        backend=backend,
        class_codes=class_codes,
        database_url=dsn,
    )


__all__ = ["AdmissionsConfig", "is_prod_like", "load_admissions_config"]
