"""
Configuration and startup security checks for the registrar web app.

Why: Access numbers are printed on forms and reports; an accidental in-memory
deployment would silently lose the dropped pool on restart. This module
provides a single guard that enforces minimal production safety constraints
without burdening local development.
"""
from __future__ import annotations

import os


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def ensure_secure_config_on_startup() -> None:
    """Fail fast on unsafe production configuration.

    Checks:
    - ADMISSIONS_BACKEND must be "db" in prod-like envs.
    - A DSN must be configured and must not explicitly disable TLS.
    """

    env = os.getenv("REGISTRAR_ENV", "dev")
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    backend = (os.getenv("ADMISSIONS_BACKEND", "memory") or "").strip().lower()
    if backend != "db":
        raise SystemExit("Refusing to start: ADMISSIONS_BACKEND must be 'db' in production.")

    dsn = os.getenv("ADMISSIONS_DATABASE_URL") or os.getenv("DATABASE_URL") or ""
    if not dsn:
        raise SystemExit("Refusing to start: ADMISSIONS_DATABASE_URL (or DATABASE_URL) is unset in production.")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: database DSN contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )
