"""
Startup security guard tests.

Validates that production/staging environments fail fast when the dropped pool
would live in memory or the database DSN is missing or disables TLS, while
development and tests start with the in-memory repository.
"""
from __future__ import annotations

import pytest


def _clear(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("ADMISSIONS_BACKEND", "ADMISSIONS_DATABASE_URL", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)


def test_prod_refuses_in_memory_backend(monkeypatch: pytest.MonkeyPatch):
    _clear(monkeypatch)
    monkeypatch.setenv("REGISTRAR_ENV", "prod")

    from backend.web import config as cfg  # type: ignore

    with pytest.raises(SystemExit) as exc:
        cfg.ensure_secure_config_on_startup()
    assert "ADMISSIONS_BACKEND" in str(exc.value.code)


def test_prod_requires_dsn(monkeypatch: pytest.MonkeyPatch):
    _clear(monkeypatch)
    monkeypatch.setenv("REGISTRAR_ENV", "staging")
    monkeypatch.setenv("ADMISSIONS_BACKEND", "db")

    from backend.web import config as cfg  # type: ignore

    with pytest.raises(SystemExit):
        cfg.ensure_secure_config_on_startup()


def test_prod_rejects_sslmode_disable(monkeypatch: pytest.MonkeyPatch):
    _clear(monkeypatch)
    monkeypatch.setenv("REGISTRAR_ENV", "production")
    monkeypatch.setenv("ADMISSIONS_BACKEND", "db")
    monkeypatch.setenv("DATABASE_URL", "postgresql://registrar@db/postgres?sslmode=disable")

    from backend.web import config as cfg  # type: ignore

    with pytest.raises(SystemExit) as exc:
        cfg.ensure_secure_config_on_startup()
    assert "sslmode=disable" in str(exc.value.code)


def test_prod_accepts_db_backend_with_tls(monkeypatch: pytest.MonkeyPatch):
    _clear(monkeypatch)
    monkeypatch.setenv("REGISTRAR_ENV", "prod")
    monkeypatch.setenv("ADMISSIONS_BACKEND", "db")
    monkeypatch.setenv("ADMISSIONS_DATABASE_URL", "postgresql://registrar@db/postgres?sslmode=require")

    from backend.web import config as cfg  # type: ignore

    cfg.ensure_secure_config_on_startup()


@pytest.mark.parametrize("env", ["dev", "test", ""])
def test_non_prod_is_permissive(monkeypatch: pytest.MonkeyPatch, env: str):
    _clear(monkeypatch)
    monkeypatch.setenv("REGISTRAR_ENV", env)

    from backend.web import config as cfg  # type: ignore

    cfg.ensure_secure_config_on_startup()


def test_db_repo_failure_is_fatal_in_production(monkeypatch: pytest.MonkeyPatch):
    import admissions.repo_db as repo_db
    import routes.admissions as admissions_routes  # type: ignore
    from admissions.config import AdmissionsConfig

    monkeypatch.setattr(repo_db, "HAVE_PSYCOPG", False)
    monkeypatch.setenv("REGISTRAR_ENV", "prod")
    with pytest.raises(RuntimeError):
        admissions_routes._build_default_repo(AdmissionsConfig(backend="db"))


def test_db_repo_failure_falls_back_to_memory_in_dev(monkeypatch: pytest.MonkeyPatch):
    import admissions.repo_db as repo_db
    import routes.admissions as admissions_routes  # type: ignore
    from admissions.config import AdmissionsConfig
    from admissions.stores import InMemoryAccessNumberRepo

    monkeypatch.setattr(repo_db, "HAVE_PSYCOPG", False)
    monkeypatch.setenv("REGISTRAR_ENV", "dev")
    repo = admissions_routes._build_default_repo(AdmissionsConfig(backend="db"))
    assert isinstance(repo, InMemoryAccessNumberRepo)
