from __future__ import annotations

import logging

import pytest

import admissions.repo_db as repo_db
from admissions.domain import DroppedEntry
from admissions.services.access_numbers import AccessNumbersService
from admissions.services.reconcile import ReconcileService
from admissions.stores import InMemoryAccessNumberRepo
from backend.tests.utils.fake_psycopg import install_fake_psycopg
from backend.tools import reconcile_access_numbers as cli


@pytest.fixture
def resolver() -> ReconcileService:
    repo = InMemoryAccessNumberRepo()
    repo.create_binding("AA01", "stu-1", "Senior 1", "A")
    for number, ts in (("AA01", "2025-01-01T00:00:00+00:00"), ("AA04", "2025-01-02T00:00:00+00:00"), ("AA04", "2025-01-03T00:00:00+00:00")):
        repo.add_dropped(
            DroppedEntry(
                access_number=number,
                class_name="Senior 1",
                stream="A",
                student_name=None,
                admission_id=None,
                reason="deleted",
                dropped_at=ts,
            )
        )
    return ReconcileService(AccessNumbersService(repo))


def test_parse_args_reads_dsn_from_environment(monkeypatch):
    monkeypatch.setenv("ADMISSIONS_DATABASE_URL", "postgresql://adm@db/x")
    args = cli._parse_args(["--class-name", "Senior 1", "--dry-run"])
    assert args.dsn == "postgresql://adm@db/x"
    assert args.class_name == "Senior 1"
    assert args.stream is None
    assert args.dry_run is True


def test_dry_run_logs_planned_repairs_without_writing(resolver, caplog):
    with caplog.at_level(logging.INFO, logger="registrar.tools.reconcile"):
        report = cli.run(resolver, class_name=None, stream=None, dry_run=True)
    assert report.total == 2
    assert "[dry-run] Would remove AA01" in caplog.text
    assert "2 repair(s) planned" in caplog.text
    assert len(resolver.service.repo.list_dropped()) == 3


def test_run_applies_repairs(resolver, caplog):
    with caplog.at_level(logging.INFO, logger="registrar.tools.reconcile"):
        report = cli.run(resolver, class_name="Senior 1", stream="A", dry_run=False)
    assert report.total == 2
    assert "2 repair(s) applied" in caplog.text
    assert [e.access_number for e in resolver.service.repo.list_dropped()] == ["AA04"]


def test_main_requires_dsn(monkeypatch):
    monkeypatch.delenv("ADMISSIONS_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(SystemExit) as exc:
        cli.main([])
    assert "--dsn" in str(exc.value.code)


def test_main_runs_against_database(monkeypatch):
    db = install_fake_psycopg(monkeypatch, repo_db)
    cli.main(["--dsn", "postgresql://fake", "--ensure-schema", "--dry-run"])
    assert any("create table if not exists public.student_access_bindings" in sql for sql, _ in db.statements)


def test_main_exits_nonzero_on_failure(monkeypatch, caplog):
    db = install_fake_psycopg(monkeypatch, repo_db)
    db.raise_on = "from public.dropped_access_numbers"
    db.error = RuntimeError("connection reset")
    with caplog.at_level(logging.ERROR, logger="registrar.tools.reconcile"):
        with pytest.raises(SystemExit) as exc:
            cli.main(["--dsn", "postgresql://fake"])
    assert exc.value.code == 1
    assert "nothing repaired" in caplog.text
