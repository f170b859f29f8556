from __future__ import annotations

import pytest

from admissions.config import load_admissions_config
from admissions.domain import class_code, dropped_reason, stream_code
from admissions.errors import FormatError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "ACCESS_NUMBER_WIDTH",
        "ACCESS_NUMBER_MAX_ATTEMPTS",
        "ADMISSIONS_BACKEND",
        "ADMISSIONS_CLASS_CODES",
        "ADMISSIONS_DATABASE_URL",
        "DATABASE_URL",
        "REGISTRAR_ENV",
    ):
        monkeypatch.delenv(name, raising=False)


def test_load_admissions_config_defaults():
    cfg = load_admissions_config()
    assert cfg.width == 2
    assert cfg.max_attempts == 5
    assert cfg.backend == "memory"
    assert cfg.class_codes["Senior 1"] == "A"
    assert cfg.class_codes["Senior 6"] == "F"
    assert cfg.database_url is None


def test_load_admissions_config_overrides(monkeypatch):
    monkeypatch.setenv("ACCESS_NUMBER_WIDTH", "4")
    monkeypatch.setenv("ACCESS_NUMBER_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("ADMISSIONS_BACKEND", "db")
    monkeypatch.setenv("ADMISSIONS_CLASS_CODES", "Form 1=P, Form 2=Q")
    monkeypatch.setenv("DATABASE_URL", "postgresql://a@b/c")
    monkeypatch.setenv("ADMISSIONS_DATABASE_URL", "postgresql://x@y/z")

    cfg = load_admissions_config()
    assert cfg.width == 4
    assert cfg.max_attempts == 3
    assert cfg.backend == "db"
    assert dict(cfg.class_codes) == {"Form 1": "P", "Form 2": "Q"}
    assert cfg.database_url == "postgresql://x@y/z"


@pytest.mark.parametrize(
    "name,value",
    [
        ("ACCESS_NUMBER_WIDTH", "0"),
        ("ACCESS_NUMBER_WIDTH", "seven"),
        ("ACCESS_NUMBER_MAX_ATTEMPTS", "51"),
        ("ADMISSIONS_BACKEND", "redis"),
        ("ADMISSIONS_CLASS_CODES", "Senior 1=AB"),
        ("ADMISSIONS_CLASS_CODES", "Senior 1=A,Senior 2=A"),
    ],
)
def test_load_admissions_config_rejects_invalid_values(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        load_admissions_config()


def test_memory_backend_is_refused_in_production(monkeypatch):
    monkeypatch.setenv("REGISTRAR_ENV", "production")
    with pytest.raises(ValueError):
        load_admissions_config()
    monkeypatch.setenv("ADMISSIONS_BACKEND", "db")
    assert load_admissions_config().backend == "db"


def test_class_and_stream_codes():
    assert class_code("Senior 3") == "C"
    assert class_code(" Senior 5 ") == "E"
    assert stream_code("A") == "A"
    assert stream_code("Arts") == "A"
    assert stream_code("sciences") == "S"


@pytest.mark.parametrize("name", ["Primary 7", "", "senior 1"])
def test_unknown_class_is_rejected(name):
    with pytest.raises(FormatError) as exc:
        class_code(name)
    assert exc.value.code == "unknown_class"


@pytest.mark.parametrize("stream", ["", "  ", "1st", "Ärzte"])
def test_invalid_stream_is_rejected(stream):
    with pytest.raises(FormatError):
        stream_code(stream)


def test_dropped_reason_text():
    assert dropped_reason("deleted") == "deleted"
    assert dropped_reason("flagged", "Expelled") == "flagged:expelled"
    assert dropped_reason("flagged") == "flagged:left"
    with pytest.raises(ValueError):
        dropped_reason("re-admitted")
