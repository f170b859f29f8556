"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors), and put
backend/ and backend/web on sys.path so tests import modules the way the
Docker image does.
"""
import os
import sys
from pathlib import Path

import pytest

# Load .env only when E2E suite is explicit enabled.
try:
    from dotenv import load_dotenv  # type: ignore
    if os.getenv("RUN_E2E", "0") == "1":
        load_dotenv()
except Exception:
    pass

# Never boot the web app with production guards under pytest.
os.environ["REGISTRAR_ENV"] = "test"
os.environ.pop("ADMISSIONS_BACKEND", None)

REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
WEB_DIR = BACKEND_DIR / "web"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(REPO_ROOT), str(BACKEND_DIR), str(WEB_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_admissions_repo_between_tests():
    """Give every test a fresh in-memory access-number repository.

    Tests that need the Postgres repo build their own and skip when the
    database is unreachable.
    """
    try:
        import routes.admissions as admissions  # type: ignore
        from admissions.config import AdmissionsConfig
        from admissions.stores import InMemoryAccessNumberRepo
    except Exception:
        yield
        return
    admissions.set_repo(InMemoryAccessNumberRepo(), AdmissionsConfig())
    yield
