"Registrar admissions service"
from __future__ import annotations

import logging
import os
import sys as _sys

from fastapi import FastAPI

try:
    from .routes.admissions import admissions_router
except ImportError:
    from routes.admissions import admissions_router  # type: ignore

# Ensure flat and package imports reference the same module instance.
if __name__ == "main":
    _sys.modules.setdefault("backend.web.main", _sys.modules[__name__])
elif __name__ == "backend.web.main":
    _sys.modules["main"] = _sys.modules[__name__]


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via REGISTRAR_ENABLE_DOTENV (default true
      outside pytest).
    """
    if "pytest" in _sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("REGISTRAR_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


try:
    from dotenv import load_dotenv
    if _should_load_dotenv():
        load_dotenv()
except ImportError:
    pass

# Minimal production safety checks (fail-fast on insecure config)
try:
    from . import config as _cfg
except ImportError:
    import config as _cfg  # type: ignore
_cfg.ensure_secure_config_on_startup()

logger = logging.getLogger("registrar.web")

app = FastAPI(title="Registrar", description="Student access-number allocation", version="0.1.0")
app.include_router(admissions_router)


@app.get("/health")
async def health():
    return {"status": "healthy"}
