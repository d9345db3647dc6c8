from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# config.py is at backend/fdc_browser/config.py
# So parents[1] = backend/
BACKEND_ROOT = Path(__file__).resolve().parents[1]

load_dotenv(override=False)


def _from_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is not None:
        stripped = value.strip()
        return stripped or None
    return None


DATABASE_URL = _from_env("DATABASE_URL") or f"sqlite:///{(BACKEND_ROOT / 'fdc_browser.db').as_posix()}"
SQL_ECHO = (_from_env("SQL_ECHO") or "false").lower() in {"1", "true", "yes"}
LOG_LEVEL = (_from_env("LOG_LEVEL") or "INFO").upper()

USDA_API_KEY = _from_env("USDA_API_KEY")
USDA_TIMEOUT_SECONDS = float(_from_env("USDA_TIMEOUT_SECONDS") or 30.0)

DEFAULT_ALLOWED_ORIGINS = {
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
}


def get_allowed_origins() -> list[str]:
    raw_origins = _from_env("CORS_ALLOW_ORIGINS")
    if not raw_origins:
        return sorted(DEFAULT_ALLOWED_ORIGINS)
    return [origin.strip() for origin in raw_origins.split(",") if origin.strip()]
