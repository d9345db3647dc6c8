from __future__ import annotations

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from . import config
from .database import get_session


def get_db() -> Session:
    with get_session() as session:
        yield session


def get_usda_api_key() -> str:
    if not config.USDA_API_KEY:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="USDA_API_KEY is not configured",
        )
    return config.USDA_API_KEY
