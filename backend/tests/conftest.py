from __future__ import annotations

import os
from typing import Generator

import pytest

os.environ.setdefault("DATABASE_URL", "sqlite://")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from fdc_browser.database import Base, init_db  # noqa: E402
from fdc_browser.dependencies import get_db  # noqa: E402
from fdc_browser.main import app  # noqa: E402
from fdc_browser.services.ingestion import ingest_foods  # noqa: E402

APPLE = {
    "fdcId": 1,
    "description": "Apple, raw",
    "dataType": "Foundation",
    "publicationDate": "2019-04-01",
    "foodNutrients": [
        {"nutrientId": 1003, "nutrientName": "Protein", "nutrientNumber": "203", "unitName": "g", "value": 0.3},
        {"nutrientId": 1008, "nutrientName": "Energy", "nutrientNumber": "208", "unitName": "kcal", "value": 52},
    ],
}

BANANA = {
    "fdcId": 2,
    "description": "Banana, raw",
    "dataType": "Foundation",
    "brandOwner": "Fruit Co",
    "publicationDate": "2019-04-01",
    "foodNutrients": [
        {"nutrientId": 1003, "nutrientName": "Protein", "nutrientNumber": "203", "unitName": "g", "value": 1.1},
        {"nutrientId": 1008, "nutrientName": "Energy", "nutrientNumber": "208", "unitName": "kcal", "value": 89},
    ],
}


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture()
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def fruit(db_session):
    """Apple and Banana, stored in that order under the query term 'fruit'."""
    ingest_foods(db_session, [APPLE], query_term="fruit")
    ingest_foods(db_session, [BANANA], query_term="fruit")
    return db_session


@pytest.fixture()
def client(session_factory) -> Generator[TestClient, None, None]:
    def _get_test_db():
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_test_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
