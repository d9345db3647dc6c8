from __future__ import annotations

import datetime as dt
import logging
import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..errors import StorageError
from ..schemas import FoodRecord, NutrientRecord

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    ingested: int = 0
    failed: int = 0
    nutrients_added: int = 0


def normalize(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return str(value)


def to_value(value: object) -> Optional[float]:
    """Coerce a nutrient amount to the 3-decimal fixed point the table stores."""
    try:
        if value is None or value == "":
            return None
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return round(number, 3)


def upsert_food(db: Session, record: FoodRecord, query_term: Optional[str] = None) -> models.Food:
    term = normalize(record.query_term) or normalize(query_term)
    food = db.get(models.Food, record.fdc_id)
    if food is None:
        food = models.Food(fdc_id=record.fdc_id)
        db.add(food)

    food.description = record.description.strip()
    food.data_type = normalize(record.data_type)
    food.publication_date = record.publication_date
    food.brand_owner = normalize(record.brand_owner)
    food.query_term = term
    food.updated_at = dt.datetime.utcnow()
    db.flush()
    return food


def insert_nutrient(db: Session, fdc_id: int, nutrient: NutrientRecord) -> bool:
    """Insert a nutrient fact unless an identical row already exists.

    Identity is every stored column, compared null-safely. Returns ``True``
    when a row was added.
    """
    name = normalize(nutrient.nutrient_name)
    if name is None:
        return False

    values = {
        "fdc_id": fdc_id,
        "nutrient_id": nutrient.nutrient_id,
        "nutrient_name": name,
        "nutrient_number": normalize(nutrient.nutrient_number),
        "unit_name": normalize(nutrient.unit_name),
        "value": to_value(nutrient.value),
    }
    existing = db.execute(
        select(models.Nutrient.id)
        .where(*(getattr(models.Nutrient, column).is_not_distinct_from(value) for column, value in values.items()))
        .limit(1)
    ).first()
    if existing is not None:
        return False

    db.add(models.Nutrient(**values))
    db.flush()
    return True


def ingest_food(db: Session, record: FoodRecord, query_term: Optional[str] = None) -> int:
    food = upsert_food(db, record, query_term)
    added = 0
    for nutrient in record.nutrients:
        if insert_nutrient(db, food.fdc_id, nutrient):
            added += 1
    return added


def ingest_foods(
    db: Session,
    records: Iterable[Any],
    query_term: Optional[str] = None,
) -> IngestResult:
    """Store a batch of FoodData Central records, one transaction per food.

    A record that fails validation or persistence is rolled back and counted
    in ``failed``; the rest of the batch carries on.
    """
    result = IngestResult()
    for raw in records:
        try:
            record = raw if isinstance(raw, FoodRecord) else FoodRecord.model_validate(raw)
        except ValidationError as exc:
            result.failed += 1
            logger.warning("Skipping malformed food record: %s", exc.errors()[:3])
            continue

        try:
            added = ingest_food(db, record, query_term)
            db.commit()
        except Exception:
            db.rollback()
            result.failed += 1
            logger.warning("Error storing food fdc_id=%s", record.fdc_id, exc_info=True)
            continue

        result.ingested += 1
        result.nutrients_added += added

    logger.info(
        "Ingested %d foods (%d failed, %d new nutrient rows)",
        result.ingested,
        result.failed,
        result.nutrients_added,
    )
    return result


def delete_food(db: Session, fdc_id: int) -> bool:
    """Remove a food; its nutrient rows go with it.

    Only flushes. The caller owns the transaction and must commit.
    """
    try:
        food = db.get(models.Food, fdc_id)
        if food is None:
            return False
        db.delete(food)
        db.flush()
    except SQLAlchemyError as exc:
        logger.exception("Error deleting food fdc_id=%s", fdc_id)
        raise StorageError("Failed to delete food") from exc
    return True


__all__ = [
    "IngestResult",
    "upsert_food",
    "insert_nutrient",
    "ingest_food",
    "ingest_foods",
    "delete_food",
]
