"""Read-only analytics over the foods / nutrients tables.

Every operation validates its arguments before opening a query, so bad input
surfaces as :class:`InvalidInputError` without touching the database. Any
SQLAlchemy failure during execution is logged and re-raised as
:class:`StorageError`. Nothing here retries.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .. import models
from ..errors import InvalidInputError, StorageError

logger = logging.getLogger(__name__)

MAX_FOOD_PAGE = 500
SUMMARY_GROUP_LIMIT = 20
SENSITIVITY_ROW_LIMIT = 100
MAX_TOP_FOODS = 100

_STAT_COLUMNS = ["avg_value", "min_value", "max_value", "std_dev", "median_value"]


def _clean_term(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _pattern(term: str) -> str:
    return f"%{term}%"


def _round2(value: Any) -> Optional[float]:
    if value is None:
        return None
    number = float(value)
    if not math.isfinite(number):
        return None
    return round(number, 2)


def list_foods(db: Session, query: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[models.Food]:
    """Return foods newest first, each with its nutrients loaded.

    ``query`` matches description or the original query term, case-insensitively.
    A blank query lists everything.
    """
    if limit < 1 or limit > MAX_FOOD_PAGE:
        raise InvalidInputError(f"limit must be between 1 and {MAX_FOOD_PAGE}")
    if offset < 0:
        raise InvalidInputError("offset must not be negative")

    term = _clean_term(query)
    stmt = select(models.Food).options(selectinload(models.Food.nutrients))
    if term is not None:
        stmt = stmt.where(
            or_(
                models.Food.description.ilike(_pattern(term)),
                models.Food.query_term.ilike(_pattern(term)),
            )
        )
    stmt = (
        stmt.order_by(models.Food.created_at.desc(), models.Food.fdc_id.desc())
        .limit(limit)
        .offset(offset)
    )

    try:
        return list(db.execute(stmt).scalars().all())
    except SQLAlchemyError as exc:
        logger.exception("Error listing foods")
        raise StorageError("Failed to fetch foods") from exc


def summary_stats(
    db: Session,
    nutrient: Optional[str] = None,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
) -> List[Dict[str, Any]]:
    """Per (nutrient_name, unit_name) statistics over non-null values.

    Filters narrow the rows before grouping. Standard deviation is the
    population one, so a group with a single value reports 0.
    """
    for label, bound in (("min_value", min_value), ("max_value", max_value)):
        if bound is not None and not math.isfinite(bound):
            raise InvalidInputError(f"{label} must be a finite number")
    if min_value is not None and max_value is not None and min_value > max_value:
        raise InvalidInputError("min_value must not be greater than max_value")

    term = _clean_term(nutrient)
    stmt = select(
        models.Nutrient.nutrient_name,
        models.Nutrient.unit_name,
        models.Nutrient.value,
    ).where(models.Nutrient.value.is_not(None))
    if term is not None:
        stmt = stmt.where(models.Nutrient.nutrient_name.ilike(_pattern(term)))
    if min_value is not None:
        stmt = stmt.where(models.Nutrient.value >= min_value)
    if max_value is not None:
        stmt = stmt.where(models.Nutrient.value <= max_value)

    try:
        rows = db.execute(stmt).all()
    except SQLAlchemyError as exc:
        logger.exception("Error getting summary stats")
        raise StorageError("Failed to fetch summary statistics") from exc

    if not rows:
        return []

    frame = pd.DataFrame([tuple(row) for row in rows], columns=["nutrient_name", "unit_name", "value"])
    frame["value"] = pd.to_numeric(frame["value"], errors="coerce")
    # Unit may be null; keep it as its own group instead of dropping the rows
    frame["unit_name"] = frame["unit_name"].fillna("")

    stats = (
        frame.groupby(["nutrient_name", "unit_name"], sort=False)
        .agg(
            food_count=("value", "count"),
            avg_value=("value", "mean"),
            min_value=("value", "min"),
            max_value=("value", "max"),
            std_dev=("value", lambda series: series.std(ddof=0)),
            median_value=("value", "median"),
        )
        .reset_index()
        .sort_values(["food_count", "nutrient_name", "unit_name"], ascending=[False, True, True])
        .head(SUMMARY_GROUP_LIMIT)
    )

    results: List[Dict[str, Any]] = []
    for record in stats.to_dict("records"):
        entry = {
            "nutrient_name": record["nutrient_name"],
            "unit_name": record["unit_name"] or None,
            "food_count": int(record["food_count"]),
        }
        for column in _STAT_COLUMNS:
            entry[column] = _round2(record[column])
        if entry["std_dev"] is None:
            entry["std_dev"] = 0.0
        results.append(entry)
    return results


def sensitivity(
    db: Session,
    nutrients: Optional[Sequence[str]],
    food_query: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Flat food x nutrient fact rows for every nutrient matching any pattern."""
    if nutrients is None or isinstance(nutrients, str):
        raise InvalidInputError("Nutrients array is required")
    patterns = [term for term in (_clean_term(item) for item in nutrients) if term is not None]
    if not patterns:
        raise InvalidInputError("Nutrients array is required")

    stmt = (
        select(
            models.Food.fdc_id,
            models.Food.description,
            models.Food.brand_owner,
            models.Food.data_type,
            models.Nutrient.nutrient_name,
            models.Nutrient.value,
            models.Nutrient.unit_name,
        )
        .join(models.Nutrient, models.Nutrient.fdc_id == models.Food.fdc_id)
        .where(or_(*(models.Nutrient.nutrient_name.ilike(_pattern(term)) for term in patterns)))
    )
    food_term = _clean_term(food_query)
    if food_term is not None:
        stmt = stmt.where(models.Food.description.ilike(_pattern(food_term)))
    stmt = stmt.order_by(
        models.Food.description,
        models.Nutrient.nutrient_name,
        models.Food.fdc_id,
    ).limit(SENSITIVITY_ROW_LIMIT)

    try:
        rows = db.execute(stmt).mappings().all()
    except SQLAlchemyError as exc:
        logger.exception("Error getting sensitivity data")
        raise StorageError("Failed to perform sensitivity analysis") from exc

    return [{**row, "value": _round2(row["value"])} for row in rows]


def pivot_sensitivity(rows: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    """Fold sensitivity rows into one record per food with a column per nutrient.

    When a food has several facts for the same nutrient the first one wins,
    matching the order the rows were returned in.
    """
    nutrient_names: List[str] = []
    foods: Dict[int, Dict[str, Any]] = {}
    for row in rows:
        name = row["nutrient_name"]
        if name not in nutrient_names:
            nutrient_names.append(name)
        entry = foods.get(row["fdc_id"])
        if entry is None:
            entry = {
                "fdc_id": row["fdc_id"],
                "description": row["description"],
                "brand_owner": row.get("brand_owner"),
                "data_type": row.get("data_type"),
                "values": {},
            }
            foods[row["fdc_id"]] = entry
        entry["values"].setdefault(name, row.get("value"))

    for entry in foods.values():
        for name in nutrient_names:
            entry["values"].setdefault(name, None)
    return {"nutrients": nutrient_names, "data": list(foods.values())}


def top_foods(
    db: Session,
    nutrient: Optional[str],
    limit: int = 15,
    order: str = "desc",
) -> List[Dict[str, Any]]:
    """The ``limit`` nutrient facts with the most extreme value in ``order``.

    Each matching fact is its own candidate, so one food can appear more than
    once when the pattern matches several nutrient names.
    """
    term = _clean_term(nutrient)
    if term is None:
        raise InvalidInputError("Nutrient parameter is required")
    if limit < 1 or limit > MAX_TOP_FOODS:
        raise InvalidInputError(f"limit must be between 1 and {MAX_TOP_FOODS}")
    direction = (order or "").strip().lower()
    if direction not in {"asc", "desc"}:
        raise InvalidInputError("order must be 'asc' or 'desc'")

    value_order = models.Nutrient.value.asc() if direction == "asc" else models.Nutrient.value.desc()
    stmt = (
        select(
            models.Food.fdc_id,
            models.Food.description,
            models.Food.brand_owner,
            models.Food.data_type,
            models.Nutrient.nutrient_name,
            models.Nutrient.value,
            models.Nutrient.unit_name,
        )
        .join(models.Nutrient, models.Nutrient.fdc_id == models.Food.fdc_id)
        .where(
            models.Nutrient.nutrient_name.ilike(_pattern(term)),
            models.Nutrient.value.is_not(None),
        )
        .order_by(value_order, models.Nutrient.id)
        .limit(limit)
    )

    try:
        rows = db.execute(stmt).mappings().all()
    except SQLAlchemyError as exc:
        logger.exception("Error getting top foods")
        raise StorageError("Failed to fetch top foods") from exc

    return [{**row, "value": _round2(row["value"])} for row in rows]


__all__ = [
    "list_foods",
    "summary_stats",
    "sensitivity",
    "pivot_sensitivity",
    "top_foods",
]
