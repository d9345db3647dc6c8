from __future__ import annotations

import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Response, status
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import Session

from . import config, schemas
from .database import init_db
from .dependencies import get_db, get_usda_api_key
from .errors import InvalidInputError, StorageError, UsdaApiError
from .services import analytics
from .services.ingestion import delete_food, ingest_foods
from .services.usda_client import search_foods as search_usda_foods

# Configure logging
logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))

app = FastAPI(title="FDC Browser API", version="0.1.0")

logger = logging.getLogger(__name__)


@app.on_event("startup")
def _create_tables() -> None:
    init_db()
    logger.info("Database schema ready")


app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _bad_request(exc: InvalidInputError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def _server_error(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)


@app.get("/foods", response_model=schemas.FoodListResponse)
def list_foods(
    query: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
    db: Session = Depends(get_db),
):
    try:
        foods = analytics.list_foods(db, query=query, limit=limit, offset=offset)
    except InvalidInputError as exc:
        raise _bad_request(exc)
    except StorageError:
        raise _server_error("Failed to fetch foods")

    data = [schemas.FoodOut.model_validate(food) for food in foods]
    return schemas.FoodListResponse(count=len(data), data=data)


@app.post("/foods/search", response_model=schemas.UsdaSearchResponse)
def search_and_store_foods(
    request: schemas.UsdaSearchRequest,
    api_key: str = Depends(get_usda_api_key),
    db: Session = Depends(get_db),
):
    """Pull matching foods from FoodData Central, store them, and return the stored matches."""
    query = request.query.strip()
    if not query:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Query string is required")

    try:
        response = search_usda_foods(
            api_key,
            query,
            page_size=request.page_size,
            timeout=config.USDA_TIMEOUT_SECONDS,
        )
    except UsdaApiError as exc:
        logger.error("USDA search failed for %r: %s", query, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Failed to search USDA foods")

    result = ingest_foods(db, response.get("foods") or [], query_term=query)

    try:
        foods = analytics.list_foods(db, query=query, limit=request.page_size)
    except StorageError:
        raise _server_error("Failed to search foods")

    data = [schemas.FoodOut.model_validate(food) for food in foods]
    return schemas.UsdaSearchResponse(
        count=len(data),
        data=data,
        ingested=result.ingested,
        failed=result.failed,
    )


@app.post("/foods/ingest", response_model=schemas.IngestResponse, status_code=status.HTTP_201_CREATED)
def ingest_food_records(request: schemas.IngestRequest, db: Session = Depends(get_db)):
    if not request.foods:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Foods array is required")

    result = ingest_foods(db, request.foods, query_term=request.query_term)
    return schemas.IngestResponse(
        ingested=result.ingested,
        failed=result.failed,
        nutrients_added=result.nutrients_added,
    )


@app.delete("/foods/{fdc_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_food_record(fdc_id: int, db: Session = Depends(get_db)):
    try:
        deleted = delete_food(db, fdc_id)
    except StorageError:
        raise _server_error("Failed to delete food")

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Food not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/analytics/summary", response_model=schemas.SummaryStatsResponse)
def get_summary_stats(
    nutrient: Optional[str] = None,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
    db: Session = Depends(get_db),
):
    try:
        stats = analytics.summary_stats(db, nutrient=nutrient, min_value=min_value, max_value=max_value)
    except InvalidInputError as exc:
        raise _bad_request(exc)
    except StorageError:
        raise _server_error("Failed to fetch summary statistics")

    return schemas.SummaryStatsResponse(count=len(stats), data=stats)


@app.post("/analytics/sensitivity", response_model=schemas.SensitivityResponse)
def get_sensitivity(request: schemas.SensitivityRequest, db: Session = Depends(get_db)):
    try:
        rows = analytics.sensitivity(db, request.nutrients, food_query=request.food_query)
    except InvalidInputError as exc:
        raise _bad_request(exc)
    except StorageError:
        raise _server_error("Failed to perform sensitivity analysis")

    return schemas.SensitivityResponse(count=len(rows), data=rows)


@app.post("/analytics/sensitivity/matrix", response_model=schemas.SensitivityMatrixResponse)
def get_sensitivity_matrix(request: schemas.SensitivityRequest, db: Session = Depends(get_db)):
    """Same rows as /analytics/sensitivity, one record per food with a column per nutrient."""
    try:
        rows = analytics.sensitivity(db, request.nutrients, food_query=request.food_query)
    except InvalidInputError as exc:
        raise _bad_request(exc)
    except StorageError:
        raise _server_error("Failed to perform sensitivity analysis")

    matrix = analytics.pivot_sensitivity(rows)
    return schemas.SensitivityMatrixResponse(
        nutrients=matrix["nutrients"],
        count=len(matrix["data"]),
        data=matrix["data"],
    )


@app.get("/analytics/top-foods", response_model=schemas.TopFoodsResponse)
def get_top_foods(
    nutrient: Optional[str] = None,
    limit: int = 15,
    order: str = "desc",
    db: Session = Depends(get_db),
):
    try:
        foods = analytics.top_foods(db, nutrient, limit=limit, order=order)
    except InvalidInputError as exc:
        raise _bad_request(exc)
    except StorageError:
        raise _server_error("Failed to fetch top foods")

    return schemas.TopFoodsResponse(count=len(foods), data=foods)
