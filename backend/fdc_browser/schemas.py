from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Food.fdc_id and Nutrient.nutrient_id are INTEGER columns (32-bit on PostgreSQL)
MAX_SQL_INTEGER = 2**31 - 1


# Ingestion payloads (FoodData Central uses camelCase, stored rows use snake_case)
class NutrientRecord(BaseModel):
    nutrient_id: Optional[int] = Field(
        default=None, ge=0, le=MAX_SQL_INTEGER, validation_alias=AliasChoices("nutrient_id", "nutrientId")
    )
    nutrient_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("nutrient_name", "nutrientName")
    )
    nutrient_number: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("nutrient_number", "nutrientNumber")
    )
    unit_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("unit_name", "unitName"))
    value: Optional[float] = None

    @field_validator("nutrient_number", mode="before")
    @classmethod
    def _number_as_text(cls, value: object) -> object:
        if isinstance(value, (int, float)):
            return str(value)
        return value


class FoodRecord(BaseModel):
    fdc_id: int = Field(ge=1, le=MAX_SQL_INTEGER, validation_alias=AliasChoices("fdc_id", "fdcId"))
    description: str = Field(min_length=1)
    data_type: Optional[str] = Field(default=None, validation_alias=AliasChoices("data_type", "dataType"))
    publication_date: Optional[dt.date] = Field(
        default=None, validation_alias=AliasChoices("publication_date", "publicationDate")
    )
    brand_owner: Optional[str] = Field(default=None, validation_alias=AliasChoices("brand_owner", "brandOwner"))
    query_term: Optional[str] = Field(default=None, validation_alias=AliasChoices("query_term", "queryTerm"))
    nutrients: List[NutrientRecord] = Field(
        default_factory=list, validation_alias=AliasChoices("nutrients", "foodNutrients")
    )

    @field_validator("publication_date", mode="before")
    @classmethod
    def _parse_date(cls, value: object) -> object:
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                return None
            # foods/list returns M/D/YYYY, foods/search returns ISO dates
            if "/" in stripped:
                return dt.datetime.strptime(stripped, "%m/%d/%Y").date()
            return stripped
        return value


class IngestRequest(BaseModel):
    foods: List[Any]
    query_term: Optional[str] = None


class IngestResponse(BaseModel):
    success: bool = True
    ingested: int
    failed: int
    nutrients_added: int


class UsdaSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    page_size: int = Field(default=25, ge=1, le=200, validation_alias=AliasChoices("page_size", "pageSize"))


# Analytics outputs
class NutrientOut(BaseModel):
    nutrient_name: str
    value: Optional[float] = None
    unit_name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class FoodOut(BaseModel):
    fdc_id: int
    description: str
    data_type: Optional[str] = None
    publication_date: Optional[dt.date] = None
    brand_owner: Optional[str] = None
    query_term: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    nutrients: List[NutrientOut] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class FoodListResponse(BaseModel):
    success: bool = True
    count: int
    data: List[FoodOut]


class UsdaSearchResponse(FoodListResponse):
    ingested: int
    failed: int


class SummaryStatsOut(BaseModel):
    nutrient_name: str
    unit_name: Optional[str] = None
    food_count: int
    avg_value: float
    min_value: float
    max_value: float
    std_dev: float
    median_value: float


class SummaryStatsResponse(BaseModel):
    success: bool = True
    count: int
    data: List[SummaryStatsOut]


class SensitivityRequest(BaseModel):
    nutrients: List[str] = Field(default_factory=list)
    food_query: Optional[str] = Field(default=None, validation_alias=AliasChoices("food_query", "foodQuery"))


class SensitivityRow(BaseModel):
    fdc_id: int
    description: str
    brand_owner: Optional[str] = None
    data_type: Optional[str] = None
    nutrient_name: str
    value: Optional[float] = None
    unit_name: Optional[str] = None


class SensitivityResponse(BaseModel):
    success: bool = True
    count: int
    data: List[SensitivityRow]


class SensitivityMatrixRow(BaseModel):
    fdc_id: int
    description: str
    brand_owner: Optional[str] = None
    data_type: Optional[str] = None
    values: Dict[str, Optional[float]]


class SensitivityMatrixResponse(BaseModel):
    success: bool = True
    nutrients: List[str]
    count: int
    data: List[SensitivityMatrixRow]


class TopFoodOut(BaseModel):
    fdc_id: int
    description: str
    brand_owner: Optional[str] = None
    data_type: Optional[str] = None
    nutrient_name: str
    value: float
    unit_name: Optional[str] = None


class TopFoodsResponse(BaseModel):
    success: bool = True
    count: int
    data: List[TopFoodOut]
