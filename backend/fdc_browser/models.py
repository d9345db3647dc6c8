from __future__ import annotations

import datetime as dt

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
)
from sqlalchemy.orm import relationship

from .database import Base


class Food(Base):
    __tablename__ = "foods"

    fdc_id = Column(Integer, primary_key=True, autoincrement=False)  # assigned by FoodData Central
    description = Column(Text, nullable=False, index=True)
    data_type = Column(Text, nullable=True, index=True)  # Branded, Foundation, SR Legacy, ...
    publication_date = Column(Date, nullable=True)
    brand_owner = Column(Text, nullable=True)
    query_term = Column(Text, nullable=True, index=True)  # search term that produced the record
    created_at = Column(DateTime, default=dt.datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime,
        default=dt.datetime.utcnow,
        onupdate=dt.datetime.utcnow,
        nullable=False,
    )

    nutrients = relationship(
        "Nutrient",
        back_populates="food",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Nutrient.id",
    )


class Nutrient(Base):
    __tablename__ = "nutrients"
    __table_args__ = (Index("idx_nutrients_fdc_nutrient", "fdc_id", "nutrient_id"),)

    id = Column(Integer, primary_key=True)
    fdc_id = Column(Integer, ForeignKey("foods.fdc_id", ondelete="CASCADE"), nullable=False, index=True)
    nutrient_id = Column(Integer, nullable=True)
    nutrient_name = Column(Text, nullable=False, index=True)
    nutrient_number = Column(Text, nullable=True)
    unit_name = Column(Text, nullable=True)
    value = Column(Numeric(10, 3, asdecimal=False), nullable=True)
    created_at = Column(DateTime, default=dt.datetime.utcnow, nullable=False)

    food = relationship("Food", back_populates="nutrients")
