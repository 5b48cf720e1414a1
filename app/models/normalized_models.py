"""Staylytics - Normalized Report Models (Universal Schema).

Every connector normalizes upstream rows into ``MetricRecord``. Overview
reports return one record, breakdown reports return a list.
"""

import math
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field as PydanticField, field_validator, model_validator
from sqlmodel import SQLModel, Field, UniqueConstraint


# ─────────────────────────────────────────────
# DATABASE MODEL - Short-lived report cache
# ─────────────────────────────────────────────


class ReportCacheEntry(SQLModel, table=True):
    """Normalized report payload kept for ``report_cache_ttl_seconds``."""

    __tablename__ = "report_cache"
    __table_args__ = (UniqueConstraint("cache_key", name="uq_report_cache_key"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    cache_key: str = Field(index=True, description="Hash of the request identity")
    project_id: str = Field(index=True)
    source: str = Field(index=True)
    report: str = Field(default="")
    payload_json: str = Field(description="Serialized ReportResult.data")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    expires_at: datetime = Field(index=True)


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS
# ─────────────────────────────────────────────


def _finite(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


class ReportKind(str, Enum):
    OVERVIEW = "overview"
    BREAKDOWN = "breakdown"


class DateRange(BaseModel):
    """Inclusive calendar-day window."""

    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.start_date > self.end_date:
            raise ValueError("start_date must be on or before end_date")
        return self

    @property
    def days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date

    def as_strings(self) -> tuple[str, str]:
        return self.start_date.isoformat(), self.end_date.isoformat()


class MetricRecord(BaseModel):
    """One normalized row: a label, numeric measures and descriptive attributes."""

    label: str
    dimensions: Dict[str, str] = PydanticField(default_factory=dict)
    measures: Dict[str, float] = PydanticField(default_factory=dict)
    change_pct: Optional[Dict[str, float]] = None
    attributes: Dict[str, Any] = PydanticField(default_factory=dict)

    @field_validator("measures", mode="before")
    @classmethod
    def _coerce_measures(cls, value: Any) -> Dict[str, float]:
        return {str(k): _finite(v) for k, v in (value or {}).items()}

    @field_validator("dimensions", mode="before")
    @classmethod
    def _coerce_dimensions(cls, value: Any) -> Dict[str, str]:
        return {str(k): "" if v is None else str(v) for k, v in (value or {}).items()}

    def measure(self, name: str) -> float:
        return self.measures.get(name, 0.0)


class Resource(BaseModel):
    """An upstream entity a project can report on."""

    id: str
    display_name: str
    metadata: Dict[str, Any] = PydanticField(default_factory=dict)


class TokenSet(BaseModel):
    """Result of a code exchange or refresh."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


ReportData = Union[MetricRecord, List[MetricRecord]]


class ReportResult(BaseModel):
    """Envelope returned by the report endpoint."""

    status: str = "success"
    source: str
    report: str
    kind: ReportKind
    resource_id: str
    start_date: date
    end_date: date
    compare_start_date: Optional[date] = None
    compare_end_date: Optional[date] = None
    cached: bool = False
    data: ReportData
