"""
Weather Fact Schema

A weather fact is one previously computed weather statement for one owner.
Its text is what gets embedded; metadata mirrors the same numbers so that
answers can be formatted without re-parsing the text.
"""

import uuid
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator


# ============================================================================
# Enums
# ============================================================================

class ContentType(str, Enum):
    """Kind of weather fact"""
    CURRENT = "current"
    HOURLY = "hourly"
    DAILY = "daily"
    FORECAST = "forecast"


# ============================================================================
# Sub-models
# ============================================================================

class DayPartWeather(BaseModel):
    """Daytime or nighttime half of a daily fact"""
    conditions: str = ""
    precipitation_probability: Optional[float] = Field(default=None, ge=0, le=100)


class WeatherMetadata(BaseModel):
    """Structured fields mirrored from the fact text"""
    temperature: Optional[float] = None
    conditions: str = ""
    precipitation_probability: Optional[float] = Field(default=None, ge=0, le=100)
    humidity: Optional[float] = Field(default=None, ge=0, le=100)
    wind_speed: Optional[float] = Field(default=None, ge=0)
    high_temp: Optional[float] = None
    low_temp: Optional[float] = None
    day_of_week: str = ""
    day: Optional[DayPartWeather] = None
    night: Optional[DayPartWeather] = None


# ============================================================================
# Main Schema
# ============================================================================

NaturalKey = Tuple[str, ContentType, str, Optional[date], Optional[int]]


class WeatherFact(BaseModel):
    """
    One row of the fact store.

    At most one fact exists per natural key
    (owner, content_type, location, forecast_date, forecast_hour).
    """
    id: str = Field(default_factory=lambda: generate_fact_id())
    owner: str = Field(..., min_length=1, description="Opaque user identifier")
    content_type: ContentType
    location: str = Field(..., description="Normalized location label")
    forecast_date: Optional[date] = None
    forecast_hour: Optional[int] = Field(default=None, ge=0, le=23)
    text: str = Field(..., description="Natural-language rendering that was embedded")
    vector: List[float] = Field(default_factory=list)
    metadata: WeatherMetadata = Field(default_factory=WeatherMetadata)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def _check_hour_and_date(self) -> "WeatherFact":
        if self.content_type == ContentType.HOURLY:
            if self.forecast_hour is None:
                raise ValueError("hourly facts require forecast_hour")
        elif self.forecast_hour is not None:
            raise ValueError("forecast_hour is only allowed on hourly facts")
        if self.forecast_date is None and self.content_type != ContentType.CURRENT:
            raise ValueError(f"{self.content_type.value} facts require forecast_date")
        return self

    @property
    def natural_key(self) -> NaturalKey:
        return (
            self.owner,
            self.content_type,
            self.location,
            self.forecast_date,
            self.forecast_hour,
        )


def generate_fact_id() -> str:
    """Generate a unique fact id"""
    return f"wf_{uuid.uuid4().hex[:16]}"
