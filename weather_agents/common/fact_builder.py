"""
Fact Builder

Builds WeatherFacts from provider records (the dicts a WeatherProvider returns).

Rules:
- Text is rendered deterministically from metadata, then embedded once
- Provider key spellings (camelCase or snake_case) are both accepted
- Only hourly facts keep an hour
"""

import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from .embedding_service import EmbeddingService
from .fact_store import FactStore
from .schemas import ContentType, DayPartWeather, WeatherFact, WeatherMetadata, render_fact_text

logger = logging.getLogger("weather.common.fact_builder")


# Provider field name -> metadata field name
_FIELD_ALIASES = {
    "temperature": "temperature",
    "temp": "temperature",
    "conditions": "conditions",
    "weatherConditions": "conditions",
    "weather_conditions": "conditions",
    "precipitationProbability": "precipitation_probability",
    "precipitation_probability": "precipitation_probability",
    "rainProbability": "precipitation_probability",
    "humidity": "humidity",
    "windSpeed": "wind_speed",
    "wind_speed": "wind_speed",
    "highTemp": "high_temp",
    "high_temp": "high_temp",
    "lowTemp": "low_temp",
    "low_temp": "low_temp",
    "dayOfWeek": "day_of_week",
    "day_of_week": "day_of_week",
}

_DAY_PART_KEYS = {
    "day": ("dayWeather", "day_weather", "day"),
    "night": ("nightWeather", "night_weather", "night"),
}


def _parse_day_part(raw: Any) -> Optional[DayPartWeather]:
    if not isinstance(raw, dict):
        return None
    precip = raw.get("precipitationProbability", raw.get("precipitation_probability"))
    return DayPartWeather(
        conditions=str(raw.get("conditions") or ""),
        precipitation_probability=precip,
    )


def metadata_from_record(record: Dict[str, Any]) -> WeatherMetadata:
    """Map a provider record onto WeatherMetadata."""
    values: Dict[str, Any] = {}
    for key, value in record.items():
        target = _FIELD_ALIASES.get(key)
        # first spelling wins, e.g. precipitationProbability over rainProbability
        if target and value is not None and target not in values:
            values[target] = value

    if "conditions" in values:
        values["conditions"] = str(values["conditions"])
    if "day_of_week" in values:
        values["day_of_week"] = str(values["day_of_week"])

    for part, keys in _DAY_PART_KEYS.items():
        for key in keys:
            parsed = _parse_day_part(record.get(key))
            if parsed:
                values[part] = parsed
                break

    return WeatherMetadata(**values)


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def render_fact(
    owner: str,
    content_type: ContentType,
    record: Dict[str, Any],
    location: Optional[str] = None,
) -> WeatherFact:
    """Build a fact from a provider record, without a vector."""
    content_type = ContentType(content_type)
    location = location or record.get("locationName") or record.get("location") or ""
    forecast_date = _parse_date(record.get("forecastDate", record.get("forecast_date")))
    hour = record.get("forecastHour", record.get("forecast_hour"))
    forecast_hour = int(hour) if content_type == ContentType.HOURLY and hour is not None else None
    metadata = metadata_from_record(record)

    text = render_fact_text(content_type, location, forecast_date, forecast_hour, metadata)
    return WeatherFact(
        owner=owner,
        content_type=content_type,
        location=location,
        forecast_date=forecast_date,
        forecast_hour=forecast_hour,
        text=text,
        metadata=metadata,
    )


class FactBuilder:
    """
    Builds and stores weather facts.

    Usage:
        builder = FactBuilder(embedding_service)
        fact = await builder.build("user-1", ContentType.HOURLY, record, location="Seoul")
    """

    def __init__(self, embedding_service: EmbeddingService):
        self._embedding = embedding_service

    def render(
        self,
        owner: str,
        content_type: ContentType,
        record: Dict[str, Any],
        location: Optional[str] = None,
    ) -> WeatherFact:
        """Build a fact without a vector."""
        return render_fact(owner, content_type, record, location)

    async def build(
        self,
        owner: str,
        content_type: ContentType,
        record: Dict[str, Any],
        location: Optional[str] = None,
    ) -> WeatherFact:
        """Build a fact and embed its text."""
        fact = self.render(owner, content_type, record, location)
        fact.vector = await self._embedding.embed(fact.text)
        return fact

    async def ingest(
        self,
        store: FactStore,
        owner: str,
        content_type: ContentType,
        records: Iterable[Dict[str, Any]],
        location: Optional[str] = None,
    ) -> List[str]:
        """
        Build and upsert a batch of records.

        Records whose natural key is already stored are not re-embedded.

        Returns:
            Stored ids, one per record, in input order
        """
        ids = []
        for record in records:
            fact = self.render(owner, content_type, record, location)
            existing = [
                f for f in store.latest(owner, fact.location, fact.content_type, limit=0)
                if f.natural_key == fact.natural_key
            ]
            if existing:
                ids.append(existing[0].id)
                continue
            fact.vector = await self._embedding.embed(fact.text)
            ids.append(store.upsert(fact))

        logger.info("Ingested %d %s records for %s", len(ids), ContentType(content_type).value, owner)
        return ids
