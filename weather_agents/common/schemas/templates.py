"""
Fact Text Templates

Renders weather facts to the one-line text that gets embedded.
The same numbers also live in WeatherMetadata; the text is what search sees.
"""

from datetime import date
from typing import Optional

from .weather_fact import ContentType, DayPartWeather, WeatherMetadata


UNKNOWN_LOCATION = "Unknown location"


def _num(value: float) -> str:
    """24.0 -> "24", 24.5 -> "24.5" """
    return f"{value:g}"


def _precipitation(value: Optional[float]) -> Optional[str]:
    # rendered even at 0%
    if value is None:
        return None
    return f"{_num(value)}% precipitation"


def _day_part(label: str, part: Optional[DayPartWeather]) -> Optional[str]:
    if part is None or not part.conditions:
        return None
    text = f"{label}: {part.conditions}"
    if part.precipitation_probability is not None:
        text += f" ({_num(part.precipitation_probability)}% precipitation)"
    return text


def _common_parts(meta: WeatherMetadata) -> list:
    parts = []
    if meta.conditions:
        parts.append(meta.conditions)
    if meta.temperature is not None:
        parts.append(f"{_num(meta.temperature)}°C")
    precip = _precipitation(meta.precipitation_probability)
    if precip:
        parts.append(precip)
    if meta.humidity is not None:
        parts.append(f"humidity {_num(meta.humidity)}%")
    if meta.wind_speed is not None:
        parts.append(f"wind {_num(meta.wind_speed)} m/s")
    return parts


def _daily_parts(meta: WeatherMetadata) -> list:
    parts = []
    if meta.high_temp is not None and meta.low_temp is not None:
        parts.append(f"high {_num(meta.high_temp)}°C, low {_num(meta.low_temp)}°C")
    elif meta.temperature is not None:
        parts.append(f"{_num(meta.temperature)}°C")
    if meta.conditions:
        parts.append(meta.conditions)
    precip = _precipitation(meta.precipitation_probability)
    if precip:
        parts.append(precip)
    for label, part in (("day", meta.day), ("night", meta.night)):
        rendered = _day_part(label, part)
        if rendered:
            parts.append(rendered)
    return parts


def render_fact_text(
    content_type: ContentType,
    location: str,
    forecast_date: Optional[date],
    forecast_hour: Optional[int],
    metadata: WeatherMetadata,
) -> str:
    """
    Render one fact as text, e.g.
    "Seoul 2025-06-15 14h weather: clear, 24°C, 10% precipitation".
    """
    location = location or UNKNOWN_LOCATION
    date_str = forecast_date.isoformat() if forecast_date else ""

    if content_type == ContentType.CURRENT:
        when = f"{date_str} {forecast_hour}h" if forecast_hour is not None else date_str
        head = f"{location} {when} current weather".replace("  ", " ")
        parts = _common_parts(metadata)
    elif content_type == ContentType.HOURLY:
        head = f"{location} {date_str} {forecast_hour}h weather"
        parts = _common_parts(metadata)
    elif content_type == ContentType.DAILY:
        weekday = f" ({metadata.day_of_week})" if metadata.day_of_week else ""
        head = f"{location} {date_str}{weekday} daily forecast"
        parts = _daily_parts(metadata)
    else:
        head = f"{location} {date_str} forecast"
        parts = _daily_parts(metadata) if metadata.high_temp is not None else _common_parts(metadata)

    body = ", ".join(parts) if parts else "no details"
    return f"{head.strip()}: {body}"
