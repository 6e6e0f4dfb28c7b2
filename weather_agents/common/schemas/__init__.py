"""
Weather Fact Schemas

Stored weather facts and the text rendering that gets embedded.
"""

from .weather_fact import (
    ContentType,
    DayPartWeather,
    WeatherFact,
    WeatherMetadata,
    generate_fact_id,
)
from .templates import render_fact_text

__all__ = [
    "ContentType",
    "DayPartWeather",
    "WeatherFact",
    "WeatherMetadata",
    "generate_fact_id",
    "render_fact_text",
]
