"""
Weather Provider Interface

Source of live weather records, consulted by the orchestrator only when stored
facts cannot answer a question. Concrete providers (KMA, AccuWeather, ...)
live outside this package.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List


class WeatherProvider(ABC):
    """
    Live weather data source.

    Each returned record is a dict with a "contentType" key
    ("current", "hourly", "daily" or "forecast") plus the fields that
    fact_builder.metadata_from_record understands.
    """

    @abstractmethod
    async def fetch(self, location: str, start: date, end: date) -> List[Dict[str, Any]]:
        """Records for a location between two dates, inclusive."""
