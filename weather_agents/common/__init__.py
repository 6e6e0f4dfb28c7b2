"""
Weather Agents Common Module

Shared infrastructure for the question-answering pipeline.
"""

from .config import WeatherAgentsConfig, load_config
from .clock import Clock
from .embedding_service import EmbeddingService, cosine_similarity
from .fact_store import FactStore, FactStoreError, InMemoryFactStore, JsonFileFactStore
from .llm_client import LLMClient
from .weather_provider import WeatherProvider

__all__ = [
    "WeatherAgentsConfig",
    "load_config",
    "Clock",
    "EmbeddingService",
    "cosine_similarity",
    "FactStore",
    "FactStoreError",
    "InMemoryFactStore",
    "JsonFileFactStore",
    "LLMClient",
    "WeatherProvider",
]
