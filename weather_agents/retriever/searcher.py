"""
Searcher

Semantic search over one owner's weather facts.

Similarity is brute-force cosine over a bounded recency window, so the cost
of a query is O(window) no matter how large the store grows. Scores are
re-weighted by how close each fact's date is to the date being asked about.
Nothing is dropped for low similarity here; judging quality is the RAG
agent's job.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional

from ..common.embedding_service import EmbeddingService, cosine_similarity
from ..common.fact_store import FactStore
from ..common.schemas import ContentType, WeatherFact
from .intent_analyzer import Intent, ResponseType, content_types_for

logger = logging.getLogger("weather.retriever.searcher")

# Results returned per expected answer shape
RESPONSE_TYPE_LIMITS = {
    ResponseType.DETAILED: 10,
    ResponseType.COMPARATIVE: 8,
    ResponseType.SIMPLE: 5,
}
DEFAULT_LIMIT = 7


def search_limit_for(response_type: ResponseType) -> int:
    return RESPONSE_TYPE_LIMITS.get(response_type, DEFAULT_LIMIT)


def date_proximity_weight(fact_date: Optional[date], target_date: Optional[date]) -> float:
    """1.2 within a day of the target, 1.1 within three days, else 1.0"""
    if fact_date is None or target_date is None:
        return 1.0
    distance = abs((fact_date - target_date).days)
    if distance <= 1:
        return 1.2
    if distance <= 3:
        return 1.1
    return 1.0


@dataclass
class ScoredFact:
    """A fact with its similarity to the query"""
    fact: WeatherFact
    similarity: float     # raw cosine, [-1, 1]
    score: float          # similarity x date weight, capped at 1.0
    date_weight: float = 1.0


class Searcher:
    """
    Searches a FactStore by embedding similarity.

    Features:
    - Owner scoping (facts are never shared across owners)
    - Optional content-type filter, widened when it finds nothing
    - Date-proximity re-weighting
    """

    def __init__(
        self,
        fact_store: FactStore,
        embedding_service: EmbeddingService,
        window: int = 50,
        widen_on_empty: bool = True,
    ):
        """
        Args:
            fact_store: Source of candidate facts
            embedding_service: For embedding queries
            window: Most recent facts scored per query
            widen_on_empty: Retry without the content-type filter when it matches nothing
        """
        self._store = fact_store
        self._embedding = embedding_service
        self._window = window
        self._widen_on_empty = widen_on_empty

    async def search(
        self,
        query: str,
        owner: str,
        content_types: Optional[Iterable[ContentType]] = None,
        limit: int = DEFAULT_LIMIT,
        target_date: Optional[date] = None,
    ) -> List[ScoredFact]:
        """
        Rank an owner's facts against a query.

        Store and embedding failures are logged and produce an empty list,
        the same as finding nothing.

        Returns:
            At most `limit` results in non-increasing score order
        """
        if limit <= 0:
            return []

        types = list(content_types) if content_types else None
        try:
            candidates = await asyncio.to_thread(
                self._store.query, owner, content_types=types, limit=self._window, order_by_recency=True
            )
            if not candidates and types and self._widen_on_empty:
                logger.info("No %s facts for owner, widening to all types", [ContentType(t).value for t in types])
                candidates = await asyncio.to_thread(
                    self._store.query, owner, content_types=None, limit=self._window, order_by_recency=True
                )
            if not candidates:
                return []

            query_vector = await self._embedding.embed(query)
        except Exception as e:
            logger.error("Search failed: %s", e, exc_info=True)
            return []

        scored = []
        for fact in candidates:
            if not fact.vector:
                continue
            try:
                similarity = cosine_similarity(query_vector, fact.vector)
            except ValueError as e:
                logger.warning("Skipping fact %s: %s", fact.id, e)
                continue
            weight = date_proximity_weight(fact.forecast_date, target_date)
            scored.append(
                ScoredFact(
                    fact=fact,
                    similarity=similarity,
                    score=min(similarity * weight, 1.0),
                    date_weight=weight,
                )
            )

        # Stable sort keeps recency order among equal scores
        scored.sort(key=lambda r: r.score, reverse=True)
        results = scored[:limit]

        logger.info(
            "Scored %d/%d candidates, returning %d (top score %.3f)",
            len(scored), len(candidates), len(results), results[0].score if results else 0.0,
        )
        return results

    async def search_for_intent(
        self,
        intent: Intent,
        owner: str,
        limit: Optional[int] = None,
        content_types: Optional[Iterable[ContentType]] = None,
    ) -> List[ScoredFact]:
        """Search sized and filtered by an Intent."""
        if content_types is None:
            content_types = intent.suggested_data_types or content_types_for(intent.timeframe)
        return await self.search(
            intent.question,
            owner,
            content_types=content_types,
            limit=limit if limit is not None else search_limit_for(intent.expected_response_type),
            target_date=intent.specific_date,
        )
