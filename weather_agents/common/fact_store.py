"""
Fact Store

Per-owner storage of embedded weather facts.

Ingestion is idempotent on the natural key
(owner, content_type, location, forecast_date, forecast_hour): writing a fact
whose key already exists returns the stored row's id and leaves it untouched.
Reads are always scoped to exactly one owner.

Two implementations:
- InMemoryFactStore: process-local, used by tests and short-lived tools
- JsonFileFactStore: persisted to ~/.weather-agents/facts.json
"""

import json
import logging
import threading
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .schemas import ContentType, WeatherFact
from .schemas.weather_fact import NaturalKey

logger = logging.getLogger("weather.common.fact_store")


class FactStoreError(Exception):
    """Fact store could not be read or written"""


class FactStore(ABC):
    """Interface consumed by the Retriever and the ingestion path."""

    @abstractmethod
    def query(
        self,
        owner: str,
        content_types: Optional[Iterable[ContentType]] = None,
        limit: int = 50,
        order_by_recency: bool = True,
    ) -> List[WeatherFact]:
        """Facts for one owner, optionally filtered by content type."""

    @abstractmethod
    def upsert(self, fact: WeatherFact) -> str:
        """Insert a fact unless its natural key exists; return the stored id."""

    @abstractmethod
    def get(self, fact_id: str) -> Optional[WeatherFact]:
        ...

    @abstractmethod
    def prune(
        self,
        older_than_days: int = 30,
        now: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> int:
        """Delete facts created more than N days ago; return how many.

        With dry_run, nothing is deleted and the count is what would be.
        """

    @abstractmethod
    def stats(self, owner: Optional[str] = None) -> Dict[str, Any]:
        ...

    def latest(
        self,
        owner: str,
        location: str,
        content_type: Optional[ContentType] = None,
        limit: int = 5,
    ) -> List[WeatherFact]:
        """Most recent facts for one owner and location; limit 0 means all."""
        types = [content_type] if content_type else None
        facts = self.query(owner, content_types=types, limit=0, order_by_recency=True)
        matching = [f for f in facts if f.location == location]
        return matching[:limit] if limit > 0 else matching


class InMemoryFactStore(FactStore):
    """Fact store held in process memory."""

    def __init__(self, facts: Optional[Iterable[WeatherFact]] = None):
        self._lock = threading.RLock()
        self._facts: Dict[str, WeatherFact] = {}
        self._by_key: Dict[NaturalKey, str] = {}
        for fact in facts or []:
            self.upsert(fact)

    def _ensure_loaded(self) -> None:
        pass

    def _persist(self) -> None:
        pass

    def __len__(self) -> int:
        with self._lock:
            self._ensure_loaded()
            return len(self._facts)

    def query(
        self,
        owner: str,
        content_types: Optional[Iterable[ContentType]] = None,
        limit: int = 50,
        order_by_recency: bool = True,
    ) -> List[WeatherFact]:
        """
        Args:
            owner: Only this owner's facts are returned
            content_types: Restrict to these types (None = all)
            limit: Maximum rows returned; 0 or less means no bound
            order_by_recency: Newest created_at first
        """
        wanted = {ContentType(t) for t in content_types} if content_types else None
        with self._lock:
            self._ensure_loaded()
            rows = [
                f for f in self._facts.values()
                if f.owner == owner and (wanted is None or f.content_type in wanted)
            ]

        if order_by_recency:
            rows.sort(key=lambda f: f.created_at, reverse=True)
        if limit and limit > 0:
            rows = rows[:limit]
        return rows

    def upsert(self, fact: WeatherFact) -> str:
        with self._lock:
            self._ensure_loaded()
            existing_id = self._by_key.get(fact.natural_key)
            if existing_id is not None:
                logger.debug("Fact %s already stored as %s", fact.natural_key, existing_id)
                return existing_id

            self._facts[fact.id] = fact
            self._by_key[fact.natural_key] = fact.id
            try:
                self._persist()
            except FactStoreError:
                del self._facts[fact.id]
                del self._by_key[fact.natural_key]
                raise
            return fact.id

    def get(self, fact_id: str) -> Optional[WeatherFact]:
        with self._lock:
            self._ensure_loaded()
            return self._facts.get(fact_id)

    def prune(
        self,
        older_than_days: int = 30,
        now: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> int:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=older_than_days)
        with self._lock:
            self._ensure_loaded()
            stale = [f for f in self._facts.values() if f.created_at < cutoff]
            if dry_run:
                return len(stale)
            for fact in stale:
                del self._facts[fact.id]
                self._by_key.pop(fact.natural_key, None)
            if stale:
                try:
                    self._persist()
                except FactStoreError:
                    for fact in stale:
                        self._facts[fact.id] = fact
                        self._by_key[fact.natural_key] = fact.id
                    raise

        logger.info("Pruned %d facts older than %d days", len(stale), older_than_days)
        return len(stale)

    def stats(self, owner: Optional[str] = None) -> Dict[str, Any]:
        """
        Totals by content type and by location, plus the last write time.
        """
        with self._lock:
            self._ensure_loaded()
            rows = [f for f in self._facts.values() if owner is None or f.owner == owner]

        last_updated = max((f.created_at for f in rows), default=None)
        return {
            "total": len(rows),
            "by_content_type": dict(Counter(f.content_type.value for f in rows)),
            "by_location": dict(Counter(f.location for f in rows)),
            "last_updated": last_updated.isoformat() if last_updated else None,
        }


class JsonFileFactStore(InMemoryFactStore):
    """
    Fact store persisted as a JSON list of facts.

    The file is read on first access and rewritten after every mutation.
    Vectors are stored inline, so keep it to one user's worth of facts.
    """

    def __init__(self, path: Optional[Path] = None):
        from .config import FACT_STORE_PATH

        self._path = Path(path) if path else FACT_STORE_PATH
        self._loaded = False
        super().__init__()

    @property
    def path(self) -> Path:
        return self._path

    def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        self._loaded = True
        if not self._path.exists():
            return

        try:
            with open(self._path, encoding="utf-8") as f:
                data = json.load(f)
            facts = [WeatherFact.model_validate(item) for item in data]
        except (json.JSONDecodeError, OSError, ValueError) as e:
            self._loaded = False
            raise FactStoreError(f"Failed to load fact store {self._path}: {e}") from e

        for fact in facts:
            if fact.natural_key in self._by_key:
                continue
            self._facts[fact.id] = fact
            self._by_key[fact.natural_key] = fact.id
        logger.info("Loaded %d facts from %s", len(self._facts), self._path)

    def _persist(self) -> None:
        data = [fact.model_dump(mode="json") for fact in self._facts.values()]
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False)
            tmp_path.replace(self._path)
        except OSError as e:
            raise FactStoreError(f"Failed to write fact store {self._path}: {e}") from e
