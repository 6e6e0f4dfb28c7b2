"""
Tests for the Fact Store

Idempotent upsert on the natural key, owner scoping, pruning, stats, and
JSON persistence.
"""

import json
import pytest
from datetime import date, datetime, timedelta, timezone


def make_fact(owner="user-1", content_type="hourly", location="Seoul", day=date(2025, 6, 15),
              hour=14, created_at=None, vector=None, text=None):
    from weather_agents.common.schemas import ContentType, WeatherFact, WeatherMetadata

    content_type = ContentType(content_type)
    kwargs = {}
    if created_at is not None:
        kwargs["created_at"] = created_at
    return WeatherFact(
        owner=owner,
        content_type=content_type,
        location=location,
        forecast_date=day,
        forecast_hour=hour if content_type == ContentType.HOURLY else None,
        text=text or f"{location} {day} {hour}h weather: clear, 24°C",
        vector=vector or [1.0, 0.0],
        metadata=WeatherMetadata(temperature=24, conditions="clear"),
        **kwargs,
    )


class TestWeatherFact:
    def test_hourly_requires_hour(self):
        from weather_agents.common.schemas import WeatherFact
        with pytest.raises(ValueError):
            WeatherFact(owner="u", content_type="hourly", location="Seoul",
                        forecast_date=date(2025, 6, 15), text="x")

    def test_daily_rejects_hour(self):
        from weather_agents.common.schemas import WeatherFact
        with pytest.raises(ValueError):
            WeatherFact(owner="u", content_type="daily", location="Seoul",
                        forecast_date=date(2025, 6, 15), forecast_hour=3, text="x")

    def test_current_allows_missing_date(self):
        from weather_agents.common.schemas import WeatherFact
        fact = WeatherFact(owner="u", content_type="current", location="Seoul", text="x")
        assert fact.forecast_date is None
        assert fact.id.startswith("wf_")

    def test_hour_out_of_range(self):
        with pytest.raises(ValueError):
            make_fact(hour=24)

    def test_naive_created_at_is_utc(self):
        fact = make_fact(created_at=datetime(2025, 6, 1, 12, 0))
        assert fact.created_at.tzinfo is not None
        assert fact.created_at.utcoffset() == timedelta(0)

    def test_empty_owner_rejected(self):
        with pytest.raises(ValueError):
            make_fact(owner="")


class TestInMemoryFactStore:
    @pytest.fixture
    def store(self):
        from weather_agents.common.fact_store import InMemoryFactStore
        return InMemoryFactStore()

    def test_upsert_returns_id(self, store):
        fact = make_fact()
        assert store.upsert(fact) == fact.id
        assert store.get(fact.id) is fact

    def test_upsert_is_idempotent_on_natural_key(self, store):
        first = make_fact(text="first")
        second = make_fact(text="second")
        assert first.id != second.id

        first_id = store.upsert(first)
        second_id = store.upsert(second)

        assert first_id == second_id == first.id
        assert len(store) == 1
        assert store.get(first_id).text == "first"

    def test_different_hours_are_different_facts(self, store):
        store.upsert(make_fact(hour=14))
        store.upsert(make_fact(hour=15))
        assert len(store) == 2

    def test_query_is_owner_scoped(self, store):
        store.upsert(make_fact(owner="alice"))
        store.upsert(make_fact(owner="bob"))

        rows = store.query("alice")
        assert len(rows) == 1
        assert rows[0].owner == "alice"
        assert store.query("carol") == []

    def test_query_filters_content_types(self, store):
        from weather_agents.common.schemas import ContentType
        store.upsert(make_fact(content_type="hourly"))
        store.upsert(make_fact(content_type="daily"))
        store.upsert(make_fact(content_type="forecast"))

        rows = store.query("user-1", content_types=[ContentType.DAILY, "forecast"])
        assert {r.content_type for r in rows} == {ContentType.DAILY, ContentType.FORECAST}

    def test_query_orders_by_recency_and_limits(self, store):
        now = datetime(2025, 6, 15, tzinfo=timezone.utc)
        for i in range(5):
            store.upsert(make_fact(hour=i, created_at=now - timedelta(hours=i)))

        rows = store.query("user-1", limit=3)
        assert [r.forecast_hour for r in rows] == [0, 1, 2]
        assert len(store.query("user-1", limit=0)) == 5

    def test_latest_filters_location(self, store):
        from weather_agents.common.schemas import ContentType
        store.upsert(make_fact(location="Seoul", hour=1))
        store.upsert(make_fact(location="Busan", hour=1))
        store.upsert(make_fact(location="Seoul", hour=2))

        assert len(store.latest("user-1", "Seoul")) == 2
        assert len(store.latest("user-1", "Seoul", limit=1)) == 1
        assert store.latest("user-1", "Seoul", ContentType.DAILY) == []

    def test_prune_removes_old_facts(self, store):
        now = datetime(2025, 6, 30, tzinfo=timezone.utc)
        old = make_fact(hour=1, created_at=now - timedelta(days=40))
        fresh = make_fact(hour=2, created_at=now - timedelta(days=2))
        store.upsert(old)
        store.upsert(fresh)

        assert store.prune(older_than_days=30, now=now) == 1
        assert store.get(old.id) is None
        assert store.get(fresh.id) is not None

    def test_prune_frees_natural_key(self, store):
        now = datetime(2025, 6, 30, tzinfo=timezone.utc)
        store.upsert(make_fact(created_at=now - timedelta(days=40)))
        store.prune(older_than_days=30, now=now)

        replacement = make_fact(text="refreshed")
        assert store.upsert(replacement) == replacement.id

    def test_prune_dry_run_keeps_facts(self, store):
        now = datetime(2025, 6, 30, tzinfo=timezone.utc)
        store.upsert(make_fact(created_at=now - timedelta(days=40)))

        assert store.prune(older_than_days=30, now=now, dry_run=True) == 1
        assert len(store) == 1

    def test_stats(self, store):
        store.upsert(make_fact(owner="alice", content_type="hourly", location="Seoul"))
        store.upsert(make_fact(owner="alice", content_type="daily", location="Busan"))
        store.upsert(make_fact(owner="bob", content_type="daily", location="Seoul"))

        stats = store.stats("alice")
        assert stats["total"] == 2
        assert stats["by_content_type"] == {"hourly": 1, "daily": 1}
        assert stats["by_location"] == {"Seoul": 1, "Busan": 1}
        assert stats["last_updated"] is not None
        assert store.stats()["total"] == 3

    def test_stats_empty(self, store):
        assert store.stats() == {
            "total": 0, "by_content_type": {}, "by_location": {}, "last_updated": None,
        }


class TestJsonFileFactStore:
    def test_persists_across_instances(self, tmp_path):
        from weather_agents.common.fact_store import JsonFileFactStore
        path = tmp_path / "facts.json"
        fact = make_fact(vector=[0.25, 0.75])

        JsonFileFactStore(path).upsert(fact)
        reloaded = JsonFileFactStore(path)

        stored = reloaded.get(fact.id)
        assert stored is not None
        assert stored.vector == [0.25, 0.75]
        assert stored.natural_key == fact.natural_key
        assert stored.metadata.temperature == 24

    def test_idempotent_after_reload(self, tmp_path):
        from weather_agents.common.fact_store import JsonFileFactStore
        path = tmp_path / "facts.json"
        original = make_fact()
        JsonFileFactStore(path).upsert(original)

        assert JsonFileFactStore(path).upsert(make_fact(text="dup")) == original.id
        assert len(json.loads(path.read_text(encoding="utf-8"))) == 1

    def test_missing_file_is_empty(self, tmp_path):
        from weather_agents.common.fact_store import JsonFileFactStore
        store = JsonFileFactStore(tmp_path / "nope.json")
        assert len(store) == 0
        assert not (tmp_path / "nope.json").exists()

    def test_corrupt_file_raises(self, tmp_path):
        from weather_agents.common.fact_store import FactStoreError, JsonFileFactStore
        path = tmp_path / "facts.json"
        path.write_text("[{not json", encoding="utf-8")

        with pytest.raises(FactStoreError):
            JsonFileFactStore(path).query("user-1")

    def test_prune_rewrites_file(self, tmp_path):
        from weather_agents.common.fact_store import JsonFileFactStore
        path = tmp_path / "facts.json"
        now = datetime(2025, 6, 30, tzinfo=timezone.utc)
        store = JsonFileFactStore(path)
        store.upsert(make_fact(hour=1, created_at=now - timedelta(days=40)))
        store.upsert(make_fact(hour=2, created_at=now))

        store.prune(older_than_days=30, now=now)

        assert len(JsonFileFactStore(path)) == 1
        assert not path.with_suffix(".json.tmp").exists()

    def test_failed_write_does_not_keep_fact(self, tmp_path):
        from pathlib import Path
        from unittest.mock import patch
        from weather_agents.common.fact_store import FactStoreError, JsonFileFactStore

        path = tmp_path / "facts.json"
        store = JsonFileFactStore(path)
        fact = make_fact()

        with patch.object(Path, "replace", side_effect=OSError("disk full")):
            with pytest.raises(FactStoreError):
                store.upsert(fact)

        assert len(store) == 0
        assert store.get(fact.id) is None
        assert not path.exists()

        assert store.upsert(fact) == fact.id
        assert len(JsonFileFactStore(path)) == 1

    def test_failed_prune_restores_facts(self, tmp_path):
        from pathlib import Path
        from unittest.mock import patch
        from weather_agents.common.fact_store import FactStoreError, JsonFileFactStore

        path = tmp_path / "facts.json"
        now = datetime(2025, 6, 30, tzinfo=timezone.utc)
        store = JsonFileFactStore(path)
        old = make_fact(hour=1, created_at=now - timedelta(days=40))
        store.upsert(old)
        store.upsert(make_fact(hour=2, created_at=now))

        with patch.object(Path, "replace", side_effect=OSError("disk full")):
            with pytest.raises(FactStoreError):
                store.prune(older_than_days=30, now=now)

        assert len(store) == 2
        assert store.upsert(make_fact(hour=1, text="again")) == old.id
        assert len(JsonFileFactStore(path)) == 2

        assert store.prune(older_than_days=30, now=now) == 1
        assert len(JsonFileFactStore(path)) == 1
