# tests/core/test_materialized_views.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from hera.urp.core.cache import CacheManager
from hera.urp.core.engine import ReportEngine
from hera.urp.core.errors import (
    MissingParameterError,
    RecipeNotFoundError,
    ViewNotFoundError,
    ViewNotRefreshedError,
)
from tests.helpers.memory_store import ORG, OTHER_ORG

FACTS_BY_ACCOUNT = {
    "name": "facts_by_account",
    "parameters": {
        "type": "object",
        "properties": {"date_to": {"type": ["string", "null"], "default": None}},
    },
    "steps": [
        {
            "primitive": "transaction_facts",
            "config": {"group_by": ["entity_id"], "date_to": "{{ date_to }}"},
        }
    ],
}


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 6, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(store, clock) -> ReportEngine:
    engine = ReportEngine(store, ORG, cache=CacheManager(clock=clock))
    engine.register_recipe(FACTS_BY_ACCOUNT)
    return engine


class TestMaterializedViews:
    @pytest.mark.asyncio
    async def test_create_holds_no_data(self, engine, store):
        descriptor = await engine.create_materialized_view(
            "facts_by_account", "daily_facts", refresh_interval=3600
        )

        assert descriptor["recipe_name"] == "facts_by_account"
        assert descriptor["parameters"] == {"date_to": None}
        assert store.total_calls == 0
        with pytest.raises(ViewNotRefreshedError):
            await engine.query_materialized_view("daily_facts")

    @pytest.mark.asyncio
    async def test_refresh_then_query(self, engine, store, clock):
        await engine.create_materialized_view("facts_by_account", "facts")

        info = await engine.refresh_materialized_view("facts")
        rows = await engine.query_materialized_view("facts")

        assert info["refreshed_at"] == clock.now.isoformat()
        assert {r.dimensions["entity_id"] for r in rows} == {"acc-1100", "acc-1200", "acc-3000"}

    @pytest.mark.asyncio
    async def test_query_never_recomputes(self, engine, store):
        await engine.create_materialized_view("facts_by_account", "facts")
        await engine.refresh_materialized_view("facts")
        calls = store.total_calls

        await engine.query_materialized_view("facts")
        await engine.query_materialized_view("facts")

        assert store.total_calls == calls

    @pytest.mark.asyncio
    async def test_query_serves_snapshot_until_refresh(self, engine, store):
        await engine.create_materialized_view("facts_by_account", "facts")
        await engine.refresh_materialized_view("facts")
        store.transactions.clear()

        assert len(await engine.query_materialized_view("facts")) == 3

        await engine.refresh_materialized_view("facts")
        assert await engine.query_materialized_view("facts") == []

    @pytest.mark.asyncio
    async def test_view_parameters_are_bound(self, engine):
        await engine.create_materialized_view(
            "facts_by_account", "january", parameters={"date_to": "2024-01-31"}
        )
        await engine.refresh_materialized_view("january")

        rows = await engine.query_materialized_view("january")

        nets = {r.dimensions["entity_id"]: r.measures["net"] for r in rows}
        assert nets == {"acc-1100": Decimal("500"), "acc-3000": Decimal("-500")}

    @pytest.mark.asyncio
    async def test_refresh_bypasses_recipe_cache(self, engine, store):
        await engine.execute_recipe("facts_by_account")
        await engine.create_materialized_view("facts_by_account", "facts")
        calls = store.total_calls

        await engine.refresh_materialized_view("facts")

        assert store.total_calls > calls

    @pytest.mark.asyncio
    async def test_list_and_staleness(self, engine, clock):
        await engine.create_materialized_view("facts_by_account", "b_hourly", refresh_interval=3600)
        await engine.create_materialized_view("facts_by_account", "a_manual")
        await engine.refresh_materialized_view("b_hourly")
        await engine.refresh_materialized_view("a_manual")

        clock.now += timedelta(hours=2)
        views = {v["view_name"]: v for v in await engine.list_materialized_views()}

        assert list(views) == ["a_manual", "b_hourly"]
        assert views["b_hourly"]["stale"] is True
        assert views["a_manual"]["stale"] is False

    @pytest.mark.asyncio
    async def test_never_refreshed_is_stale(self, engine):
        await engine.create_materialized_view("facts_by_account", "v")

        (view,) = await engine.list_materialized_views()

        assert view["stale"] is True
        assert view["refreshed_at"] is None

    @pytest.mark.asyncio
    async def test_recreate_discards_old_data(self, engine):
        await engine.create_materialized_view("facts_by_account", "v")
        await engine.refresh_materialized_view("v")

        await engine.create_materialized_view("facts_by_account", "v", parameters={"date_to": "2024-01-31"})

        with pytest.raises(ViewNotRefreshedError):
            await engine.query_materialized_view("v")

    @pytest.mark.asyncio
    async def test_drop(self, engine):
        await engine.create_materialized_view("facts_by_account", "v")
        await engine.refresh_materialized_view("v")

        await engine.drop_materialized_view("v")

        with pytest.raises(ViewNotFoundError):
            await engine.query_materialized_view("v")
        with pytest.raises(ViewNotFoundError):
            await engine.drop_materialized_view("v")

    @pytest.mark.asyncio
    async def test_unknown_view(self, engine):
        with pytest.raises(ViewNotFoundError):
            await engine.refresh_materialized_view("missing")
        with pytest.raises(ViewNotFoundError):
            await engine.query_materialized_view("missing")

    @pytest.mark.asyncio
    async def test_create_checks_recipe_and_parameters(self, engine):
        engine.register_recipe(
            {"name": "needs_year", "steps": [{"primitive": "entity_resolver", "config": {"y": "{{ year }}"}}]}
        )

        with pytest.raises(RecipeNotFoundError):
            await engine.create_materialized_view("nope", "v")
        with pytest.raises(MissingParameterError):
            await engine.create_materialized_view("needs_year", "v")
        assert await engine.list_materialized_views() == []

    @pytest.mark.asyncio
    async def test_create_validates_arguments(self, engine):
        with pytest.raises(ValueError, match="view_name"):
            await engine.create_materialized_view("facts_by_account", "")
        with pytest.raises(ValueError, match="refresh_interval"):
            await engine.create_materialized_view("facts_by_account", "v", refresh_interval=-5)

    @pytest.mark.asyncio
    async def test_clear_cache_keeps_views(self, engine):
        await engine.create_materialized_view("facts_by_account", "v")
        await engine.refresh_materialized_view("v")

        await engine.clear_cache()

        assert len(await engine.query_materialized_view("v")) == 3

    @pytest.mark.asyncio
    async def test_views_are_per_organization(self, engine, store):
        other = ReportEngine(store, OTHER_ORG, cache=engine.cache, recipes=engine.recipes)
        await engine.create_materialized_view("facts_by_account", "v")

        with pytest.raises(ViewNotFoundError):
            await other.query_materialized_view("v")
        assert await other.list_materialized_views() == []
