"""
Test: MetricsAggregator — grouping, ranking order, catalog resolution,
filters, and fail-fast sub-query handling.
"""

import asyncio
import sys
from datetime import datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from conftest import CATALOG, event
from engine.aggregator import AggregationRequest, MetricsAggregator, validate_filters
from engine.base import BaseStage
from engine.errors import ConfigurationError, DataSourceError
from engine.event_store import GAME_CATALOG, CatalogCache, CatalogLookup, InMemoryEventStore
from engine.models import CatalogEntry, EventKind, PeriodKind, PeriodSpec, ReportFilters
from engine.period import resolve_period

JANUARY = resolve_period(PeriodSpec(PeriodKind.MONTHLY, 2025, month=1)).current


def aggregate(store, filters=None, **kwargs):
    aggregator = MetricsAggregator(store, **kwargs)
    return asyncio.run(aggregator.aggregate(JANUARY, filters or ReportFilters()))


class FailingCatalogStore(InMemoryEventStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.completed_queries = 0

    async def query(self, kind, window, filters):
        await asyncio.sleep(0.5)
        self.completed_queries += 1
        return await super().query(kind, window, filters)

    async def query_reference_catalog(self, kind):
        raise RuntimeError("catalog service unreachable")


class SlowStore(InMemoryEventStore):
    async def query(self, kind, window, filters):
        await asyncio.sleep(1)
        return []


class TestAggregation:
    def test_totals(self, store):
        totals = aggregate(store).totals

        assert totals.total_events == 17
        assert totals.total_activities == 1
        assert totals.total_searches == 5
        assert totals.total_registrations == 2
        assert totals.total_stores == 3
        assert totals.total_games == 3
        assert totals.unique_actors == 10

    def test_top_stores(self, store):
        stores = aggregate(store).top_stores

        assert [s.dimension_id for s in stores] == ["s1", "s2", "s3"]
        assert [s.count for s in stores] == [10, 4, 1]
        leader = stores[0]
        assert leader.display_name == "Dragon's Lair"
        assert leader.secondary_count == 3
        assert leader.first_seen == "2025-01-03"
        assert leader.unique_actor_count == 10

    def test_searched_games_use_weights_and_catalog(self, store):
        games = aggregate(store).top_searched_games

        assert [(g.display_name, g.count) for g in games] == [("Catan", 3), ("Pokemon TCG", 2)]
        assert games[0].dimension_id == "g3"
        assert games[0].category_label == "Board"
        assert games[1].secondary_count == 3

    def test_played_games_and_missing_category(self, store):
        games = aggregate(store).top_played_games

        assert [(g.display_name, g.count) for g in games] == [
            ("Pokemon TCG", 10), ("Catan", 4), ("Warhammer 40k", 1),
        ]
        assert games[2].category_label == "Uncategorized"

    def test_top_activities(self, store):
        (activity,) = aggregate(store).top_activities

        assert activity.display_name == "Friday Draft"
        assert activity.dimension_id == "a-Friday Draft"
        assert activity.count == 5
        assert activity.secondary_count == 2
        assert activity.related_label == "Dragon's Lair"
        assert activity.secondary_label == "Pokemon TCG"
        assert activity.category_label == "TCG"

    def test_category_shares(self, store):
        bundle = aggregate(store)

        assert [(c.category_label, c.count) for c in bundle.category_participation] == [
            ("TCG", 10), ("Board", 4), ("Uncategorized", 1),
        ]
        assert sum(c.percentage for c in bundle.category_participation) == pytest.approx(100.0)
        assert [(c.category_label, c.percentage) for c in bundle.activity_types] == [("TCG", 100.0)]

    def test_trends_are_sparse_and_sorted(self, store):
        trends = aggregate(store).trends

        assert [t.period_label for t in trends] == [
            "2025-01-03", "2025-01-04", "2025-01-05", "2025-01-08",
        ]
        assert (trends[0].search_count, trends[1].activity_count, trends[2].registration_count) == (3, 3, 2)

    def test_records_outside_window_are_ignored(self):
        records = [
            event(EventKind.VIEW_STORE, 1, store="s1", when=datetime(2024, 12, 31, 23, 59)),
            event(EventKind.VIEW_STORE, 1, store="s1", when=datetime(2025, 2, 1)),
            event(EventKind.VIEW_STORE, 31, store="s2"),
        ]
        bundle = aggregate(InMemoryEventStore(records))

        assert [s.dimension_id for s in bundle.top_stores] == ["s2"]

    def test_empty_window(self):
        bundle = aggregate(InMemoryEventStore())

        assert bundle.totals.total_events == 0
        assert bundle.top_stores == []
        assert bundle.category_participation == []
        assert bundle.trends == []


class TestCategoryShares:
    def setup_method(self):
        records = [event(EventKind.VIEW_GAME, 2, f"u{i}", game="Pokemon TCG") for i in range(12)]
        records += [event(EventKind.VIEW_GAME, 2, f"v{i}", game="Catan") for i in range(8)]
        self.store = InMemoryEventStore(records, {GAME_CATALOG: CATALOG})

    def test_percentages(self):
        shares = aggregate(self.store).category_participation

        assert [(s.category_label, s.count, s.percentage) for s in shares] == [
            ("TCG", 12, 60.0), ("Board", 8, 40.0),
        ]
        assert shares[0].unique_actor_count == 20

    def test_unknown_game_is_uncategorized(self):
        self.store.add(event(EventKind.VIEW_GAME, 2, "w1", game="Gloomhaven"))
        bundle = aggregate(self.store)

        labels = [s.category_label for s in bundle.category_participation]
        assert labels[-1] == "Uncategorized"
        unknown = [g for g in bundle.top_played_games if g.display_name == "Gloomhaven"][0]
        assert unknown.dimension_id == "Gloomhaven"

    def test_category_filter(self):
        bundle = aggregate(self.store, ReportFilters(category="Board"))

        assert bundle.totals.total_events == 8
        assert [s.category_label for s in bundle.category_participation] == ["Board"]

    def test_category_filter_with_no_match(self):
        bundle = aggregate(self.store, ReportFilters(category="Miniatures"))

        assert bundle.totals.total_events == 0
        assert bundle.category_participation == []


class TestRankingOrder:
    def test_ties_keep_discovery_order(self):
        order = ["s2", "s1"] + ["s3"] * 5 + ["s2", "s2", "s1", "s1"]
        records = [event(EventKind.VIEW_STORE, 2, store=s) for s in order]
        stores = aggregate(InMemoryEventStore(records)).top_stores

        assert [(s.dimension_id, s.count) for s in stores] == [("s3", 5), ("s2", 3), ("s1", 3)]

    def test_counts_never_increase(self, store):
        bundle = aggregate(store)

        for ranking in (bundle.top_stores, bundle.top_searched_games, bundle.top_played_games):
            counts = [m.count for m in ranking]
            assert counts == sorted(counts, reverse=True)

    def test_limit_truncates_rankings(self, store):
        bundle = aggregate(store, ReportFilters(limit=2))

        assert len(bundle.top_stores) == 2
        assert len(bundle.top_played_games) == 2

    def test_limit_keeps_category_shares_whole(self, store):
        shares = aggregate(store, ReportFilters(limit=2)).category_participation

        assert [s.category_label for s in shares] == ["TCG", "Board", "Uncategorized"]
        assert abs(sum(s.percentage for s in shares) - 100) <= 0.1

    def test_store_and_game_filters(self, store):
        by_store = aggregate(store, ReportFilters(store_id="s2"))
        by_game = aggregate(store, ReportFilters(game_name="Catan"))

        assert [s.dimension_id for s in by_store.top_stores] == ["s2"]
        assert by_store.totals.total_searches == 0
        assert by_game.totals.total_searches == 3
        assert [g.display_name for g in by_game.top_played_games] == ["Catan"]

    def test_unnamed_store(self):
        records = [event(EventKind.VIEW_STORE, 2, store="s99")]
        (only,) = aggregate(InMemoryEventStore(records)).top_stores

        assert only.display_name == "Unnamed store"


class TestSubQueryFailures:
    def test_failure_names_the_subquery(self):
        store = FailingCatalogStore()
        aggregator = MetricsAggregator(store, label="current")

        with pytest.raises(DataSourceError) as info:
            asyncio.run(aggregator.aggregate(JANUARY, ReportFilters()))

        assert info.value.subquery == "game_catalog"
        assert "catalog service unreachable" in str(info.value)
        assert aggregator.log.status == "error"
        assert aggregator.log.stage_name == "MetricsAggregator[current]"

    def test_failure_cancels_sibling_queries(self):
        store = FailingCatalogStore()

        with pytest.raises(DataSourceError):
            aggregate(store)

        assert store.completed_queries == 0

    def test_subquery_timeout(self):
        with pytest.raises(DataSourceError, match="timed out") as info:
            aggregate(SlowStore(), query_timeout=0.05)

        assert info.value.subquery in ("interactions", "searches")


class TestValidateFilters:
    def test_valid_filters_pass_through(self):
        filters = ReportFilters(store_id="s1", limit=5)
        assert validate_filters(filters) is filters

    @pytest.mark.parametrize("filters", [
        ReportFilters(limit=0),
        ReportFilters(limit=100000),
        ReportFilters(limit=True),
        ReportFilters(limit="10"),
        ReportFilters(store_id="   "),
        ReportFilters(category=""),
    ])
    def test_invalid_filters(self, filters):
        with pytest.raises(ConfigurationError):
            validate_filters(filters)

    def test_aggregator_rejects_invalid_filters(self, store):
        with pytest.raises(ConfigurationError):
            aggregate(store, ReportFilters(limit=-1))


class CountingCatalogStore(InMemoryEventStore):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.catalog_calls = 0

    async def query_reference_catalog(self, kind):
        self.catalog_calls += 1
        return await super().query_reference_catalog(kind)


class TestCatalogCache:
    def setup_method(self):
        self.now = 0.0
        self.store = CountingCatalogStore(catalogs={GAME_CATALOG: CATALOG})
        self.cache = CatalogCache(ttl_seconds=60, clock=lambda: self.now)

    def fetch(self):
        return asyncio.run(self.cache.get(self.store, GAME_CATALOG))

    def test_entries_are_reused_until_expiry(self):
        first = self.fetch()
        self.now = 59
        second = self.fetch()

        assert first == tuple(CATALOG)
        assert second is first
        assert self.store.catalog_calls == 1

        self.now = 61
        self.fetch()
        assert self.store.catalog_calls == 2

    def test_invalidate(self):
        self.fetch()
        self.cache.invalidate(GAME_CATALOG)
        self.fetch()

        assert self.store.catalog_calls == 2

    def test_shared_between_aggregations(self):
        counting = CountingCatalogStore(catalogs={GAME_CATALOG: CATALOG})
        aggregate(counting, catalog_cache=self.cache)
        aggregate(counting, catalog_cache=self.cache)

        assert counting.catalog_calls == 1


class TestCatalogLookup:
    def test_first_duplicate_wins_and_match_is_exact(self):
        lookup = CatalogLookup(CATALOG + [CatalogEntry("dup", "Catan", "Family")])

        assert lookup.resolve("Catan").game_id == "g3"
        assert lookup.resolve("catan").matched is False
        assert lookup.resolve("Warhammer 40k").category == "Uncategorized"
        assert len(lookup) == 4


class TestStageContract:
    def test_synchronous_run(self, store):
        aggregator = MetricsAggregator(store)

        bundle = aggregator.run(AggregationRequest(JANUARY, ReportFilters()))

        assert bundle.totals.total_events == 17
        assert aggregator.log.status == "success"

    def test_stage_without_execute_cannot_be_built(self):
        class AsyncOnly(BaseStage):
            async def _aexecute(self, input_data):
                return input_data

        with pytest.raises(TypeError):
            AsyncOnly()
