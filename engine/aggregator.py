"""
MetricsAggregator — turn raw interaction records into ranked metrics.

Input:  AggregationRequest (window + filters)
Output: MetricsBundle

The same filtered record set is grouped independently by store, searched
game, played game, activity, category and day.  Sub-queries against the
Event Store run concurrently; the first failure cancels the others and
surfaces as a DataSourceError naming the failed sub-query.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import pandas as pd

from config.settings import EVENT_STORE_TIMEOUT_SECONDS, MAX_CONCURRENT_QUERIES, MAX_RANK_LIMIT
from engine.base import BaseStage
from engine.concurrency import gather_fail_fast
from engine.errors import ConfigurationError, DataSourceError
from engine.event_store import GAME_CATALOG, CatalogCache, CatalogLookup, EventStore, as_naive_utc
from engine.models import (
    CategoryShare,
    DimensionMetric,
    EventKind,
    MetricsBundle,
    PeriodWindow,
    RawEventRecord,
    ReportFilters,
    TopLineTotals,
    TrendPoint,
)

logger = logging.getLogger(__name__)

UNNAMED_STORE = "Unnamed store"
NO_STORE = "No store"
NO_GAME = "No game"

_COLUMNS = [
    "seq", "kind", "day", "actor", "store_id", "store_name", "game",
    "category", "game_id", "activity_id", "activity_name", "weight",
]


@dataclass(frozen=True)
class AggregationRequest:
    window: PeriodWindow
    filters: ReportFilters


def validate_filters(filters: ReportFilters) -> ReportFilters:
    """Reject filter combinations that can never produce a report."""
    if isinstance(filters.limit, bool) or not isinstance(filters.limit, int):
        raise ConfigurationError(f"limit must be an integer, got {filters.limit!r}")
    if not 1 <= filters.limit <= MAX_RANK_LIMIT:
        raise ConfigurationError(f"limit must be between 1 and {MAX_RANK_LIMIT}, got {filters.limit}")
    for name in ("store_id", "game_name", "category"):
        value = getattr(filters, name)
        if value is not None and (not isinstance(value, str) or not value.strip()):
            raise ConfigurationError(f"Filter '{name}' must be a non-empty string when given.")
    return filters


class MetricsAggregator(BaseStage):
    """Fetch one window's records and group them into a MetricsBundle."""

    name = "MetricsAggregator"

    def __init__(
        self,
        store: EventStore,
        catalog_cache: Optional[CatalogCache] = None,
        semaphore: Optional[asyncio.Semaphore] = None,
        query_timeout: float = EVENT_STORE_TIMEOUT_SECONDS,
        label: str = "",
    ) -> None:
        if label:
            self.name = f"{type(self).name}[{label}]"
        super().__init__()
        self.store = store
        self.catalog_cache = catalog_cache or CatalogCache()
        self.semaphore = semaphore or asyncio.Semaphore(MAX_CONCURRENT_QUERIES)
        self.query_timeout = query_timeout

    async def aggregate(self, window: PeriodWindow, filters: ReportFilters) -> MetricsBundle:
        return await self.arun(AggregationRequest(window=window, filters=filters))

    def _execute(self, input_data: AggregationRequest) -> MetricsBundle:
        # blocking entry for callers without a running event loop
        return asyncio.run(self._aexecute(input_data))

    async def _aexecute(self, input_data: AggregationRequest) -> MetricsBundle:
        window, filters = input_data.window, validate_filters(input_data.filters)

        interactions, searches, catalog = await gather_fail_fast(
            self._subquery("interactions", lambda: self.store.query(None, window, filters)),
            self._subquery("searches", lambda: self.store.query(EventKind.SEARCH, window, filters)),
            self._subquery("game_catalog", lambda: self.catalog_cache.get(self.store, GAME_CATALOG)),
        )
        lookup = CatalogLookup(catalog)
        self._log(
            f"Fetched {len(interactions)} interactions, {len(searches)} searches, "
            f"{len(lookup)} catalog games for {window.label}"
        )

        df = _frame(list(interactions) + list(searches), lookup)
        if filters.category:
            df = df[df["category"] == filters.category]

        bundle = build_bundle(df, window, filters.limit)
        self.log.metadata.update({
            "window": window.label,
            "records": int(len(df)),
            "unique_actors": bundle.totals.unique_actors,
        })
        return bundle

    async def _subquery(self, name: str, call: Callable[[], Awaitable[Any]]) -> Any:
        async with self.semaphore:
            try:
                return await asyncio.wait_for(call(), timeout=self.query_timeout)
            except asyncio.TimeoutError:
                raise DataSourceError(f"timed out after {self.query_timeout:g}s", subquery=name)
            except DataSourceError:
                raise
            except Exception as exc:
                raise DataSourceError(str(exc) or type(exc).__name__, subquery=name) from exc


# ── grouping ─────────────────────────────────────────────────────────────

def _frame(records: Sequence[RawEventRecord], lookup: CatalogLookup) -> pd.DataFrame:
    """One row per record, with its game resolved against the catalog."""
    rows = []
    for seq, r in enumerate(records):
        game = r.search_term if r.kind is EventKind.SEARCH else r.secondary_name
        match = lookup.resolve(game if game is not None else NO_GAME)
        rows.append({
            "seq": seq,
            "kind": r.kind.value,
            "day": as_naive_utc(r.timestamp).date().isoformat(),
            "actor": r.actor_id,
            "store_id": r.entity_id,
            "store_name": r.entity_name,
            "game": game,
            "category": match.category,
            "game_id": match.game_id if game is not None else None,
            "activity_id": r.activity_id,
            "activity_name": r.activity_name,
            "weight": int(r.weight) if r.kind is EventKind.SEARCH else 1,
        })
    return pd.DataFrame(rows, columns=_COLUMNS)


def build_bundle(df: pd.DataFrame, window: PeriodWindow, limit: int) -> MetricsBundle:
    """Group an already-filtered frame into every ranked list of the bundle."""
    is_search = df["kind"] == EventKind.SEARCH.value
    searches = df[is_search]
    interactions = df[~is_search]
    registrations = interactions[interactions["kind"] == EventKind.REGISTRATION.value]
    activity_views = interactions[interactions["kind"] == EventKind.VIEW_ACTIVITY.value]

    # one global distinct-actor count, reused by every dimension
    unique_actors = int(df["actor"].dropna().nunique())

    totals = TopLineTotals(
        total_events=int(len(df)),
        total_activities=int(_activity_key(interactions).dropna().nunique()),
        total_searches=int(searches["weight"].sum()),
        total_registrations=int(len(registrations)),
        total_stores=int(interactions["store_id"].dropna().nunique()),
        total_games=int(df["game"].dropna().nunique()),
        unique_actors=unique_actors,
    )

    views_per_game = activity_views.groupby("game", sort=False).size()

    return MetricsBundle(
        window=window,
        totals=totals,
        top_stores=_top_stores(interactions, unique_actors, limit),
        top_searched_games=_top_games(searches, views_per_game, unique_actors, limit),
        top_played_games=_top_games(
            interactions[interactions["game"].notna()], views_per_game, unique_actors, limit
        ),
        top_activities=_top_activities(interactions, unique_actors, limit),
        activity_types=category_shares(registrations["category"], unique_actors),
        category_participation=category_shares(
            interactions.loc[interactions["game"].notna(), "category"], unique_actors
        ),
        trends=_trends(searches, activity_views, registrations),
    )


def _ranked(df: pd.DataFrame, key: str, count: str = "size") -> pd.DataFrame:
    """Aggregate per key in discovery order, then sort by count (stable)."""
    grouped = df.groupby(key, sort=False)
    summary = grouped.agg(
        first_seq=("seq", "min"),
        first_day=("day", "min"),
        secondary=("kind", lambda k: int((k == EventKind.VIEW_ACTIVITY.value).sum())),
    )
    summary["count"] = grouped["weight"].sum() if count == "weight" else grouped.size()
    summary = summary.sort_values("first_seq", kind="mergesort")
    return summary.sort_values("count", ascending=False, kind="mergesort")


def _top_stores(interactions: pd.DataFrame, unique_actors: int, limit: int) -> List[DimensionMetric]:
    stores = interactions[interactions["store_id"].notna()]
    if stores.empty:
        return []
    names = stores.groupby("store_id", sort=False)["store_name"].first()
    summary = _ranked(stores, "store_id").head(limit)
    return [
        DimensionMetric(
            dimension_id=str(store_id),
            display_name=_text(names.get(store_id), UNNAMED_STORE),
            count=int(row["count"]),
            unique_actor_count=unique_actors,
            # views of activities hosted by the store
            secondary_count=int(row["secondary"]),
            first_seen=row["first_day"],
        )
        for store_id, row in summary.iterrows()
    ]


def _top_games(
    rows: pd.DataFrame,
    views_per_game: pd.Series,
    unique_actors: int,
    limit: int,
) -> List[DimensionMetric]:
    if rows.empty:
        return []
    firsts = rows.groupby("game", sort=False)[["game_id", "category"]].first()
    summary = _ranked(rows, "game", count="weight").head(limit)
    return [
        DimensionMetric(
            dimension_id=str(firsts.at[game, "game_id"]),
            display_name=str(game),
            count=int(row["count"]),
            unique_actor_count=unique_actors,
            secondary_count=int(views_per_game.get(game, 0)),
            category_label=str(firsts.at[game, "category"]),
            first_seen=row["first_day"],
        )
        for game, row in summary.iterrows()
    ]


def _activity_key(interactions: pd.DataFrame) -> pd.Series:
    return interactions["activity_name"].where(
        interactions["activity_name"].notna(), interactions["activity_id"]
    )


def _top_activities(interactions: pd.DataFrame, unique_actors: int, limit: int) -> List[DimensionMetric]:
    rows = interactions.assign(activity=_activity_key(interactions))
    rows = rows[rows["activity"].notna()]
    if rows.empty:
        return []
    firsts = rows.groupby("activity", sort=False)[
        ["activity_id", "store_name", "game", "category"]
    ].first()
    registrations = (
        rows[rows["kind"] == EventKind.REGISTRATION.value].groupby("activity", sort=False).size()
    )
    summary = _ranked(rows, "activity").head(limit)
    metrics = []
    for activity, row in summary.iterrows():
        first = firsts.loc[activity]
        metrics.append(DimensionMetric(
            dimension_id=_text(first["activity_id"], str(activity)),
            display_name=str(activity),
            count=int(row["count"]),
            unique_actor_count=unique_actors,
            secondary_count=int(registrations.get(activity, 0)),
            category_label=str(first["category"]),
            related_label=_text(first["store_name"], NO_STORE),
            secondary_label=_text(first["game"], NO_GAME),
            first_seen=row["first_day"],
        ))
    return metrics


def category_shares(categories: pd.Series, unique_actors: int) -> List[CategoryShare]:
    """Count occurrences per category label and normalise to percentages.

    Never truncated, so the percentages of a non-empty result sum to 100.
    """
    if categories.empty:
        return []
    counts = categories.groupby(categories, sort=False).size()
    counts = counts.sort_values(ascending=False, kind="mergesort")
    total = int(counts.sum())
    return [
        CategoryShare(
            category_label=str(label),
            count=int(count),
            percentage=int(count) * 100 / total,
            unique_actor_count=unique_actors,
        )
        for label, count in counts.items()
    ]


def _trends(
    searches: pd.DataFrame,
    activity_views: pd.DataFrame,
    registrations: pd.DataFrame,
) -> List[TrendPoint]:
    """Sparse day series: only days with at least one event appear."""
    per_day: Dict[str, pd.Series] = {
        "search_count": searches.groupby("day")["weight"].sum(),
        "activity_count": activity_views.groupby("day").size(),
        "registration_count": registrations.groupby("day").size(),
    }
    days = sorted(set().union(*(s.index for s in per_day.values())))
    return [
        TrendPoint(
            period_label=day,
            **{name: int(series.get(day, 0)) for name, series in per_day.items()},
        )
        for day in days
    ]


def _text(value: Any, default: str) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return default
    return str(value)
