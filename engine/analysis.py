"""
Templated narrative for chart pages and the trends section.

Every function here is deterministic: the same metrics always produce the
same bullets in the same order.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, List, Sequence

from engine.growth import calculate_growth
from engine.models import CategoryShare, DimensionMetric, GrowthMetric, MetricsBundle, PeriodWindow, TrendPoint
from engine.period import period_phrase

PROMOTION_THRESHOLD = -10.0

METRIC_LABELS = {
    "activities": "Activities",
    "searches": "Searches",
    "stores": "Active stores",
    "registrations": "Registrations",
    "unique_actors": "Unique users",
}

_CLOSING_REMARKS = {
    "stores": {
        "year": "ANNUAL TREND: stores show clear seasonal patterns across the year.",
        "quarter": "QUARTERLY TREND: growth patterns emerge quarter by quarter.",
        "semester": "SEMESTER TREND: the figures reflect medium-term evolution.",
        "month": "MONTHLY TREND: expect typical short-term fluctuations.",
    },
    "games": {
        "year": "ANNUAL TREND: long-term popularity trends are visible.",
        "quarter": "QUARTERLY TREND: games move through popularity cycles.",
        "semester": "SEMESTER TREND: user preferences are shifting over the semester.",
        "month": "MONTHLY TREND: game popularity changes quickly month to month.",
    },
    "categories": {
        "year": "ANNUAL TREND: category preferences are stable over the year.",
        "quarter": "QUARTERLY TREND: categories show seasonal shifts.",
        "semester": "SEMESTER TREND: categories follow market trends over the semester.",
        "month": "MONTHLY TREND: categories vary with events and promotions.",
    },
}


def closing_remark(dimension: str, window: PeriodWindow) -> str:
    return _CLOSING_REMARKS[dimension][window.kind]


# ── chart-page bullets ───────────────────────────────────────────────────

def analyze_stores(stores: Sequence[DimensionMetric], window: PeriodWindow) -> List[str]:
    if not stores:
        return ["No store data for this period."]

    leader = stores[0]
    bullets = [
        f"LEADER: \"{leader.display_name}\" tops the ranking with "
        f"{leader.count} visits {period_phrase(window)}."
    ]
    if len(stores) > 1:
        second = stores[1]
        margin = calculate_growth(leader.count, second.count)
        bullets.append(
            f"MARGIN: \"{leader.display_name}\" is ahead of \"{second.display_name}\" by {margin:.1f}%."
        )
    total = sum(s.count for s in stores)
    bullets.append(
        f"CONCENTRATION: the leading store holds {_share(leader.count, total):.1f}% of all visits."
    )
    if len(stores) >= 3:
        bullets.append(f"THIRD PLACE: \"{stores[2].display_name}\" with {stores[2].count} visits.")
    bullets.append(_above_average(stores, "stores", "visits"))
    bullets.append(closing_remark("stores", window))
    return bullets


def analyze_games(games: Sequence[DimensionMetric], window: PeriodWindow) -> List[str]:
    if not games:
        return ["No game search data for this period."]

    leader = games[0]
    total = sum(g.count for g in games)
    bullets = [
        f"LEADER: \"{leader.display_name}\" is the most searched game with "
        f"{leader.count} searches {period_phrase(window)}.",
        f"CONCENTRATION: \"{leader.display_name}\" accounts for "
        f"{_share(leader.count, total):.1f}% of all searches.",
    ]
    if len(games) > 1:
        second = games[1]
        bullets.append(
            f"SECOND PLACE: \"{second.display_name}\" with {second.count} searches "
            f"(gap: {leader.count - second.count})."
        )
    bullets.append(_above_average(games, "games", "searches"))

    by_category: Dict[str, List[int]] = OrderedDict()
    for game in games:
        entry = by_category.setdefault(game.category_label, [0, 0])
        entry[0] += 1
        entry[1] += game.count
    category, (titles, searches) = max(by_category.items(), key=lambda kv: kv[1][1])
    bullets.append(
        f"CATEGORIES: \"{category}\" is the most searched category with {titles} of "
        f"{len(games)} ranked games and {_share(searches, total):.1f}% of searches."
    )
    bullets.append(closing_remark("games", window))
    return bullets


def analyze_categories(categories: Sequence[CategoryShare], window: PeriodWindow) -> List[str]:
    if not categories:
        return ["No category data for this period."]

    leader = categories[0]
    total = sum(c.count for c in categories)
    bullets = [
        f"LEADER: \"{leader.category_label}\" dominates with {leader.percentage:.1f}% of "
        f"participation {period_phrase(window)}.",
        f"CONCENTRATION: \"{leader.category_label}\" gathers {leader.count} of {total} "
        f"participations.",
    ]
    if len(categories) > 1:
        second = categories[1]
        gap = leader.percentage - second.percentage
        bullets.append(
            f"SECOND PLACE: \"{second.category_label}\" with {second.percentage:.1f}% "
            f"(gap: {gap:.1f}%)."
        )
    top3 = sum(c.percentage for c in categories[:3])
    bullets.append(f"TOP 3 CONCENTRATION: the top three categories hold {top3:.1f}% of participation.")
    average = 100 / len(categories)
    above = sum(1 for c in categories if c.percentage > average)
    bullets.append(
        f"PERFORMANCE: {above} of {len(categories)} categories are above the average share."
    )
    if len(categories) >= 3:
        third = categories[2]
        bullets.append(f"THIRD PLACE: \"{third.category_label}\" with {third.percentage:.1f}%.")
    bullets.append(closing_remark("categories", window))
    return bullets


# ── trends & recommendations ─────────────────────────────────────────────

def growth_phrase(metric: GrowthMetric) -> str:
    label = METRIC_LABELS.get(metric.name, metric.name.replace("_", " ").capitalize())
    change = metric.percentage_change
    if change > 0:
        return f"{label} grew by {change:.1f}% compared with the previous period."
    if change < 0:
        return f"{label} fell by {abs(change):.1f}% compared with the previous period."
    return f"{label} remained stable compared with the previous period."


def trend_analysis(growth: Sequence[GrowthMetric], trends: Sequence[TrendPoint] = ()) -> List[str]:
    lines = [growth_phrase(m) for m in growth]
    busiest = busiest_day(trends)
    if busiest is not None:
        lines.append(
            f"The busiest day was {busiest.period_label} with {busiest.activity_count} activity views, "
            f"{busiest.registration_count} registrations and {busiest.search_count} searches."
        )
    return lines


def busiest_day(trends: Sequence[TrendPoint]):
    """Day with the most events; earliest wins on ties."""
    best = None
    for point in trends:
        volume = point.search_count + point.activity_count + point.registration_count
        if volume > 0 and (best is None or volume > best[0]):
            best = (volume, point)
    return best[1] if best else None


def recommendations(bundle: MetricsBundle, growth: Sequence[GrowthMetric]) -> List[str]:
    advice = []
    activities = next((m for m in growth if m.name == "activities"), None)
    if activities is not None and activities.percentage_change < PROMOTION_THRESHOLD:
        advice.append("Consider promoting activities more to reverse the downward trend.")
    if bundle.top_stores:
        store = bundle.top_stores[0]
        advice.append(f"\"{store.display_name}\" is the most popular store with {store.count} visits.")
    if bundle.top_searched_games:
        game = bundle.top_searched_games[0]
        advice.append(f"\"{game.display_name}\" is the most searched game with {game.count} searches.")
    if bundle.activity_types:
        category = bundle.activity_types[0]
        advice.append(
            f"The \"{category.category_label}\" category accounts for "
            f"{category.percentage:.1f}% of registrations."
        )
    if not advice:
        advice.append("Not enough activity in this period to make recommendations.")
    return advice


def _share(part: float, total: float) -> float:
    return part * 100 / total if total else 0.0


def _above_average(metrics: Sequence[DimensionMetric], noun: str, unit: str) -> str:
    average = sum(m.count for m in metrics) / len(metrics)
    above = sum(1 for m in metrics if m.count > average)
    return f"PERFORMANCE: {above} of {len(metrics)} {noun} are above the average of {average:.1f} {unit}."
