import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from engine import analysis
from engine.models import (
    CategoryShare,
    DimensionMetric,
    GrowthMetric,
    MetricsBundle,
    PeriodKind,
    PeriodSpec,
    TrendPoint,
)
from engine.period import resolve_period

JANUARY = resolve_period(PeriodSpec(PeriodKind.MONTHLY, 2025, month=1)).current
YEAR = resolve_period(PeriodSpec(PeriodKind.ANNUAL, 2025)).current


def metric(name, count, category=""):
    return DimensionMetric(dimension_id=name.lower(), display_name=name, count=count,
                           category_label=category)


class TestChartAnalysis:
    def test_store_bullets(self):
        bullets = analysis.analyze_stores(
            [metric("Dragon's Lair", 10), metric("Card Kingdom", 4), metric("Dice Tower", 1)], JANUARY
        )

        assert bullets[0] == "LEADER: \"Dragon's Lair\" tops the ranking with 10 visits in January 2025."
        assert bullets[1] == "MARGIN: \"Dragon's Lair\" is ahead of \"Card Kingdom\" by 150.0%."
        assert bullets[2] == "CONCENTRATION: the leading store holds 66.7% of all visits."
        assert bullets[3].startswith("THIRD PLACE: \"Dice Tower\"")
        assert bullets[4] == "PERFORMANCE: 1 of 3 stores are above the average of 5.0 visits."
        assert bullets[5].startswith("MONTHLY TREND")

    def test_single_store_has_no_margin(self):
        bullets = analysis.analyze_stores([metric("Solo", 3)], YEAR)

        assert not any(b.startswith("MARGIN") for b in bullets)
        assert bullets[-1].startswith("ANNUAL TREND")

    def test_game_bullets_pick_leading_category(self):
        games = [metric("Catan", 3, "Board"), metric("Pokemon TCG", 2, "TCG"), metric("Magic", 2, "TCG")]
        bullets = analysis.analyze_games(games, JANUARY)

        assert "SECOND PLACE: \"Pokemon TCG\" with 2 searches (gap: 1)." in bullets
        assert (
            "CATEGORIES: \"TCG\" is the most searched category with 2 of 3 ranked games "
            "and 57.1% of searches." in bullets
        )

    def test_category_bullets(self):
        bullets = analysis.analyze_categories(
            [CategoryShare("TCG", 12, 60.0), CategoryShare("Board", 8, 40.0)], JANUARY
        )

        assert bullets[0] == "LEADER: \"TCG\" dominates with 60.0% of participation in January 2025."
        assert "SECOND PLACE: \"Board\" with 40.0% (gap: 20.0%)." in bullets
        assert "PERFORMANCE: 1 of 2 categories are above the average share." in bullets
        assert not any(b.startswith("THIRD PLACE") for b in bullets)

    def test_empty_inputs(self):
        assert analysis.analyze_stores([], JANUARY) == ["No store data for this period."]
        assert analysis.analyze_games([], JANUARY) == ["No game search data for this period."]
        assert analysis.analyze_categories([], JANUARY) == ["No category data for this period."]


class TestTrendsAndRecommendations:
    def test_growth_phrases(self):
        assert analysis.growth_phrase(GrowthMetric("searches", 12, 10, 20.0)) == (
            "Searches grew by 20.0% compared with the previous period."
        )
        assert analysis.growth_phrase(GrowthMetric("stores", 1, 2, -50.0)) == (
            "Active stores fell by 50.0% compared with the previous period."
        )
        assert analysis.growth_phrase(GrowthMetric("registrations", 0, 0, 0.0)) == (
            "Registrations remained stable compared with the previous period."
        )

    def test_busiest_day_earliest_wins_ties(self):
        trends = [
            TrendPoint("2025-01-02", search_count=2),
            TrendPoint("2025-01-05", activity_count=4),
            TrendPoint("2025-01-09", registration_count=4),
        ]

        assert analysis.busiest_day(trends).period_label == "2025-01-05"
        assert analysis.busiest_day([]) is None

    def test_trend_analysis_mentions_busiest_day(self):
        lines = analysis.trend_analysis(
            [GrowthMetric("activities", 3, 3, 0.0)], [TrendPoint("2025-01-04", 1, 2, 3)]
        )

        assert len(lines) == 2
        assert lines[1].startswith("The busiest day was 2025-01-04")

    def test_recommendations(self):
        bundle = MetricsBundle(
            window=JANUARY,
            top_stores=[metric("Dragon's Lair", 10)],
            top_searched_games=[metric("Catan", 3)],
            activity_types=[CategoryShare("TCG", 2, 100.0)],
        )
        advice = analysis.recommendations(bundle, [GrowthMetric("activities", 8, 10, -20.0)])

        assert advice == [
            "Consider promoting activities more to reverse the downward trend.",
            "\"Dragon's Lair\" is the most popular store with 10 visits.",
            "\"Catan\" is the most searched game with 3 searches.",
            "The \"TCG\" category accounts for 100.0% of registrations.",
        ]

    def test_small_decline_needs_no_promotion(self):
        bundle = MetricsBundle(window=JANUARY)
        advice = analysis.recommendations(bundle, [GrowthMetric("activities", 95, 100, -5.0)])

        assert advice == ["Not enough activity in this period to make recommendations."]
