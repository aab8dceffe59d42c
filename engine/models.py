"""
Typed records flowing through the report pipeline.

Raw events come from the Event Store, metrics come out of the
MetricsAggregator, and a ReportDocument comes out of the layout stage.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from config.settings import DEFAULT_RANK_LIMIT


class EventKind(str, Enum):
    SEARCH = "SEARCH"
    VIEW_STORE = "VIEW_STORE"
    VIEW_GAME = "VIEW_GAME"
    VIEW_ACTIVITY = "VIEW_ACTIVITY"
    REGISTRATION = "REGISTRATION"


class PeriodKind(str, Enum):
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    SEMIANNUAL = "semiannual"
    ANNUAL = "annual"


# Window granularity for each requested period kind.
WINDOW_KINDS = {
    PeriodKind.MONTHLY: "month",
    PeriodKind.QUARTERLY: "quarter",
    PeriodKind.SEMIANNUAL: "semester",
    PeriodKind.ANNUAL: "year",
}


@dataclass(frozen=True)
class RawEventRecord:
    """A user interaction, with dimension labels denormalized onto it."""
    kind: EventKind
    timestamp: datetime
    actor_id: Optional[str] = None
    entity_id: Optional[str] = None        # store id
    entity_name: Optional[str] = None      # store name
    secondary_name: Optional[str] = None   # game name
    activity_id: Optional[str] = None
    activity_name: Optional[str] = None
    search_term: Optional[str] = None
    weight: int = 1


@dataclass(frozen=True)
class CatalogEntry:
    id: str
    name: str
    category: Optional[str] = None


@dataclass(frozen=True)
class PeriodSpec:
    kind: PeriodKind
    year: int
    month: Optional[int] = None
    quarter: Optional[int] = None
    semester: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.value, "year": self.year}
        for key in ("month", "quarter", "semester"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass(frozen=True)
class PeriodWindow:
    start: datetime
    end: datetime           # exclusive
    label: str
    kind: str               # month | quarter | semester | year

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


@dataclass(frozen=True)
class ReportFilters:
    store_id: Optional[str] = None
    game_name: Optional[str] = None
    category: Optional[str] = None
    limit: int = DEFAULT_RANK_LIMIT

    def is_empty(self) -> bool:
        return not (self.store_id or self.game_name or self.category)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "store_id": self.store_id,
            "game_name": self.game_name,
            "category": self.category,
            "limit": self.limit,
        }


@dataclass
class DimensionMetric:
    dimension_id: str
    display_name: str
    count: int = 0
    unique_actor_count: int = 0
    secondary_count: int = 0
    category_label: str = ""
    related_label: str = ""
    secondary_label: str = ""
    first_seen: str = ""


@dataclass
class CategoryShare:
    category_label: str
    count: int = 0
    percentage: float = 0.0
    unique_actor_count: int = 0


@dataclass
class TrendPoint:
    period_label: str
    search_count: int = 0
    activity_count: int = 0
    registration_count: int = 0


@dataclass
class GrowthMetric:
    name: str
    current_value: float
    previous_value: float
    percentage_change: float


@dataclass(frozen=True)
class ChartDatum:
    label: str
    value: Any


@dataclass
class TopLineTotals:
    total_events: int = 0
    total_activities: int = 0
    total_searches: int = 0
    total_registrations: int = 0
    total_stores: int = 0
    total_games: int = 0
    unique_actors: int = 0

    def as_growth_inputs(self) -> Dict[str, int]:
        """Counters compared period-over-period, in report order."""
        return {
            "activities": self.total_activities,
            "searches": self.total_searches,
            "stores": self.total_stores,
            "registrations": self.total_registrations,
            "unique_actors": self.unique_actors,
        }


@dataclass
class MetricsBundle:
    window: PeriodWindow
    totals: TopLineTotals = field(default_factory=TopLineTotals)
    top_stores: List[DimensionMetric] = field(default_factory=list)
    top_searched_games: List[DimensionMetric] = field(default_factory=list)
    top_played_games: List[DimensionMetric] = field(default_factory=list)
    top_activities: List[DimensionMetric] = field(default_factory=list)
    activity_types: List[CategoryShare] = field(default_factory=list)
    category_participation: List[CategoryShare] = field(default_factory=list)
    trends: List[TrendPoint] = field(default_factory=list)


@dataclass(frozen=True)
class ReportDocument:
    """A rendered report: PDF bytes plus the parameters that produced it."""
    payload: bytes = field(repr=False)
    generation_parameters: Dict[str, Any]
    generated_at: datetime
    period_label: str
    page_sections: Tuple[str, ...] = ()

    @property
    def page_count(self) -> int:
        return len(self.page_sections)

    def has_section(self, prefix: str) -> bool:
        return any(s == prefix or s.startswith(prefix + ":") for s in self.page_sections)
