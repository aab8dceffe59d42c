from .aggregator import MetricsAggregator
from .archive import ArchiveScope, ReportArchive
from .charts import render_bars, render_pie
from .event_store import CatalogCache, EventStore, InMemoryEventStore
from .growth import calculate_growth, compute_growth
from .layout import DocumentLayoutEngine
from .period import resolve_period

__all__ = [
    "MetricsAggregator",
    "ArchiveScope",
    "ReportArchive",
    "render_bars",
    "render_pie",
    "CatalogCache",
    "EventStore",
    "InMemoryEventStore",
    "calculate_growth",
    "compute_growth",
    "DocumentLayoutEngine",
    "resolve_period",
]
