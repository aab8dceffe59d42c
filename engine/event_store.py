"""
Event Store interface, an in-memory implementation, and the shared
game-catalog cache.

The Event Store is the opaque data-access layer.  Report generation only
needs two calls from it: a windowed, filterable event query and the
reference catalog used to resolve game names to categories.
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from config.settings import CATALOG_CACHE_TTL_SECONDS, UNCATEGORIZED_LABEL
from engine.models import CatalogEntry, EventKind, PeriodWindow, RawEventRecord, ReportFilters

logger = logging.getLogger(__name__)

GAME_CATALOG = "game"


class EventStore(ABC):
    """Read-only source of interaction records."""

    @abstractmethod
    async def query(
        self,
        kind: Optional[EventKind],
        window: PeriodWindow,
        filters: ReportFilters,
    ) -> List[RawEventRecord]:
        """Records of `kind` inside `window`; `kind=None` means every non-search kind."""

    @abstractmethod
    async def query_reference_catalog(self, kind: str) -> List[CatalogEntry]:
        ...


def as_naive_utc(moment: datetime) -> datetime:
    """Windows are naive UTC; aware timestamps are converted before comparison."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


class InMemoryEventStore(EventStore):
    """Event Store backed by Python lists.  Used by tests and the preview script."""

    def __init__(
        self,
        records: Iterable[RawEventRecord] = (),
        catalogs: Optional[Dict[str, Iterable[CatalogEntry]]] = None,
    ) -> None:
        self._records: List[RawEventRecord] = list(records)
        self._catalogs: Dict[str, List[CatalogEntry]] = {
            k: list(v) for k, v in (catalogs or {}).items()
        }

    def add(self, record: RawEventRecord) -> None:
        self._records.append(record)

    async def query(self, kind, window, filters):
        # yield once so concurrent sub-queries interleave like real I/O
        await asyncio.sleep(0)
        return [r for r in self._records if self._matches(r, kind, window, filters)]

    async def query_reference_catalog(self, kind):
        await asyncio.sleep(0)
        return list(self._catalogs.get(kind, []))

    @staticmethod
    def _matches(
        record: RawEventRecord,
        kind: Optional[EventKind],
        window: PeriodWindow,
        filters: ReportFilters,
    ) -> bool:
        if kind is None:
            if record.kind is EventKind.SEARCH:
                return False
        elif record.kind is not kind:
            return False
        if not window.contains(as_naive_utc(record.timestamp)):
            return False
        if filters.store_id and record.entity_id != filters.store_id:
            return False
        if filters.game_name:
            game = record.search_term if record.kind is EventKind.SEARCH else record.secondary_name
            if game != filters.game_name:
                return False
        return True


# ── catalog resolution ───────────────────────────────────────────────────

@dataclass(frozen=True)
class CatalogMatch:
    """Outcome of resolving a game label against the catalog."""
    game_id: str
    name: str
    category: str
    matched: bool


class CatalogLookup:
    """Exact, case-sensitive name → catalog entry lookup."""

    def __init__(self, entries: Iterable[CatalogEntry]) -> None:
        self._by_name: Dict[str, CatalogEntry] = {}
        for entry in entries:
            # first entry wins on duplicate names
            self._by_name.setdefault(entry.name, entry)

    def __len__(self) -> int:
        return len(self._by_name)

    def resolve(self, name: str) -> CatalogMatch:
        entry = self._by_name.get(name)
        if entry is None:
            return CatalogMatch(game_id=name, name=name, category=UNCATEGORIZED_LABEL, matched=False)
        return CatalogMatch(
            game_id=entry.id,
            name=entry.name,
            category=entry.category or UNCATEGORIZED_LABEL,
            matched=True,
        )


class CatalogCache:
    """Read-through, TTL-bounded cache of reference catalogs.

    The only state shared between requests.  Entries are immutable tuples,
    so readers never see a partially refreshed catalog.
    """

    def __init__(
        self,
        ttl_seconds: float = CATALOG_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[float, Tuple[CatalogEntry, ...]]] = {}

    async def get(self, store: EventStore, kind: str = GAME_CATALOG) -> Tuple[CatalogEntry, ...]:
        with self._lock:
            cached = self._entries.get(kind)
            if cached is not None and self._clock() - cached[0] < self.ttl_seconds:
                return cached[1]

        entries = tuple(await store.query_reference_catalog(kind))
        with self._lock:
            self._entries[kind] = (self._clock(), entries)
        logger.info("Catalog '%s' refreshed (%d entries)", kind, len(entries))
        return entries

    def invalidate(self, kind: Optional[str] = None) -> None:
        with self._lock:
            if kind is None:
                self._entries.clear()
            else:
                self._entries.pop(kind, None)
