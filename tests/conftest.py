import sys
from datetime import datetime
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from engine.event_store import GAME_CATALOG, InMemoryEventStore
from engine.models import CatalogEntry, EventKind, PeriodKind, PeriodSpec, RawEventRecord

CATALOG = [
    CatalogEntry("g1", "Pokemon TCG", "TCG"),
    CatalogEntry("g2", "Magic: The Gathering", "TCG"),
    CatalogEntry("g3", "Catan", "Board"),
    CatalogEntry("g4", "Warhammer 40k", None),
]

STORE_NAMES = {"s1": "Dragon's Lair", "s2": "Card Kingdom", "s3": "Meeple Corner"}


def event(kind, day, actor="u1", store=None, game=None, activity=None, when=None):
    """Interaction record on 2025-01-<day> (or `when`) with denormalized labels."""
    return RawEventRecord(
        kind=kind,
        timestamp=when or datetime(2025, 1, day, 12, 0),
        actor_id=actor,
        entity_id=store,
        entity_name=STORE_NAMES.get(store),
        secondary_name=game,
        activity_id=f"a-{activity}" if activity else None,
        activity_name=activity,
    )


def search(day, term, weight=1, actor="u1", when=None):
    return RawEventRecord(
        kind=EventKind.SEARCH,
        timestamp=when or datetime(2025, 1, day, 9, 30),
        actor_id=actor,
        search_term=term,
        weight=weight,
    )


def sample_records():
    """A small but complete January 2025, plus a thinner December 2024."""
    records = []
    for i in range(5):
        records.append(event(EventKind.VIEW_STORE, 3, f"u{i}", store="s1", game="Pokemon TCG"))
    for i in range(3):
        records.append(event(EventKind.VIEW_ACTIVITY, 4, f"u{i}", store="s1", game="Pokemon TCG",
                             activity="Friday Draft"))
    for i in range(2):
        records.append(event(EventKind.REGISTRATION, 5, f"u{i}", store="s1", game="Pokemon TCG",
                             activity="Friday Draft"))
    for i in range(4):
        records.append(event(EventKind.VIEW_GAME, 6, f"u{i + 5}", store="s2", game="Catan"))
    records.append(event(EventKind.VIEW_STORE, 7, "u9", store="s3", game="Warhammer 40k"))
    records.append(search(3, "Catan", weight=3))
    records.append(search(8, "Pokemon TCG", weight=2, actor="u2"))

    december = datetime(2024, 12, 10, 18, 0)
    records.append(event(EventKind.VIEW_STORE, 0, "u1", store="s1", game="Pokemon TCG", when=december))
    records.append(event(EventKind.VIEW_ACTIVITY, 0, "u1", store="s1", game="Pokemon TCG",
                         activity="Friday Draft", when=december))
    records.append(search(0, "Catan", weight=1, when=december))
    return records


@pytest.fixture
def store():
    return InMemoryEventStore(sample_records(), {GAME_CATALOG: CATALOG})


@pytest.fixture
def january():
    return PeriodSpec(PeriodKind.MONTHLY, 2025, month=1)
