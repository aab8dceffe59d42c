from datetime import datetime, timedelta

import numpy as np

from config.settings import OUTPUT_DIR
from engine.event_store import GAME_CATALOG, InMemoryEventStore
from engine.models import CatalogEntry, EventKind, RawEventRecord
from orchestrator.master import ReportOrchestrator

GAMES = [
    ("g1", "Magic: The Gathering", "TCG"),
    ("g2", "Pokemon TCG", "TCG"),
    ("g3", "Yu-Gi-Oh!", "TCG"),
    ("g4", "Catan", "Board"),
    ("g5", "Carcassonne", "Board"),
    ("g6", "Warhammer 40k", "Miniatures"),
]
STORES = [("s1", "Dragon's Lair"), ("s2", "Card Kingdom"), ("s3", "Meeple Corner"), ("s4", "Dice Tower")]


def synthetic_events(start: datetime, days: int, n: int, seed: int = 7):
    """Random but reproducible interactions spread over `days` days."""
    rng = np.random.default_rng(seed)
    kinds = [EventKind.VIEW_STORE, EventKind.VIEW_GAME, EventKind.VIEW_ACTIVITY,
             EventKind.REGISTRATION, EventKind.SEARCH]
    records = []
    for _ in range(n):
        kind = kinds[rng.choice(len(kinds), p=[0.2, 0.2, 0.3, 0.15, 0.15])]
        when = start + timedelta(days=int(rng.integers(days)), minutes=int(rng.integers(1440)))
        _, game, _ = GAMES[rng.choice(len(GAMES), p=[0.3, 0.25, 0.15, 0.15, 0.1, 0.05])]
        store_id, store_name = STORES[rng.integers(len(STORES))]
        actor = f"u{rng.integers(40)}"
        if kind is EventKind.SEARCH:
            records.append(RawEventRecord(kind, when, actor, search_term=game,
                                          weight=int(rng.integers(1, 5))))
            continue
        activity = f"{game} Night @ {store_name}"
        records.append(RawEventRecord(
            kind, when, actor,
            entity_id=store_id, entity_name=store_name, secondary_name=game,
            activity_id=f"{store_id}-{game}" if kind in (EventKind.VIEW_ACTIVITY, EventKind.REGISTRATION) else None,
            activity_name=activity if kind in (EventKind.VIEW_ACTIVITY, EventKind.REGISTRATION) else None,
        ))
    return records


def main():
    print("Starting preview report...")

    records = synthetic_events(datetime(2024, 12, 1), 62, 900)
    catalog = {GAME_CATALOG: [CatalogEntry(i, name, cat) for i, name, cat in GAMES]}
    orchestrator = ReportOrchestrator(InMemoryEventStore(records, catalog))

    result = orchestrator.generate_report_sync(
        {"kind": "monthly", "year": 2025, "month": 1}, owner_id="preview",
    )

    output_dir = OUTPUT_DIR / "preview"
    output_dir.mkdir(parents=True, exist_ok=True)
    pdf_path = output_dir / result.filename
    pdf_path.write_bytes(result.document.payload)

    print(f"Report: {pdf_path} ({result.document.page_count} pages)")
    for metric in result.growth:
        print(f"  {metric.name:<14} {metric.current_value:>6} vs {metric.previous_value:<6} "
              f"{metric.percentage_change:+.1f}%")


if __name__ == "__main__":
    main()
