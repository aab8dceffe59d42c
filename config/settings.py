"""
Centralized configuration for the activity report engine.
All settings are read from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# ── Paths ────────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", str(BASE_DIR / "outputs")))
ARCHIVE_DIR = Path(os.getenv("ARCHIVE_DIR", str(OUTPUT_DIR / "archive")))

# ── Server ───────────────────────────────────────────────────────────────
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# ── Aggregation ──────────────────────────────────────────────────────────
DEFAULT_RANK_LIMIT = int(os.getenv("DEFAULT_RANK_LIMIT", "10"))
MAX_RANK_LIMIT = int(os.getenv("MAX_RANK_LIMIT", "1000"))
MAX_CONCURRENT_QUERIES = int(os.getenv("MAX_CONCURRENT_QUERIES", "4"))
EVENT_STORE_TIMEOUT_SECONDS = float(os.getenv("EVENT_STORE_TIMEOUT_SECONDS", "30"))
CATALOG_CACHE_TTL_SECONDS = float(os.getenv("CATALOG_CACHE_TTL_SECONDS", "300"))
UNCATEGORIZED_LABEL = os.getenv("UNCATEGORIZED_LABEL", "Uncategorized")

# ── Charts ───────────────────────────────────────────────────────────────
PIE_LABEL_THRESHOLD = float(os.getenv("PIE_LABEL_THRESHOLD", "0.05"))
LEGEND_MAX_ENTRIES = int(os.getenv("LEGEND_MAX_ENTRIES", "6"))
LEGEND_COLUMNS = int(os.getenv("LEGEND_COLUMNS", "3"))
LEGEND_LABEL_MAX_CHARS = int(os.getenv("LEGEND_LABEL_MAX_CHARS", "12"))
BAR_MAX_ITEMS = int(os.getenv("BAR_MAX_ITEMS", "8"))

# ── Branding ─────────────────────────────────────────────────────────────
BRAND_NAME = os.getenv("BRAND_NAME", "TCG Admin")
BRAND_COLOR = os.getenv("BRAND_COLOR", "#3B82F6")

# ── Archive ──────────────────────────────────────────────────────────────
ARCHIVE_BACKEND = os.getenv("ARCHIVE_BACKEND", "memory").lower()


def archive_on_disk() -> bool:
    """Check if generated reports are archived on the filesystem."""
    return ARCHIVE_BACKEND == "filesystem"
