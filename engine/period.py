"""
PeriodResolver — turn a period request into concrete time windows.

Every window is half-open ``[start, end)``.  The previous window is the
immediately preceding interval of the same granularity, so January's
previous period is December of the year before.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict

from engine.errors import ConfigurationError
from engine.models import WINDOW_KINDS, PeriodKind, PeriodSpec, PeriodWindow

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]
SEMESTER_NAMES = ["First Semester", "Second Semester"]

# months per window, and how many sub-units fit in a year
_SPAN = {
    PeriodKind.MONTHLY: (1, 12),
    PeriodKind.QUARTERLY: (3, 4),
    PeriodKind.SEMIANNUAL: (6, 2),
    PeriodKind.ANNUAL: (12, 1),
}


@dataclass(frozen=True)
class ResolvedPeriod:
    spec: PeriodSpec
    current: PeriodWindow
    previous: PeriodWindow


def parse_period_spec(data: Dict[str, Any]) -> PeriodSpec:
    """Build a PeriodSpec from loosely-typed request parameters."""
    try:
        kind = PeriodKind(str(data.get("kind", "")).lower())
    except ValueError:
        raise ConfigurationError(
            f"Invalid period kind '{data.get('kind')}'. "
            f"Use: {', '.join(k.value for k in PeriodKind)}"
        )
    try:
        year = int(data["year"])
    except (KeyError, TypeError, ValueError):
        raise ConfigurationError("A numeric 'year' is required.")

    def _opt(key):
        value = data.get(key)
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"'{key}' must be an integer.")

    return PeriodSpec(
        kind=kind, year=year,
        month=_opt("month"), quarter=_opt("quarter"), semester=_opt("semester"),
    )


def resolve_period(spec: PeriodSpec) -> ResolvedPeriod:
    """Compute the current window and the previous equivalent window."""
    if not isinstance(spec.kind, PeriodKind):
        raise ConfigurationError(f"Invalid period kind: {spec.kind!r}")
    if not 2 <= spec.year <= 9998:
        raise ConfigurationError(f"Year out of range: {spec.year}")

    index = _sub_unit_index(spec)
    span, _ = _SPAN[spec.kind]
    start_month = spec.year * 12 + index * span
    current = _window(spec.kind, start_month)
    previous = _window(spec.kind, start_month - span)

    logger.debug("Resolved %s → %s (previous %s)", spec, current.label, previous.label)
    return ResolvedPeriod(spec=spec, current=current, previous=previous)


def period_phrase(window: PeriodWindow) -> str:
    """Narrative form of a window label, e.g. 'in Q1 2025'."""
    if window.kind == "semester":
        ordinal = "first" if window.start.month == 1 else "second"
        return f"in the {ordinal} semester of {window.start.year}"
    if window.kind == "year":
        return f"in the year {window.start.year}"
    return f"in {window.label}"


def file_suffix(spec: PeriodSpec) -> str:
    """Short period token used in download file names."""
    if spec.kind is PeriodKind.MONTHLY:
        return f"{spec.month:02d}"
    if spec.kind is PeriodKind.QUARTERLY:
        return f"Q{spec.quarter}"
    if spec.kind is PeriodKind.SEMIANNUAL:
        return f"S{spec.semester}"
    return "annual"


def report_filename(spec: PeriodSpec) -> str:
    return f"report-{spec.kind.value}-{spec.year}-{file_suffix(spec)}.pdf"


# ── helpers ──────────────────────────────────────────────────────────────

def _sub_unit_index(spec: PeriodSpec) -> int:
    """Zero-based index of the requested sub-unit within its year."""
    _, units = _SPAN[spec.kind]
    if spec.kind is PeriodKind.ANNUAL:
        return 0
    name, value = {
        PeriodKind.MONTHLY: ("month", spec.month),
        PeriodKind.QUARTERLY: ("quarter", spec.quarter),
        PeriodKind.SEMIANNUAL: ("semester", spec.semester),
    }[spec.kind]
    if value is None:
        raise ConfigurationError(f"A {name} is required for {spec.kind.value} reports.")
    if not 1 <= value <= units:
        raise ConfigurationError(
            f"Invalid {name} {value} for {spec.kind.value} reports (expected 1–{units})."
        )
    return value - 1


def _month_start(absolute_month: int) -> datetime:
    year, month0 = divmod(absolute_month, 12)
    return datetime(year, month0 + 1, 1)


def _window(kind: PeriodKind, start_month: int) -> PeriodWindow:
    span, _ = _SPAN[kind]
    start = _month_start(start_month)
    end = _month_start(start_month + span)
    return PeriodWindow(start=start, end=end, label=_label(kind, start), kind=WINDOW_KINDS[kind])


def _label(kind: PeriodKind, start: datetime) -> str:
    if kind is PeriodKind.MONTHLY:
        return f"{MONTH_NAMES[start.month - 1]} {start.year}"
    if kind is PeriodKind.QUARTERLY:
        return f"Q{(start.month - 1) // 3 + 1} {start.year}"
    if kind is PeriodKind.SEMIANNUAL:
        return f"{SEMESTER_NAMES[(start.month - 1) // 6]} {start.year}"
    return f"Year {start.year}"
