"""
ChartRenderer — pie and horizontal-bar charts as pure geometry.

Nothing here paints.  Each renderer returns a chart object holding a list
of drawable primitives in screen coordinates (origin top-left, y grows
downward) inside the requested box.  The layout stage replays the
primitives onto a reportlab canvas.
"""

from __future__ import annotations

import logging
import math
import numbers
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence, Tuple, Union

from config.settings import (
    BAR_MAX_ITEMS,
    LEGEND_COLUMNS,
    LEGEND_LABEL_MAX_CHARS,
    LEGEND_MAX_ENTRIES,
    PIE_LABEL_THRESHOLD,
)
from engine.errors import RenderDegradation
from engine.models import ChartDatum

logger = logging.getLogger(__name__)

PALETTE = (
    "#3B82F6", "#EF4444", "#10B981", "#F59E0B", "#8B5CF6",
    "#EC4899", "#06B6D4", "#84CC16", "#F97316", "#6366F1",
    "#F43F5E", "#8B5A2B", "#059669", "#DC2626", "#7C3AED",
)
BACKGROUND = "#FFFFFF"
TEXT_DARK = "#1F2937"
TEXT_MUTED = "#4B5563"
TEXT_FAINT = "#6B7280"
RULE = "#C8C8C8"

NO_DATA_MESSAGE = "No data available"
UNNAMED = "Unnamed"


def palette_color(index: int) -> str:
    return PALETTE[index % len(PALETTE)]


# ── primitives ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Box:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Sector:
    cx: float
    cy: float
    radius: float
    start_angle: float
    end_angle: float
    fill: str
    stroke: Optional[str] = BACKGROUND

    def outline(self, steps: Optional[int] = None) -> List[Tuple[float, float]]:
        """Closed polygon approximating the slice: centre, then the arc."""
        sweep = self.end_angle - self.start_angle
        if steps is None:
            steps = max(10, int(sweep * 10))
        points = [(self.cx, self.cy)]
        for i in range(steps + 1):
            angle = self.start_angle + sweep * i / steps
            points.append((
                self.cx + self.radius * math.cos(angle),
                self.cy + self.radius * math.sin(angle),
            ))
        return points


@dataclass(frozen=True)
class Disc:
    cx: float
    cy: float
    radius: float
    fill: str
    stroke: Optional[str] = None


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float
    fill: str
    stroke: Optional[str] = None


@dataclass(frozen=True)
class Line:
    x1: float
    y1: float
    x2: float
    y2: float
    stroke: str = RULE


@dataclass(frozen=True)
class TextAnchor:
    x: float
    y: float                 # baseline
    text: str
    size: float = 8
    bold: bool = False
    italic: bool = False
    color: str = TEXT_DARK
    align: str = "left"      # left | center


Primitive = Union[Sector, Disc, Rect, Line, TextAnchor]


# ── chart results ────────────────────────────────────────────────────────

@dataclass
class PieSlice:
    label: str
    value: float
    share: float
    start_angle: float
    end_angle: float
    color: str
    labelled: bool


@dataclass
class LegendEntry:
    rank: int
    label: str
    value: float
    percentage: float
    color: str


@dataclass
class PieChart:
    box: Box
    center: Tuple[float, float]
    radius: float
    total: float
    slices: List[PieSlice] = field(default_factory=list)
    legend: List[LegendEntry] = field(default_factory=list)
    hidden_count: int = 0
    primitives: List[Primitive] = field(default_factory=list)


@dataclass
class BarItem:
    rank: int
    label: str
    value: float
    relative_pct: float
    total_pct: float
    length: float


@dataclass
class BarChart:
    box: Box
    total: float
    bars: List[BarItem] = field(default_factory=list)
    leader_label: str = ""
    leader_share: float = 0.0
    primitives: List[Primitive] = field(default_factory=list)


@dataclass
class NoDataChart:
    box: Box
    message: str = NO_DATA_MESSAGE
    primitives: List[Primitive] = field(default_factory=list)


ChartResult = Union[PieChart, BarChart, NoDataChart]


# ── public API ───────────────────────────────────────────────────────────

def render_pie(
    data: Sequence[ChartDatum],
    box: Box,
    *,
    title: str = "",
    label_threshold: float = PIE_LABEL_THRESHOLD,
    legend_cap: int = LEGEND_MAX_ENTRIES,
    legend_columns: int = LEGEND_COLUMNS,
    label_max_chars: int = LEGEND_LABEL_MAX_CHARS,
) -> ChartResult:
    """Donut chart with a capped legend; bar chart when the data is unusable.

    Slices are laid out in caller order starting at 12 o'clock.  The box
    anchors the chart rather than bounding it: the pie sits 30mm below the
    box centre and, in a landscape box, reaches 15mm past its lower edge
    where the legend starts.
    """
    try:
        values = [_checked_value(d.value) for d in data]
    except RenderDegradation as exc:
        logger.warning("Pie chart '%s' degraded to bars: %s", title or "untitled", exc)
        return render_bars(data, box, title=title)

    total = sum(values)
    if not data or total == 0:
        return no_data(box, title=title)

    primitives: List[Primitive] = _title(box, title)
    cx = box.x + box.width / 2
    cy = box.y + 30 + box.height / 2
    radius = min(box.width, box.height) / 2 - 15
    if radius <= 0:
        raise ValueError(f"Chart box too small for a pie: {box}")

    slices: List[PieSlice] = []
    labels: List[Primitive] = []
    angle = -math.pi / 2
    for index, (datum, value) in enumerate(zip(data, values)):
        share = value / total
        sweep = share * 2 * math.pi
        if sweep <= 0:
            continue
        color = palette_color(index)
        start, end = angle, angle + sweep
        labelled = share > label_threshold
        slices.append(PieSlice(_label(datum.label), value, share, start, end, color, labelled))
        primitives.append(Sector(cx, cy, radius, start, end, fill=color))
        if labelled:
            mid = (start + end) / 2
            labels.append(TextAnchor(
                cx + radius * 0.6 * math.cos(mid),
                cy + radius * 0.6 * math.sin(mid) + 2,
                f"{share * 100:.1f}%",
                size=8, bold=True, color=BACKGROUND, align="center",
            ))
        angle = end

    primitives.extend(labels)
    primitives.append(Disc(cx, cy, radius * 0.35, fill=BACKGROUND, stroke=RULE))

    legend, legend_primitives = _legend(
        data, values, total, box, legend_cap, legend_columns, label_max_chars
    )
    primitives.extend(legend_primitives)

    return PieChart(
        box=box,
        center=(cx, cy),
        radius=radius,
        total=total,
        slices=slices,
        legend=legend,
        hidden_count=max(0, len(data) - legend_cap),
        primitives=primitives,
    )


def render_bars(
    data: Sequence[ChartDatum],
    box: Box,
    *,
    title: str = "",
    max_items: int = BAR_MAX_ITEMS,
    label_max_chars: int = 16,
    row_pitch: float = 13.0,
    bar_height: float = 6.0,
) -> ChartResult:
    """Horizontal bars scaled to the largest value, with a summary footer.

    Malformed values are treated as zero here.
    """
    values = [_lenient_value(d.value) for d in data]
    max_value = max(values, default=0)
    if max_value <= 0:
        return no_data(box, title=title)

    total = sum(values)
    span = box.width * 0.55
    primitives: List[Primitive] = _title(box, title)
    primitives.append(TextAnchor(box.x, box.y + 12, "DATA BREAKDOWN", size=9, bold=True))

    bars: List[BarItem] = []
    shown = list(zip(data, values))[:max_items]
    for index, (datum, value) in enumerate(shown):
        relative = value / max_value * 100
        share = value / total * 100
        length = relative / 100 * span
        bar_y = box.y + 20 + index * row_pitch
        label = _truncate(_label(datum.label), label_max_chars)
        bars.append(BarItem(index + 1, label, value, relative, share, length))

        primitives.append(TextAnchor(box.x + 5, bar_y - 1.5, f"{index + 1}. {label}", size=8, bold=True))
        if length > 0:
            primitives.append(Rect(box.x + 5, bar_y, length, bar_height, fill=palette_color(index), stroke=BACKGROUND))
        primitives.append(TextAnchor(
            box.x + 5 + length + 3, bar_y + bar_height - 1.5,
            f"Value {_fmt(value)} | Relative {relative:.1f}% | Total {share:.1f}%",
            size=7, color=TEXT_MUTED,
        ))

    leader_label = _label(data[0].label)
    leader_share = values[0] / total * 100
    summary_y = box.y + 20 + len(shown) * row_pitch + 4
    primitives.extend([
        Line(box.x, summary_y, box.x + box.width, summary_y),
        TextAnchor(box.x, summary_y + 6, "SUMMARY", size=9, bold=True),
        TextAnchor(box.x, summary_y + 11, f"• Items shown: {len(shown)}", color=TEXT_MUTED),
        TextAnchor(box.x, summary_y + 16, f"• Total: {_fmt(total)}", color=TEXT_MUTED),
        TextAnchor(
            box.x, summary_y + 21,
            f"• Leader: {leader_label} ({leader_share:.1f}%)", color=TEXT_MUTED,
        ),
    ])

    return BarChart(
        box=box,
        total=total,
        bars=bars,
        leader_label=leader_label,
        leader_share=leader_share,
        primitives=primitives,
    )


def no_data(box: Box, *, title: str = "") -> NoDataChart:
    primitives = _title(box, title)
    primitives.append(TextAnchor(box.x, box.y + 30, NO_DATA_MESSAGE, size=10, color=TEXT_FAINT))
    return NoDataChart(box=box, primitives=primitives)


# ── helpers ──────────────────────────────────────────────────────────────

def _checked_value(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise RenderDegradation(f"non-numeric value {value!r}")
    if not math.isfinite(value):
        raise RenderDegradation(f"non-finite value {value!r}")
    if value < 0:
        raise RenderDegradation(f"negative value {value!r}")
    return float(value)


def _lenient_value(value: Any) -> float:
    try:
        return _checked_value(value)
    except RenderDegradation:
        return 0.0


def _legend(
    data: Sequence[ChartDatum],
    values: Sequence[float],
    total: float,
    box: Box,
    cap: int,
    columns: int,
    max_chars: int,
) -> Tuple[List[LegendEntry], List[Primitive]]:
    legend_y = box.y + box.height + 15
    item_width = box.width / columns
    entries: List[LegendEntry] = []
    primitives: List[Primitive] = [
        TextAnchor(box.x, legend_y, "DATA BREAKDOWN", size=9, bold=True),
    ]

    for index, (datum, value) in enumerate(list(zip(data, values))[:cap]):
        color = palette_color(index)
        label = _truncate(_label(datum.label), max_chars)
        pct = value / total * 100
        entries.append(LegendEntry(index + 1, label, value, pct, color))

        lx = box.x + (index % columns) * item_width
        ly = legend_y + 10 + (index // columns) * 15
        primitives.extend([
            Disc(lx + 6, ly + 3, 3, fill=color, stroke=BACKGROUND),
            TextAnchor(lx + 12, ly + 1, f"{index + 1}. {label}", size=8, bold=True),
            TextAnchor(lx + 12, ly + 6, f"{_fmt(value)} ({pct:.1f}%)", size=7, color=TEXT_MUTED),
        ])

    if len(data) > cap:
        more_y = legend_y + 10 + math.ceil(cap / columns) * 15
        primitives.append(TextAnchor(
            box.x, more_y, f"... and {len(data) - cap} more",
            size=7, italic=True, color=TEXT_FAINT,
        ))
    return entries, primitives


def _title(box: Box, title: str) -> List[Primitive]:
    if not title:
        return []
    return [TextAnchor(box.x, box.y, title, size=14, bold=True)]


def _label(label: Any) -> str:
    text = "" if label is None else str(label).strip()
    return text or UNNAMED


def _truncate(text: str, max_chars: int) -> str:
    return text if len(text) <= max_chars else text[:max_chars] + "..."


def _fmt(value: float) -> str:
    return f"{value:,.0f}" if float(value).is_integer() else f"{value:,.1f}"
