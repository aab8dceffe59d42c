"""
DocumentLayoutEngine — assemble the PDF report with ReportLab Platypus.

Input:  LayoutInput
Output: ReportDocument

Page order: cover, executive summary, chart pages (landscape, optional),
ranking tables, trends & recommendations.  Every page gets a
"Page X of N" footer once the total is known.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Sequence, Tuple
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.lib.utils import simpleSplit
from reportlab.pdfgen import canvas as pdfcanvas
from reportlab.platypus import (
    BaseDocTemplate,
    Flowable,
    Frame,
    HRFlowable,
    NextPageTemplate,
    PageBreak,
    PageTemplate,
    Paragraph,
    Spacer,
    Table,
    TableStyle,
)

from config.settings import BRAND_COLOR, BRAND_NAME
from engine import analysis
from engine.base import BaseStage
from engine.charts import (
    Box,
    ChartResult,
    Disc,
    Line,
    Primitive,
    Rect,
    Sector,
    TextAnchor,
    render_pie,
)
from engine.models import (
    CategoryShare,
    ChartDatum,
    GrowthMetric,
    MetricsBundle,
    PeriodKind,
    PeriodSpec,
    PeriodWindow,
    ReportDocument,
    ReportFilters,
)
from engine.text_flow import ColumnFlow, FlowResult

logger = logging.getLogger(__name__)

FONT_HEAD = "Helvetica-Bold"
FONT_BODY = "Helvetica"
FONT_ITALIC = "Helvetica-Oblique"
FONT_BOLD_ITALIC = "Helvetica-BoldOblique"

PRIMARY_TEXT = colors.HexColor("#1F2937")
SECONDARY_TEXT = colors.HexColor("#4B5563")
MUTED_TEXT = colors.HexColor("#6B7280")
BRAND_RGB = colors.HexColor(BRAND_COLOR)
COLOR_BG_LIGHT = colors.HexColor("#F8FAFC")
COLOR_GRID = colors.HexColor("#E5E7EB")

REPORT_TITLES = {
    PeriodKind.MONTHLY: "Monthly Report",
    PeriodKind.QUARTERLY: "Quarterly Report",
    PeriodKind.SEMIANNUAL: "Semiannual Report",
    PeriodKind.ANNUAL: "Annual Report",
}

# chart page geometry, millimetres from the top-left corner of a landscape A4 page
CHART_BOX = Box(20, 42, 150, 90)
ANALYSIS_COLUMNS_X = (180, 240)
ANALYSIS_COLUMN_WIDTH = 52
ANALYSIS_TOP = 52
ANALYSIS_MAX_Y = 185
ANALYSIS_FONT_SIZE = 8

SECTION_COVER = "cover"
SECTION_SUMMARY = "executive_summary"
SECTION_RANKINGS = "rankings"
SECTION_TRENDS = "trends"


@dataclass
class LayoutInput:
    spec: PeriodSpec
    window: PeriodWindow
    previous_window: PeriodWindow
    filters: ReportFilters
    bundle: MetricsBundle
    growth: List[GrowthMetric]
    include_charts: bool = True
    generated_at: datetime = field(default_factory=datetime.now)
    parameters: Dict[str, Any] = field(default_factory=dict)


class StyleManager:
    """Centralized typography configuration."""

    def __init__(self):
        self.title = ParagraphStyle(
            "Cover_Title",
            fontName=FONT_HEAD, fontSize=26, leading=32,
            textColor=PRIMARY_TEXT, alignment=TA_CENTER, spaceAfter=14,
        )
        self.subtitle = ParagraphStyle(
            "Cover_Subtitle",
            fontName=FONT_HEAD, fontSize=18, leading=24,
            textColor=BRAND_RGB, alignment=TA_CENTER, spaceAfter=10,
        )
        self.h1 = ParagraphStyle(
            "H1",
            fontName=FONT_HEAD, fontSize=18, leading=24,
            textColor=PRIMARY_TEXT, spaceBefore=6, spaceAfter=10,
        )
        self.h2 = ParagraphStyle(
            "H2",
            fontName=FONT_HEAD, fontSize=13, leading=17,
            textColor=SECONDARY_TEXT, spaceBefore=12, spaceAfter=6,
        )
        self.body = ParagraphStyle(
            "Body",
            fontName=FONT_BODY, fontSize=10.5, leading=14,
            textColor=SECONDARY_TEXT, spaceAfter=4, alignment=TA_LEFT,
        )
        self.bullet = ParagraphStyle(
            "Bullet", parent=self.body, leftIndent=12, bulletIndent=2,
        )
        self.caption = ParagraphStyle(
            "Caption",
            fontName=FONT_ITALIC, fontSize=9, leading=12,
            textColor=MUTED_TEXT, alignment=TA_CENTER, spaceAfter=8,
        )
        self.cell = ParagraphStyle(
            "Cell", fontName=FONT_BODY, fontSize=8.5, leading=10.5, textColor=PRIMARY_TEXT,
        )


# ── Canvas & Template Plumbing ──────────────────────────────────────────

class NumberedCanvas(pdfcanvas.Canvas):
    """Defers every page until save() so the footer can show the page total."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._saved_page_states: List[Dict[str, Any]] = []

    def showPage(self):
        self._saved_page_states.append(dict(self.__dict__))
        self._startPage()

    def save(self):
        total = len(self._saved_page_states)
        for state in self._saved_page_states:
            self.__dict__.update(state)
            self._draw_page_number(total)
            super().showPage()
        super().save()

    def _draw_page_number(self, total: int) -> None:
        width = self._pagesize[0]
        self.saveState()
        self.setFont(FONT_BODY, 8)
        self.setFillColor(MUTED_TEXT)
        self.drawCentredString(width / 2, 10 * mm, f"Page {self._pageNumber} of {total}")
        self.restoreState()


class SectionMarker(Flowable):
    """Zero-size flowable that tags the page it lands on with a section id."""

    def __init__(self, section: str):
        super().__init__()
        self.section = section

    def wrap(self, availWidth, availHeight):
        return 0, 0

    def draw(self):
        pass


class ReportDocTemplate(BaseDocTemplate):
    """Portrait pages for text and tables, landscape pages for charts."""

    def __init__(self, filename, header_title: str, **kwargs):
        super().__init__(filename, pagesize=A4, **kwargs)
        self.header_title = header_title
        self.page_sections: List[str] = []
        self._current_section = SECTION_COVER

        pw, ph = A4
        lw, lh = landscape(A4)
        body = Frame(18 * mm, 18 * mm, pw - 36 * mm, ph - 40 * mm, id="body")
        cover = Frame(18 * mm, 18 * mm, pw - 36 * mm, ph - 36 * mm, id="cover")
        full = Frame(0, 0, lw, lh, leftPadding=0, rightPadding=0,
                     topPadding=0, bottomPadding=0, id="chart")
        self.addPageTemplates([
            PageTemplate(id="cover", frames=[cover], pagesize=A4),
            PageTemplate(id="portrait", frames=[body], onPage=self._draw_header, pagesize=A4),
            PageTemplate(id="landscape", frames=[full], onPage=self._draw_header,
                         pagesize=landscape(A4)),
        ])

    def afterFlowable(self, flowable):
        if isinstance(flowable, SectionMarker):
            self._current_section = flowable.section

    def afterPage(self):
        self.page_sections.append(self._current_section)

    def _draw_header(self, canvas, doc):
        width, height = doc.pageTemplate.pagesize or doc.pagesize
        canvas.saveState()
        canvas.setFont(FONT_HEAD, 9)
        canvas.setFillColor(SECONDARY_TEXT)
        canvas.drawString(18 * mm, height - 12 * mm, BRAND_NAME)
        canvas.drawRightString(width - 18 * mm, height - 12 * mm, self.header_title)
        canvas.setStrokeColor(BRAND_RGB)
        canvas.setLineWidth(0.5)
        canvas.line(18 * mm, height - 14 * mm, width - 18 * mm, height - 14 * mm)
        canvas.restoreState()


# ── Chart Page ───────────────────────────────────────────────────────────

class ChartPage(Flowable):
    """A full landscape page: chart on the left, flowed analysis on the right.

    Coordinates are millimetres from the page's top-left corner.
    """

    def __init__(self, title: str, caption: str, chart: ChartResult,
                 heading: str, flow: FlowResult):
        super().__init__()
        self.title = title
        self.caption = caption
        self.chart = chart
        self.heading = heading
        self.flow = flow

    def wrap(self, availWidth, availHeight):
        self.width, self.height = availWidth, availHeight
        return availWidth, availHeight

    def draw(self):
        c = self.canv
        self._text(TextAnchor(20, 22, self.title, size=18, bold=True))
        self._text(TextAnchor(20, 30, self.caption, size=11, color="#4B5563"))
        for primitive in self.chart.primitives:
            paint_primitive(c, primitive, self._point)

        self._text(TextAnchor(ANALYSIS_COLUMNS_X[0], 42, self.heading, size=13, bold=True))
        for line in self.flow.lines:
            self._text(TextAnchor(line.x, line.y, line.text, size=ANALYSIS_FONT_SIZE, color="#4B5563"))
        if self.flow.note is not None:
            note = self.flow.note
            self._text(TextAnchor(note.x, note.y, note.text, size=7, italic=True, color="#6B7280"))

    def _point(self, x: float, y: float) -> Tuple[float, float]:
        return x * mm, self.height - y * mm

    def _text(self, anchor: TextAnchor) -> None:
        paint_primitive(self.canv, anchor, self._point)


def paint_primitive(canvas, primitive: Primitive,
                    to_pdf: Callable[[float, float], Tuple[float, float]]) -> None:
    """Replay one chart primitive onto a ReportLab canvas (y axis flipped)."""
    canvas.saveState()
    if isinstance(primitive, Sector):
        path = canvas.beginPath()
        points = [to_pdf(x, y) for x, y in primitive.outline()]
        path.moveTo(*points[0])
        for point in points[1:]:
            path.lineTo(*point)
        path.close()
        canvas.setFillColor(colors.HexColor(primitive.fill))
        if primitive.stroke:
            canvas.setStrokeColor(colors.HexColor(primitive.stroke))
            canvas.setLineWidth(1)
        canvas.drawPath(path, fill=1, stroke=1 if primitive.stroke else 0)
    elif isinstance(primitive, Disc):
        cx, cy = to_pdf(primitive.cx, primitive.cy)
        canvas.setFillColor(colors.HexColor(primitive.fill))
        if primitive.stroke:
            canvas.setStrokeColor(colors.HexColor(primitive.stroke))
            canvas.setLineWidth(0.5)
        canvas.circle(cx, cy, primitive.radius * mm, fill=1, stroke=1 if primitive.stroke else 0)
    elif isinstance(primitive, Rect):
        x, y = to_pdf(primitive.x, primitive.y + primitive.height)
        canvas.setFillColor(colors.HexColor(primitive.fill))
        if primitive.stroke:
            canvas.setStrokeColor(colors.HexColor(primitive.stroke))
            canvas.setLineWidth(0.5)
        canvas.rect(x, y, primitive.width * mm, primitive.height * mm,
                    fill=1, stroke=1 if primitive.stroke else 0)
    elif isinstance(primitive, Line):
        canvas.setStrokeColor(colors.HexColor(primitive.stroke))
        canvas.setLineWidth(0.5)
        canvas.line(*to_pdf(primitive.x1, primitive.y1), *to_pdf(primitive.x2, primitive.y2))
    elif isinstance(primitive, TextAnchor):
        x, y = to_pdf(primitive.x, primitive.y)
        canvas.setFont(_font(primitive.bold, primitive.italic), primitive.size)
        canvas.setFillColor(colors.HexColor(primitive.color))
        if primitive.align == "center":
            canvas.drawCentredString(x, y, primitive.text)
        else:
            canvas.drawString(x, y, primitive.text)
    else:
        raise TypeError(f"Unknown chart primitive: {primitive!r}")
    canvas.restoreState()


def _font(bold: bool, italic: bool) -> str:
    if bold and italic:
        return FONT_BOLD_ITALIC
    if bold:
        return FONT_HEAD
    return FONT_ITALIC if italic else FONT_BODY


def wrap_text(text: str, width_mm: float) -> List[str]:
    return simpleSplit(text, FONT_BODY, ANALYSIS_FONT_SIZE, width_mm * mm)


# ── Layout Stage ─────────────────────────────────────────────────────────

class DocumentLayoutEngine(BaseStage):
    """Modular section builders writing into one Platypus story."""

    name = "DocumentLayoutEngine"

    def __init__(self):
        super().__init__()
        self.sty = StyleManager()

    def _execute(self, input_data: LayoutInput) -> ReportDocument:
        data = input_data
        title = REPORT_TITLES[data.spec.kind]
        buffer = io.BytesIO()
        doc = ReportDocTemplate(
            buffer,
            header_title=f"{title} · {data.window.label}",
            title=f"{title} - {data.window.label}",
            author=BRAND_NAME,
            subject=f"{BRAND_NAME} activity report",
            creator=f"{BRAND_NAME} report engine",
        )

        story: List[Flowable] = []
        self._build_cover(story, data, title)
        self._build_executive_summary(story, data)
        if data.include_charts:
            self._build_chart_pages(story, data)
        self._build_rankings(story, data)
        self._build_trends(story, data)

        doc.build(story, canvasmaker=NumberedCanvas)

        sections = tuple(doc.page_sections)
        self._log(f"Laid out {len(sections)} pages for {data.window.label}")
        self.log.metadata["page_sections"] = list(sections)
        return ReportDocument(
            payload=buffer.getvalue(),
            generation_parameters=dict(data.parameters),
            generated_at=data.generated_at,
            period_label=data.window.label,
            page_sections=sections,
        )

    # ── Section Builders ──────────────────────────────────────────────

    def _build_cover(self, story, data: LayoutInput, title: str):
        story.append(SectionMarker(SECTION_COVER))
        story.append(Spacer(1, 50 * mm))
        story.append(Paragraph(escape(title.upper()), self.sty.title))
        story.append(Paragraph(escape(data.window.label), self.sty.subtitle))
        story.append(Paragraph(
            f"Generated on {data.generated_at:%Y-%m-%d %H:%M}", self.sty.caption
        ))
        story.append(HRFlowable(width="60%", thickness=0.5, color=BRAND_RGB, spaceBefore=8, spaceAfter=16))

        if not data.filters.is_empty():
            story.append(Paragraph("Applied filters", self.sty.h2))
            for label, value in self._filter_lines(data):
                story.append(Paragraph(f"<b>{label}:</b> {escape(value)}", self.sty.bullet, bulletText="•"))

        story.append(NextPageTemplate("portrait"))
        story.append(PageBreak())

    def _filter_lines(self, data: LayoutInput) -> List[Tuple[str, str]]:
        filters = data.filters
        lines = []
        if filters.store_id:
            name = next(
                (s.display_name for s in data.bundle.top_stores if s.dimension_id == filters.store_id),
                None,
            )
            lines.append(("Store", f"{name} ({filters.store_id})" if name else filters.store_id))
        if filters.game_name:
            lines.append(("Game", filters.game_name))
        if filters.category:
            lines.append(("Category", filters.category))
        return lines

    def _build_executive_summary(self, story, data: LayoutInput):
        story.append(SectionMarker(SECTION_SUMMARY))
        story.append(Paragraph("Executive Summary", self.sty.h1))
        story.append(Paragraph(
            f"Key figures for {escape(data.window.label)}, compared with {escape(data.previous_window.label)}.",
            self.sty.body,
        ))
        story.append(Spacer(1, 8))

        t = data.bundle.totals
        counters = [
            ("Total events", t.total_events),
            ("Activities", t.total_activities),
            ("Searches", t.total_searches),
            ("Registrations", t.total_registrations),
            ("Active stores", t.total_stores),
            ("Games", t.total_games),
            ("Unique users", t.unique_actors),
        ]
        rows = [[Paragraph(f"<b>{label}</b>", self.sty.cell), f"{value:,}"] for label, value in counters]
        table = Table(rows, colWidths=[80 * mm, 40 * mm], hAlign="LEFT")
        table.setStyle(TableStyle([
            ("GRID", (0, 0), (-1, -1), 0.5, COLOR_GRID),
            ("BACKGROUND", (0, 0), (0, -1), COLOR_BG_LIGHT),
            ("ALIGN", (1, 0), (1, -1), "CENTER"),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("PADDING", (0, 0), (-1, -1), 6),
        ]))
        story.append(table)

        story.append(Paragraph("Growth versus the previous period", self.sty.h2))
        growth_rows = [["Metric", "Current", "Previous", "Change"]]
        for metric in data.growth:
            growth_rows.append([
                analysis.METRIC_LABELS.get(metric.name, metric.name),
                _number(metric.current_value),
                _number(metric.previous_value),
                signed_percentage(metric.percentage_change),
            ])
        story.append(self._data_table(growth_rows, [60 * mm, 30 * mm, 30 * mm, 30 * mm]))

    def _build_chart_pages(self, story, data: LayoutInput):
        bundle = data.bundle
        pages = [
            (
                "chart:stores", "STORE VISUAL ANALYSIS", "Most visited stores", "STORE ANALYSIS",
                [ChartDatum(s.display_name, s.count) for s in bundle.top_stores],
                analysis.analyze_stores(bundle.top_stores, data.window),
            ),
            (
                "chart:searched_games", "GAME VISUAL ANALYSIS", "Most searched games", "GAME ANALYSIS",
                [ChartDatum(g.display_name, g.count) for g in bundle.top_searched_games],
                analysis.analyze_games(bundle.top_searched_games, data.window),
            ),
            (
                "chart:categories", "CATEGORY VISUAL ANALYSIS", "Participation by game category",
                "CATEGORY ANALYSIS",
                [ChartDatum(c.category_label, c.count) for c in bundle.category_participation],
                analysis.analyze_categories(bundle.category_participation, data.window),
            ),
        ]
        story.append(NextPageTemplate("landscape"))
        for section, title, chart_title, heading, datums, bullets in pages:
            chart = render_pie(datums, CHART_BOX, title=chart_title)
            flow = ColumnFlow(
                ANALYSIS_COLUMNS_X, ANALYSIS_COLUMN_WIDTH, ANALYSIS_TOP, ANALYSIS_MAX_Y, wrap_text,
            )
            for bullet in bullets:
                flow.add(f"• {bullet}")
            result = flow.finish()
            if result.overflowed:
                logger.info("Analysis for %s truncated (%d lines dropped)", section, result.dropped_lines)

            story.append(PageBreak())
            story.append(SectionMarker(section))
            story.append(ChartPage(title, f"Period: {data.window.label}", chart, heading, result))
            self._log(f"{section}: {type(chart).__name__}, {len(bullets)} analysis bullets")

    def _build_rankings(self, story, data: LayoutInput):
        bundle = data.bundle
        story.append(NextPageTemplate("portrait"))
        story.append(PageBreak())
        story.append(SectionMarker(SECTION_RANKINGS))
        story.append(Paragraph("Detailed Rankings", self.sty.h1))

        self._ranking_section(
            story, "Most visited stores",
            ["#", "Store", "Visits", "Activity views", "Unique users"],
            [[m.display_name, m.count, m.secondary_count, m.unique_actor_count] for m in bundle.top_stores],
            [10, 75, 25, 30, 30],
        )
        self._ranking_section(
            story, "Most searched games",
            ["#", "Game", "Category", "Searches", "Activity views"],
            [[m.display_name, m.category_label, m.count, m.secondary_count] for m in bundle.top_searched_games],
            [10, 60, 40, 30, 30],
        )
        self._ranking_section(
            story, "Most played games",
            ["#", "Game", "Category", "Interactions", "Activity views"],
            [[m.display_name, m.category_label, m.count, m.secondary_count] for m in bundle.top_played_games],
            [10, 60, 40, 30, 30],
        )
        self._ranking_section(
            story, "Most popular activities",
            ["#", "Activity", "Store", "Game", "Category", "Views", "Regs.", "First seen"],
            [
                [m.display_name, m.related_label, m.secondary_label, m.category_label,
                 m.count, m.secondary_count, m.first_seen]
                for m in bundle.top_activities
            ],
            [8, 40, 28, 26, 22, 14, 14, 22],
        )
        self._ranking_section(
            story, "Participation by game category",
            ["#", "Category", "Participations", "Share"],
            _share_rows(bundle.category_participation),
            [10, 80, 40, 40],
        )
        self._ranking_section(
            story, "Registrations by activity type",
            ["#", "Category", "Registrations", "Share"],
            _share_rows(bundle.activity_types),
            [10, 80, 40, 40],
        )

    def _ranking_section(self, story, heading: str, header: List[str],
                         rows: Sequence[Sequence[Any]], widths_mm: Sequence[float]):
        story.append(Paragraph(heading, self.sty.h2))
        if not rows:
            story.append(Paragraph("No data for this period.", self.sty.body))
            return
        table_rows = [header]
        for rank, row in enumerate(rows, start=1):
            table_rows.append([str(rank)] + [
                Paragraph(escape(cell), self.sty.cell) if isinstance(cell, str) else _number(cell)
                for cell in row
            ])
        story.append(self._data_table(table_rows, [w * mm for w in widths_mm]))

    def _build_trends(self, story, data: LayoutInput):
        bundle = data.bundle
        story.append(PageBreak())
        story.append(SectionMarker(SECTION_TRENDS))
        story.append(Paragraph("Trends &amp; Recommendations", self.sty.h1))

        story.append(Paragraph("Period-over-period analysis", self.sty.h2))
        for line in analysis.trend_analysis(data.growth, bundle.trends):
            story.append(Paragraph(escape(line), self.sty.bullet, bulletText="•"))

        story.append(Paragraph("Recommendations", self.sty.h2))
        for line in analysis.recommendations(bundle, data.growth):
            story.append(Paragraph(escape(line), self.sty.bullet, bulletText="•"))

        story.append(Paragraph("Daily activity", self.sty.h2))
        if not bundle.trends:
            story.append(Paragraph("No daily activity recorded for this period.", self.sty.body))
            return
        rows = [["Day", "Searches", "Activity views", "Registrations"]]
        rows += [
            [p.period_label, _number(p.search_count), _number(p.activity_count), _number(p.registration_count)]
            for p in bundle.trends
        ]
        story.append(self._data_table(rows, [40 * mm, 35 * mm, 35 * mm, 35 * mm]))

    # ── Framing Components ──────────────────────────────────────────

    def _data_table(self, rows, col_widths):
        t = Table(rows, colWidths=col_widths, repeatRows=1, hAlign="LEFT")
        t.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), BRAND_RGB),
            ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
            ("FONTNAME", (0, 0), (-1, 0), FONT_HEAD),
            ("FONTSIZE", (0, 0), (-1, -1), 8.5),
            ("GRID", (0, 0), (-1, -1), 0.5, COLOR_GRID),
            ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, COLOR_BG_LIGHT]),
            ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
            ("PADDING", (0, 0), (-1, -1), 4),
        ]))
        return t


def signed_percentage(change: float) -> str:
    return f"{'+' if change > 0 else ''}{change:.1f}%"


def _number(value: Any) -> str:
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.1f}"
    return f"{int(value):,}"


def _share_rows(shares: Sequence[CategoryShare]) -> List[List[Any]]:
    return [[s.category_label, s.count, f"{s.percentage:.1f}%"] for s in shares]
