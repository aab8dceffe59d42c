"""
Two-column analysis flow that never leaves its page.

Bullets alternate between the left and right column.  Each column keeps
its own y-cursor.  A bullet that starts with its column's cursor past
``max_y`` sends that cursor back to the column top (once); lines that
would land below ``max_y`` are not placed.  When anything was dropped a
terminal "N items total" note is placed under the columns.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

WrapFn = Callable[[str, float], List[str]]


@dataclass(frozen=True)
class FlowLine:
    x: float
    y: float
    text: str
    column: int


@dataclass
class FlowResult:
    lines: List[FlowLine] = field(default_factory=list)
    items: int = 0
    dropped_lines: int = 0
    note: Optional[FlowLine] = None

    @property
    def overflowed(self) -> bool:
        return self.dropped_lines > 0


class ColumnFlow:
    """Cursor state machine for the chart-page analysis block."""

    def __init__(
        self,
        columns_x: Sequence[float],
        column_width: float,
        top: float,
        max_y: float,
        wrap: WrapFn,
        line_height: float = 4.0,
        item_spacing: float = 2.0,
    ) -> None:
        if not columns_x:
            raise ValueError("ColumnFlow needs at least one column")
        if max_y < top:
            raise ValueError(f"max_y ({max_y}) is above the column top ({top})")
        self.columns_x = list(columns_x)
        self.column_width = column_width
        self.top = top
        self.max_y = max_y
        self.wrap = wrap
        self.line_height = line_height
        self.item_spacing = item_spacing

        self.cursors = [top] * len(self.columns_x)
        self.resets = [0] * len(self.columns_x)
        self.result = FlowResult()

    @property
    def active_column(self) -> int:
        return self.result.items % len(self.columns_x)

    def add(self, text: str) -> List[FlowLine]:
        """Place one bullet in the next column; returns the lines placed."""
        column = self.active_column
        self.result.items += 1

        if self.cursors[column] > self.max_y and not self.resets[column]:
            self.cursors[column] = self.top
            self.resets[column] += 1

        placed = []
        for text_line in self.wrap(text, self.column_width) or [""]:
            if self.cursors[column] <= self.max_y:
                line = FlowLine(self.columns_x[column], self.cursors[column], text_line, column)
                placed.append(line)
                self.cursors[column] += self.line_height
            else:
                self.result.dropped_lines += 1
        self.cursors[column] += self.item_spacing
        self.result.lines.extend(placed)
        return placed

    def finish(self) -> FlowResult:
        if self.result.overflowed and self.result.note is None:
            self.result.note = FlowLine(
                self.columns_x[0],
                self.max_y + self.line_height + self.item_spacing,
                f"{self.result.items} items total",
                0,
            )
        return self.result


def flow_columns(items: Sequence[str], **kwargs) -> FlowResult:
    flow = ColumnFlow(**kwargs)
    for item in items:
        flow.add(item)
    return flow.finish()
