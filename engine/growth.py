"""
Period-over-period growth from two sets of top-line totals.
"""

from __future__ import annotations

import math
import numbers
from typing import List

from engine.models import GrowthMetric, TopLineTotals


def calculate_growth(current: float, previous: float) -> float:
    """Percentage change from `previous` to `current`.

    A zero baseline cannot be divided by, so any growth from nothing is
    reported as +100% and no activity in either period as 0%.
    """
    for name, value in (("current", current), ("previous", previous)):
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise ValueError(f"{name} must be a number, got {value!r}")
        if not math.isfinite(value) or value < 0:
            raise ValueError(f"{name} must be a finite non-negative number, got {value!r}")

    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def compute_growth(current: TopLineTotals, previous: TopLineTotals) -> List[GrowthMetric]:
    now, before = current.as_growth_inputs(), previous.as_growth_inputs()
    return [
        GrowthMetric(
            name=name,
            current_value=now[name],
            previous_value=before[name],
            percentage_change=calculate_growth(now[name], before[name]),
        )
        for name in now
    ]
