"""Staylytics - Period Comparison.

Attaches previous-period percentage change to normalized records. Overview
records are compared measure by measure; breakdown rows are matched on
their dimensions (on label when a row has none), and a row with no
previous counterpart compares against zero.
"""

from typing import Dict, Hashable, List

from app.core.logging import get_logger
from app.models.normalized_models import MetricRecord, ReportData

logger = get_logger("analyzer.comparison")


def percent_change(current: float, previous: float) -> float:
    """% change vs previous. From a zero baseline: 0 if still zero, else 100."""
    if previous == 0:
        return 0.0 if current == 0 else 100.0
    return round((current - previous) / abs(previous) * 100, 2)


def row_key(row: MetricRecord) -> Hashable:
    """Identity of a breakdown row across periods."""
    if row.dimensions:
        return tuple(sorted(row.dimensions.items()))
    return row.label


def _compare(current: MetricRecord, previous: MetricRecord | None) -> MetricRecord:
    before = previous.measures if previous is not None else {}
    change = {
        name: percent_change(value, before.get(name, 0.0))
        for name, value in current.measures.items()
    }
    return current.model_copy(update={"change_pct": change})


def apply_comparison(current: ReportData, previous: ReportData) -> ReportData:
    if isinstance(current, MetricRecord):
        prev = previous if isinstance(previous, MetricRecord) else None
        return _compare(current, prev)

    prev_rows = previous if isinstance(previous, list) else []
    by_key: Dict[Hashable, MetricRecord] = {}
    for row in prev_rows:
        by_key.setdefault(row_key(row), row)
    compared: List[MetricRecord] = [_compare(row, by_key.get(row_key(row))) for row in current]
    logger.debug(
        f"Compared {len(compared)} rows against {len(prev_rows)} previous rows"
    )
    return compared
