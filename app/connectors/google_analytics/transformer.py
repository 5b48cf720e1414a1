"""Staylytics - GA4 Raw → Normalized Transformer."""

from typing import Any, Dict, List, Sequence, Tuple

from app.connectors.transformer import (
    build_record,
    ratio_to_percent,
    safe_divide,
    safe_float,
    zero_record,
)
from app.models.normalized_models import MetricRecord

# GA4 API metric → canonical measure
METRIC_NAMES: Dict[str, str] = {
    "totalUsers": "total_users",
    "newUsers": "new_users",
    "sessions": "sessions",
    "engagedSessions": "engaged_sessions",
    "engagementRate": "engagement_rate",
    "bounceRate": "bounce_rate",
    "averageSessionDuration": "average_session_duration",
    "screenPageViews": "pageviews",
    "eventCount": "event_count",
    "keyEvents": "conversions",
    "totalRevenue": "total_revenue",
    "purchaseRevenue": "purchase_revenue",
    "averageRevenuePerUser": "average_revenue_per_user",
    "averagePurchaseRevenue": "average_purchase_revenue",
    "totalPurchasers": "total_purchasers",
}

# GA4 reports these as ratios in [0, 1]
RATIO_METRICS = {"engagementRate", "bounceRate"}

WEEKDAYS = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

MergedRows = Dict[Tuple[str, ...], Dict[str, Any]]


def merge_responses(responses: Sequence[Dict[str, Any]]) -> MergedRows:
    """Merge runReport responses that share dimensions but split the metrics.

    Rows are keyed by their dimension values; first-seen order (the first
    response's sort order) is kept.
    """
    merged: MergedRows = {}
    for response in responses:
        metric_names = [h.get("name", "") for h in response.get("metricHeaders") or []]
        for row in response.get("rows") or []:
            key = tuple(d.get("value", "") for d in row.get("dimensionValues") or [])
            values = merged.setdefault(key, {})
            for name, cell in zip(metric_names, row.get("metricValues") or []):
                values[name] = cell.get("value")
    return merged


def to_measures(raw: Dict[str, Any]) -> Dict[str, float]:
    """Upstream metric values → canonical measures in canonical units."""
    measures: Dict[str, float] = {}
    for api_name, value in raw.items():
        name = METRIC_NAMES.get(api_name)
        if name is None:
            continue
        measures[name] = (
            ratio_to_percent(value) if api_name in RATIO_METRICS else safe_float(value)
        )
    return measures


def transform_overview(
    merged: MergedRows, measures: Sequence[str], label: str = "overview"
) -> MetricRecord:
    """Single aggregate row; zero-filled when GA4 returned no rows."""
    if not merged:
        return zero_record(label, measures)
    return build_record(label, to_measures(next(iter(merged.values()))), measures)


def _label(dimensions: Sequence[str], values: Tuple[str, ...]) -> str:
    if dimensions == ["dayOfWeek"]:
        idx = int(safe_float(values[0]))
        return WEEKDAYS[idx] if 0 <= idx < len(WEEKDAYS) else values[0]
    if dimensions == ["hour"]:
        return f"{int(safe_float(values[0])):02d}:00"
    cleaned = [v or "(not set)" for v in values]
    return " / ".join(cleaned) if cleaned else "(not set)"


def transform_breakdown(
    merged: MergedRows,
    dimensions: Sequence[str],
    measures: Sequence[str],
) -> List[MetricRecord]:
    records: List[MetricRecord] = []
    for key, raw in merged.items():
        values = to_measures(raw)
        if "conversion_rate" in measures:
            values["conversion_rate"] = (
                safe_divide(values.get("conversions", 0), values.get("sessions", 0)) * 100
            )
        records.append(
            build_record(
                _label(list(dimensions), key),
                values,
                measures,
                dimensions=dict(zip(dimensions, key)),
            )
        )
    return records
