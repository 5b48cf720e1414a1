"""Staylytics - Facebook Page Insights Raw → Normalized Transformer."""

from datetime import date, timedelta
from typing import Any, Dict, List, Mapping, Sequence

from app.connectors.transformer import build_record, safe_float
from app.models.normalized_models import MetricRecord

# Graph page insight metric → canonical measure
PAGE_METRICS = {
    "page_impressions": "impressions",
    "page_impressions_unique": "reach",
    "page_post_engagements": "post_engagement",
    "page_video_views": "video_views",
    "page_views_total": "page_views",
    "page_fan_adds": "followers_gained",
}

DAILY_MEASURES = list(PAGE_METRICS.values())
OVERVIEW_MEASURES = DAILY_MEASURES + ["followers_count"]


def _day_of(end_time: str) -> str:
    """A daily value's ``end_time`` is midnight after the day it covers."""
    try:
        return (date.fromisoformat(end_time[:10]) - timedelta(days=1)).isoformat()
    except ValueError:
        return end_time[:10]


def daily_values(
    insights: Sequence[Dict[str, Any]], names: Mapping[str, str] = PAGE_METRICS
) -> Dict[str, Dict[str, float]]:
    """{day: {measure: value}} from the Graph insights ``data`` list.

    ``names`` maps Graph metric names to measures; other metrics are ignored.
    """
    days: Dict[str, Dict[str, float]] = {}
    for metric in insights:
        measure = names.get(metric.get("name", ""))
        if measure is None:
            continue
        for point in metric.get("values") or []:
            day = _day_of(str(point.get("end_time", "")))
            bucket = days.setdefault(day, {})
            bucket[measure] = bucket.get(measure, 0.0) + safe_float(point.get("value"))
    return days


def transform_overview(
    insights: Sequence[Dict[str, Any]], followers_count: float
) -> MetricRecord:
    totals: Dict[str, float] = {}
    for values in daily_values(insights).values():
        for measure, value in values.items():
            totals[measure] = totals.get(measure, 0.0) + value
    totals["followers_count"] = followers_count
    return build_record("overview", totals, OVERVIEW_MEASURES)


def transform_daily(insights: Sequence[Dict[str, Any]]) -> List[MetricRecord]:
    return [
        build_record(day, values, DAILY_MEASURES, dimensions={"date": day})
        for day, values in sorted(daily_values(insights).items())
    ]
