"""Staylytics - Instagram Insights Raw → Normalized Transformer.

Account insights requested with ``metric_type=total_value`` carry one
``total_value`` per metric; time-series insights carry daily ``values``
like Page insights do. Media insights are lifetime values per post.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.connectors.facebook_pages.transformer import daily_values
from app.connectors.transformer import (
    build_record,
    pick,
    safe_divide,
    safe_float,
    zero_record,
)
from app.models.normalized_models import MetricRecord

# Graph account insight metric → canonical measure
ACCOUNT_METRICS = {
    "reach": "reach",
    "profile_views": "profile_views",
    "website_clicks": "website_clicks",
    "accounts_engaged": "accounts_engaged",
    "total_interactions": "total_interactions",
    "likes": "likes",
    "comments": "comments",
    "shares": "shares",
    "saves": "saves",
}
DAILY_METRICS = {
    "reach": "reach",
    "follower_count": "followers_gained",
}
# Graph media insight metric → canonical measure
MEDIA_METRICS = {
    "reach": "reach",
    "saved": "saves",
    "shares": "shares",
    "total_interactions": "total_interactions",
}

ACCOUNT_FIELDS = ["followers_count", "follows_count", "media_count"]
OVERVIEW_MEASURES = list(ACCOUNT_METRICS.values()) + ACCOUNT_FIELDS
DAILY_MEASURES = list(DAILY_METRICS.values())
MEDIA_MEASURES = [
    "reach",
    "likes",
    "comments",
    "shares",
    "saves",
    "total_interactions",
    "engagement_rate",
]
AUDIENCE_MEASURES = ["followers_count", "follower_share"]


def metric_value(metric: Mapping[str, Any]) -> float:
    """``total_value.value`` when present, else the sum of ``values``."""
    total = pick(metric, "total_value.value")
    if total is not None:
        return safe_float(total)
    return sum(safe_float(point.get("value")) for point in metric.get("values") or [])


def insight_values(
    insights: Sequence[Mapping[str, Any]], names: Mapping[str, str]
) -> Dict[str, float]:
    values: Dict[str, float] = {}
    for metric in insights:
        measure = names.get(metric.get("name", ""))
        if measure is not None:
            values[measure] = values.get(measure, 0.0) + metric_value(metric)
    return values


def transform_overview(
    chunks: Sequence[Sequence[Mapping[str, Any]]], account: Mapping[str, Any]
) -> MetricRecord:
    """Sum per-chunk totals; follower and media counts are current values."""
    if not any(chunks) and not account:
        return zero_record("overview", OVERVIEW_MEASURES)
    totals: Dict[str, float] = {}
    for insights in chunks:
        for measure, value in insight_values(insights, ACCOUNT_METRICS).items():
            totals[measure] = totals.get(measure, 0.0) + value
    for field in ACCOUNT_FIELDS:
        totals[field] = safe_float(account.get(field))
    return build_record("overview", totals, OVERVIEW_MEASURES)


def transform_daily(insights: Sequence[Dict[str, Any]]) -> List[MetricRecord]:
    return [
        build_record(day, values, DAILY_MEASURES, dimensions={"date": day})
        for day, values in sorted(daily_values(insights, DAILY_METRICS).items())
    ]


def caption_label(caption: Optional[str], fallback: str, width: int = 80) -> str:
    text = " ".join((caption or "").split())
    if not text:
        return fallback
    return text if len(text) <= width else text[: width - 1].rstrip() + "…"


def build_media_item(media_id: str, media: Dict[str, Any]) -> MetricRecord:
    """One post with its lifetime insights.

    ``media["insights"]`` holds the raw insight list; it may be empty when
    the post's insights were unavailable, leaving only like and comment counts.
    """
    values = insight_values(media.get("insights") or [], MEDIA_METRICS)
    values["likes"] = safe_float(media.get("like_count"))
    values["comments"] = safe_float(media.get("comments_count"))
    if not values.get("total_interactions"):
        values["total_interactions"] = sum(
            values.get(m, 0.0) for m in ("likes", "comments", "shares", "saves")
        )
    values["engagement_rate"] = (
        safe_divide(values["total_interactions"], values.get("reach", 0.0)) * 100
    )
    media_type = media.get("media_type") or "MEDIA"
    return build_record(
        caption_label(media.get("caption"), f"{media_type.title()} {media_id}"),
        values,
        MEDIA_MEASURES,
        dimensions={"media": media_id},
        attributes={
            "media_id": media_id,
            "media_type": media_type,
            "media_product_type": media.get("media_product_type"),
            "permalink": media.get("permalink"),
            "published_at": media.get("timestamp"),
            "thumbnail_url": media.get("thumbnail_url") or media.get("media_url"),
        },
    )


def transform_audience(
    insights: Sequence[Mapping[str, Any]], dimension: str
) -> List[MetricRecord]:
    """Follower demographics for one breakdown, largest group first."""
    groups: Dict[str, float] = {}
    for metric in insights:
        for breakdown in pick(metric, "total_value.breakdowns", default=[]) or []:
            for result in breakdown.get("results") or []:
                key = ", ".join(str(v) for v in result.get("dimension_values") or [])
                groups[key] = groups.get(key, 0.0) + safe_float(result.get("value"))
    total = sum(groups.values())
    records = [
        build_record(
            key or "(not set)",
            {"followers_count": count, "follower_share": safe_divide(count, total) * 100},
            AUDIENCE_MEASURES,
            dimensions={dimension: key},
        )
        for key, count in groups.items()
    ]
    return sorted(records, key=lambda r: r.measure("followers_count"), reverse=True)
