"""Staylytics - YouTube Raw → Normalized Transformer.

Analytics API responses are column-oriented (``columnHeaders`` + ``rows``);
Data API responses are resource lists. Videos are classified as shorts or
regular videos from their ISO 8601 duration before any filtering.
"""

from typing import Any, Dict, List, Optional, Sequence

from app.connectors.transformer import (
    build_record,
    classify_video,
    encode_duration,
    parse_iso8601_duration,
    pick,
    safe_float,
)
from app.models.normalized_models import MetricRecord

# Analytics API metric → canonical measure
METRIC_NAMES = {
    "views": "views",
    "likes": "likes",
    "comments": "comments",
    "shares": "shares",
    "subscribersGained": "subscribers_gained",
    "subscribersLost": "subscribers_lost",
    "estimatedMinutesWatched": "estimated_minutes_watched",
    "averageViewDuration": "average_view_duration",
    "averageViewPercentage": "average_view_percentage",
}

OVERVIEW_MEASURES = [
    "views",
    "likes",
    "comments",
    "shares",
    "subscribers_gained",
    "subscribers_lost",
    "net_subscribers",
    "estimated_minutes_watched",
    "average_view_duration",
    "average_view_percentage",
    "current_subscribers",
]
VIDEO_MEASURES = [
    "views",
    "likes",
    "comments",
    "shares",
    "estimated_minutes_watched",
    "average_view_duration",
    "duration_seconds",
]
AUDIENCE_MEASURES = ["views", "estimated_minutes_watched", "average_view_duration"]

TRAFFIC_SOURCES = {
    "YT_SEARCH": "YouTube search",
    "SUGGESTED": "Suggested videos",
    "BROWSE": "Browse features",
    "EXT_URL": "External",
    "YT_CHANNEL": "Channel pages",
    "PLAYLIST": "Playlists",
    "NOTIFICATION": "Notifications",
    "SHORTS": "Shorts feed",
    "NO_LINK_OTHER": "Direct or unknown",
    "SUBSCRIBER": "Subscribers",
    "END_SCREEN": "End screens",
    "ADVERTISING": "Advertising",
}


def rows_as_dicts(body: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Zip each analytics row with the column names from ``columnHeaders``."""
    names = [h.get("name", "") for h in body.get("columnHeaders") or []]
    return [dict(zip(names, row)) for row in body.get("rows") or []]


def to_measures(row: Dict[str, Any]) -> Dict[str, float]:
    return {
        canonical: safe_float(row.get(api_name))
        for api_name, canonical in METRIC_NAMES.items()
        if api_name in row
    }


def transform_overview(
    rows: Sequence[Dict[str, Any]], current_subscribers: float
) -> MetricRecord:
    values = to_measures(rows[0]) if rows else {}
    values["net_subscribers"] = values.get("subscribers_gained", 0.0) - values.get(
        "subscribers_lost", 0.0
    )
    values["current_subscribers"] = current_subscribers
    return build_record("overview", values, OVERVIEW_MEASURES)


def best_thumbnail(snippet: Dict[str, Any], video_id: str) -> str:
    thumbnails = snippet.get("thumbnails") or {}
    for size in ("maxres", "high", "medium", "default"):
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return f"https://i.ytimg.com/vi/{video_id}/hqdefault.jpg"


def build_video_item(
    video_id: str,
    detail: Dict[str, Any],
    analytics_row: Dict[str, Any],
    content_type: Optional[str] = None,
) -> Optional[MetricRecord]:
    """One ranked video, or None when it is not of ``content_type``.

    Raises KeyError when the detail lacks a snippet or content details.
    """
    snippet = detail["snippet"]
    duration = parse_iso8601_duration(detail["contentDetails"].get("duration"))
    kind = classify_video(duration)
    if content_type and kind != content_type:
        return None

    values = to_measures(analytics_row)
    lifetime_views = safe_float(pick(detail, "statistics.viewCount"))
    if not values.get("views"):
        values["views"] = lifetime_views
    values["duration_seconds"] = duration
    if kind == "shorts":
        url = f"https://www.youtube.com/shorts/{video_id}"
    else:
        url = f"https://www.youtube.com/watch?v={video_id}"
    return build_record(
        snippet.get("title") or video_id,
        values,
        VIDEO_MEASURES,
        dimensions={"video": video_id},
        attributes={
            "video_id": video_id,
            "content_type": kind,
            "duration": encode_duration(duration),
            "published_at": snippet.get("publishedAt"),
            "thumbnail_url": best_thumbnail(snippet, video_id),
            "url": url,
            "embed_url": f"https://www.youtube.com/embed/{video_id}",
            "lifetime_views": lifetime_views,
        },
    )


def transform_dimension(
    rows: Sequence[Dict[str, Any]], dimension: str, measures: Sequence[str]
) -> List[MetricRecord]:
    records: List[MetricRecord] = []
    for row in rows:
        key = str(row.get(dimension) or "")
        if dimension == "insightTrafficSourceType":
            label = TRAFFIC_SOURCES.get(key, key.replace("_", " ").title())
        elif dimension == "deviceType":
            label = key.replace("_", " ").title()
        else:
            label = key
        records.append(
            build_record(
                label or "(not set)", to_measures(row), measures, dimensions={dimension: key}
            )
        )
    return records


def transform_playlists(items: Sequence[Dict[str, Any]]) -> List[MetricRecord]:
    return [
        build_record(
            pick(item, "snippet.title", default="") or item.get("id", ""),
            {"item_count": pick(item, "contentDetails.itemCount")},
            ["item_count"],
            dimensions={"playlist": item.get("id", "")},
            attributes={
                "playlist_id": item.get("id", ""),
                "published_at": pick(item, "snippet.publishedAt"),
                "thumbnail_url": best_thumbnail(item.get("snippet") or {}, ""),
            },
        )
        for item in items
    ]
