"""Staylytics - Unified Metric Registry.

Canonical measure names emitted by the connectors, with their classification
and unit. Every ``MetricRecord.measures`` key is one of these, so the
presentation layer can format values without knowing which source produced
them. Units: rates are percentages in [0, 100], durations are seconds,
storage is bytes and money is in the account currency.
"""

from enum import Enum
from typing import Dict, Iterable


class MetricType(str, Enum):
    """How a metric is categorised."""

    VOLUME = "volume"  # Raw counts: users, sessions, impressions, clicks
    COST = "cost"  # Monetary: spend, cost
    REVENUE = "revenue"  # Income: purchase value, revenue
    RATE = "rate"  # Ratios and per-unit costs: ctr, cpc, bounce rate
    DURATION = "duration"  # Seconds
    ENGAGEMENT = "engagement"  # Likes, shares, comments
    VIDEO = "video"  # Video-specific: views, completions
    POSITION = "position"  # Search ranking
    STORAGE = "storage"  # Drive quota and file sizes
    RATING = "rating"  # Star ratings, 1-5


class MetricDefinition:
    """Describes a single metric."""

    def __init__(
        self, name: str, metric_type: MetricType, unit: str = "", description: str = ""
    ):
        self.name = name
        self.metric_type = metric_type
        self.unit = unit
        self.description = description

    def to_dict(self) -> Dict[str, str]:
        return {
            "name": self.name,
            "type": self.metric_type.value,
            "unit": self.unit,
            "description": self.description,
        }

    def __repr__(self) -> str:
        return f"<Metric {self.name} ({self.metric_type.value})>"


def _index(definitions: Iterable[MetricDefinition]) -> Dict[str, MetricDefinition]:
    return {d.name: d for d in definitions}


# ─────────────────────────────────────────────
# WEB TRAFFIC: Google Analytics
# ─────────────────────────────────────────────

TRAFFIC_METRICS = _index(
    [
        MetricDefinition("total_users", MetricType.VOLUME, "count", "Distinct users"),
        MetricDefinition("new_users", MetricType.VOLUME, "count", "First-time users"),
        MetricDefinition("sessions", MetricType.VOLUME, "count", "Sessions started"),
        MetricDefinition(
            "engaged_sessions", MetricType.VOLUME, "count", "Sessions that engaged"
        ),
        MetricDefinition(
            "engagement_rate",
            MetricType.RATE,
            "%",
            "Engaged sessions / sessions (GA4), interactions / reach (Instagram posts)",
        ),
        MetricDefinition("bounce_rate", MetricType.RATE, "%", "Non-engaged sessions"),
        MetricDefinition(
            "average_session_duration",
            MetricType.DURATION,
            "seconds",
            "Mean session length",
        ),
        MetricDefinition("pageviews", MetricType.VOLUME, "count", "Screen/page views"),
        MetricDefinition("event_count", MetricType.VOLUME, "count", "Events fired"),
        MetricDefinition("conversions", MetricType.VOLUME, "count", "Key events"),
        MetricDefinition(
            "conversion_rate", MetricType.RATE, "%", "Conversions / sessions"
        ),
        MetricDefinition("total_revenue", MetricType.REVENUE, "currency", "Revenue"),
        MetricDefinition(
            "purchase_revenue", MetricType.REVENUE, "currency", "Purchase revenue"
        ),
        MetricDefinition(
            "average_revenue_per_user",
            MetricType.REVENUE,
            "currency",
            "Revenue / active users",
        ),
        MetricDefinition(
            "average_purchase_revenue",
            MetricType.REVENUE,
            "currency",
            "Purchase revenue / transactions",
        ),
        MetricDefinition(
            "total_purchasers", MetricType.VOLUME, "count", "Users who purchased"
        ),
    ]
)


# ─────────────────────────────────────────────
# ADVERTISING: Google Ads, Meta Ads
# ─────────────────────────────────────────────

ADVERTISING_METRICS = _index(
    [
        MetricDefinition("impressions", MetricType.VOLUME, "count", "Times shown"),
        MetricDefinition("reach", MetricType.VOLUME, "count", "Unique users reached"),
        MetricDefinition("clicks", MetricType.VOLUME, "count", "Total clicks"),
        MetricDefinition(
            "unique_clicks", MetricType.VOLUME, "count", "Unique users who clicked"
        ),
        MetricDefinition("link_clicks", MetricType.VOLUME, "count", "Link clicks"),
        MetricDefinition("interactions", MetricType.VOLUME, "count", "Interactions"),
        MetricDefinition(
            "frequency", MetricType.VOLUME, "avg", "Average times shown per user"
        ),
        MetricDefinition("cost", MetricType.COST, "currency", "Cost"),
        MetricDefinition("spend", MetricType.COST, "currency", "Amount spent"),
        MetricDefinition(
            "conversion_value", MetricType.REVENUE, "currency", "Conversion value"
        ),
        MetricDefinition(
            "purchase_value", MetricType.REVENUE, "currency", "Purchase value"
        ),
        MetricDefinition("ctr", MetricType.RATE, "%", "Click-through rate"),
        MetricDefinition("cpc", MetricType.RATE, "currency", "Cost per click"),
        MetricDefinition("cpm", MetricType.RATE, "currency", "Cost per 1000 views"),
        MetricDefinition("cpp", MetricType.RATE, "currency", "Cost per purchase"),
        MetricDefinition(
            "average_cpc", MetricType.RATE, "currency", "Cost / clicks"
        ),
        MetricDefinition(
            "average_cpm", MetricType.RATE, "currency", "Cost per 1000 impressions"
        ),
        MetricDefinition(
            "cost_per_conversion", MetricType.RATE, "currency", "Cost / conversions"
        ),
        MetricDefinition(
            "interaction_rate", MetricType.RATE, "%", "Interactions / impressions"
        ),
        MetricDefinition("roas", MetricType.RATE, "ratio", "Return on ad spend"),
        MetricDefinition(
            "quality_score", MetricType.RATE, "score", "Keyword quality score 1-10"
        ),
    ]
)


# ─────────────────────────────────────────────
# SEARCH: Search Console
# ─────────────────────────────────────────────

SEARCH_METRICS = _index(
    [
        MetricDefinition(
            "position", MetricType.POSITION, "rank", "Average search position"
        ),
    ]
)


# ─────────────────────────────────────────────
# VIDEO & SOCIAL: YouTube, Facebook Pages, Instagram, Meta Ads
# ─────────────────────────────────────────────

SOCIAL_METRICS = _index(
    [
        MetricDefinition("views", MetricType.VIDEO, "count", "Views"),
        MetricDefinition("video_views", MetricType.VIDEO, "count", "Video views"),
        MetricDefinition("page_views", MetricType.VOLUME, "count", "Page views"),
        MetricDefinition("likes", MetricType.ENGAGEMENT, "count", "Likes"),
        MetricDefinition("comments", MetricType.ENGAGEMENT, "count", "Comments"),
        MetricDefinition("shares", MetricType.ENGAGEMENT, "count", "Shares"),
        MetricDefinition(
            "post_engagement", MetricType.ENGAGEMENT, "count", "Post engagements"
        ),
        MetricDefinition(
            "page_engagement", MetricType.ENGAGEMENT, "count", "Page engagements"
        ),
        MetricDefinition(
            "subscribers_gained", MetricType.ENGAGEMENT, "count", "New subscribers"
        ),
        MetricDefinition(
            "subscribers_lost", MetricType.ENGAGEMENT, "count", "Lost subscribers"
        ),
        MetricDefinition(
            "net_subscribers", MetricType.ENGAGEMENT, "count", "Gained minus lost"
        ),
        MetricDefinition(
            "current_subscribers", MetricType.ENGAGEMENT, "count", "Subscriber total"
        ),
        MetricDefinition(
            "followers_gained", MetricType.ENGAGEMENT, "count", "New page followers"
        ),
        MetricDefinition(
            "followers_count", MetricType.ENGAGEMENT, "count", "Page follower total"
        ),
        MetricDefinition(
            "estimated_minutes_watched",
            MetricType.VIDEO,
            "minutes",
            "Watch time as reported by YouTube",
        ),
        MetricDefinition(
            "average_view_duration", MetricType.DURATION, "seconds", "Mean view length"
        ),
        MetricDefinition(
            "average_view_percentage", MetricType.RATE, "%", "Share of video watched"
        ),
        MetricDefinition(
            "duration_seconds", MetricType.DURATION, "seconds", "Video length"
        ),
        MetricDefinition("item_count", MetricType.VOLUME, "count", "Items in list"),
        MetricDefinition("video_p25_watched", MetricType.VIDEO, "count", "Watched 25%"),
        MetricDefinition("video_p50_watched", MetricType.VIDEO, "count", "Watched 50%"),
        MetricDefinition("video_p75_watched", MetricType.VIDEO, "count", "Watched 75%"),
        MetricDefinition(
            "video_p100_watched", MetricType.VIDEO, "count", "Watched 100%"
        ),
        MetricDefinition("profile_views", MetricType.VOLUME, "count", "Profile visits"),
        MetricDefinition(
            "website_clicks", MetricType.VOLUME, "count", "Taps on the website link"
        ),
        MetricDefinition(
            "accounts_engaged", MetricType.ENGAGEMENT, "count", "Accounts that interacted"
        ),
        MetricDefinition(
            "total_interactions", MetricType.ENGAGEMENT, "count", "Likes, comments, shares and saves"
        ),
        MetricDefinition("saves", MetricType.ENGAGEMENT, "count", "Saves"),
        MetricDefinition("follows_count", MetricType.VOLUME, "count", "Accounts followed"),
        MetricDefinition("media_count", MetricType.VOLUME, "count", "Posts published"),
        MetricDefinition(
            "follower_share", MetricType.RATE, "%", "Share of followers in the group"
        ),
    ]
)


# ─────────────────────────────────────────────
# WORKSPACE: Google Sheets, Google Drive
# ─────────────────────────────────────────────

WORKSPACE_METRICS = _index(
    [
        MetricDefinition("sheet_count", MetricType.VOLUME, "count", "Tabs"),
        MetricDefinition("row_count", MetricType.VOLUME, "count", "Grid rows"),
        MetricDefinition("column_count", MetricType.VOLUME, "count", "Grid columns"),
        MetricDefinition("file_count", MetricType.VOLUME, "count", "Files"),
        MetricDefinition("folder_count", MetricType.VOLUME, "count", "Folders"),
        MetricDefinition("size_bytes", MetricType.STORAGE, "bytes", "File size"),
        MetricDefinition("storage_limit", MetricType.STORAGE, "bytes", "Quota"),
        MetricDefinition("storage_usage", MetricType.STORAGE, "bytes", "Total usage"),
        MetricDefinition(
            "storage_usage_in_drive", MetricType.STORAGE, "bytes", "Drive usage"
        ),
        MetricDefinition(
            "storage_usage_in_trash", MetricType.STORAGE, "bytes", "Trash usage"
        ),
    ]
)


# ─────────────────────────────────────────────
# REPUTATION & LOCAL: Google Business Profile
# ─────────────────────────────────────────────

LOCAL_METRICS = _index(
    [
        MetricDefinition("review_count", MetricType.VOLUME, "count", "Reviews written"),
        MetricDefinition("rating", MetricType.RATING, "stars", "Star rating"),
        MetricDefinition(
            "average_rating", MetricType.RATING, "stars", "Mean rating of rated reviews"
        ),
        MetricDefinition("one_star", MetricType.VOLUME, "count", "1-star reviews"),
        MetricDefinition("two_star", MetricType.VOLUME, "count", "2-star reviews"),
        MetricDefinition("three_star", MetricType.VOLUME, "count", "3-star reviews"),
        MetricDefinition("four_star", MetricType.VOLUME, "count", "4-star reviews"),
        MetricDefinition("five_star", MetricType.VOLUME, "count", "5-star reviews"),
        MetricDefinition(
            "replied_reviews", MetricType.ENGAGEMENT, "count", "Reviews with an owner reply"
        ),
        MetricDefinition("reply_rate", MetricType.RATE, "%", "Replied / reviews"),
        MetricDefinition(
            "total_review_count", MetricType.VOLUME, "count", "All reviews of the location"
        ),
        MetricDefinition(
            "lifetime_average_rating", MetricType.RATING, "stars", "Location-wide rating"
        ),
        MetricDefinition(
            "search_impressions", MetricType.VOLUME, "count", "Listing views on Google Search"
        ),
        MetricDefinition(
            "maps_impressions", MetricType.VOLUME, "count", "Listing views on Google Maps"
        ),
        MetricDefinition("call_clicks", MetricType.VOLUME, "count", "Call button taps"),
        MetricDefinition(
            "direction_requests", MetricType.VOLUME, "count", "Direction requests"
        ),
        MetricDefinition("bookings", MetricType.VOLUME, "count", "Bookings from the listing"),
    ]
)


# ─────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────

ALL_METRICS = {
    **TRAFFIC_METRICS,
    **ADVERTISING_METRICS,
    **SEARCH_METRICS,
    **SOCIAL_METRICS,
    **WORKSPACE_METRICS,
    **LOCAL_METRICS,
}


def get_metric(name: str) -> MetricDefinition | None:
    """Look up a metric by name."""
    return ALL_METRICS.get(name)


def metrics_by_type(metric_type: MetricType) -> list[MetricDefinition]:
    """Return all metrics of a given type."""
    return [m for m in ALL_METRICS.values() if m.metric_type == metric_type]


def unknown_metrics(names: Iterable[str]) -> list[str]:
    """Names that are not registered, in input order."""
    return [n for n in names if n not in ALL_METRICS]
