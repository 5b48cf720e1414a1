"""Staylytics - Google Business Profile Raw → Normalized Transformer."""

from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Sequence

from app.connectors.transformer import (
    build_record,
    pick,
    safe_divide,
    safe_float,
    zero_record,
)
from app.models.normalized_models import MetricRecord

STAR_RATINGS = {"ONE": 1, "TWO": 2, "THREE": 3, "FOUR": 4, "FIVE": 5}
STAR_MEASURES = ["one_star", "two_star", "three_star", "four_star", "five_star"]

OVERVIEW_MEASURES = [
    "review_count",
    "average_rating",
    *STAR_MEASURES,
    "replied_reviews",
    "reply_rate",
    "total_review_count",
    "lifetime_average_rating",
]
REVIEW_MEASURES = ["rating"]

# Performance API daily metric → canonical measure (several sum into one)
PERFORMANCE_METRICS = {
    "BUSINESS_IMPRESSIONS_DESKTOP_SEARCH": "search_impressions",
    "BUSINESS_IMPRESSIONS_MOBILE_SEARCH": "search_impressions",
    "BUSINESS_IMPRESSIONS_DESKTOP_MAPS": "maps_impressions",
    "BUSINESS_IMPRESSIONS_MOBILE_MAPS": "maps_impressions",
    "WEBSITE_CLICKS": "website_clicks",
    "CALL_CLICKS": "call_clicks",
    "BUSINESS_DIRECTION_REQUESTS": "direction_requests",
    "BUSINESS_BOOKINGS": "bookings",
}
PERFORMANCE_MEASURES = list(dict.fromkeys(PERFORMANCE_METRICS.values()))


def star_value(review: Mapping[str, Any]) -> int:
    """1-5, or 0 for a missing or unspecified rating."""
    return STAR_RATINGS.get(str(review.get("starRating") or ""), 0)


def review_date(review: Mapping[str, Any]) -> Optional[date]:
    try:
        return date.fromisoformat(str(review.get("createTime") or "")[:10])
    except ValueError:
        return None


def transform_overview(
    reviews: Sequence[Mapping[str, Any]], summary: Mapping[str, Any]
) -> MetricRecord:
    """Rating statistics for reviews written in the window.

    ``summary`` is the location-wide ``averageRating``/``totalReviewCount``
    from the reviews response. Unrated reviews count as reviews but are left
    out of the average.
    """
    if not reviews and not any(summary.values()):
        return zero_record("overview", OVERVIEW_MEASURES)
    values: Dict[str, float] = {m: 0.0 for m in STAR_MEASURES}
    ratings: List[int] = []
    replied = 0
    for review in reviews:
        stars = star_value(review)
        if stars:
            ratings.append(stars)
            values[STAR_MEASURES[stars - 1]] += 1
        if review.get("reviewReply"):
            replied += 1
    values.update(
        {
            "review_count": len(reviews),
            "average_rating": round(safe_divide(sum(ratings), len(ratings)), 2),
            "replied_reviews": replied,
            "reply_rate": safe_divide(replied, len(reviews)) * 100,
            "total_review_count": safe_float(summary.get("totalReviewCount")),
            "lifetime_average_rating": safe_float(summary.get("averageRating")),
        }
    )
    return build_record("overview", values, OVERVIEW_MEASURES)


def transform_reviews(reviews: Sequence[Mapping[str, Any]]) -> List[MetricRecord]:
    records: List[MetricRecord] = []
    for review in reviews:
        review_id = review.get("reviewId") or str(review.get("name", "")).split("/")[-1]
        reply = review.get("reviewReply") or {}
        records.append(
            build_record(
                pick(review, "reviewer.displayName") or "Anonymous",
                {"rating": star_value(review)},
                REVIEW_MEASURES,
                dimensions={"review": review_id},
                attributes={
                    "review_id": review_id,
                    "comment": review.get("comment"),
                    "created_at": review.get("createTime"),
                    "updated_at": review.get("updateTime"),
                    "reviewer_photo_url": pick(review, "reviewer.profilePhotoUrl"),
                    "reply": reply.get("comment"),
                    "replied_at": reply.get("updateTime"),
                },
            )
        )
    return sorted(records, key=lambda r: r.attributes.get("created_at") or "", reverse=True)


def _day(value: Mapping[str, Any]) -> str:
    return date(int(value["year"]), int(value["month"]), int(value["day"])).isoformat()


def daily_performance(body: Mapping[str, Any]) -> Dict[str, Dict[str, float]]:
    """{day: {measure: value}} from ``fetchMultiDailyMetricsTimeSeries``.

    A dated value without ``value`` is a zero day.
    """
    days: Dict[str, Dict[str, float]] = {}
    for group in body.get("multiDailyMetricTimeSeries") or []:
        for series in group.get("dailyMetricTimeSeries") or []:
            measure = PERFORMANCE_METRICS.get(series.get("dailyMetric", ""))
            if measure is None:
                continue
            for point in pick(series, "timeSeries.datedValues", default=[]) or []:
                bucket = days.setdefault(_day(point["date"]), {})
                bucket[measure] = bucket.get(measure, 0.0) + safe_float(point.get("value"))
    return days


def transform_performance(body: Mapping[str, Any]) -> MetricRecord:
    totals: Dict[str, float] = {}
    for values in daily_performance(body).values():
        for measure, value in values.items():
            totals[measure] = totals.get(measure, 0.0) + value
    return build_record("performance", totals, PERFORMANCE_MEASURES)


def transform_performance_daily(body: Mapping[str, Any]) -> List[MetricRecord]:
    return [
        build_record(day, values, PERFORMANCE_MEASURES, dimensions={"date": day})
        for day, values in sorted(daily_performance(body).items())
    ]
