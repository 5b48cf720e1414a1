"""Tests for the Google Business Profile connector."""

from datetime import date

import pytest

from app.connectors.google_business_profile.endpoints import (
    ACCOUNTS_API,
    INFO_API,
    PERFORMANCE_API,
    REVIEWS_API,
    format_address,
    location_path,
)
from app.core.errors import ReportFetchFailed
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange

from conftest import json_response

LOCATION = "accounts/1/locations/10"
REVIEWS_URL = f"{REVIEWS_API}/{LOCATION}/reviews"
PERFORMANCE_URL = f"{PERFORMANCE_API}/locations/10:fetchMultiDailyMetricsTimeSeries"
MAY = DateRange(start_date=date(2024, 5, 1), end_date=date(2024, 5, 31))


@pytest.fixture
def gbp(registry):
    return registry.get(SourceType.GOOGLE_BUSINESS_PROFILE)


def review(review_id, stars, created, name="Guest", reply=None):
    item = {
        "reviewId": review_id,
        "reviewer": {"displayName": name},
        "comment": f"Stay {review_id}",
        "createTime": created,
        "updateTime": created,
    }
    if stars:
        item["starRating"] = stars
    if reply:
        item["reviewReply"] = {"comment": reply, "updateTime": created}
    return item


def denied(request):
    return json_response(
        {"error": {"code": 403, "message": "Caller lacks permission", "status": "PERMISSION_DENIED"}},
        403,
    )


@pytest.fixture
def two_review_pages(upstream):
    upstream.add(
        "GET",
        REVIEWS_URL,
        [
            {
                "averageRating": 4.3,
                "totalReviewCount": 120,
                "reviews": [
                    review("r1", "FIVE", "2024-05-20T10:00:00Z", "Anna", reply="Grazie!"),
                    review("r2", "THREE", "2024-05-12T08:00:00Z", "Ben"),
                    review("r3", "ONE", "2024-04-02T08:00:00Z", "Carl"),
                    review("r4", None, "2024-05-15T08:00:00Z", name=None),
                ],
                "nextPageToken": "p2",
            },
            {
                "averageRating": 4.3,
                "totalReviewCount": 120,
                "reviews": [review("r5", "FOUR", "2024-05-03T08:00:00Z", "Dana")],
            },
        ],
    )
    return upstream


def daily(metric, points):
    return {
        "dailyMetric": metric,
        "timeSeries": {
            "datedValues": [
                {"date": {"year": 2024, "month": 5, "day": day}, **({"value": v} if v else {})}
                for day, v in points
            ]
        },
    }


@pytest.mark.asyncio
async def test_locations_listed_per_account(upstream, gbp):
    upstream.add(
        "GET",
        f"{ACCOUNTS_API}/accounts",
        {
            "accounts": [
                {"name": "accounts/1", "accountName": "Grand Hotels Group"},
                {"name": "accounts/2", "accountName": "Old Agency"},
            ]
        },
    )
    upstream.add(
        "GET",
        f"{INFO_API}/accounts/1/locations",
        {
            "locations": [
                {
                    "name": "locations/10",
                    "title": "Grand Hotel Roma",
                    "storefrontAddress": {
                        "addressLines": ["Via Roma 1"],
                        "locality": "Roma",
                        "regionCode": "IT",
                    },
                    "metadata": {"mapsUri": "https://maps.google.com/?cid=1", "placeId": "pid-1"},
                },
                {"name": "locations/11"},
            ]
        },
    )
    upstream.add("GET", f"{INFO_API}/accounts/2/locations", denied)

    resources = await gbp.list_resources("tok")

    assert [r.id for r in resources] == [LOCATION, "accounts/1/locations/11"]
    roma, unnamed = resources
    assert roma.display_name == "Grand Hotel Roma"
    assert roma.metadata["account_name"] == "Grand Hotels Group"
    assert roma.metadata["address"] == "Via Roma 1, Roma, IT"
    assert roma.metadata["place_id"] == "pid-1"
    assert unnamed.display_name == "Unnamed Location"
    params = upstream.calls(f"{INFO_API}/accounts/1/locations")[0].url.params
    assert params["readMask"] == "name,title,storefrontAddress,metadata"


@pytest.mark.asyncio
async def test_overview_rates_reviews_written_in_window(two_review_pages, gbp):
    record = await gbp.fetch_report("overview", LOCATION, "tok", MAY, {})

    pages = two_review_pages.calls(REVIEWS_URL)
    assert "pageToken" not in pages[0].url.params
    assert pages[1].url.params["pageToken"] == "p2"
    measures = record.measures
    # r3 falls before the window
    assert measures["review_count"] == 4
    # unrated r4 stays out of the average
    assert measures["average_rating"] == 4.0
    assert measures["five_star"] == 1
    assert measures["four_star"] == 1
    assert measures["three_star"] == 1
    assert measures["one_star"] == 0
    assert measures["replied_reviews"] == 1
    assert measures["reply_rate"] == 25.0
    assert measures["total_review_count"] == 120
    assert measures["lifetime_average_rating"] == 4.3


@pytest.mark.asyncio
async def test_review_list_newest_first(two_review_pages, gbp):
    records = await gbp.fetch_report("reviews", LOCATION, "tok", MAY, {})

    assert [r.dimensions["review"] for r in records] == ["r1", "r4", "r2", "r5"]
    newest, unrated = records[0], records[1]
    assert newest.label == "Anna"
    assert newest.measures["rating"] == 5
    assert newest.attributes["reply"] == "Grazie!"
    assert unrated.label == "Anonymous"
    assert unrated.measures["rating"] == 0


@pytest.mark.asyncio
async def test_location_without_reviews_gives_zero_overview(upstream, gbp):
    upstream.add("GET", REVIEWS_URL, {})

    record = await gbp.fetch_report("overview", LOCATION, "tok", MAY, {})

    assert record.label == "overview"
    assert set(record.measures.values()) == {0.0}


@pytest.mark.asyncio
async def test_performance_totals_and_daily(upstream, gbp):
    upstream.add(
        "GET",
        PERFORMANCE_URL,
        {
            "multiDailyMetricTimeSeries": [
                {
                    "dailyMetricTimeSeries": [
                        daily("BUSINESS_IMPRESSIONS_DESKTOP_MAPS", [(1, "40"), (2, "10")]),
                        daily("BUSINESS_IMPRESSIONS_MOBILE_MAPS", [(1, "60"), (2, None)]),
                        daily("WEBSITE_CLICKS", [(1, "5"), (2, "7")]),
                        daily("BUSINESS_BOOKINGS", [(2, "1")]),
                    ]
                }
            ]
        },
    )
    window = DateRange(start_date=date(2024, 5, 1), end_date=date(2024, 5, 2))

    totals = await gbp.fetch_report("performance", LOCATION, "tok", window, {})
    days = await gbp.fetch_report("performance_daily", LOCATION, "tok", window, {})

    assert totals.label == "performance"
    assert totals.measures["maps_impressions"] == 110
    assert totals.measures["website_clicks"] == 12
    assert totals.measures["bookings"] == 1
    assert totals.measures["search_impressions"] == 0
    assert [d.label for d in days] == ["2024-05-01", "2024-05-02"]
    assert days[0].measures["maps_impressions"] == 100
    assert days[1].measures["maps_impressions"] == 10

    params = upstream.calls(PERFORMANCE_URL)[0].url.params
    assert "BUSINESS_BOOKINGS" in params.get_list("dailyMetrics")
    assert len(params.get_list("dailyMetrics")) == 8
    assert params["dailyRange.startDate.day"] == "1"
    assert params["dailyRange.endDate.day"] == "2"


@pytest.mark.asyncio
async def test_permission_denied_hint(upstream, gbp):
    upstream.add("GET", REVIEWS_URL, denied)

    with pytest.raises(ReportFetchFailed, match="does not manage this location"):
        await gbp.fetch_report("reviews", LOCATION, "tok", MAY, {})


def test_location_path_and_address():
    assert location_path(LOCATION) == "locations/10"
    assert location_path("locations/10") == "locations/10"
    assert format_address({"addressLines": ["Via Roma 1", ""], "postalCode": "00100"}) == (
        "Via Roma 1, 00100"
    )
