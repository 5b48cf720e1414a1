"""Tests for the Instagram connector."""

from datetime import date
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from app.config import settings
from app.connectors.instagram.transformer import caption_label
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange

from conftest import json_response

GRAPH = settings.graph_base
IG = "17841400000000001"
INSIGHTS_URL = f"{GRAPH}/{IG}/insights"
PAGE_TOKEN = {"page_access_token": "page-token"}
MAY = DateRange(start_date=date(2024, 5, 1), end_date=date(2024, 5, 31))


@pytest.fixture
def instagram(registry):
    return registry.get(SourceType.INSTAGRAM)


def total(name, value):
    return {"name": name, "period": "day", "total_value": {"value": value}}


@pytest.mark.asyncio
async def test_accounts_found_through_linked_pages(upstream, instagram):
    upstream.add(
        "GET",
        f"{GRAPH}/me/accounts",
        {
            "data": [
                {
                    "id": "42",
                    "name": "Grand Hotel",
                    "access_token": "pt-42",
                    "instagram_business_account": {"id": IG, "username": "grandhotel"},
                },
                {"id": "43", "name": "Spa without Instagram"},
                {
                    "id": "44",
                    "name": "Grand Hotel (old page)",
                    "instagram_business_account": {"id": IG, "username": "grandhotel"},
                },
            ]
        },
    )

    [account] = await instagram.list_resources("user-token")

    assert account.id == IG
    assert account.display_name == "@grandhotel"
    assert account.metadata["page_id"] == "42"
    assert account.metadata["page_access_token"] == "pt-42"
    fields = upstream.calls(f"{GRAPH}/me/accounts")[0].url.params["fields"]
    assert "instagram_business_account" in fields


@pytest.mark.asyncio
async def test_overview_splits_long_windows_and_sums_chunks(upstream, instagram):
    upstream.add(
        "GET",
        INSIGHTS_URL,
        {"data": [total("reach", 100), total("likes", 10), total("saves", 2)]},
    )
    upstream.add("GET", f"{GRAPH}/{IG}", {"followers_count": 5300, "media_count": 210})
    window = DateRange(start_date=date(2024, 4, 1), end_date=date(2024, 5, 15))

    record = await instagram.fetch_report("overview", IG, "user-token", window, PAGE_TOKEN)

    calls = upstream.calls(INSIGHTS_URL)
    assert [(c.url.params["since"], c.url.params["until"]) for c in calls] == [
        ("2024-04-01", "2024-05-01"),
        ("2024-05-01", "2024-05-16"),
    ]
    assert all(c.url.params["metric_type"] == "total_value" for c in calls)
    assert all(c.headers["Authorization"] == "Bearer page-token" for c in calls)
    assert record.measures["reach"] == 200
    assert record.measures["likes"] == 20
    assert record.measures["saves"] == 4
    assert record.measures["followers_count"] == 5300
    assert record.measures["media_count"] == 210
    assert record.measures["follows_count"] == 0


@pytest.mark.asyncio
async def test_overview_survives_account_lookup_failure(upstream, instagram):
    upstream.add("GET", INSIGHTS_URL, {"data": [total("reach", 75)]})
    upstream.add("GET", f"{GRAPH}/{IG}", lambda request: httpx.Response(500, json={}))

    record = await instagram.fetch_report("overview", IG, "user-token", MAY, {})

    [call] = upstream.calls(INSIGHTS_URL)
    assert call.headers["Authorization"] == "Bearer user-token"
    assert record.measures["reach"] == 75
    assert record.measures["followers_count"] == 0


@pytest.mark.asyncio
async def test_daily_reach_and_new_followers(upstream, instagram):
    upstream.add(
        "GET",
        INSIGHTS_URL,
        {
            "data": [
                {
                    "name": "reach",
                    "values": [
                        {"value": 40, "end_time": "2024-05-02T07:00:00+0000"},
                        {"value": 55, "end_time": "2024-05-03T07:00:00+0000"},
                    ],
                },
                {
                    "name": "follower_count",
                    "values": [{"value": 3, "end_time": "2024-05-03T07:00:00+0000"}],
                },
            ]
        },
    )
    window = DateRange(start_date=date(2024, 5, 1), end_date=date(2024, 5, 2))

    records = await instagram.fetch_report("daily", IG, "tok", window, PAGE_TOKEN)

    assert [r.label for r in records] == ["2024-05-01", "2024-05-02"]
    assert records[1].measures == {"reach": 55, "followers_gained": 3}
    assert "metric_type" not in upstream.calls(INSIGHTS_URL)[0].url.params


@pytest.mark.asyncio
async def test_media_in_window_ranked_by_reach(upstream, instagram):
    upstream.add(
        "GET",
        f"{GRAPH}/{IG}/media",
        {
            "data": [
                {
                    "id": "m2",
                    "caption": "Breakfast on the terrace",
                    "media_type": "IMAGE",
                    "timestamp": "2024-05-20T09:00:00+0000",
                    "like_count": 30,
                    "comments_count": 4,
                },
                {
                    "id": "m1",
                    "caption": "Sunset from the rooftop bar",
                    "media_type": "VIDEO",
                    "media_product_type": "REELS",
                    "permalink": "https://www.instagram.com/reel/m1/",
                    "timestamp": "2024-05-03T18:00:00+0000",
                    "like_count": 60,
                    "comments_count": 8,
                },
                {"id": "m0", "media_type": "IMAGE", "timestamp": "2024-04-28T10:00:00+0000"},
            ]
        },
    )
    upstream.add(
        "GET",
        f"{GRAPH}/m1/insights",
        {
            "data": [
                {"name": "reach", "values": [{"value": 500}]},
                {"name": "saved", "values": [{"value": 10}]},
                {"name": "total_interactions", "values": [{"value": 80}]},
            ]
        },
    )
    upstream.add(
        "GET",
        f"{GRAPH}/m2/insights",
        lambda request: json_response(
            {"error": {"message": "Unsupported request", "code": 100}}, 400
        ),
    )

    records = await instagram.fetch_report("media", IG, "tok", MAY, PAGE_TOKEN)

    assert [r.dimensions["media"] for r in records] == ["m1", "m2"]
    assert upstream.calls(f"{GRAPH}/m0/insights") == []
    reel, photo = records
    assert reel.label == "Sunset from the rooftop bar"
    assert reel.measures["reach"] == 500
    assert reel.measures["saves"] == 10
    assert reel.measures["likes"] == 60
    assert reel.measures["engagement_rate"] == pytest.approx(16.0)
    assert reel.attributes["media_product_type"] == "REELS"
    # insights unavailable: interactions come from the post's own counts
    assert photo.measures["reach"] == 0
    assert photo.measures["total_interactions"] == 34
    assert photo.measures["engagement_rate"] == 0


@pytest.mark.asyncio
async def test_follower_countries(upstream, instagram):
    upstream.add(
        "GET",
        INSIGHTS_URL,
        {
            "data": [
                {
                    "name": "follower_demographics",
                    "total_value": {
                        "breakdowns": [
                            {
                                "dimension_keys": ["country"],
                                "results": [
                                    {"dimension_values": ["DE"], "value": 100},
                                    {"dimension_values": ["IT"], "value": 300},
                                ],
                            }
                        ]
                    },
                }
            ]
        },
    )

    records = await instagram.fetch_report("countries", IG, "tok", MAY, PAGE_TOKEN)

    params = upstream.calls(INSIGHTS_URL)[0].url.params
    assert params["breakdown"] == "country"
    assert params["period"] == "lifetime"
    assert "since" not in params
    assert [r.label for r in records] == ["IT", "DE"]
    assert records[0].measures["follower_share"] == 75.0


def test_caption_label():
    assert caption_label("  Pool\n day  ", "Image 1") == "Pool day"
    assert caption_label(None, "Image 1") == "Image 1"
    long = caption_label("x" * 200, "Image 1")
    assert len(long) == 80
    assert long.endswith("…")


def test_instagram_scopes_requested_only_for_instagram(registry):
    def scopes(source):
        url = registry.adapter(source).build_authorization_url("st")
        return parse_qs(urlparse(url).query)["scope"][0].split(",")

    assert "instagram_manage_insights" in scopes(SourceType.INSTAGRAM)
    assert not [s for s in scopes(SourceType.FACEBOOK_PAGES) if s.startswith("instagram")]
