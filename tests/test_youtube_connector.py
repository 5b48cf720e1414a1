"""Tests for the YouTube connector, top content enrichment in particular."""

from datetime import date

import httpx
import pytest

from app.connectors.youtube.endpoints import ANALYTICS_API, DATA_API
from app.connectors.youtube.transformer import build_video_item
from app.core.errors import ReportFetchFailed
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange

from conftest import json_response

WINDOW = DateRange(start_date=date(2024, 5, 1), end_date=date(2024, 5, 28))
VIDEO_IDS = [f"vid{i:03d}" for i in range(120)]
VIDEO_COLUMNS = [
    "video",
    "views",
    "likes",
    "comments",
    "shares",
    "estimatedMinutesWatched",
    "averageViewDuration",
]
OVERVIEW_COLUMNS = [
    "views",
    "likes",
    "comments",
    "shares",
    "subscribersGained",
    "subscribersLost",
    "estimatedMinutesWatched",
    "averageViewDuration",
    "averageViewPercentage",
]


def headers(names):
    return [{"name": n} for n in names]


def analytics(overview_rows=None):
    def handler(request):
        if request.url.params.get("dimensions") == "video":
            rows = [[vid, 1000 - i, 10, 2, 3, 500, 240] for i, vid in enumerate(VIDEO_IDS)]
            return json_response({"columnHeaders": headers(VIDEO_COLUMNS), "rows": rows})
        return json_response(
            {"columnHeaders": headers(OVERVIEW_COLUMNS), "rows": overview_rows or []}
        )

    return handler


def videos(duration_for):
    def handler(request):
        ids = request.url.params["id"].split(",")
        return json_response(
            {
                "items": [
                    {
                        "id": vid,
                        "snippet": {"title": f"Title {vid}", "publishedAt": "2024-04-01T00:00:00Z"},
                        "contentDetails": {"duration": duration_for(vid)},
                        "statistics": {"viewCount": "5000"},
                    }
                    for vid in ids
                ]
            }
        )

    return handler


@pytest.fixture
def youtube(registry):
    return registry.get(SourceType.YOUTUBE)


@pytest.mark.asyncio
async def test_top_videos_needs_a_single_detail_call(upstream, youtube):
    upstream.add("GET", ANALYTICS_API, analytics())
    upstream.add("GET", f"{DATA_API}/videos", videos(lambda vid: "PT5M"))

    items = await youtube.fetch_report("top_videos", "UC1", "tok", WINDOW, {})

    detail_calls = upstream.calls(f"{DATA_API}/videos")
    assert len(detail_calls) == 1
    assert detail_calls[0].url.params["id"].split(",") == VIDEO_IDS[:50]
    assert [item.dimensions["video"] for item in items] == VIDEO_IDS[:50]
    first = items[0]
    assert first.label == "Title vid000"
    assert first.measures["views"] == 1000
    assert first.measures["shares"] == 3
    assert first.measures["duration_seconds"] == 300
    assert first.attributes["duration"] == {"minutes": 5, "seconds": 0}
    assert first.attributes["content_type"] == "video"
    assert first.attributes["url"] == "https://www.youtube.com/watch?v=vid000"


@pytest.mark.asyncio
async def test_top_shorts_classifies_before_filtering(upstream, youtube):
    shorts = {vid for i, vid in enumerate(VIDEO_IDS) if i % 3 == 0}
    upstream.add("GET", ANALYTICS_API, analytics())
    upstream.add(
        "GET", f"{DATA_API}/videos", videos(lambda vid: "PT45S" if vid in shorts else "PT4M")
    )

    items = await youtube.fetch_report("top_shorts", "UC1", "tok", WINDOW, {})

    # 40 shorts among 120 ranked videos: every batch is needed
    assert len(upstream.calls(f"{DATA_API}/videos")) == 3
    assert [item.dimensions["video"] for item in items] == [v for v in VIDEO_IDS if v in shorts]
    assert all(item.attributes["content_type"] == "shorts" for item in items)
    assert items[0].attributes["duration"] == {"seconds": 45}
    assert items[0].attributes["url"].startswith("https://www.youtube.com/shorts/")


@pytest.mark.asyncio
async def test_video_without_snippet_is_skipped(upstream, youtube):
    upstream.add("GET", ANALYTICS_API, analytics())

    def details(request):
        ids = request.url.params["id"].split(",")
        items = [
            {"id": vid, "snippet": {"title": vid}, "contentDetails": {"duration": "PT2M"}}
            for vid in ids
        ]
        del items[1]["snippet"]
        return json_response({"items": items})

    upstream.add("GET", f"{DATA_API}/videos", details)

    items = await youtube.fetch_report("top_videos", "UC1", "tok", WINDOW, {})
    ids = [item.dimensions["video"] for item in items]
    assert "vid001" not in ids
    assert ids[:2] == ["vid000", "vid002"]
    assert len(items) == 50


@pytest.mark.asyncio
async def test_overview_with_no_rows_is_zeroed(upstream, youtube):
    upstream.add("GET", ANALYTICS_API, analytics(overview_rows=[]))
    upstream.add(
        "GET", f"{DATA_API}/channels", {"items": [{"statistics": {"subscriberCount": "1200"}}]}
    )

    record = await youtube.fetch_report("overview", "UC1", "tok", WINDOW, {})
    assert record.measures["views"] == 0
    assert record.measures["net_subscribers"] == 0
    assert record.measures["current_subscribers"] == 1200


@pytest.mark.asyncio
async def test_overview_survives_subscriber_lookup_failure(upstream, youtube):
    upstream.add(
        "GET",
        ANALYTICS_API,
        analytics(overview_rows=[[900, 40, 5, 3, 25, 5, 3000, 200, 48.5]]),
    )
    upstream.add("GET", f"{DATA_API}/channels", lambda request: httpx.Response(500, json={}))

    record = await youtube.fetch_report("overview", "UC1", "tok", WINDOW, {})
    assert record.measures["views"] == 900
    assert record.measures["net_subscribers"] == 20
    assert record.measures["current_subscribers"] == 0


@pytest.mark.asyncio
async def test_analytics_error_becomes_report_fetch_failed(upstream, youtube):
    upstream.add(
        "GET",
        ANALYTICS_API,
        lambda request: httpx.Response(
            403, json={"error": {"code": 403, "message": "Forbidden", "status": "PERMISSION_DENIED"}}
        ),
    )
    upstream.add("GET", f"{DATA_API}/channels", {"items": []})

    with pytest.raises(ReportFetchFailed) as exc:
        await youtube.fetch_report("traffic_sources", "UC1", "tok", WINDOW, {})
    assert exc.value.source == "youtube"
    assert exc.value.retryable is True


def test_video_views_fall_back_to_lifetime_count():
    detail = {
        "snippet": {"title": "Rooftop tour"},
        "contentDetails": {"duration": "PT3M"},
        "statistics": {"viewCount": "5000"},
    }
    item = build_video_item("vid", detail, {"video": "vid", "views": 0, "shares": 4})
    assert item.measures["views"] == 5000
    assert item.measures["shares"] == 4
    assert item.attributes["lifetime_views"] == 5000

    ranked = build_video_item("vid", detail, {"video": "vid", "views": 700})
    assert ranked.measures["views"] == 700
