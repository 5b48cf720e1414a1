"""Tests for the Meta Ads and Facebook Pages connectors."""

from datetime import date

import httpx
import pytest

from app.config import settings
from app.connectors.meta_ads.endpoints import ad_account_path
from app.connectors.meta_ads.transformer import extract_action_metrics, row_measures
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange

from conftest import json_response

GRAPH = settings.graph_base
WINDOW = DateRange(start_date=date(2024, 5, 1), end_date=date(2024, 5, 3))


def test_ad_account_path():
    assert ad_account_path("123") == "act_123"
    assert ad_account_path("act_123") == "act_123"


def test_purchases_counted_once_across_overlapping_action_types():
    row = {
        "spend": "50",
        "actions": [
            {"action_type": "omni_purchase", "value": "3"},
            {"action_type": "purchase", "value": "3"},
            {"action_type": "offsite_conversion.fb_pixel_purchase", "value": "3"},
            {"action_type": "link_click", "value": "40"},
        ],
        "action_values": [
            {"action_type": "purchase", "value": "450.00"},
            {"action_type": "offsite_conversion.fb_pixel_purchase", "value": "450.00"},
        ],
        "video_p25_watched_actions": [{"action_type": "video_view", "value": "12"}],
    }
    metrics = extract_action_metrics(row)
    assert metrics["conversions"] == 3
    assert metrics["purchase_value"] == 450
    assert metrics["link_clicks"] == 40
    assert metrics["video_p25_watched"] == 12
    assert row_measures(row)["roas"] == pytest.approx(9.0)


def test_no_actions_means_zero_conversions():
    assert row_measures({"impressions": "10"})["conversions"] == 0
    assert row_measures({"impressions": "10"})["roas"] == 0


class TestMetaAds:
    @pytest.fixture
    def meta(self, registry):
        return registry.get(SourceType.META_ADS)

    @pytest.mark.asyncio
    async def test_ad_accounts_deduplicated_across_pages(self, upstream, meta):
        page_two = f"{GRAPH}/me/adaccounts/page2"
        upstream.add(
            "GET",
            f"{GRAPH}/me/adaccounts",
            {
                "data": [
                    {"account_id": "111", "name": "Hotel Ads", "currency": "EUR", "timezone_name": "Europe/Rome"},
                    {"account_id": "222", "name": "Spa Ads"},
                ],
                "paging": {"next": page_two},
            },
        )
        upstream.add("GET", page_two, {"data": [{"account_id": "111", "name": "Hotel Ads"}]})

        resources = await meta.list_resources("user-token")
        assert [r.id for r in resources] == ["111", "222"]
        assert resources[0].metadata["time_zone"] == "Europe/Rome"

    @pytest.mark.asyncio
    async def test_campaigns_sorted_by_spend(self, upstream, meta):
        insights_url = f"{GRAPH}/act_111/insights"
        upstream.add(
            "GET",
            insights_url,
            {
                "data": [
                    {"campaign_id": "1", "campaign_name": "Brand", "spend": "10"},
                    {"campaign_id": "2", "campaign_name": "Retargeting", "spend": "90"},
                ]
            },
        )
        records = await meta.fetch_report("campaigns", "111", "tok", WINDOW, {})

        params = upstream.calls(insights_url)[0].url.params
        assert params["level"] == "campaign"
        assert params["time_range"] == '{"since": "2024-05-01", "until": "2024-05-03"}'
        assert [r.label for r in records] == ["Retargeting", "Brand"]
        assert records[0].dimensions == {"campaign_id": "2"}

    @pytest.mark.asyncio
    async def test_overview_without_rows(self, upstream, meta):
        upstream.add("GET", f"{GRAPH}/act_111/insights", {"data": []})
        record = await meta.fetch_report("overview", "act_111", "tok", WINDOW, {})
        assert not any(record.measures.values())


def page_insights():
    return {
        "data": [
            {
                "name": "page_impressions",
                "values": [
                    {"value": 100, "end_time": "2024-05-02T07:00:00+0000"},
                    {"value": 150, "end_time": "2024-05-03T07:00:00+0000"},
                ],
            },
            {
                "name": "page_fan_adds",
                "values": [{"value": 2, "end_time": "2024-05-02T07:00:00+0000"}],
            },
        ]
    }


class TestFacebookPages:
    @pytest.fixture
    def pages(self, registry):
        return registry.get(SourceType.FACEBOOK_PAGES)

    @pytest.mark.asyncio
    async def test_overview_uses_stored_page_token(self, upstream, pages):
        upstream.add("GET", f"{GRAPH}/42/insights", page_insights())
        upstream.add("GET", f"{GRAPH}/42", {"followers_count": 5300})

        record = await pages.fetch_report(
            "overview", "42", "user-token", WINDOW, {"page_access_token": "page-token"}
        )

        [call] = upstream.calls(f"{GRAPH}/42/insights")
        assert call.headers["Authorization"] == "Bearer page-token"
        assert call.url.params["until"] == "2024-05-04"
        assert record.measures["impressions"] == 250
        assert record.measures["followers_gained"] == 2
        assert record.measures["followers_count"] == 5300

    @pytest.mark.asyncio
    async def test_daily_values_attributed_to_the_day_before_end_time(self, upstream, pages):
        upstream.add("GET", f"{GRAPH}/42/insights", page_insights())
        records = await pages.fetch_report(
            "daily", "42", "user-token", WINDOW, {"page_access_token": "page-token"}
        )
        assert [r.label for r in records] == ["2024-05-01", "2024-05-02"]
        assert records[0].measures["impressions"] == 100

    @pytest.mark.asyncio
    async def test_page_token_looked_up_when_not_stored(self, upstream, pages):
        def page(request):
            if request.url.params.get("fields") == "access_token":
                return json_response({"access_token": "looked-up"})
            return httpx.Response(500, json={})

        upstream.add("GET", f"{GRAPH}/42", page)
        upstream.add("GET", f"{GRAPH}/42/insights", page_insights())

        record = await pages.fetch_report("overview", "42", "user-token", WINDOW, {})

        [call] = upstream.calls(f"{GRAPH}/42/insights")
        assert call.headers["Authorization"] == "Bearer looked-up"
        # follower lookup failed and is reported as zero
        assert record.measures["followers_count"] == 0

    @pytest.mark.asyncio
    async def test_list_pages_keeps_page_tokens(self, upstream, pages):
        upstream.add(
            "GET",
            f"{GRAPH}/me/accounts",
            {"data": [{"id": "42", "name": "Grand Hotel", "category": "Hotel", "access_token": "pt"}]},
        )
        [page] = await pages.list_resources("user-token")
        assert page.metadata["page_access_token"] == "pt"
