"""Staylytics - Google Analytics 4 Connector.

Properties come from the Analytics Admin API (accounts, then properties per
account); reports from the Data API ``runReport``. A runReport call accepts
at most 10 metrics, so wider reports are split into concurrent sub-requests
and merged by dimension key. The sub-requests are one logical query: if any
of them fails, the report fails.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from app.connectors.base import SourceConnector
from app.connectors.batching import chunked
from app.connectors.client import UpstreamAPIError
from app.connectors.google_analytics.transformer import (
    METRIC_NAMES,
    MergedRows,
    merge_responses,
    transform_breakdown,
    transform_overview,
)
from app.core.logging import get_logger
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange, MetricRecord, ReportKind, Resource

logger = get_logger("connectors.google_analytics")

DATA_API = "https://analyticsdata.googleapis.com/v1beta"
ADMIN_API = "https://analyticsadmin.googleapis.com/v1beta"
MAX_METRICS_PER_REQUEST = 10

_API_NAME = {v: k for k, v in METRIC_NAMES.items()}

OVERVIEW_MEASURES = [
    "total_users",
    "new_users",
    "sessions",
    "engaged_sessions",
    "engagement_rate",
    "bounce_rate",
    "average_session_duration",
    "pageviews",
    "event_count",
    "conversions",
    "total_revenue",
    "purchase_revenue",
    "average_revenue_per_user",
]
REVENUE_MEASURES = [
    "total_revenue",
    "purchase_revenue",
    "average_revenue_per_user",
    "average_purchase_revenue",
    "total_purchasers",
    "conversions",
]
CHANNEL_MEASURES = [
    "sessions",
    "total_users",
    "new_users",
    "engaged_sessions",
    "engagement_rate",
    "bounce_rate",
    "average_session_duration",
    "pageviews",
    "conversions",
    "total_revenue",
]
AUDIENCE_MEASURES = ["total_users", "new_users", "sessions", "engagement_rate", "conversions"]
LANDING_PAGE_MEASURES = [
    "sessions",
    "total_users",
    "engagement_rate",
    "bounce_rate",
    "conversions",
    "conversion_rate",
]
ACQUISITION_MEASURES = [
    "sessions",
    "total_users",
    "engagement_rate",
    "conversions",
    "total_revenue",
]
TIME_MEASURES = ["sessions", "total_users", "conversions"]


class GoogleAnalyticsConnector(SourceConnector):
    """GA4 properties and Data API reports."""

    source = SourceType.GOOGLE_ANALYTICS
    scopes = (
        "https://www.googleapis.com/auth/analytics.readonly",
        "https://www.googleapis.com/auth/analytics.edit",
    )
    reports = {
        "overview": ReportKind.OVERVIEW,
        "revenue": ReportKind.OVERVIEW,
        "channels": ReportKind.BREAKDOWN,
        "countries": ReportKind.BREAKDOWN,
        "devices": ReportKind.BREAKDOWN,
        "browsers": ReportKind.BREAKDOWN,
        "landing_pages": ReportKind.BREAKDOWN,
        "source_medium": ReportKind.BREAKDOWN,
        "campaigns": ReportKind.BREAKDOWN,
        "source_medium_campaign": ReportKind.BREAKDOWN,
        "hours": ReportKind.BREAKDOWN,
        "weekdays": ReportKind.BREAKDOWN,
    }

    # ── Resources ──

    async def list_resources(self, access_token: str) -> List[Resource]:
        accounts = await self.client.paginate_google(
            f"{ADMIN_API}/accounts",
            access_token,
            "accounts",
            params={"pageSize": 200},
        )
        resources: List[Resource] = []
        for account in accounts:
            account_name = account.get("name", "")
            try:
                properties = await self.client.paginate_google(
                    f"{ADMIN_API}/properties",
                    access_token,
                    "properties",
                    params={"filter": f"parent:{account_name}", "pageSize": 200},
                )
            except UpstreamAPIError as e:
                logger.warning(
                    f"Skipping GA account {account_name}: {e}",
                    extra={"source": self.source.value},
                )
                continue
            for prop in properties:
                property_id = str(prop.get("name", "")).split("/")[-1]
                if not property_id:
                    continue
                resources.append(
                    Resource(
                        id=property_id,
                        display_name=prop.get("displayName") or property_id,
                        metadata={
                            "account_id": account_name.split("/")[-1],
                            "account_name": account.get("displayName", ""),
                            "time_zone": prop.get("timeZone"),
                            "currency_code": prop.get("currencyCode"),
                            "property_type": prop.get("propertyType"),
                        },
                    )
                )
        logger.info(
            f"Found {len(resources)} GA4 properties across {len(accounts)} accounts",
            extra={"source": self.source.value},
        )
        return resources

    # ── Query ──

    async def run_report(
        self,
        property_id: str,
        access_token: str,
        date_range: DateRange,
        measures: Sequence[str],
        dimensions: Sequence[str] = (),
        order_by: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None,
    ) -> MergedRows:
        """runReport with metric splitting; returns rows merged by dimension key."""
        start, end = date_range.as_strings()
        api_metrics = [_API_NAME[m] for m in measures if m in _API_NAME]
        # conversion_rate and similar are derived from requested metrics
        if "conversion_rate" in measures:
            for needed in ("keyEvents", "sessions"):
                if needed not in api_metrics:
                    api_metrics.append(needed)

        def body_for(metric_batch: List[str]) -> Dict[str, Any]:
            body: Dict[str, Any] = {
                "dateRanges": [{"startDate": start, "endDate": end}],
                "metrics": [{"name": m} for m in metric_batch],
            }
            if dimensions:
                body["dimensions"] = [{"name": d} for d in dimensions]
            if order_by:
                body["orderBys"] = [order_by]
            if limit:
                body["limit"] = limit
            return body

        url = f"{DATA_API}/properties/{property_id}:runReport"
        batches = chunked(api_metrics, MAX_METRICS_PER_REQUEST)
        responses = await asyncio.gather(
            *(
                self.client.post(url, access_token=access_token, json_body=body_for(b))
                for b in batches
            )
        )
        return merge_responses(responses)

    async def _overview(
        self, property_id, access_token, date_range, measures, label
    ) -> MetricRecord:
        merged = await self.run_report(property_id, access_token, date_range, measures)
        return transform_overview(merged, measures, label)

    async def _breakdown(
        self,
        property_id: str,
        access_token: str,
        date_range: DateRange,
        dimensions: List[str],
        measures: List[str],
        limit: Optional[int] = None,
        order_by_dimension: bool = False,
    ) -> List[MetricRecord]:
        if order_by_dimension:
            order_by = {"dimension": {"dimensionName": dimensions[0]}}
        else:
            order_by = {"metric": {"metricName": "sessions"}, "desc": True}
        merged = await self.run_report(
            property_id,
            access_token,
            date_range,
            measures,
            dimensions=dimensions,
            order_by=order_by,
            limit=limit,
        )
        return transform_breakdown(merged, dimensions, measures)

    # ── Reports ──

    async def fetch_overview(self, property_id, access_token, date_range, metadata):
        return await self._overview(
            property_id, access_token, date_range, OVERVIEW_MEASURES, "overview"
        )

    async def fetch_revenue(self, property_id, access_token, date_range, metadata):
        return await self._overview(
            property_id, access_token, date_range, REVENUE_MEASURES, "revenue"
        )

    async def fetch_channels(self, property_id, access_token, date_range, metadata):
        return await self._breakdown(
            property_id,
            access_token,
            date_range,
            ["sessionDefaultChannelGroup"],
            CHANNEL_MEASURES,
        )

    async def fetch_countries(self, property_id, access_token, date_range, metadata):
        return await self._breakdown(
            property_id, access_token, date_range, ["country"], AUDIENCE_MEASURES, 50
        )

    async def fetch_devices(self, property_id, access_token, date_range, metadata):
        return await self._breakdown(
            property_id, access_token, date_range, ["deviceCategory"], AUDIENCE_MEASURES
        )

    async def fetch_browsers(self, property_id, access_token, date_range, metadata):
        return await self._breakdown(
            property_id, access_token, date_range, ["browser"], AUDIENCE_MEASURES, 20
        )

    async def fetch_landing_pages(self, property_id, access_token, date_range, metadata):
        return await self._breakdown(
            property_id,
            access_token,
            date_range,
            ["landingPage"],
            LANDING_PAGE_MEASURES,
            50,
        )

    async def fetch_source_medium(self, property_id, access_token, date_range, metadata):
        return await self._breakdown(
            property_id,
            access_token,
            date_range,
            ["sessionSource", "sessionMedium"],
            ACQUISITION_MEASURES,
            50,
        )

    async def fetch_campaigns(self, property_id, access_token, date_range, metadata):
        return await self._breakdown(
            property_id,
            access_token,
            date_range,
            ["sessionCampaignName"],
            ACQUISITION_MEASURES,
            50,
        )

    async def fetch_source_medium_campaign(
        self, property_id, access_token, date_range, metadata
    ):
        return await self._breakdown(
            property_id,
            access_token,
            date_range,
            ["sessionSource", "sessionMedium", "sessionCampaignName"],
            ACQUISITION_MEASURES,
            100,
        )

    async def fetch_hours(self, property_id, access_token, date_range, metadata):
        return await self._breakdown(
            property_id,
            access_token,
            date_range,
            ["hour"],
            TIME_MEASURES,
            order_by_dimension=True,
        )

    async def fetch_weekdays(self, property_id, access_token, date_range, metadata):
        return await self._breakdown(
            property_id,
            access_token,
            date_range,
            ["dayOfWeek"],
            TIME_MEASURES,
            order_by_dimension=True,
        )
