"""Staylytics - Google Ads Connector.

GAQL over the REST ``googleAds:search`` endpoint. Every call needs the
developer token; calls on behalf of a client account under a manager also
need ``login-customer-id``.
"""

import asyncio
from typing import Any, Dict, List, Optional

from app.config import settings
from app.connectors.base import SourceConnector
from app.connectors.client import UpstreamAPIError
from app.connectors.google_ads.transformer import (
    campaign_key,
    device_key,
    location_key,
    transform_grouped,
    transform_keywords,
    transform_overview,
)
from app.connectors.transformer import pick
from app.core.errors import ReportFetchFailed
from app.core.logging import get_logger
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange, ReportKind, Resource

logger = get_logger("connectors.google_ads")

ADS_API = f"https://googleads.googleapis.com/{settings.google_ads_api_version}"

DEFAULT_CURRENCY = "USD"
DEFAULT_TIME_ZONE = "America/New_York"

METRIC_FIELDS = (
    "metrics.impressions, metrics.clicks, metrics.cost_micros, "
    "metrics.conversions, metrics.conversions_value, metrics.interactions"
)

OVERVIEW_MEASURES = [
    "impressions",
    "clicks",
    "cost",
    "conversions",
    "conversion_value",
    "interactions",
    "ctr",
    "average_cpc",
    "average_cpm",
    "cost_per_conversion",
    "conversion_rate",
    "interaction_rate",
]
BREAKDOWN_MEASURES = [
    "impressions",
    "clicks",
    "cost",
    "conversions",
    "conversion_value",
    "ctr",
    "average_cpc",
    "cost_per_conversion",
]
KEYWORD_MEASURES = [
    "impressions",
    "clicks",
    "cost",
    "conversions",
    "ctr",
    "average_cpc",
    "quality_score",
]

ERROR_HINTS = {
    "UNIMPLEMENTED": "Google Ads API is not enabled for this Cloud project "
    "or the developer token is not approved for this API version",
    "PERMISSION_DENIED": "The connected Google account cannot access this "
    "customer; check manager account access or re-authorize",
    "INVALID_CUSTOMER_ID": "The selected Google Ads customer id is invalid",
    "DEVELOPER_TOKEN_NOT_APPROVED": "The Google Ads developer token only has "
    "test account access",
}


def normalize_customer_id(customer_id: str) -> str:
    return str(customer_id).replace("-", "").strip()


def _between(date_range: DateRange) -> str:
    start, end = date_range.as_strings()
    return f"segments.date BETWEEN '{start}' AND '{end}'"


class GoogleAdsConnector(SourceConnector):
    """Google Ads customers and GAQL reports."""

    source = SourceType.GOOGLE_ADS
    scopes = ("https://www.googleapis.com/auth/adwords",)
    reports = {
        "overview": ReportKind.OVERVIEW,
        "campaigns": ReportKind.BREAKDOWN,
        "devices": ReportKind.BREAKDOWN,
        "locations": ReportKind.BREAKDOWN,
        "keywords": ReportKind.BREAKDOWN,
    }

    def __init__(self, client, adapter, developer_token: Optional[str] = None):
        super().__init__(client, adapter)
        self.developer_token = (
            settings.google_ads_developer_token
            if developer_token is None
            else developer_token
        )

    def _headers(self, login_customer_id: Optional[str]) -> Dict[str, str]:
        headers = {"developer-token": self.developer_token}
        login = login_customer_id or settings.google_ads_login_customer_id
        if login:
            headers["login-customer-id"] = normalize_customer_id(login)
        return headers

    def describe_error(self, error: UpstreamAPIError) -> str:
        text = f"{error.reason} {error}"
        for marker, hint in ERROR_HINTS.items():
            if marker in text:
                return f"{hint} ({error})"
        return str(error)

    async def search(
        self,
        customer_id: str,
        access_token: str,
        query: str,
        login_customer_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Run a GAQL query and return every result row."""
        if not self.developer_token:
            raise ReportFetchFailed(
                "Google Ads developer token is not configured", self.source.value
            )
        cid = normalize_customer_id(customer_id)
        return await self.client.paginate_google(
            f"{ADS_API}/customers/{cid}/googleAds:search",
            access_token,
            "results",
            method="POST",
            json_body={"query": query},
            headers=self._headers(login_customer_id),
        )

    # ── Resources ──

    async def _describe_customer(self, customer_id: str, access_token: str) -> Resource:
        defaults = {
            "currency_code": DEFAULT_CURRENCY,
            "time_zone": DEFAULT_TIME_ZONE,
        }
        try:
            rows = await self.search(
                customer_id,
                access_token,
                "SELECT customer.id, customer.descriptive_name, customer.currency_code, "
                "customer.time_zone, customer.manager FROM customer LIMIT 1",
                login_customer_id=customer_id,
            )
        except UpstreamAPIError as e:
            logger.warning(
                f"Could not describe Google Ads customer {customer_id}: "
                f"{self.describe_error(e)}",
                extra={"source": self.source.value},
            )
            return Resource(
                id=customer_id,
                display_name=f"Customer {customer_id}",
                metadata={**defaults, "details_available": False},
            )

        row = rows[0] if rows else {}
        return Resource(
            id=customer_id,
            display_name=pick(row, "customer.descriptiveName") or f"Customer {customer_id}",
            metadata={
                "currency_code": pick(row, "customer.currencyCode") or DEFAULT_CURRENCY,
                "time_zone": pick(row, "customer.timeZone") or DEFAULT_TIME_ZONE,
                "manager": bool(pick(row, "customer.manager", default=False)),
                "details_available": bool(rows),
            },
        )

    async def list_resources(self, access_token: str) -> List[Resource]:
        if not self.developer_token:
            logger.warning(
                "Google Ads developer token missing; cannot enumerate customers",
                extra={"source": self.source.value},
            )
            return []

        body = await self.client.get(
            f"{ADS_API}/customers:listAccessibleCustomers",
            access_token=access_token,
            headers=self._headers(None),
        )
        customer_ids = [
            name.split("/")[-1] for name in body.get("resourceNames") or [] if name
        ]
        return list(
            await asyncio.gather(
                *(self._describe_customer(cid, access_token) for cid in customer_ids)
            )
        )

    # ── Reports ──

    async def fetch_overview(self, customer_id, access_token, date_range, metadata):
        rows = await self.search(
            customer_id,
            access_token,
            f"SELECT {METRIC_FIELDS} FROM customer WHERE {_between(date_range)}",
            metadata.get("login_customer_id"),
        )
        return transform_overview(rows, OVERVIEW_MEASURES)

    async def fetch_campaigns(self, customer_id, access_token, date_range, metadata):
        rows = await self.search(
            customer_id,
            access_token,
            "SELECT campaign.id, campaign.name, campaign.status, "
            f"campaign.advertising_channel_type, {METRIC_FIELDS} FROM campaign "
            f"WHERE {_between(date_range)} AND campaign.status != 'REMOVED' "
            "ORDER BY metrics.clicks DESC LIMIT 50",
            metadata.get("login_customer_id"),
        )
        return transform_grouped(rows, campaign_key, BREAKDOWN_MEASURES)

    async def fetch_devices(self, customer_id, access_token, date_range, metadata):
        rows = await self.search(
            customer_id,
            access_token,
            f"SELECT segments.device, {METRIC_FIELDS} FROM campaign "
            f"WHERE {_between(date_range)}",
            metadata.get("login_customer_id"),
        )
        return transform_grouped(rows, device_key, BREAKDOWN_MEASURES)

    async def fetch_locations(self, customer_id, access_token, date_range, metadata):
        rows = await self.search(
            customer_id,
            access_token,
            "SELECT geographic_view.country_criterion_id, "
            f"geographic_view.location_type, {METRIC_FIELDS} FROM geographic_view "
            f"WHERE {_between(date_range)} "
            "AND geographic_view.location_type = 'LOCATION_OF_PRESENCE'",
            metadata.get("login_customer_id"),
        )
        return transform_grouped(rows, location_key, BREAKDOWN_MEASURES)

    async def fetch_keywords(self, customer_id, access_token, date_range, metadata):
        rows = await self.search(
            customer_id,
            access_token,
            "SELECT ad_group_criterion.keyword.text, "
            "ad_group_criterion.keyword.match_type, "
            "ad_group_criterion.quality_info.quality_score, ad_group.name, "
            "campaign.name, metrics.impressions, metrics.clicks, "
            "metrics.cost_micros, metrics.conversions FROM keyword_view "
            f"WHERE {_between(date_range)} ORDER BY metrics.clicks DESC LIMIT 100",
            metadata.get("login_customer_id"),
        )
        return transform_keywords(rows, KEYWORD_MEASURES)
