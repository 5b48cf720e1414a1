"""Staylytics - Search Console Connector."""

from typing import Any, Dict, List
from urllib.parse import quote

from app.connectors.base import SourceConnector
from app.connectors.search_console.transformer import transform_keyed, transform_overview
from app.core.logging import get_logger
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange, ReportKind, Resource

logger = get_logger("connectors.search_console")

WEBMASTERS_API = "https://www.googleapis.com/webmasters/v3"


class SearchConsoleConnector(SourceConnector):
    """Verified sites and search analytics queries."""

    source = SourceType.SEARCH_CONSOLE
    scopes = ("https://www.googleapis.com/auth/webmasters.readonly",)
    reports = {
        "overview": ReportKind.OVERVIEW,
        "queries": ReportKind.BREAKDOWN,
        "pages": ReportKind.BREAKDOWN,
        "countries": ReportKind.BREAKDOWN,
        "devices": ReportKind.BREAKDOWN,
    }

    async def list_resources(self, access_token: str) -> List[Resource]:
        body = await self.client.get(f"{WEBMASTERS_API}/sites", access_token=access_token)
        return [
            Resource(
                id=entry["siteUrl"],
                display_name=entry["siteUrl"],
                metadata={"permission_level": entry.get("permissionLevel", "")},
            )
            for entry in body.get("siteEntry") or []
            if entry.get("siteUrl")
        ]

    async def query(
        self,
        site_url: str,
        access_token: str,
        date_range: DateRange,
        dimensions: List[str],
        row_limit: int,
    ) -> List[Dict[str, Any]]:
        start, end = date_range.as_strings()
        body: Dict[str, Any] = {
            "startDate": start,
            "endDate": end,
            "rowLimit": row_limit,
            # include fresh, not-yet-final data like the Search Console UI
            "dataState": "all",
        }
        if dimensions:
            body["dimensions"] = dimensions
        result = await self.client.post(
            f"{WEBMASTERS_API}/sites/{quote(site_url, safe='')}/searchAnalytics/query",
            access_token=access_token,
            json_body=body,
        )
        return result.get("rows") or []

    async def _keyed(
        self, site_url, access_token, date_range, dimension: str, limit: int
    ):
        rows = await self.query(site_url, access_token, date_range, [dimension], limit)
        return transform_keyed(rows, dimension)

    async def fetch_overview(self, site_url, access_token, date_range, metadata):
        rows = await self.query(site_url, access_token, date_range, [], 1)
        return transform_overview(rows)

    async def fetch_queries(self, site_url, access_token, date_range, metadata):
        return await self._keyed(site_url, access_token, date_range, "query", 100)

    async def fetch_pages(self, site_url, access_token, date_range, metadata):
        return await self._keyed(site_url, access_token, date_range, "page", 100)

    async def fetch_countries(self, site_url, access_token, date_range, metadata):
        return await self._keyed(site_url, access_token, date_range, "country", 50)

    async def fetch_devices(self, site_url, access_token, date_range, metadata):
        return await self._keyed(site_url, access_token, date_range, "device", 10)
