"""Staylytics - Facebook Pages Connector.

Page insights need a page access token. The one returned while listing
pages is stored with the resource selection; if it is missing, one is
requested with the user token, and as a last resort the user token is used.
"""

import asyncio
from datetime import timedelta
from typing import Any, Dict, List, Optional

from app.config import settings
from app.connectors.base import MalformedPayload, SourceConnector
from app.connectors.client import UpstreamAPIError
from app.connectors.facebook_pages.transformer import (
    PAGE_METRICS,
    transform_daily,
    transform_overview,
)
from app.connectors.transformer import safe_float
from app.core.logging import get_logger
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange, ReportKind, Resource

logger = get_logger("connectors.facebook_pages")


class FacebookPagesConnector(SourceConnector):
    """Facebook Page insights."""

    source = SourceType.FACEBOOK_PAGES
    oauth_family = "facebook"
    scopes = (
        "pages_show_list",
        "pages_read_engagement",
        "read_insights",
    )
    reports = {
        "overview": ReportKind.OVERVIEW,
        "daily": ReportKind.BREAKDOWN,
    }

    def __init__(self, client, adapter, graph_base: Optional[str] = None):
        super().__init__(client, adapter)
        self.graph_base = graph_base or settings.graph_base

    async def list_resources(self, access_token: str) -> List[Resource]:
        pages = await self.client.paginate_graph(
            f"{self.graph_base}/me/accounts",
            access_token,
            params={"fields": "id,name,category,access_token", "limit": 100},
        )
        return [
            Resource(
                id=str(page["id"]),
                display_name=page.get("name") or str(page["id"]),
                metadata={
                    "category": page.get("category"),
                    "page_access_token": page.get("access_token"),
                },
            )
            for page in pages
            if page.get("id")
        ]

    async def page_token(
        self, page_id: str, user_token: str, metadata: Dict[str, Any]
    ) -> str:
        stored = metadata.get("page_access_token")
        if stored:
            return stored
        try:
            body = await self.client.get(
                f"{self.graph_base}/{page_id}",
                access_token=user_token,
                params={"fields": "access_token"},
            )
            if body.get("access_token"):
                return body["access_token"]
        except UpstreamAPIError as e:
            logger.warning(
                f"Page token lookup failed for {page_id}, using user token: {e}",
                extra={"source": self.source.value},
            )
        return user_token

    async def followers(self, page_id: str, token: str) -> float:
        """Current follower count; 0 when the lookup fails."""
        try:
            body = await self.client.get(
                f"{self.graph_base}/{page_id}",
                access_token=token,
                params={"fields": "followers_count,fan_count"},
            )
            return safe_float(body.get("followers_count") or body.get("fan_count"))
        except (UpstreamAPIError, *MalformedPayload) as e:
            logger.warning(
                f"Follower lookup failed for {page_id}: {e!r}",
                extra={"source": self.source.value},
            )
            return 0.0

    async def insights(
        self, page_id: str, token: str, date_range: DateRange
    ) -> List[Dict[str, Any]]:
        body = await self.client.get(
            f"{self.graph_base}/{page_id}/insights",
            access_token=token,
            params={
                "metric": ",".join(PAGE_METRICS),
                "period": "day",
                "since": date_range.start_date.isoformat(),
                # until is exclusive
                "until": (date_range.end_date + timedelta(days=1)).isoformat(),
            },
        )
        return body.get("data") or []

    async def fetch_overview(self, page_id, access_token, date_range, metadata):
        token = await self.page_token(page_id, access_token, metadata)
        insights, followers = await asyncio.gather(
            self.insights(page_id, token, date_range),
            self.followers(page_id, token),
        )
        return transform_overview(insights, followers)

    async def fetch_daily(self, page_id, access_token, date_range, metadata):
        token = await self.page_token(page_id, access_token, metadata)
        return transform_daily(await self.insights(page_id, token, date_range))
