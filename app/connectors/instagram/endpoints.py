"""Staylytics - Instagram Connector.

Instagram professional accounts are reached through the Facebook Pages they
are linked to, so enumeration walks ``/me/accounts`` and keeps the pages
with an ``instagram_business_account``. The page access token returned
there is stored with the selection and used for insights; without one the
user token is used.

Account insights accept at most 30 days per call, so longer windows are
split and the chunk totals summed.
"""

import asyncio
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from app.config import settings
from app.connectors.base import MalformedPayload, SourceConnector
from app.connectors.batching import enrich_ranked
from app.connectors.client import UpstreamAPIError
from app.connectors.instagram.transformer import (
    ACCOUNT_FIELDS,
    ACCOUNT_METRICS,
    DAILY_METRICS,
    MEDIA_METRICS,
    build_media_item,
    transform_audience,
    transform_daily,
    transform_overview,
)
from app.core.dates import split_range
from app.core.logging import get_logger
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange, MetricRecord, ReportKind, Resource

logger = get_logger("connectors.instagram")

MAX_INSIGHT_DAYS = 30
MEDIA_FIELDS = (
    "id,caption,media_type,media_product_type,permalink,timestamp,"
    "like_count,comments_count,thumbnail_url,media_url"
)
ACCOUNT_LOOKUP_FIELDS = "id,name,access_token,instagram_business_account{id,username,name}"


def media_date(media: Dict[str, Any]) -> Optional[date]:
    try:
        return date.fromisoformat(str(media.get("timestamp", ""))[:10])
    except ValueError:
        return None


class InstagramConnector(SourceConnector):
    """Instagram professional account insights and post performance."""

    source = SourceType.INSTAGRAM
    oauth_family = "facebook"
    scopes = (
        "instagram_basic",
        "instagram_manage_insights",
        "pages_show_list",
        "pages_read_engagement",
    )
    reports = {
        "overview": ReportKind.OVERVIEW,
        "daily": ReportKind.BREAKDOWN,
        "media": ReportKind.BREAKDOWN,
        "countries": ReportKind.BREAKDOWN,
        "cities": ReportKind.BREAKDOWN,
    }

    def __init__(
        self,
        client,
        adapter,
        graph_base: Optional[str] = None,
        media_limit: Optional[int] = None,
        media_pages: Optional[int] = None,
        insights_concurrency: Optional[int] = None,
    ):
        super().__init__(client, adapter)
        self.graph_base = graph_base or settings.graph_base
        self.media_limit = media_limit or settings.instagram_media_limit
        self.media_pages = media_pages or settings.instagram_media_pages
        self.insights_concurrency = (
            insights_concurrency or settings.instagram_insights_concurrency
        )

    # ── Resources ──

    async def list_resources(self, access_token: str) -> List[Resource]:
        pages = await self.client.paginate_graph(
            f"{self.graph_base}/me/accounts",
            access_token,
            params={"fields": ACCOUNT_LOOKUP_FIELDS, "limit": 100},
        )
        resources: Dict[str, Resource] = {}
        for page in pages:
            account = page.get("instagram_business_account") or {}
            ig_id = str(account.get("id") or "")
            if not ig_id or ig_id in resources:
                continue
            username = account.get("username")
            resources[ig_id] = Resource(
                id=ig_id,
                display_name=f"@{username}" if username else account.get("name") or ig_id,
                metadata={
                    "username": username,
                    "page_id": page.get("id"),
                    "page_name": page.get("name"),
                    "page_access_token": page.get("access_token"),
                },
            )
        logger.info(
            f"Found {len(resources)} Instagram accounts across {len(pages)} pages",
            extra={"source": self.source.value},
        )
        return list(resources.values())

    # ── Upstream calls ──

    @staticmethod
    def token_for(access_token: str, metadata: Dict[str, Any]) -> str:
        return metadata.get("page_access_token") or access_token

    async def insights(
        self,
        ig_id: str,
        token: str,
        metrics: List[str],
        window: Optional[DateRange] = None,
        **params: Any,
    ) -> List[Dict[str, Any]]:
        query: Dict[str, Any] = {"metric": ",".join(metrics), **params}
        if window is not None:
            query["since"] = window.start_date.isoformat()
            # until is exclusive
            query["until"] = (window.end_date + timedelta(days=1)).isoformat()
        body = await self.client.get(
            f"{self.graph_base}/{ig_id}/insights", access_token=token, params=query
        )
        return body.get("data") or []

    async def account_fields(self, ig_id: str, token: str) -> Dict[str, Any]:
        """Follower, following and media counts; empty when the lookup fails."""
        try:
            return await self.client.get(
                f"{self.graph_base}/{ig_id}",
                access_token=token,
                params={"fields": ",".join(ACCOUNT_FIELDS)},
            )
        except (UpstreamAPIError, *MalformedPayload) as e:
            logger.warning(
                f"Account lookup failed for {ig_id}: {e!r}",
                extra={"source": self.source.value},
            )
            return {}

    async def media_insights(self, media_id: str, token: str) -> List[Dict[str, Any]]:
        """Lifetime insights for one post; empty when unavailable for it."""
        try:
            body = await self.client.get(
                f"{self.graph_base}/{media_id}/insights",
                access_token=token,
                params={"metric": ",".join(MEDIA_METRICS)},
            )
            return body.get("data") or []
        except UpstreamAPIError as e:
            logger.warning(
                f"Insights unavailable for media {media_id}: {e}",
                extra={"source": self.source.value},
            )
            return []

    # ── Reports ──

    async def fetch_overview(self, ig_id, access_token, date_range, metadata):
        token = self.token_for(access_token, metadata)
        chunks = split_range(date_range, MAX_INSIGHT_DAYS)
        *totals, account = await asyncio.gather(
            *(
                self.insights(
                    ig_id,
                    token,
                    list(ACCOUNT_METRICS),
                    chunk,
                    period="day",
                    metric_type="total_value",
                )
                for chunk in chunks
            ),
            self.account_fields(ig_id, token),
        )
        return transform_overview(totals, account)

    async def fetch_daily(self, ig_id, access_token, date_range, metadata):
        token = self.token_for(access_token, metadata)
        chunks = await asyncio.gather(
            *(
                self.insights(ig_id, token, list(DAILY_METRICS), chunk, period="day")
                for chunk in split_range(date_range, MAX_INSIGHT_DAYS)
            )
        )
        return transform_daily([metric for chunk in chunks for metric in chunk])

    async def fetch_media(self, ig_id, access_token, date_range, metadata):
        """Posts published in the window, ranked by reach."""
        token = self.token_for(access_token, metadata)
        media = await self.client.paginate_graph(
            f"{self.graph_base}/{ig_id}/media",
            token,
            params={"fields": MEDIA_FIELDS, "limit": 50},
            max_pages=self.media_pages,
        )
        in_window: Dict[str, Dict[str, Any]] = {}
        for item in media:
            published = media_date(item)
            if item.get("id") and published and date_range.contains(published):
                in_window[str(item["id"])] = item

        async def fetch_batch(batch: List[str]) -> Dict[str, Dict[str, Any]]:
            results = await asyncio.gather(
                *(self.media_insights(media_id, token) for media_id in batch)
            )
            return {
                media_id: {**in_window[media_id], "insights": insights}
                for media_id, insights in zip(batch, results)
            }

        items: List[MetricRecord] = await enrich_ranked(
            list(in_window),
            fetch_batch,
            build_media_item,
            batch_size=self.insights_concurrency,
            limit=self.media_limit,
            source=self.source.value,
        )
        return sorted(items, key=lambda r: r.measure("reach"), reverse=True)

    async def _audience(self, ig_id, access_token, metadata, breakdown):
        insights = await self.insights(
            ig_id,
            self.token_for(access_token, metadata),
            ["follower_demographics"],
            period="lifetime",
            metric_type="total_value",
            breakdown=breakdown,
        )
        return transform_audience(insights, breakdown)

    async def fetch_countries(self, ig_id, access_token, date_range, metadata):
        return await self._audience(ig_id, access_token, metadata, "country")

    async def fetch_cities(self, ig_id, access_token, date_range, metadata):
        return await self._audience(ig_id, access_token, metadata, "city")
