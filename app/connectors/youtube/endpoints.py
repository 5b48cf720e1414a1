"""Staylytics - YouTube Connector.

Channel metrics come from YouTube Analytics v2; titles, durations and
thumbnails from the Data API v3. Top content is a two-step report: rank
video ids by views, then enrich them in batches of ``detail_batch_size``
(the Data API's per-call id limit) until ``result_limit`` items of the
requested content type are collected.
"""

import asyncio
from typing import Any, Dict, List, Optional

from app.config import settings
from app.connectors.base import MalformedPayload, SourceConnector
from app.connectors.batching import enrich_ranked
from app.connectors.client import UpstreamAPIError
from app.connectors.transformer import pick, safe_float
from app.connectors.youtube.transformer import (
    AUDIENCE_MEASURES,
    build_video_item,
    rows_as_dicts,
    transform_dimension,
    transform_overview,
    transform_playlists,
)
from app.core.logging import get_logger
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange, MetricRecord, ReportKind, Resource

logger = get_logger("connectors.youtube")

ANALYTICS_API = "https://youtubeanalytics.googleapis.com/v2/reports"
DATA_API = "https://www.googleapis.com/youtube/v3"

OVERVIEW_METRICS = [
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
VIDEO_METRICS = [
    "views",
    "likes",
    "comments",
    "shares",
    "estimatedMinutesWatched",
    "averageViewDuration",
]
AUDIENCE_METRICS = ["views", "estimatedMinutesWatched", "averageViewDuration"]
RANKING_DEPTH = 200


class YouTubeConnector(SourceConnector):
    """Channels, channel analytics and ranked video content."""

    source = SourceType.YOUTUBE
    scopes = (
        "https://www.googleapis.com/auth/youtube.readonly",
        "https://www.googleapis.com/auth/yt-analytics.readonly",
        "https://www.googleapis.com/auth/yt-analytics-monetary.readonly",
    )
    reports = {
        "overview": ReportKind.OVERVIEW,
        "top_videos": ReportKind.BREAKDOWN,
        "top_shorts": ReportKind.BREAKDOWN,
        "playlists": ReportKind.BREAKDOWN,
        "traffic_sources": ReportKind.BREAKDOWN,
        "devices": ReportKind.BREAKDOWN,
        "countries": ReportKind.BREAKDOWN,
    }

    def __init__(
        self,
        client,
        adapter,
        detail_batch_size: Optional[int] = None,
        result_limit: Optional[int] = None,
        detail_concurrency: int = 1,
    ):
        super().__init__(client, adapter)
        self.detail_batch_size = detail_batch_size or settings.youtube_detail_batch_size
        self.result_limit = result_limit or settings.youtube_top_content_limit
        self.detail_concurrency = detail_concurrency

    # ── Resources ──

    async def list_resources(self, access_token: str) -> List[Resource]:
        body = await self.client.get(
            f"{DATA_API}/channels",
            access_token=access_token,
            params={"part": "snippet,statistics", "mine": "true"},
        )
        return [
            Resource(
                id=item["id"],
                display_name=pick(item, "snippet.title", default="") or item["id"],
                metadata={
                    "custom_url": pick(item, "snippet.customUrl"),
                    "country": pick(item, "snippet.country"),
                    "thumbnail_url": pick(item, "snippet.thumbnails.default.url"),
                    "subscriber_count": safe_float(
                        pick(item, "statistics.subscriberCount")
                    ),
                },
            )
            for item in body.get("items") or []
            if item.get("id")
        ]

    # ── Query ──

    async def query(
        self,
        channel_id: str,
        access_token: str,
        date_range: DateRange,
        metrics: List[str],
        dimensions: Optional[str] = None,
        sort: Optional[str] = None,
        max_results: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        start, end = date_range.as_strings()
        params: Dict[str, Any] = {
            "ids": f"channel=={channel_id}",
            "startDate": start,
            "endDate": end,
            "metrics": ",".join(metrics),
        }
        if dimensions:
            params["dimensions"] = dimensions
        if sort:
            params["sort"] = sort
        if max_results:
            params["maxResults"] = max_results
        body = await self.client.get(
            ANALYTICS_API, access_token=access_token, params=params
        )
        return rows_as_dicts(body)

    async def current_subscribers(self, channel_id: str, access_token: str) -> float:
        """Lifetime subscriber count; 0 when the lookup fails."""
        try:
            body = await self.client.get(
                f"{DATA_API}/channels",
                access_token=access_token,
                params={"part": "statistics", "id": channel_id},
            )
            items = body.get("items") or []
            return safe_float(pick(items[0], "statistics.subscriberCount")) if items else 0.0
        except (UpstreamAPIError, *MalformedPayload) as e:
            logger.warning(
                f"Subscriber lookup failed for {channel_id}: {e!r}",
                extra={"source": self.source.value},
            )
            return 0.0

    async def video_details(
        self, video_ids: List[str], access_token: str
    ) -> Dict[str, Dict[str, Any]]:
        body = await self.client.get(
            f"{DATA_API}/videos",
            access_token=access_token,
            params={
                "part": "snippet,contentDetails,statistics",
                "id": ",".join(video_ids),
                "maxResults": len(video_ids),
            },
        )
        return {item["id"]: item for item in body.get("items") or [] if item.get("id")}

    async def top_content(
        self,
        channel_id: str,
        access_token: str,
        date_range: DateRange,
        content_type: Optional[str],
    ) -> List[MetricRecord]:
        rows = await self.query(
            channel_id,
            access_token,
            date_range,
            VIDEO_METRICS,
            dimensions="video",
            sort="-views",
            max_results=RANKING_DEPTH,
        )
        ranked = {str(row["video"]): row for row in rows if row.get("video")}

        async def fetch_batch(batch: List[str]) -> Dict[str, Dict[str, Any]]:
            return await self.video_details(batch, access_token)

        return await enrich_ranked(
            list(ranked),
            fetch_batch,
            lambda video_id, detail: build_video_item(
                video_id, detail, ranked[video_id], content_type
            ),
            batch_size=self.detail_batch_size,
            limit=self.result_limit,
            concurrency=self.detail_concurrency,
            source=self.source.value,
        )

    # ── Reports ──

    async def fetch_overview(self, channel_id, access_token, date_range, metadata):
        rows, subscribers = await asyncio.gather(
            self.query(channel_id, access_token, date_range, OVERVIEW_METRICS),
            self.current_subscribers(channel_id, access_token),
        )
        return transform_overview(rows, subscribers)

    async def fetch_top_videos(self, channel_id, access_token, date_range, metadata):
        return await self.top_content(channel_id, access_token, date_range, "video")

    async def fetch_top_shorts(self, channel_id, access_token, date_range, metadata):
        return await self.top_content(channel_id, access_token, date_range, "shorts")

    async def fetch_playlists(self, channel_id, access_token, date_range, metadata):
        body = await self.client.get(
            f"{DATA_API}/playlists",
            access_token=access_token,
            params={
                "part": "snippet,contentDetails",
                "channelId": channel_id,
                "maxResults": 50,
            },
        )
        return transform_playlists(body.get("items") or [])

    async def _audience(
        self, channel_id, access_token, date_range, dimension, max_results=None
    ):
        rows = await self.query(
            channel_id,
            access_token,
            date_range,
            AUDIENCE_METRICS,
            dimensions=dimension,
            sort="-views",
            max_results=max_results,
        )
        return transform_dimension(rows, dimension, AUDIENCE_MEASURES)

    async def fetch_traffic_sources(self, channel_id, access_token, date_range, metadata):
        return await self._audience(
            channel_id, access_token, date_range, "insightTrafficSourceType"
        )

    async def fetch_devices(self, channel_id, access_token, date_range, metadata):
        return await self._audience(channel_id, access_token, date_range, "deviceType")

    async def fetch_countries(self, channel_id, access_token, date_range, metadata):
        return await self._audience(
            channel_id, access_token, date_range, "country", max_results=25
        )
