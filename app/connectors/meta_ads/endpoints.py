"""Staylytics - Meta Ads Connector.

Ad accounts and Marketing API insights at account, campaign, ad set and
ad level.
"""

import json
from typing import Any, Dict, List, Optional

from app.config import settings
from app.connectors.base import SourceConnector
from app.connectors.meta_ads.transformer import (
    transform_daily,
    transform_level,
    transform_overview,
)
from app.core.logging import get_logger
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange, ReportKind, Resource

logger = get_logger("connectors.meta_ads")

# Default fields requested from Meta
INSIGHT_FIELDS = (
    "account_id,account_name,campaign_name,campaign_id,adset_name,adset_id,"
    "ad_name,ad_id,impressions,reach,clicks,unique_clicks,spend,frequency,"
    "ctr,cpc,cpm,cpp,actions,action_values,"
    "video_p25_watched_actions,video_p50_watched_actions,"
    "video_p75_watched_actions,video_p100_watched_actions"
)
ACCOUNT_FIELDS = "account_id,id,name,currency,timezone_name,account_status"


def ad_account_path(account_id: str) -> str:
    account_id = str(account_id).strip()
    return account_id if account_id.startswith("act_") else f"act_{account_id}"


class MetaAdsConnector(SourceConnector):
    """Meta (Facebook/Instagram) advertising insights."""

    source = SourceType.META_ADS
    oauth_family = "facebook"
    scopes = ("ads_read", "ads_management", "business_management")
    reports = {
        "overview": ReportKind.OVERVIEW,
        "daily": ReportKind.BREAKDOWN,
        "campaigns": ReportKind.BREAKDOWN,
        "adsets": ReportKind.BREAKDOWN,
        "ads": ReportKind.BREAKDOWN,
    }

    def __init__(self, client, adapter, graph_base: Optional[str] = None):
        super().__init__(client, adapter)
        self.graph_base = graph_base or settings.graph_base

    async def list_resources(self, access_token: str) -> List[Resource]:
        accounts = await self.client.paginate_graph(
            f"{self.graph_base}/me/adaccounts",
            access_token,
            params={"fields": ACCOUNT_FIELDS, "limit": 100},
        )
        seen: set[str] = set()
        resources: List[Resource] = []
        for account in accounts:
            account_id = str(account.get("account_id") or "")
            if not account_id or account_id in seen:
                continue
            seen.add(account_id)
            resources.append(
                Resource(
                    id=account_id,
                    display_name=account.get("name") or f"Ad account {account_id}",
                    metadata={
                        "currency_code": account.get("currency"),
                        "time_zone": account.get("timezone_name"),
                        "account_status": account.get("account_status"),
                    },
                )
            )
        return resources

    async def fetch_insights(
        self,
        account_id: str,
        access_token: str,
        date_range: DateRange,
        level: str,
        time_increment: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Insight rows for one account, following pagination."""
        start, end = date_range.as_strings()
        params: Dict[str, Any] = {
            "fields": INSIGHT_FIELDS,
            "level": level,
            "time_range": json.dumps({"since": start, "until": end}),
            "limit": 500,
        }
        if time_increment:
            params["time_increment"] = time_increment
        return await self.client.paginate_graph(
            f"{self.graph_base}/{ad_account_path(account_id)}/insights",
            access_token,
            params=params,
        )

    async def fetch_overview(self, account_id, access_token, date_range, metadata):
        rows = await self.fetch_insights(account_id, access_token, date_range, "account")
        return transform_overview(rows)

    async def fetch_daily(self, account_id, access_token, date_range, metadata):
        rows = await self.fetch_insights(
            account_id, access_token, date_range, "account", time_increment=1
        )
        return transform_daily(rows)

    async def fetch_campaigns(self, account_id, access_token, date_range, metadata):
        rows = await self.fetch_insights(account_id, access_token, date_range, "campaign")
        return transform_level(rows, "campaign")

    async def fetch_adsets(self, account_id, access_token, date_range, metadata):
        rows = await self.fetch_insights(account_id, access_token, date_range, "adset")
        return transform_level(rows, "adset")

    async def fetch_ads(self, account_id, access_token, date_range, metadata):
        rows = await self.fetch_insights(account_id, access_token, date_range, "ad")
        return transform_level(rows, "ad")
