"""Staylytics - Google Business Profile Connector.

Locations are enumerated per account through the Account Management and
Business Information APIs. The resource id is the full v4 location path
(``accounts/{a}/locations/{l}``) because reviews are still served by the
v4 API; the Performance API only needs the ``locations/{l}`` part.
"""

from typing import Any, Dict, List, Mapping, Tuple

from app.config import settings
from app.connectors.base import SourceConnector
from app.connectors.client import UpstreamAPIError
from app.connectors.google_business_profile.transformer import (
    PERFORMANCE_METRICS,
    review_date,
    transform_overview,
    transform_performance,
    transform_performance_daily,
    transform_reviews,
)
from app.connectors.transformer import pick
from app.core.logging import get_logger
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange, ReportKind, Resource

logger = get_logger("connectors.google_business_profile")

ACCOUNTS_API = "https://mybusinessaccountmanagement.googleapis.com/v1"
INFO_API = "https://mybusinessbusinessinformation.googleapis.com/v1"
REVIEWS_API = "https://mybusiness.googleapis.com/v4"
PERFORMANCE_API = "https://businessprofileperformance.googleapis.com/v1"

LOCATION_READ_MASK = "name,title,storefrontAddress,metadata"

ERROR_HINTS = {
    "SERVICE_DISABLED": "The Business Profile APIs are not enabled for this "
    "Cloud project",
    "RESOURCE_EXHAUSTED": "Business Profile API quota is exhausted or has not "
    "been granted to this Cloud project",
    "PERMISSION_DENIED": "The connected Google account does not manage this "
    "location; re-authorize with an owner or manager account",
}


def location_path(resource_id: str) -> str:
    """``accounts/1/locations/2`` -> ``locations/2``"""
    return "locations/" + resource_id.rstrip("/").split("/")[-1]


def format_address(address: Mapping[str, Any]) -> str:
    parts = list(address.get("addressLines") or [])
    parts += [
        address.get(key)
        for key in ("locality", "administrativeArea", "postalCode", "regionCode")
    ]
    return ", ".join(p for p in parts if p)


class GoogleBusinessProfileConnector(SourceConnector):
    """Hotel listings on Google: reviews, ratings and listing performance."""

    source = SourceType.GOOGLE_BUSINESS_PROFILE
    scopes = ("https://www.googleapis.com/auth/business.manage",)
    reports = {
        "overview": ReportKind.OVERVIEW,
        "reviews": ReportKind.BREAKDOWN,
        "performance": ReportKind.OVERVIEW,
        "performance_daily": ReportKind.BREAKDOWN,
    }

    def describe_error(self, error: UpstreamAPIError) -> str:
        text = f"{error.reason} {error}"
        for marker, hint in ERROR_HINTS.items():
            if marker in text:
                return f"{hint} ({error})"
        return str(error)

    # ── Resources ──

    async def list_resources(self, access_token: str) -> List[Resource]:
        accounts = await self.client.paginate_google(
            f"{ACCOUNTS_API}/accounts", access_token, "accounts", params={"pageSize": 20}
        )
        resources: List[Resource] = []
        for account in accounts:
            account_name = account.get("name", "")
            try:
                locations = await self.client.paginate_google(
                    f"{INFO_API}/{account_name}/locations",
                    access_token,
                    "locations",
                    params={"readMask": LOCATION_READ_MASK, "pageSize": 100},
                )
            except UpstreamAPIError as e:
                logger.warning(
                    f"Skipping Business Profile account {account_name}: {e}",
                    extra={"source": self.source.value},
                )
                continue
            for location in locations:
                name = str(location.get("name") or "")
                if not name:
                    continue
                resources.append(
                    Resource(
                        id=f"{account_name}/{name}",
                        display_name=location.get("title") or "Unnamed Location",
                        metadata={
                            "account_name": account.get("accountName", ""),
                            "address": format_address(
                                location.get("storefrontAddress") or {}
                            ),
                            "maps_uri": pick(location, "metadata.mapsUri"),
                            "place_id": pick(location, "metadata.placeId"),
                        },
                    )
                )
        logger.info(
            f"Found {len(resources)} Business Profile locations across "
            f"{len(accounts)} accounts",
            extra={"source": self.source.value},
        )
        return resources

    # ── Upstream calls ──

    async def reviews(
        self, location_id: str, access_token: str
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        """Every review (newest update first) and the location-wide rating summary."""
        reviews: List[Dict[str, Any]] = []
        summary: Dict[str, Any] = {}
        params: Dict[str, Any] = {"pageSize": 50, "orderBy": "updateTime desc"}
        for _ in range(settings.gbp_review_pages):
            body = await self.client.get(
                f"{REVIEWS_API}/{location_id}/reviews",
                access_token=access_token,
                params=params,
            )
            if not summary:
                summary = {
                    "averageRating": body.get("averageRating"),
                    "totalReviewCount": body.get("totalReviewCount"),
                }
            reviews.extend(body.get("reviews") or [])
            if not body.get("nextPageToken"):
                break
            params = {**params, "pageToken": body["nextPageToken"]}
        return reviews, summary

    async def reviews_in_window(
        self, location_id: str, access_token: str, date_range: DateRange
    ) -> Tuple[List[Dict[str, Any]], Dict[str, Any]]:
        reviews, summary = await self.reviews(location_id, access_token)
        selected = []
        for review in reviews:
            written = review_date(review)
            if written and date_range.contains(written):
                selected.append(review)
        return selected, summary

    async def performance_series(
        self, location_id: str, access_token: str, date_range: DateRange
    ) -> Dict[str, Any]:
        start, end = date_range.start_date, date_range.end_date
        return await self.client.get(
            f"{PERFORMANCE_API}/{location_path(location_id)}:fetchMultiDailyMetricsTimeSeries",
            access_token=access_token,
            params={
                "dailyMetrics": list(PERFORMANCE_METRICS),
                "dailyRange.startDate.year": start.year,
                "dailyRange.startDate.month": start.month,
                "dailyRange.startDate.day": start.day,
                "dailyRange.endDate.year": end.year,
                "dailyRange.endDate.month": end.month,
                "dailyRange.endDate.day": end.day,
            },
        )

    # ── Reports ──

    async def fetch_overview(self, location_id, access_token, date_range, metadata):
        reviews, summary = await self.reviews_in_window(
            location_id, access_token, date_range
        )
        return transform_overview(reviews, summary)

    async def fetch_reviews(self, location_id, access_token, date_range, metadata):
        reviews, _ = await self.reviews_in_window(location_id, access_token, date_range)
        return transform_reviews(reviews)

    async def fetch_performance(self, location_id, access_token, date_range, metadata):
        return transform_performance(
            await self.performance_series(location_id, access_token, date_range)
        )

    async def fetch_performance_daily(
        self, location_id, access_token, date_range, metadata
    ):
        return transform_performance_daily(
            await self.performance_series(location_id, access_token, date_range)
        )
