"""Staylytics - Connector Registry.

The fixed set of hand-written connectors, one per SourceType, each wired to
its own UpstreamClient and OAuth adapter.
"""

from typing import Dict, List, Optional, Type

import httpx

from app.connectors.base import SourceConnector
from app.connectors.client import UpstreamClient
from app.connectors.facebook_pages.endpoints import FacebookPagesConnector
from app.connectors.google_ads.endpoints import GoogleAdsConnector
from app.connectors.google_analytics.endpoints import GoogleAnalyticsConnector
from app.connectors.google_business_profile.endpoints import (
    GoogleBusinessProfileConnector,
)
from app.connectors.google_workspace.endpoints import (
    GoogleDriveConnector,
    GoogleSheetsConnector,
)
from app.connectors.instagram.endpoints import InstagramConnector
from app.connectors.meta_ads.endpoints import MetaAdsConnector
from app.connectors.oauth import FacebookOAuthAdapter, GoogleOAuthAdapter, OAuthAdapter
from app.connectors.search_console.endpoints import SearchConsoleConnector
from app.connectors.youtube.endpoints import YouTubeConnector
from app.core.errors import UnknownSource
from app.core.logging import get_logger
from app.models.connection_models import SourceType

logger = get_logger("connectors.registry")

CONNECTOR_CLASSES: Dict[SourceType, Type[SourceConnector]] = {
    SourceType.GOOGLE_ANALYTICS: GoogleAnalyticsConnector,
    SourceType.GOOGLE_ADS: GoogleAdsConnector,
    SourceType.SEARCH_CONSOLE: SearchConsoleConnector,
    SourceType.YOUTUBE: YouTubeConnector,
    SourceType.META_ADS: MetaAdsConnector,
    SourceType.FACEBOOK_PAGES: FacebookPagesConnector,
    SourceType.INSTAGRAM: InstagramConnector,
    SourceType.GOOGLE_SHEETS: GoogleSheetsConnector,
    SourceType.GOOGLE_DRIVE: GoogleDriveConnector,
    SourceType.GOOGLE_BUSINESS_PROFILE: GoogleBusinessProfileConnector,
}


def build_adapter(
    connector_cls: Type[SourceConnector], client: UpstreamClient
) -> OAuthAdapter:
    source = connector_cls.source.value
    if connector_cls.oauth_family == "facebook":
        return FacebookOAuthAdapter(source, client, connector_cls.scopes)
    return GoogleOAuthAdapter(source, client, connector_cls.scopes)


class ConnectorRegistry:
    """Lookup of connectors and their OAuth adapters by source."""

    def __init__(self, connectors: Dict[SourceType, SourceConnector]):
        self._connectors = connectors

    def get(self, source: SourceType | str) -> SourceConnector:
        try:
            return self._connectors[SourceType(source)]
        except (KeyError, ValueError) as e:
            raise UnknownSource(f"Unknown source '{source}'", str(source)) from e

    def adapter(self, source: SourceType | str) -> OAuthAdapter:
        return self.get(source).adapter

    def sources(self) -> List[SourceType]:
        return list(self._connectors)

    async def close(self) -> None:
        for connector in self._connectors.values():
            await connector.close()


def build_registry(
    transport: Optional[httpx.AsyncBaseTransport] = None,
    retry_base_delay: Optional[float] = None,
) -> ConnectorRegistry:
    """Instantiate every connector with its own client and adapter."""
    connectors: Dict[SourceType, SourceConnector] = {}
    for source, connector_cls in CONNECTOR_CLASSES.items():
        client = UpstreamClient(
            source.value, transport=transport, retry_base_delay=retry_base_delay
        )
        connectors[source] = connector_cls(client, build_adapter(connector_cls, client))
    logger.info(f"Registered {len(connectors)} connectors")
    return ConnectorRegistry(connectors)
