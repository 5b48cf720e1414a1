"""Staylytics - Source Connector Base.

A connector class is the capability descriptor for one upstream source:
its OAuth scopes and family, the reports it can produce and their kind,
and the two operations the service calls (resource enumeration and report
fetching). Report ``foo`` is served by the coroutine ``fetch_foo``.
"""

import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Sequence

from app.config import settings
from app.connectors.client import UpstreamAPIError, UpstreamClient
from app.connectors.oauth import OAuthAdapter
from app.core.errors import ReportFetchFailed, UnknownReport
from app.core.logging import get_logger
from app.models.connection_models import SourceType
from app.models.normalized_models import DateRange, ReportData, ReportKind, Resource

logger = get_logger("connectors.base")

MalformedPayload = (KeyError, TypeError, ValueError, AttributeError, IndexError)


class SourceConnector(ABC):
    """Resource enumeration and report fetching for one source."""

    source: SourceType
    oauth_family: str = "google"
    scopes: Sequence[str] = ()
    reports: Dict[str, ReportKind] = {}

    def __init__(self, client: UpstreamClient, adapter: OAuthAdapter):
        self.client = client
        self.adapter = adapter

    @property
    def default_timezone(self) -> str:
        return settings.timezone_for(self.source.value)

    def timezone_for(self, metadata: Dict[str, Any] | None) -> str:
        """Account time zone from the selected resource, else the source default."""
        return (metadata or {}).get("time_zone") or self.default_timezone

    def report_kind(self, report: str) -> ReportKind:
        if report not in self.reports:
            raise UnknownReport(
                f"{self.source.value} has no report '{report}'. "
                f"Available: {', '.join(self.reports)}",
                self.source.value,
            )
        return self.reports[report]

    def describe_error(self, error: UpstreamAPIError) -> str:
        return str(error)

    @abstractmethod
    async def list_resources(self, access_token: str) -> List[Resource]: ...

    async def fetch_report(
        self,
        report: str,
        resource_id: str,
        access_token: str,
        date_range: DateRange,
        metadata: Dict[str, Any] | None = None,
    ) -> ReportData:
        """Run ``fetch_<report>`` and wrap upstream failures in ReportFetchFailed."""
        self.report_kind(report)
        handler = getattr(self, f"fetch_{report}")
        started = time.monotonic()
        try:
            data = await handler(resource_id, access_token, date_range, metadata or {})
        except UpstreamAPIError as e:
            raise ReportFetchFailed(self.describe_error(e), self.source.value) from e
        except MalformedPayload as e:
            raise ReportFetchFailed(
                f"Malformed {report} payload from {self.source.value}: {e!r}",
                self.source.value,
            ) from e

        rows = len(data) if isinstance(data, list) else 1
        logger.info(
            f"Fetched {self.source.value}/{report} for {resource_id}: {rows} record(s)",
            extra={
                "source": self.source.value,
                "report": report,
                "duration_ms": round((time.monotonic() - started) * 1000, 1),
            },
        )
        return data

    async def close(self) -> None:
        await self.client.close()
