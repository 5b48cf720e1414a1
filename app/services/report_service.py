"""Staylytics - Report Orchestration.

connection check → date window (in the source's time zone) → cache →
valid access token → connector fetch → optional previous-period comparison.
"""

import asyncio
from datetime import date
from typing import Any, Dict, Optional

from app.analyzer.comparison import apply_comparison
from app.connectors.registry import ConnectorRegistry
from app.core.dates import previous_period, resolve_range
from app.core.errors import ConnectionNotFound, ReportFetchFailed, ResourceNotSelected
from app.core.logging import get_logger
from app.models.connection_models import SourceType
from app.models.normalized_models import (
    DateRange,
    MetricRecord,
    ReportData,
    ReportKind,
    ReportResult,
)
from app.services.token_manager import TokenManager
from app.store.credential_store import CredentialStore
from app.store.report_cache import ReportCache, cache_key

logger = get_logger("services.reports")

PREVIOUS_PERIOD = "previous_period"


def _is_empty(data: ReportData) -> bool:
    if isinstance(data, MetricRecord):
        return not any(data.measures.values())
    return len(data) == 0


def _dump(data: ReportData) -> Any:
    if isinstance(data, MetricRecord):
        return data.model_dump(mode="json")
    return [row.model_dump(mode="json") for row in data]


def _load(kind: ReportKind, payload: Any) -> ReportData:
    if kind == ReportKind.OVERVIEW:
        return MetricRecord.model_validate(payload)
    return [MetricRecord.model_validate(row) for row in payload]


class ReportService:
    def __init__(
        self,
        store: CredentialStore,
        registry: ConnectorRegistry,
        token_manager: TokenManager,
        cache: Optional[ReportCache] = None,
    ):
        self.store = store
        self.registry = registry
        self.token_manager = token_manager
        self.cache = cache

    def catalogue(self, source: SourceType) -> Dict[str, str]:
        connector = self.registry.get(source)
        return {name: kind.value for name, kind in connector.reports.items()}

    async def fetch(
        self,
        project_id: str,
        source: SourceType,
        report: str,
        date_range: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        compare: Optional[str] = None,
        compare_start_date: Optional[date] = None,
        compare_end_date: Optional[date] = None,
    ) -> ReportResult:
        """Normalized report for a project's selected resource.

        Raises ConnectionNotFound, TokenRefreshFailed (revoked / invalidated),
        ResourceNotSelected, UnknownReport, ReportFetchFailed, and ValueError
        for an invalid date window.
        """
        source = SourceType(source)
        connector = self.registry.get(source)
        kind = connector.report_kind(report)

        conn = await self.store.get_connection(project_id, source)
        if conn is None:
            raise ConnectionNotFound(
                f"No {source.value} connection for project {project_id}",
                source.value,
                project_id,
            )
        if conn.invalidated_at is None and not conn.external_resource_id:
            raise ResourceNotSelected(
                f"Select a {source.value} resource before requesting reports",
                source.value,
                project_id,
            )

        metadata = conn.extra_metadata
        window = resolve_range(
            date_range, start_date, end_date, tz_name=connector.timezone_for(metadata)
        )
        compare_window = self._compare_window(
            window, compare, compare_start_date, compare_end_date
        )

        # Invalidated connections fail here with TokenRefreshFailed
        token = await self.token_manager.get_access_token(project_id, source)
        resource_id = conn.external_resource_id

        key = cache_key(
            project_id,
            source.value,
            resource_id,
            report,
            window.start_date,
            window.end_date,
            compare_window.start_date if compare_window else None,
            compare_window.end_date if compare_window else None,
        )
        cached = self.cache.get(key) if self.cache else None
        if cached is not None:
            logger.info(
                f"Cache hit for {source.value}/{report}",
                extra={"source": source.value, "project_id": project_id, "report": report},
            )
            data = _load(kind, cached)
        else:
            try:
                if compare_window is None:
                    data = await connector.fetch_report(
                        report, resource_id, token, window, metadata
                    )
                else:
                    current, previous = await asyncio.gather(
                        connector.fetch_report(report, resource_id, token, window, metadata),
                        connector.fetch_report(
                            report, resource_id, token, compare_window, metadata
                        ),
                    )
                    data = apply_comparison(current, previous)
            except ReportFetchFailed as e:
                e.project_id = project_id
                logger.error(
                    f"{source.value}/{report} failed: {e}",
                    extra={"source": source.value, "project_id": project_id, "report": report},
                )
                raise

            if self.cache and not _is_empty(data):
                self.cache.put(key, project_id, source.value, report, _dump(data))

        return ReportResult(
            source=source.value,
            report=report,
            kind=kind,
            resource_id=resource_id,
            start_date=window.start_date,
            end_date=window.end_date,
            compare_start_date=compare_window.start_date if compare_window else None,
            compare_end_date=compare_window.end_date if compare_window else None,
            cached=cached is not None,
            data=data,
        )

    @staticmethod
    def _compare_window(
        window: DateRange,
        compare: Optional[str],
        compare_start_date: Optional[date],
        compare_end_date: Optional[date],
    ) -> Optional[DateRange]:
        if compare_start_date and compare_end_date:
            return DateRange(start_date=compare_start_date, end_date=compare_end_date)
        if compare_start_date or compare_end_date:
            raise ValueError("compare_start_date and compare_end_date must be given together")
        if compare is None:
            return None
        if compare == PREVIOUS_PERIOD:
            return previous_period(window)
        raise ValueError(f"Unknown compare mode '{compare}'. Expected '{PREVIOUS_PERIOD}'")
