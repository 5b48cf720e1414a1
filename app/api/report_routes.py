"""Staylytics - Report Routes."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from app.api.security import require_dashboard_user
from app.connectors.registry import ConnectorRegistry
from app.core.metric_registry import ALL_METRICS, MetricType, get_metric, metrics_by_type
from app.core.logging import get_logger
from app.dependencies import get_registry, get_report_service
from app.models.connection_models import SourceType
from app.services.report_service import ReportService

logger = get_logger("api.reports")

router = APIRouter(tags=["Reports"])


@router.get(
    "/projects/{project_id}/sources/{source}/reports",
    dependencies=[Depends(require_dashboard_user)],
)
async def report_catalogue(
    project_id: str,
    source: SourceType,
    service: ReportService = Depends(get_report_service),
):
    """Reports available for a source and whether each is an overview or breakdown."""
    return {
        "status": "success",
        "project_id": project_id,
        "source": source.value,
        "reports": service.catalogue(source),
    }


@router.get(
    "/projects/{project_id}/sources/{source}/reports/{report}",
    dependencies=[Depends(require_dashboard_user)],
)
async def get_report(
    project_id: str,
    source: SourceType,
    report: str,
    date_range: Optional[str] = Query(
        default=None,
        description="today | yesterday | last_7d | last_14d | last_28d | last_30d | last_90d | this_month",
    ),
    start_date: Optional[date] = Query(default=None, description="YYYY-MM-DD"),
    end_date: Optional[date] = Query(default=None, description="YYYY-MM-DD"),
    compare: Optional[str] = Query(default=None, description="previous_period"),
    compare_start_date: Optional[date] = Query(default=None),
    compare_end_date: Optional[date] = Query(default=None),
    service: ReportService = Depends(get_report_service),
):
    """Normalized metrics for the project's selected resource.

    Overview reports return one record in ``data``; breakdowns return a list.
    """
    try:
        return await service.fetch(
            project_id,
            source,
            report,
            date_range=date_range,
            start_date=start_date,
            end_date=end_date,
            compare=compare,
            compare_start_date=compare_start_date,
            compare_end_date=compare_end_date,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/sources")
async def list_sources(registry: ConnectorRegistry = Depends(get_registry)):
    """Every connected-source type with its OAuth family and reports."""
    sources = []
    for source in registry.sources():
        connector = registry.get(source)
        sources.append(
            {
                "source": source.value,
                "oauth_family": connector.oauth_family,
                "reports": {name: kind.value for name, kind in connector.reports.items()},
            }
        )
    return {"status": "success", "sources": sources}


@router.get("/metrics/registry", tags=["Metrics"])
async def metric_registry(
    metric_type: Optional[MetricType] = Query(default=None, alias="type"),
):
    """Every measure name with its type and unit, optionally of one type."""
    metrics = metrics_by_type(metric_type) if metric_type else ALL_METRICS.values()
    return {
        "status": "success",
        "metrics": [m.to_dict() for m in metrics],
    }


@router.get("/metrics/registry/{name}", tags=["Metrics"])
async def metric_definition(name: str):
    metric = get_metric(name)
    if metric is None:
        raise HTTPException(status_code=404, detail=f"Unknown metric '{name}'")
    return {"status": "success", "metric": metric.to_dict()}
