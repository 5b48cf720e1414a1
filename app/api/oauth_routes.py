"""Staylytics - Connection & OAuth Routes."""

from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from app.api.security import require_dashboard_user
from app.config import settings
from app.core.errors import ConnectorError
from app.core.logging import get_logger
from app.dependencies import get_connection_service
from app.models.connection_models import SourceType
from app.services.connection_service import ConnectionService, connection_summary

logger = get_logger("api.oauth")

router = APIRouter(prefix="/connections", tags=["Connections"])


class CallbackRequest(BaseModel):
    """Manual code submission from an authenticated dashboard session."""

    code: str
    project_id: str

    model_config = {
        "json_schema_extra": {"examples": [{"code": "4/0AbC...", "project_id": "hotel-123"}]}
    }


class ResourceSelection(BaseModel):
    project_id: str
    resource_id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "project_id": "hotel-123",
                    "resource_id": "123456789",
                    "metadata": {"display_name": "Hotel Website", "time_zone": "Europe/Rome"},
                }
            ]
        }
    }


def _frontend_redirect(source: SourceType, **params: Any) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v is not None})
    return RedirectResponse(
        url=f"{settings.frontend_url.rstrip('/')}/auth/{source.value}/callback?{query}",
        status_code=302,
    )


@router.get("/{source}/authorize", dependencies=[Depends(require_dashboard_user)])
async def authorize(
    source: SourceType,
    project_id: str = Query(..., min_length=1),
    service: ConnectionService = Depends(get_connection_service),
):
    """Authorization URL the dashboard should send the user's browser to."""
    return {
        "status": "success",
        "source": source.value,
        "auth_url": service.authorization_url(project_id, source),
    }


@router.get("/{source}/callback", include_in_schema=False)
async def oauth_callback(
    source: SourceType,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    service: ConnectionService = Depends(get_connection_service),
):
    """Upstream redirect target. Always answers with a redirect to the dashboard."""
    if error:
        logger.warning(f"{source.value} authorization denied: {error}", extra={"source": source.value})
        return _frontend_redirect(source, status="error", error=error)
    try:
        conn = await service.complete_authorization(source, code or "", state=state)
    except ConnectorError as e:
        logger.error(f"{source.value} callback failed: {e}", extra={"source": source.value})
        return _frontend_redirect(source, status="error", error=e.error_kind, message=e.message)
    return _frontend_redirect(source, status="success", project_id=conn.project_id)


@router.post("/{source}/callback", dependencies=[Depends(require_dashboard_user)])
async def submit_callback(
    source: SourceType,
    body: CallbackRequest,
    service: ConnectionService = Depends(get_connection_service),
):
    """Exchange a code forwarded by the dashboard."""
    conn = await service.complete_authorization(source, body.code, project_id=body.project_id)
    return {"status": "success", "connection": connection_summary(conn, body.project_id, source)}


@router.get("/{source}/status", dependencies=[Depends(require_dashboard_user)])
async def connection_status(
    source: SourceType,
    project_id: str = Query(..., min_length=1),
    service: ConnectionService = Depends(get_connection_service),
):
    return {"status": "success", "connection": await service.status(project_id, source)}


@router.get("/{source}/resources", dependencies=[Depends(require_dashboard_user)])
async def list_resources(
    source: SourceType,
    project_id: str = Query(..., min_length=1),
    service: ConnectionService = Depends(get_connection_service),
):
    """Properties / accounts / channels / sites the connected user can access."""
    resources = await service.list_resources(project_id, source)
    return {
        "status": "success",
        "source": source.value,
        "count": len(resources),
        "resources": [r.model_dump() for r in resources],
    }


@router.post("/{source}/resource", dependencies=[Depends(require_dashboard_user)])
async def select_resource(
    source: SourceType,
    body: ResourceSelection,
    service: ConnectionService = Depends(get_connection_service),
):
    """Attach the chosen upstream resource to the project's connection."""
    conn = await service.select_resource(
        body.project_id, source, body.resource_id, body.metadata
    )
    return {"status": "success", "connection": connection_summary(conn, body.project_id, source)}
