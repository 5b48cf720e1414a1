"""Staylytics - Connection Lifecycle.

authorize → callback (code exchange, connection stored) → resource listing
→ resource selection. After selection the connection can serve reports.
"""

from typing import Any, Dict, List, Optional

from app.connectors.base import MalformedPayload
from app.connectors.client import UpstreamAPIError
from app.connectors.registry import ConnectorRegistry
from app.core.errors import ConnectionNotFound, OAuthExchangeFailed, ReportFetchFailed
from app.core.logging import get_logger
from app.core.oauth_state import decode_state, encode_state
from app.models.connection_models import Connection, ConnectionStatus, SourceType
from app.models.normalized_models import Resource
from app.services.token_manager import TokenManager
from app.store.credential_store import CredentialStore

logger = get_logger("services.connections")


def connection_summary(
    conn: Optional[Connection], project_id: str, source: SourceType
) -> Dict[str, Any]:
    """Token-free view of a connection for API responses."""
    if conn is None:
        return {
            "project_id": project_id,
            "source": source.value,
            "status": ConnectionStatus.NOT_CONNECTED.value,
        }
    metadata = {
        k: v for k, v in conn.extra_metadata.items() if not k.endswith("access_token")
    }
    return {
        "project_id": conn.project_id,
        "source": conn.source,
        "status": conn.status.value,
        "resource_id": conn.external_resource_id,
        "metadata": metadata,
        "access_token_expires_at": conn.expires_at_utc,
        "invalidated_at": conn.invalidated_at,
        "updated_at": conn.updated_at,
    }


class ConnectionService:
    def __init__(
        self,
        store: CredentialStore,
        registry: ConnectorRegistry,
        token_manager: TokenManager,
    ):
        self.store = store
        self.registry = registry
        self.token_manager = token_manager

    def authorization_url(self, project_id: str, source: SourceType) -> str:
        source = SourceType(source)
        state = encode_state(project_id, source.value)
        return self.registry.adapter(source).build_authorization_url(state)

    async def complete_authorization(
        self,
        source: SourceType,
        code: str,
        state: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> Connection:
        """Exchange ``code`` and store the connection.

        The project comes from the signed ``state`` (browser redirect) or is
        given directly by an already-authenticated dashboard caller.
        """
        source = SourceType(source)
        if project_id is None:
            project_id = decode_state(state or "", source.value)
        if not code:
            raise OAuthExchangeFailed("Missing authorization code", source.value, project_id)

        tokens = await self.registry.adapter(source).exchange_code(code)
        if not tokens.refresh_token:
            raise OAuthExchangeFailed(
                "No refresh token was granted; revoke the app's access and "
                "authorize again to re-consent",
                source.value,
                project_id,
            )
        conn = await self.store.save_authorization(project_id, source, tokens)
        logger.info(
            f"{source.value} connected for project {project_id}; awaiting resource selection",
            extra={"source": source.value, "project_id": project_id},
        )
        return conn

    async def status(self, project_id: str, source: SourceType) -> Dict[str, Any]:
        source = SourceType(source)
        conn = await self.store.get_connection(project_id, source)
        return connection_summary(conn, project_id, source)

    async def list_resources(self, project_id: str, source: SourceType) -> List[Resource]:
        source = SourceType(source)
        token = await self.token_manager.get_access_token(project_id, source)
        connector = self.registry.get(source)
        try:
            return await connector.list_resources(token)
        except UpstreamAPIError as e:
            raise ReportFetchFailed(
                f"Could not list {source.value} resources: {connector.describe_error(e)}",
                source.value,
                project_id,
            ) from e
        except MalformedPayload as e:
            raise ReportFetchFailed(
                f"Malformed {source.value} resource listing: {e!r}",
                source.value,
                project_id,
            ) from e

    async def select_resource(
        self,
        project_id: str,
        source: SourceType,
        resource_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Connection:
        source = SourceType(source)
        if await self.store.get_connection(project_id, source) is None:
            raise ConnectionNotFound(
                f"Connect {source.value} before selecting a resource",
                source.value,
                project_id,
            )
        conn = await self.store.select_resource(
            project_id, source, resource_id, metadata or {}
        )
        logger.info(
            f"Selected {source.value} resource {resource_id} for project {project_id}",
            extra={"source": source.value, "project_id": project_id},
        )
        return conn
