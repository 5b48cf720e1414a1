"""Staylytics - Token Manager.

Hands out a currently-valid access token for a (project, source) pair,
refreshing through the source's OAuth adapter when the stored one has
expired. Concurrent callers for the same pair share a single refresh.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

from app.config import settings
from app.connectors.registry import ConnectorRegistry
from app.core.errors import (
    ConnectionNotFound,
    PersistenceFailed,
    TokenRefreshFailed,
)
from app.core.logging import get_logger
from app.models.connection_models import Connection, SourceType
from app.store.credential_store import CredentialStore

logger = get_logger("services.token_manager")

RefreshKey = Tuple[str, SourceType]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """Valid access tokens with coalesced refresh and best-effort write-back."""

    def __init__(
        self,
        store: CredentialStore,
        registry: ConnectorRegistry,
        expiry_skew_seconds: Optional[int] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.registry = registry
        self.expiry_skew = timedelta(
            seconds=settings.token_expiry_skew_seconds
            if expiry_skew_seconds is None
            else expiry_skew_seconds
        )
        self.clock = clock
        self._inflight: Dict[RefreshKey, asyncio.Task] = {}

    def is_fresh(self, conn: Connection) -> bool:
        expires_at = conn.expires_at_utc
        if not conn.access_token or expires_at is None:
            return False
        return expires_at - self.expiry_skew > self.clock()

    async def _load(self, project_id: str, source: SourceType) -> Connection:
        conn = await self.store.get_connection(project_id, source)
        if conn is None:
            raise ConnectionNotFound(
                f"No {source.value} connection for project {project_id}",
                source.value,
                project_id,
            )
        if conn.invalidated_at is not None:
            raise TokenRefreshFailed(
                f"{source.value} access was revoked; re-authorize the connection",
                source.value,
                project_id,
                revoked=True,
            )
        return conn

    async def get_access_token(self, project_id: str, source: SourceType) -> str:
        """Stored token if still valid, otherwise a freshly refreshed one."""
        source = SourceType(source)
        conn = await self._load(project_id, source)
        if self.is_fresh(conn):
            return conn.access_token
        return await self._coalesced_refresh(conn)

    async def refresh(self, project_id: str, source: SourceType) -> str:
        """Refresh regardless of the stored token's expiry."""
        source = SourceType(source)
        conn = await self._load(project_id, source)
        return await self._coalesced_refresh(conn)

    async def _coalesced_refresh(self, conn: Connection) -> str:
        key: RefreshKey = (conn.project_id, SourceType(conn.source))
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh(conn))
            self._inflight[key] = task

            def _forget(done: asyncio.Task, key: RefreshKey = key) -> None:
                if self._inflight.get(key) is done:
                    del self._inflight[key]

            task.add_done_callback(_forget)
        # shield: a cancelled caller must not cancel the shared refresh
        return await asyncio.shield(task)

    async def _refresh(self, conn: Connection) -> str:
        source = SourceType(conn.source)
        project_id = conn.project_id
        adapter = self.registry.adapter(source)
        logger.info(
            f"Refreshing {source.value} token for project {project_id}",
            extra={"source": source.value, "project_id": project_id},
        )
        try:
            tokens = await adapter.refresh_access_token(conn.refresh_token)
        except TokenRefreshFailed as e:
            e.project_id = project_id
            if e.revoked:
                logger.warning(
                    f"{source.value} grant revoked for project {project_id}; "
                    "marking connection for re-authorization",
                    extra={"source": source.value, "project_id": project_id},
                )
                try:
                    await self.store.invalidate(project_id, source)
                except PersistenceFailed as pe:
                    logger.error(
                        f"Could not invalidate connection: {pe}",
                        extra={"source": source.value, "project_id": project_id},
                    )
            raise

        try:
            await self.store.save_tokens(
                project_id,
                source,
                tokens.access_token,
                tokens.expires_at,
                # a rotated refresh token supersedes the stored one
                refresh_token=tokens.refresh_token,
            )
        except PersistenceFailed as e:
            logger.error(
                f"Refreshed token not persisted, serving it anyway: {e}",
                extra={"source": source.value, "project_id": project_id},
            )
        return tokens.access_token

    async def refresh_expiring(self, within: timedelta) -> Dict[str, int]:
        """Proactively refresh tokens expiring within ``within``."""
        horizon = self.clock() + within
        connections = await self.store.list_expiring(horizon)
        refreshed = failed = 0
        for conn in connections:
            try:
                await self.refresh(conn.project_id, SourceType(conn.source))
                refreshed += 1
            except (TokenRefreshFailed, ConnectionNotFound) as e:
                failed += 1
                logger.warning(
                    f"Proactive refresh failed: {e}",
                    extra={"source": conn.source, "project_id": conn.project_id},
                )
        return {"refreshed": refreshed, "failed": failed}
