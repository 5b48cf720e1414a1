"""Staylytics - Credential Store.

Durable storage of per-(project, source) connections. The service only talks
to the abstract ``CredentialStore``; ``SQLCredentialStore`` is the SQLModel
implementation used in production and tests.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.core.errors import PersistenceFailed
from app.core.logging import get_logger
from app.models.connection_models import Connection, SourceType
from app.models.normalized_models import TokenSet

logger = get_logger("store.credentials")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CredentialStore(ABC):
    """Abstract persistence for OAuth connections."""

    @abstractmethod
    async def get_connection(
        self, project_id: str, source: SourceType
    ) -> Optional[Connection]: ...

    @abstractmethod
    async def save_authorization(
        self, project_id: str, source: SourceType, tokens: TokenSet
    ) -> Connection:
        """Create or replace the connection after a successful code exchange."""

    @abstractmethod
    async def save_tokens(
        self,
        project_id: str,
        source: SourceType,
        access_token: str,
        expires_at: Optional[datetime],
        refresh_token: Optional[str] = None,
    ) -> None: ...

    @abstractmethod
    async def select_resource(
        self,
        project_id: str,
        source: SourceType,
        resource_id: str,
        metadata: Dict[str, Any],
    ) -> Connection: ...

    @abstractmethod
    async def invalidate(self, project_id: str, source: SourceType) -> None: ...

    @abstractmethod
    async def list_expiring(self, before: datetime) -> List[Connection]:
        """Valid connections whose access token expires before ``before``."""


class SQLCredentialStore(CredentialStore):
    """CredentialStore backed by the ``connections`` table."""

    def __init__(self, engine):
        self.engine = engine

    def _session(self) -> Session:
        return Session(self.engine, expire_on_commit=False)

    @staticmethod
    def _find(session: Session, project_id: str, source: SourceType):
        return session.exec(
            select(Connection).where(
                Connection.project_id == project_id,
                Connection.source == SourceType(source).value,
            )
        ).first()

    async def get_connection(
        self, project_id: str, source: SourceType
    ) -> Optional[Connection]:
        try:
            with self._session() as session:
                return self._find(session, project_id, source)
        except SQLAlchemyError as e:
            raise PersistenceFailed(
                f"Could not read connection: {e}", source, project_id
            ) from e

    async def save_authorization(
        self, project_id: str, source: SourceType, tokens: TokenSet
    ) -> Connection:
        try:
            with self._session() as session:
                conn = self._find(session, project_id, source)
                if conn is None:
                    conn = Connection(
                        project_id=project_id,
                        source=SourceType(source).value,
                        refresh_token=tokens.refresh_token or "",
                    )
                # Re-authorization starts over: new grant, no resource yet
                conn.refresh_token = tokens.refresh_token or conn.refresh_token
                conn.access_token = tokens.access_token
                conn.access_token_expires_at = tokens.expires_at
                conn.external_resource_id = None
                conn.metadata_json = "{}"
                conn.invalidated_at = None
                conn.updated_at = _now()
                session.add(conn)
                session.commit()
                session.refresh(conn)
                logger.info(
                    f"Stored authorization for {project_id}/{conn.source}",
                    extra={"project_id": project_id, "source": conn.source},
                )
                return conn
        except SQLAlchemyError as e:
            raise PersistenceFailed(
                f"Could not store authorization: {e}", source, project_id
            ) from e

    async def save_tokens(
        self,
        project_id: str,
        source: SourceType,
        access_token: str,
        expires_at: Optional[datetime],
        refresh_token: Optional[str] = None,
    ) -> None:
        try:
            with self._session() as session:
                conn = self._find(session, project_id, source)
                if conn is None:
                    raise PersistenceFailed(
                        "Connection disappeared before token write-back",
                        source,
                        project_id,
                    )
                conn.access_token = access_token
                conn.access_token_expires_at = expires_at
                if refresh_token:
                    conn.refresh_token = refresh_token
                conn.updated_at = _now()
                session.add(conn)
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceFailed(
                f"Could not persist refreshed token: {e}", source, project_id
            ) from e

    async def select_resource(
        self,
        project_id: str,
        source: SourceType,
        resource_id: str,
        metadata: Dict[str, Any],
    ) -> Connection:
        try:
            with self._session() as session:
                conn = self._find(session, project_id, source)
                if conn is None:
                    raise PersistenceFailed(
                        "No connection to attach a resource to", source, project_id
                    )
                conn.external_resource_id = resource_id
                conn.metadata_json = json.dumps(metadata or {}, default=str)
                conn.updated_at = _now()
                session.add(conn)
                session.commit()
                session.refresh(conn)
                return conn
        except SQLAlchemyError as e:
            raise PersistenceFailed(
                f"Could not store resource selection: {e}", source, project_id
            ) from e

    async def invalidate(self, project_id: str, source: SourceType) -> None:
        try:
            with self._session() as session:
                conn = self._find(session, project_id, source)
                if conn is None:
                    return
                conn.invalidated_at = _now()
                conn.access_token = None
                conn.access_token_expires_at = None
                conn.updated_at = _now()
                session.add(conn)
                session.commit()
        except SQLAlchemyError as e:
            raise PersistenceFailed(
                f"Could not invalidate connection: {e}", source, project_id
            ) from e

    async def list_expiring(self, before: datetime) -> List[Connection]:
        try:
            with self._session() as session:
                rows = session.exec(
                    select(Connection).where(Connection.invalidated_at.is_(None))
                ).all()
        except SQLAlchemyError as e:
            raise PersistenceFailed(f"Could not list connections: {e}") from e
        return [
            c
            for c in rows
            if c.expires_at_utc is None or c.expires_at_utc < before
        ]
