"""Shared fixtures: in-memory credential store and a scripted upstream.

Upstream HTTP is simulated with ``httpx.MockTransport``; every connector and
adapter built from the ``registry`` fixture talks to ``FakeUpstream``.
"""

import json
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

# Set test environment before app.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("OAUTH_STATE_SECRET", "test-state-secret")
os.environ.setdefault("GOOGLE_CLIENT_ID", "google-client-id")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "google-client-secret")
os.environ.setdefault("FACEBOOK_APP_ID", "fb-app-id")
os.environ.setdefault("FACEBOOK_APP_SECRET", "fb-app-secret")
os.environ.setdefault("GOOGLE_ADS_DEVELOPER_TOKEN", "dev-token")
os.environ.setdefault("FRONTEND_URL", "https://dashboard.test")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from app.connectors.registry import build_registry  # noqa: E402
from app.database import init_db  # noqa: E402
from app.models.connection_models import SourceType  # noqa: E402
from app.models.normalized_models import TokenSet  # noqa: E402
from app.services.token_manager import TokenManager  # noqa: E402
from app.store.credential_store import SQLCredentialStore  # noqa: E402

Responder = Union[
    Callable[[httpx.Request], httpx.Response], Dict[str, Any], List[Any]
]


def json_response(payload: Any, status: int = 200, headers=None) -> httpx.Response:
    return httpx.Response(status, json=payload, headers=headers)


class FakeUpstream:
    """Routes requests by (method, URL without query) to scripted responses.

    A responder is a callable taking the request, a dict payload served with
    200, or a list of payloads/responses served in order (last one repeats).
    """

    def __init__(self):
        self.routes: Dict[tuple[str, str], Responder] = {}
        self.requests: List[httpx.Request] = []
        self.transport = httpx.MockTransport(self.handle)

    def add(self, method: str, url: str, responder: Responder) -> None:
        self.routes[(method.upper(), url)] = responder

    def calls(self, url: str, method: Optional[str] = None) -> List[httpx.Request]:
        return [
            r
            for r in self.requests
            if str(r.url).split("?")[0] == url and (method is None or r.method == method)
        ]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.method, str(request.url).split("?")[0])
        if key not in self.routes:
            return json_response({"error": {"message": f"unrouted {key}"}}, 404)
        responder = self.routes[key]
        if callable(responder):
            return responder(request)
        if isinstance(responder, list):
            item = responder.pop(0) if len(responder) > 1 else responder[0]
            return item if isinstance(item, httpx.Response) else json_response(item)
        return json_response(responder)


def request_json(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content or b"{}")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine):
    return SQLCredentialStore(engine)


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
def registry(upstream):
    return build_registry(transport=upstream.transport, retry_base_delay=0)


@pytest.fixture
def token_manager(store, registry):
    return TokenManager(store, registry, expiry_skew_seconds=0)


@pytest.fixture
def seed(store):
    """Coroutine factory that stores a connection (optionally with a resource)."""

    async def _seed(
        project_id: str = "hotel-1",
        source: SourceType = SourceType.GOOGLE_ANALYTICS,
        access_token: Optional[str] = "stored-access",
        expires_in: Optional[timedelta] = timedelta(hours=1),
        refresh_token: str = "refresh-1",
        resource_id: Optional[str] = "resource-1",
        metadata: Optional[Dict[str, Any]] = None,
    ):
        expires_at = (
            datetime.now(timezone.utc) + expires_in if expires_in is not None else None
        )
        await store.save_authorization(
            project_id,
            source,
            TokenSet(
                access_token=access_token or "",
                refresh_token=refresh_token,
                expires_at=expires_at,
            ),
        )
        if access_token is None:
            await store.save_tokens(project_id, source, "", None)
        if resource_id:
            await store.select_resource(project_id, source, resource_id, metadata or {})
        return await store.get_connection(project_id, source)

    return _seed
