"""Tests for the token manager: fast path, refresh, coalescing, revocation."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from app.core.errors import ConnectionNotFound, PersistenceFailed, TokenRefreshFailed
from app.models.connection_models import ConnectionStatus, SourceType
from app.models.normalized_models import TokenSet
from app.services.token_manager import TokenManager
from app.store.credential_store import SQLCredentialStore

GA = SourceType.GOOGLE_ANALYTICS


class FakeAdapter:
    def __init__(self, tokens=None, error=None, delay=0.0):
        self.tokens = tokens or TokenSet(
            access_token="fresh-access",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
        self.error = error
        self.delay = delay
        self.calls = []

    async def refresh_access_token(self, refresh_token):
        self.calls.append(refresh_token)
        await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.tokens


class FakeRegistry:
    def __init__(self, adapter):
        self._adapter = adapter

    def adapter(self, source):
        return self._adapter


class FailingWriteStore(SQLCredentialStore):
    async def save_tokens(self, *args, **kwargs):
        raise PersistenceFailed("database is read-only")


@pytest.mark.asyncio
async def test_valid_token_served_without_refresh(store, seed):
    await seed(access_token="still-good", expires_in=timedelta(minutes=30))
    adapter = FakeAdapter()
    manager = TokenManager(store, FakeRegistry(adapter), expiry_skew_seconds=0)

    assert await manager.get_access_token("hotel-1", GA) == "still-good"
    assert adapter.calls == []


@pytest.mark.asyncio
async def test_expired_token_refreshed_and_persisted(store, seed):
    await seed(access_token="old", expires_in=timedelta(minutes=-5))
    adapter = FakeAdapter()
    manager = TokenManager(store, FakeRegistry(adapter), expiry_skew_seconds=0)

    assert await manager.get_access_token("hotel-1", GA) == "fresh-access"
    assert adapter.calls == ["refresh-1"]

    conn = await store.get_connection("hotel-1", GA)
    assert conn.access_token == "fresh-access"
    assert conn.refresh_token == "refresh-1"
    assert conn.expires_at_utc > datetime.now(timezone.utc)


@pytest.mark.asyncio
async def test_missing_expiry_forces_refresh(store, seed):
    await seed(access_token="unknown-age", expires_in=None)
    adapter = FakeAdapter()
    manager = TokenManager(store, FakeRegistry(adapter), expiry_skew_seconds=0)

    assert await manager.get_access_token("hotel-1", GA) == "fresh-access"
    assert len(adapter.calls) == 1


@pytest.mark.asyncio
async def test_expiry_skew_refreshes_early(store, seed):
    await seed(expires_in=timedelta(seconds=30))
    adapter = FakeAdapter()
    manager = TokenManager(store, FakeRegistry(adapter), expiry_skew_seconds=60)

    assert await manager.get_access_token("hotel-1", GA) == "fresh-access"


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_refresh(store, seed):
    await seed(expires_in=timedelta(minutes=-1))
    adapter = FakeAdapter(delay=0.05)
    manager = TokenManager(store, FakeRegistry(adapter), expiry_skew_seconds=0)

    tokens = await asyncio.gather(
        *(manager.get_access_token("hotel-1", GA) for _ in range(5))
    )
    assert tokens == ["fresh-access"] * 5
    assert len(adapter.calls) == 1


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_shared_refresh(store, seed):
    await seed(expires_in=timedelta(minutes=-1))
    adapter = FakeAdapter(delay=0.05)
    manager = TokenManager(store, FakeRegistry(adapter), expiry_skew_seconds=0)

    first = asyncio.ensure_future(manager.get_access_token("hotel-1", GA))
    await asyncio.sleep(0.01)
    first.cancel()

    assert await manager.get_access_token("hotel-1", GA) == "fresh-access"
    assert len(adapter.calls) == 1
    assert (await store.get_connection("hotel-1", GA)).access_token == "fresh-access"


@pytest.mark.asyncio
async def test_rotated_refresh_token_supersedes_stored(store, seed):
    await seed(expires_in=timedelta(minutes=-1))
    adapter = FakeAdapter(
        tokens=TokenSet(
            access_token="fresh-access",
            refresh_token="refresh-2",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
        )
    )
    manager = TokenManager(store, FakeRegistry(adapter), expiry_skew_seconds=0)

    await manager.refresh("hotel-1", GA)
    assert (await store.get_connection("hotel-1", GA)).refresh_token == "refresh-2"


@pytest.mark.asyncio
async def test_write_back_failure_still_serves_token(engine, seed):
    await seed(expires_in=timedelta(minutes=-1))
    adapter = FakeAdapter()
    manager = TokenManager(FailingWriteStore(engine), FakeRegistry(adapter), expiry_skew_seconds=0)

    assert await manager.get_access_token("hotel-1", GA) == "fresh-access"


@pytest.mark.asyncio
async def test_revoked_grant_invalidates_connection(store, seed):
    await seed(expires_in=timedelta(minutes=-1))
    adapter = FakeAdapter(error=TokenRefreshFailed("invalid_grant", GA.value, revoked=True))
    manager = TokenManager(store, FakeRegistry(adapter), expiry_skew_seconds=0)

    with pytest.raises(TokenRefreshFailed) as exc:
        await manager.get_access_token("hotel-1", GA)
    assert exc.value.revoked is True
    assert exc.value.project_id == "hotel-1"

    conn = await store.get_connection("hotel-1", GA)
    assert conn.invalidated_at is not None
    assert conn.status == ConnectionStatus.NEEDS_RECONNECTION

    # no further refresh attempts until re-authorized
    with pytest.raises(TokenRefreshFailed):
        await manager.get_access_token("hotel-1", GA)
    assert len(adapter.calls) == 1


@pytest.mark.asyncio
async def test_transient_failure_keeps_connection(store, seed):
    await seed(expires_in=timedelta(minutes=-1))
    adapter = FakeAdapter(error=TokenRefreshFailed("503 from Google", GA.value))
    manager = TokenManager(store, FakeRegistry(adapter), expiry_skew_seconds=0)

    with pytest.raises(TokenRefreshFailed) as exc:
        await manager.get_access_token("hotel-1", GA)
    assert exc.value.revoked is False
    assert (await store.get_connection("hotel-1", GA)).invalidated_at is None


@pytest.mark.asyncio
async def test_missing_connection(store):
    manager = TokenManager(store, FakeRegistry(FakeAdapter()), expiry_skew_seconds=0)
    with pytest.raises(ConnectionNotFound):
        await manager.get_access_token("nobody", GA)


@pytest.mark.asyncio
async def test_refresh_expiring_only_touches_expiring_connections(store, seed):
    await seed(project_id="hotel-1", expires_in=timedelta(minutes=5))
    await seed(project_id="hotel-2", expires_in=timedelta(days=2))
    adapter = FakeAdapter()
    manager = TokenManager(store, FakeRegistry(adapter), expiry_skew_seconds=0)

    result = await manager.refresh_expiring(timedelta(minutes=20))
    assert result == {"refreshed": 1, "failed": 0}
    assert (await store.get_connection("hotel-1", GA)).access_token == "fresh-access"
    assert (await store.get_connection("hotel-2", GA)).access_token == "stored-access"
