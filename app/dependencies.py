"""Staylytics - Service Wiring.

Process-wide singletons built lazily on first use, exposed as FastAPI
dependencies. Tests swap them via ``app.dependency_overrides``.
"""

from functools import lru_cache

from app.config import settings
from app.connectors.registry import ConnectorRegistry, build_registry
from app.database import engine
from app.services.connection_service import ConnectionService
from app.services.report_service import ReportService
from app.services.token_manager import TokenManager
from app.store.credential_store import SQLCredentialStore
from app.store.report_cache import ReportCache


@lru_cache
def get_registry() -> ConnectorRegistry:
    return build_registry()


@lru_cache
def get_store() -> SQLCredentialStore:
    return SQLCredentialStore(engine)


@lru_cache
def get_report_cache() -> ReportCache:
    return ReportCache(engine, settings.report_cache_ttl_seconds)


@lru_cache
def get_token_manager() -> TokenManager:
    return TokenManager(get_store(), get_registry())


def get_connection_service() -> ConnectionService:
    return ConnectionService(get_store(), get_registry(), get_token_manager())


def get_report_service() -> ReportService:
    return ReportService(
        get_store(), get_registry(), get_token_manager(), get_report_cache()
    )
