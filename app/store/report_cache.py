"""Staylytics - Report Cache.

Normalized report payloads cached per (project, source, resource, report,
window). Upstream analytics APIs are quota-bound and dashboards re-request
the same windows constantly.
"""

import hashlib
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from app.core.logging import get_logger
from app.models.connection_models import as_utc
from app.models.normalized_models import ReportCacheEntry

logger = get_logger("store.report_cache")


def cache_key(*parts: Any) -> str:
    raw = "|".join("" if p is None else str(p) for p in parts)
    return hashlib.sha256(raw.encode()).hexdigest()


class ReportCache:
    """TTL cache over the ``report_cache`` table. Failures only log."""

    def __init__(self, engine, ttl_seconds: int):
        self.engine = engine
        self.ttl_seconds = ttl_seconds

    @property
    def enabled(self) -> bool:
        return self.ttl_seconds > 0

    def get(self, key: str) -> Optional[Any]:
        if not self.enabled:
            return None
        try:
            with Session(self.engine) as session:
                entry = session.exec(
                    select(ReportCacheEntry).where(ReportCacheEntry.cache_key == key)
                ).first()
                if entry is None:
                    return None
                if as_utc(entry.expires_at) <= datetime.now(timezone.utc):
                    return None
                return json.loads(entry.payload_json)
        except (SQLAlchemyError, json.JSONDecodeError) as e:
            logger.warning(f"Report cache read failed: {e}")
            return None

    def put(
        self, key: str, project_id: str, source: str, report: str, payload: Any
    ) -> None:
        if not self.enabled:
            return
        now = datetime.now(timezone.utc)
        try:
            with Session(self.engine) as session:
                entry = session.exec(
                    select(ReportCacheEntry).where(ReportCacheEntry.cache_key == key)
                ).first()
                if entry is None:
                    entry = ReportCacheEntry(
                        cache_key=key,
                        project_id=project_id,
                        source=source,
                        report=report,
                        payload_json="",
                        expires_at=now,
                    )
                entry.payload_json = json.dumps(payload, default=str)
                entry.created_at = now
                entry.expires_at = now + timedelta(seconds=self.ttl_seconds)
                session.add(entry)
                session.commit()
        except SQLAlchemyError as e:
            logger.warning(f"Report cache write failed: {e}")

    def purge_expired(self) -> int:
        """Delete expired entries; returns how many were removed."""
        now = datetime.now(timezone.utc)
        with Session(self.engine) as session:
            result = session.execute(
                delete(ReportCacheEntry).where(ReportCacheEntry.expires_at <= now)
            )
            session.commit()
            return result.rowcount or 0
