"""Staylytics - Dashboard Authentication.

Dashboard calls carry ``Authorization: Bearer <dashboard_api_key>``. With no
key configured the check is disabled for local development.
"""

import hmac
from typing import Optional

from fastapi import Header, HTTPException

from app.config import settings
from app.core.logging import get_logger

logger = get_logger("api.security")


def secure_compare(a: str, b: str) -> bool:
    """Constant-time string comparison."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


async def require_dashboard_user(authorization: Optional[str] = Header(default=None)):
    """FastAPI dependency: reject requests without the dashboard API key."""
    expected = settings.dashboard_api_key
    if not expected:
        return
    scheme, _, credential = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not secure_compare(credential.strip(), expected):
        raise HTTPException(
            status_code=401,
            detail="Missing or invalid dashboard credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
