"""Staylytics - Connection Models.

One row per (project, source): the stored OAuth credential plus the upstream
resource the project has chosen to report on.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from sqlmodel import SQLModel, Field, UniqueConstraint


class SourceType(str, Enum):
    """Upstream integrations with a hand-written connector."""

    GOOGLE_ANALYTICS = "google_analytics"
    GOOGLE_ADS = "google_ads"
    SEARCH_CONSOLE = "search_console"
    YOUTUBE = "youtube"
    META_ADS = "meta_ads"
    FACEBOOK_PAGES = "facebook_pages"
    INSTAGRAM = "instagram"
    GOOGLE_SHEETS = "google_sheets"
    GOOGLE_DRIVE = "google_drive"
    GOOGLE_BUSINESS_PROFILE = "google_business_profile"


class ConnectionStatus(str, Enum):
    NOT_CONNECTED = "not_connected"
    PENDING_RESOURCE = "pending_resource"
    CONNECTED = "connected"
    NEEDS_RECONNECTION = "needs_reconnection"


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Connection(SQLModel, table=True):
    """Stored credential for one project's link to one upstream source.

    The refresh token is always present. ``external_resource_id`` stays
    empty until the user picks a property/account/channel, and
    ``invalidated_at`` is set when the upstream revokes the grant.
    """

    __tablename__ = "connections"
    __table_args__ = (
        UniqueConstraint("project_id", "source", name="uq_connection_project_source"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: str = Field(index=True, description="Owning hotel project")
    source: str = Field(index=True, description="SourceType value")
    external_resource_id: Optional[str] = Field(
        default=None, description="Property / account / channel / site id"
    )
    refresh_token: str = Field(description="Long-lived OAuth credential")
    access_token: Optional[str] = Field(default=None)
    access_token_expires_at: Optional[datetime] = Field(default=None)
    metadata_json: str = Field(
        default="{}", description="Source-specific extra metadata"
    )
    invalidated_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def extra_metadata(self) -> Dict[str, Any]:
        try:
            return json.loads(self.metadata_json or "{}")
        except json.JSONDecodeError:
            return {}

    @property
    def expires_at_utc(self) -> Optional[datetime]:
        return as_utc(self.access_token_expires_at)

    @property
    def status(self) -> ConnectionStatus:
        if self.invalidated_at is not None:
            return ConnectionStatus.NEEDS_RECONNECTION
        if not self.external_resource_id:
            return ConnectionStatus.PENDING_RESOURCE
        return ConnectionStatus.CONNECTED
