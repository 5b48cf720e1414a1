"""Staylytics - Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Dict, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Google OAuth (Analytics, Ads, Search Console, YouTube, Sheets, Drive, Business Profile) ──
    google_client_id: str = ""
    google_client_secret: str = ""
    google_auth_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    google_token_url: str = "https://oauth2.googleapis.com/token"

    # ── Google Ads ──
    google_ads_developer_token: str = ""
    google_ads_api_version: str = "v18"
    google_ads_login_customer_id: Optional[str] = None

    # ── Facebook / Meta (Ads, Pages, Instagram) ──
    facebook_app_id: str = ""
    facebook_app_secret: str = ""
    meta_api_version: str = "v21.0"
    meta_base_url: str = "https://graph.facebook.com"
    meta_dialog_url: str = "https://www.facebook.com"

    # ── Callback routing ──
    public_base_url: str = "http://localhost:8000"
    redirect_uri_overrides: Dict[str, str] = {}
    frontend_url: str = "http://localhost:5173"

    # ── Security ──
    dashboard_api_key: str = ""
    oauth_state_secret: str = "change-me"
    oauth_state_ttl_seconds: int = 900

    # ── Database ──
    database_url: str = ""

    # ── Upstream calls ──
    upstream_timeout_seconds: float = 30.0
    upstream_max_retries: int = 3
    upstream_retry_base_delay: float = 2.0

    # ── Tokens ──
    token_expiry_skew_seconds: int = 0
    token_refresh_interval_minutes: int = 15
    token_refresh_window_minutes: int = 20

    # ── Reports ──
    report_cache_ttl_seconds: int = 1800
    default_timezone: str = "UTC"
    source_timezones: Dict[str, str] = {}
    youtube_detail_batch_size: int = 50
    youtube_top_content_limit: int = 50
    instagram_media_limit: int = 50
    instagram_media_pages: int = 4
    instagram_insights_concurrency: int = 5
    gbp_review_pages: int = 20

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/staylytics.db"
        return "sqlite:///./staylytics.db"

    @property
    def graph_base(self) -> str:
        return f"{self.meta_base_url}/{self.meta_api_version}"

    def redirect_uri_for(self, source: str) -> str:
        """Callback URL registered with the upstream provider for a source."""
        if source in self.redirect_uri_overrides:
            return self.redirect_uri_overrides[source]
        return f"{self.public_base_url.rstrip('/')}/connections/{source}/callback"

    def timezone_for(self, source: str) -> str:
        return self.source_timezones.get(source, self.default_timezone)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
