"""Staylytics - OAuth Client Adapters.

Two upstream families: Google (one consent flow shared by Analytics, Ads,
Search Console, YouTube, Sheets, Drive and Business Profile) and Facebook
(Meta Ads, Pages and Instagram).
Adapters never hold a user's tokens; every call gets them as arguments.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Sequence
from urllib.parse import urlencode

from app.config import settings
from app.connectors.client import UpstreamAPIError, UpstreamClient
from app.core.errors import OAuthExchangeFailed, TokenRefreshFailed
from app.core.logging import get_logger
from app.models.normalized_models import TokenSet

logger = get_logger("connectors.oauth")

GOOGLE_REVOKED_REASONS = {"invalid_grant"}
# 190: invalid/expired token, 102: session invalidated (password change, logout)
FACEBOOK_REVOKED_CODES = {190, 102}
FACEBOOK_DEFAULT_TTL = 60 * 24 * 3600


def _expiry(expires_in: Any, default_seconds: int) -> datetime:
    try:
        seconds = int(expires_in)
    except (TypeError, ValueError):
        seconds = default_seconds
    if seconds <= 0:
        seconds = default_seconds
    return datetime.now(timezone.utc) + timedelta(seconds=seconds)


class OAuthAdapter(ABC):
    """Authorization URL, code exchange and refresh for one source."""

    def __init__(
        self,
        source: str,
        client: UpstreamClient,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        scopes: Sequence[str],
    ):
        self.source = source
        self.client = client
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = list(scopes)

    @abstractmethod
    def build_authorization_url(self, state: str) -> str: ...

    @abstractmethod
    async def exchange_code(self, code: str) -> TokenSet: ...

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> TokenSet: ...


class GoogleOAuthAdapter(OAuthAdapter):
    """Google OAuth 2.0 web-server flow with offline access."""

    def __init__(
        self,
        source: str,
        client: UpstreamClient,
        scopes: Sequence[str],
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        auth_url: Optional[str] = None,
        token_url: Optional[str] = None,
    ):
        super().__init__(
            source,
            client,
            client_id or settings.google_client_id,
            client_secret or settings.google_client_secret,
            redirect_uri or settings.redirect_uri_for(source),
            scopes,
        )
        self.auth_url = auth_url or settings.google_auth_url
        self.token_url = token_url or settings.google_token_url

    def build_authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            # offline + consent guarantees a refresh token on every grant
            "access_type": "offline",
            "prompt": "consent",
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{self.auth_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenSet:
        try:
            body = await self.client.post(
                self.token_url,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
        except UpstreamAPIError as e:
            raise OAuthExchangeFailed(
                f"Google rejected the authorization code: {e}", self.source
            ) from e
        return self._token_set(body, OAuthExchangeFailed)

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        try:
            body = await self.client.post(
                self.token_url,
                data={
                    "refresh_token": refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "refresh_token",
                },
            )
        except UpstreamAPIError as e:
            revoked = e.reason in GOOGLE_REVOKED_REASONS
            raise TokenRefreshFailed(
                f"Google token refresh failed: {e}", self.source, revoked=revoked
            ) from e
        return self._token_set(body, TokenRefreshFailed)

    def _token_set(self, body: Dict[str, Any], error_cls) -> TokenSet:
        access_token = body.get("access_token")
        if not access_token:
            raise error_cls("Token response carried no access_token", self.source)
        return TokenSet(
            access_token=access_token,
            refresh_token=body.get("refresh_token"),
            expires_at=_expiry(body.get("expires_in"), 3600),
        )


class FacebookOAuthAdapter(OAuthAdapter):
    """Facebook Login with long-lived user tokens.

    Facebook has no separate refresh token: the long-lived access token is
    stored as the refresh credential and exchanged for a fresh long-lived
    token on every refresh, so each refresh supersedes the stored one.
    """

    def __init__(
        self,
        source: str,
        client: UpstreamClient,
        scopes: Sequence[str],
        app_id: Optional[str] = None,
        app_secret: Optional[str] = None,
        redirect_uri: Optional[str] = None,
        graph_base: Optional[str] = None,
    ):
        super().__init__(
            source,
            client,
            app_id or settings.facebook_app_id,
            app_secret or settings.facebook_app_secret,
            redirect_uri or settings.redirect_uri_for(source),
            scopes,
        )
        self.graph_base = graph_base or settings.graph_base
        self.dialog_url = (
            f"{settings.meta_dialog_url}/{settings.meta_api_version}/dialog/oauth"
        )

    def build_authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "state": state,
            "scope": ",".join(self.scopes),
            "response_type": "code",
        }
        return f"{self.dialog_url}?{urlencode(params)}"

    async def _long_lived(self, token: str) -> Dict[str, Any]:
        return await self.client.get(
            f"{self.graph_base}/oauth/access_token",
            params={
                "grant_type": "fb_exchange_token",
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "fb_exchange_token": token,
            },
        )

    async def exchange_code(self, code: str) -> TokenSet:
        try:
            short = await self.client.get(
                f"{self.graph_base}/oauth/access_token",
                params={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "code": code,
                },
            )
        except UpstreamAPIError as e:
            raise OAuthExchangeFailed(
                f"Facebook rejected the authorization code: {e}", self.source
            ) from e

        short_token = short.get("access_token")
        if not short_token:
            raise OAuthExchangeFailed("Token response carried no access_token", self.source)

        try:
            body = await self._long_lived(short_token)
        except UpstreamAPIError as e:
            logger.warning(
                f"Long-lived token exchange failed, keeping short-lived token: {e}",
                extra={"source": self.source},
            )
            body = short

        token = body.get("access_token") or short_token
        return TokenSet(
            access_token=token,
            refresh_token=token,
            expires_at=_expiry(body.get("expires_in"), 3600),
        )

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        try:
            body = await self._long_lived(refresh_token)
        except UpstreamAPIError as e:
            revoked = e.error_code in FACEBOOK_REVOKED_CODES
            raise TokenRefreshFailed(
                f"Facebook token refresh failed: {e}", self.source, revoked=revoked
            ) from e

        token = body.get("access_token")
        if not token:
            raise TokenRefreshFailed("Token response carried no access_token", self.source)
        return TokenSet(
            access_token=token,
            refresh_token=token,
            expires_at=_expiry(body.get("expires_in"), FACEBOOK_DEFAULT_TTL),
        )
