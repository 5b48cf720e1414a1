"""Staylytics - Connector Error Taxonomy.

Every failure that crosses the service boundary is one of these. The HTTP
layer maps them to status codes in ``app.main``; anything lower level
(``UpstreamAPIError``) stays inside the connectors.
"""

from typing import Optional


class ConnectorError(Exception):
    """Base class for errors surfaced to callers of the connector core."""

    error_kind = "connector_error"
    retryable = False

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        project_id: Optional[str] = None,
    ):
        self.message = message
        self.source = source
        self.project_id = project_id
        super().__init__(message)


class ConnectionNotFound(ConnectorError):
    """No connection exists for the (project, source) pair."""

    error_kind = "connection_not_found"


class ResourceNotSelected(ConnectorError):
    """Connection exists but no upstream resource has been chosen yet."""

    error_kind = "resource_not_selected"


class OAuthExchangeFailed(ConnectorError):
    """Authorization code exchange failed or returned no refresh token."""

    error_kind = "oauth_exchange_failed"


class InvalidOAuthState(OAuthExchangeFailed):
    error_kind = "invalid_oauth_state"


class TokenRefreshFailed(ConnectorError):
    """Refresh failed; ``revoked`` means the user must re-authorize."""

    error_kind = "token_refresh_failed"

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        project_id: Optional[str] = None,
        revoked: bool = False,
    ):
        self.revoked = revoked
        super().__init__(message, source, project_id)


class ReportFetchFailed(ConnectorError):
    """Upstream call error distinct from authentication; safe to retry."""

    error_kind = "report_fetch_failed"
    retryable = True


class PersistenceFailed(ConnectorError):
    """Credential Store write failed."""

    error_kind = "persistence_failed"


class UnknownReport(ConnectorError):
    error_kind = "unknown_report"


class UnknownSource(ConnectorError):
    error_kind = "unknown_source"
