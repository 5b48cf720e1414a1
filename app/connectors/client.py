"""Staylytics - Upstream HTTP Client.

Handles retry logic, rate limiting, error extraction, and pagination for
every Google and Graph API call. One instance per source; it holds no
credentials, the access token is passed on each call.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

import httpx

from app.config import settings
from app.core.logging import get_logger

logger = get_logger("connectors.client")

# Graph API signals throttling with HTTP 400 and these body codes
GRAPH_THROTTLE_CODES = {4, 17, 32, 613}


class UpstreamAPIError(Exception):
    """Raised when an upstream API returns an error."""

    def __init__(
        self,
        message: str,
        status_code: int = 0,
        error_code: int = 0,
        reason: str = "",
    ):
        self.status_code = status_code
        self.error_code = error_code
        self.reason = reason
        super().__init__(message)


def _error_details(body: Any, fallback: str) -> tuple[str, int, str]:
    """Pull (message, numeric code, reason) out of Google, OAuth or Graph errors."""
    if not isinstance(body, dict):
        return fallback, 0, ""
    error = body.get("error")
    if isinstance(error, str):
        # OAuth token endpoint: {"error": "invalid_grant", "error_description": ...}
        return body.get("error_description") or error, 0, error
    if isinstance(error, dict):
        message = error.get("message") or fallback
        reason = error.get("status") or error.get("type") or ""
        code = error.get("code") or 0
        return message, int(code) if str(code).isdigit() else 0, str(reason)
    return fallback, 0, ""


def _retry_after(resp: httpx.Response) -> Optional[float]:
    value = resp.headers.get("retry-after", "")
    try:
        return float(value)
    except ValueError:
        return None


class UpstreamClient:
    """Async HTTP client shared by one source's adapter and connector."""

    def __init__(
        self,
        source: str,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.source = source
        self.timeout = timeout or settings.upstream_timeout_seconds
        self.max_retries = max_retries or settings.upstream_max_retries
        self.retry_base_delay = (
            settings.upstream_retry_base_delay
            if retry_base_delay is None
            else retry_base_delay
        )
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    def _backoff(self, attempt: int) -> float:
        return self.retry_base_delay * (2 ** (attempt - 1))

    # ── Core Request Method ──

    async def request(
        self,
        method: str,
        url: str,
        access_token: Optional[str] = None,
        params: Dict[str, Any] | None = None,
        json_body: Any = None,
        data: Dict[str, Any] | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Dict[str, Any]:
        """Make a request with retry + rate-limit handling."""
        headers = dict(headers or {})
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        client = await self._get_client()

        for attempt in range(1, self.max_retries + 1):
            started = time.monotonic()
            try:
                resp = await client.request(
                    method, url, params=params, json=json_body, data=data, headers=headers
                )
            except httpx.RequestError as e:
                if attempt < self.max_retries:
                    wait = self._backoff(attempt)
                    logger.warning(
                        f"{self.source} request error: {e!r}. Retrying in {wait}s",
                        extra={"source": self.source},
                    )
                    await asyncio.sleep(wait)
                    continue
                raise UpstreamAPIError(
                    f"Connection failed after {self.max_retries} attempts: {e!r}"
                ) from e

            duration_ms = round((time.monotonic() - started) * 1000, 1)
            logger.debug(
                f"{method} {url.split('?')[0]} -> {resp.status_code}",
                extra={
                    "source": self.source,
                    "status_code": resp.status_code,
                    "duration_ms": duration_ms,
                },
            )

            try:
                body = resp.json()
            except ValueError:
                body = None

            message, error_code, reason = _error_details(
                body, f"HTTP {resp.status_code} from {self.source}"
            )
            throttled = resp.status_code == 429 or error_code in GRAPH_THROTTLE_CODES
            if throttled or resp.status_code >= 500:
                if attempt < self.max_retries:
                    wait = _retry_after(resp) if throttled else None
                    wait = self._backoff(attempt) if wait is None else wait
                    logger.warning(
                        f"{self.source} returned {resp.status_code}. "
                        f"Retrying in {wait}s (attempt {attempt}/{self.max_retries})",
                        extra={"source": self.source, "status_code": resp.status_code},
                    )
                    await asyncio.sleep(wait)
                    continue
                raise UpstreamAPIError(message, resp.status_code, error_code, reason)

            if resp.status_code >= 400:
                raise UpstreamAPIError(message, resp.status_code, error_code, reason)

            if not isinstance(body, dict):
                raise UpstreamAPIError(
                    f"Malformed payload from {self.source}", resp.status_code
                )
            if "error" in body:
                # Graph occasionally reports errors with HTTP 200
                raise UpstreamAPIError(message, resp.status_code, error_code, reason)
            return body

        raise UpstreamAPIError("Max retries exhausted")

    async def get(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        return await self.request("POST", url, **kwargs)

    # ── Pagination ──

    async def paginate_graph(
        self,
        url: str,
        access_token: str,
        params: Dict[str, Any] | None = None,
        max_pages: int = 50,
    ) -> List[Dict[str, Any]]:
        """Follow Graph API ``paging.next`` links."""
        all_data: List[Dict[str, Any]] = []
        current_url = url

        for page in range(max_pages):
            result = await self.get(
                current_url,
                access_token=access_token,
                params=params if page == 0 else None,
            )
            all_data.extend(result.get("data") or [])
            next_url = (result.get("paging") or {}).get("next")
            if not next_url:
                break
            current_url = next_url

        logger.info(
            f"Fetched {len(all_data)} records from {url}", extra={"source": self.source}
        )
        return all_data

    async def paginate_google(
        self,
        url: str,
        access_token: str,
        items_key: str,
        params: Dict[str, Any] | None = None,
        method: str = "GET",
        json_body: Dict[str, Any] | None = None,
        headers: Dict[str, str] | None = None,
        max_pages: int = 50,
    ) -> List[Dict[str, Any]]:
        """Follow Google ``nextPageToken`` cursors (query param or body field)."""
        all_items: List[Dict[str, Any]] = []
        params = dict(params or {})
        json_body = dict(json_body) if json_body is not None else None
        page_token: Optional[str] = None

        for _ in range(max_pages):
            if page_token:
                if json_body is not None:
                    json_body["pageToken"] = page_token
                else:
                    params["pageToken"] = page_token
            result = await self.request(
                method,
                url,
                access_token=access_token,
                params=params or None,
                json_body=json_body,
                headers=headers,
            )
            all_items.extend(result.get(items_key) or [])
            page_token = result.get("nextPageToken")
            if not page_token:
                break

        return all_items
