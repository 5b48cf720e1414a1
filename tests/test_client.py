"""Tests for the upstream HTTP client: retries, error extraction, pagination."""

import httpx
import pytest

from app.connectors.client import UpstreamAPIError, UpstreamClient

URL = "https://api.example.test/v1/things"


def make_client(handler, max_retries=3):
    return UpstreamClient(
        "google_analytics",
        max_retries=max_retries,
        retry_base_delay=0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_retries_server_error_then_succeeds():
    responses = [
        httpx.Response(500, json={"error": {"message": "backend"}}),
        httpx.Response(200, json={"ok": True}),
    ]
    seen = []

    def handler(request):
        seen.append(request)
        return responses.pop(0)

    client = make_client(handler)
    assert await client.get(URL, access_token="tok") == {"ok": True}
    assert len(seen) == 2
    assert seen[0].headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_rate_limit_honours_retry_after():
    responses = [
        httpx.Response(429, headers={"Retry-After": "0"}, json={}),
        httpx.Response(200, json={"rows": []}),
    ]
    client = make_client(lambda request: responses.pop(0))
    assert await client.get(URL) == {"rows": []}


@pytest.mark.asyncio
async def test_graph_throttle_code_is_retried():
    responses = [
        httpx.Response(400, json={"error": {"message": "Too many calls", "code": 17}}),
        httpx.Response(200, json={"data": []}),
    ]
    client = make_client(lambda request: responses.pop(0))
    assert await client.get(URL) == {"data": []}


@pytest.mark.asyncio
async def test_google_error_is_not_retried_and_carries_reason():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(
            403,
            json={"error": {"code": 403, "message": "Caller lacks access", "status": "PERMISSION_DENIED"}},
        )

    client = make_client(handler)
    with pytest.raises(UpstreamAPIError) as exc:
        await client.get(URL)
    assert len(calls) == 1
    assert exc.value.status_code == 403
    assert exc.value.error_code == 403
    assert exc.value.reason == "PERMISSION_DENIED"
    assert "Caller lacks access" in str(exc.value)


@pytest.mark.asyncio
async def test_oauth_error_body():
    client = make_client(
        lambda request: httpx.Response(
            400, json={"error": "invalid_grant", "error_description": "Token has been expired or revoked."}
        )
    )
    with pytest.raises(UpstreamAPIError) as exc:
        await client.post(URL, data={"grant_type": "refresh_token"})
    assert exc.value.reason == "invalid_grant"
    assert "revoked" in str(exc.value)


@pytest.mark.asyncio
async def test_error_inside_successful_response():
    client = make_client(
        lambda request: httpx.Response(
            200, json={"error": {"message": "Invalid OAuth access token", "type": "OAuthException", "code": 190}}
        )
    )
    with pytest.raises(UpstreamAPIError) as exc:
        await client.get(URL)
    assert exc.value.error_code == 190


@pytest.mark.asyncio
async def test_non_json_body_is_malformed():
    client = make_client(lambda request: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(UpstreamAPIError, match="Malformed"):
        await client.get(URL)


@pytest.mark.asyncio
async def test_server_error_exhausts_retries():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, json={"error": {"message": "unavailable"}})

    client = make_client(handler, max_retries=2)
    with pytest.raises(UpstreamAPIError) as exc:
        await client.get(URL)
    assert exc.value.status_code == 503
    assert len(calls) == 2


@pytest.mark.asyncio
async def test_paginate_graph_follows_next_links():
    pages = {
        URL: {"data": [{"id": 1}], "paging": {"next": f"{URL}/page2"}},
        f"{URL}/page2": {"data": [{"id": 2}]},
    }

    def handler(request):
        return httpx.Response(200, json=pages[str(request.url).split("?")[0]])

    client = make_client(handler)
    assert await client.paginate_graph(URL, "tok", params={"limit": 1}) == [{"id": 1}, {"id": 2}]


@pytest.mark.asyncio
async def test_paginate_google_sends_page_token():
    tokens = []

    def handler(request):
        token = request.url.params.get("pageToken")
        tokens.append(token)
        if token is None:
            return httpx.Response(200, json={"items": [1, 2], "nextPageToken": "p2"})
        return httpx.Response(200, json={"items": [3]})

    client = make_client(handler)
    assert await client.paginate_google(URL, "tok", "items") == [1, 2, 3]
    assert tokens == [None, "p2"]
