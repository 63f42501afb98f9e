import json

import httpx
import pytest

from vod_bot.config import ApiConfig
from vod_bot.services.api_client import ApiError, InternalApiClient

CONFIG = ApiConfig(base_url="http://api.test", api_key="secret")


def _client(handler) -> InternalApiClient:
    http = httpx.AsyncClient(
        base_url="http://api.test/api/internal",
        headers={"X-API-Key": "secret"},
        transport=httpx.MockTransport(handler),
    )
    return InternalApiClient(CONFIG, client=http)


def _ok(data):
    return httpx.Response(200, json={"success": True, "data": data})


@pytest.mark.asyncio
async def test_default_client_uses_prefix_and_api_key():
    client = InternalApiClient(CONFIG)
    try:
        assert str(client._client.base_url) == "http://api.test/api/internal/"
        assert client._client.headers["X-API-Key"] == "secret"
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_resolve_identity_returns_linked_user():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _ok({"ldap_user": " alice "})

    client = _client(handler)
    assert await client.resolve_identity(123) == "alice"
    assert seen[0].method == "GET"
    assert seen[0].url.path == "/api/internal/telegram/123/ldap"
    assert seen[0].headers["X-API-Key"] == "secret"


@pytest.mark.asyncio
async def test_resolve_identity_without_user_is_none():
    client = _client(lambda request: _ok({"ldap_user": ""}))
    assert await client.resolve_identity(123) is None


@pytest.mark.asyncio
async def test_failure_envelope_raises_with_message():
    client = _client(
        lambda request: httpx.Response(
            404, json={"success": False, "error": "user not linked", "data": None}
        )
    )
    with pytest.raises(ApiError, match="user not linked") as excinfo:
        await client.resolve_identity(123)
    assert excinfo.value.endpoint == "/telegram/123/ldap"


@pytest.mark.asyncio
async def test_non_json_body_is_malformed():
    client = _client(lambda request: httpx.Response(502, text="Bad gateway"))
    with pytest.raises(ApiError, match="malformed response"):
        await client.get_status()


@pytest.mark.asyncio
async def test_transport_error_becomes_api_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = _client(handler)
    with pytest.raises(ApiError, match="request failed"):
        await client.list_cached()


@pytest.mark.asyncio
async def test_search_vod_posts_query_and_unwraps_results():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return _ok({"results": [{"Title": "The Matrix"}]})

    client = _client(handler)
    results = await client.search_vod("alice", "matrix")

    assert results == [{"Title": "The Matrix"}]
    assert bodies == [{"username": "alice", "query": "matrix"}]


@pytest.mark.asyncio
async def test_link_account_sends_telegram_identity():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return _ok({"ldap_user": "alice"})

    client = _client(handler)
    assert await client.link_account(123, "tester", "alice") == "alice"
    assert bodies == [
        {"telegram_id": "123", "telegram_name": "tester", "ldap_user": "alice"}
    ]


@pytest.mark.asyncio
async def test_timeout_user_sends_minutes():
    requests = []

    def handler(request):
        requests.append(request)
        return _ok(None)

    client = _client(handler)
    await client.timeout_user("bob", 30)

    assert requests[0].url.path == "/api/internal/users/timeout/bob"
    assert json.loads(requests[0].content) == {"minutes": 30}


@pytest.mark.asyncio
async def test_unexpected_data_shapes_are_normalized():
    client = _client(lambda request: _ok("nonsense"))
    assert await client.list_cached() == []
    assert await client.get_status() == {}
    assert await client.search_vod("alice", "x") == []
    assert await client.cache_progress("s1") == {}
