"""Unit tests for the Commerce HTTP client wrapper."""

import json

import httpx
import pytest

from catalog_export.errors import CommerceAPIError
from catalog_export.fetcher.cache import TTLCache
from catalog_export.fetcher.http_client import AsyncHTTPClient


BASE_URL = "http://commerce.test/rest/V1"


class TestAsyncHTTPClient:

    @pytest.mark.asyncio
    async def test_context_manager_lifecycle(self):
        client = AsyncHTTPClient(BASE_URL)

        async with client:
            assert client._client is not None

        assert client._client is None

    @pytest.mark.asyncio
    async def test_timeout_configuration_applied(self):
        async with AsyncHTTPClient(BASE_URL, timeout=12.5) as client:
            timeout = client._client.timeout
            assert timeout.connect == 12.5
            assert timeout.read == 12.5

    @pytest.mark.asyncio
    async def test_request_outside_context_fails(self):
        client = AsyncHTTPClient(BASE_URL)

        with pytest.raises(RuntimeError, match="async with"):
            await client.get_json("/products")

    def test_build_url(self):
        client = AsyncHTTPClient(BASE_URL + "/")

        assert client.build_url("/products") == f"{BASE_URL}/products"
        assert client.build_url("categories/3") == f"{BASE_URL}/categories/3"
        assert client.build_url("https://cdn.test/x") == "https://cdn.test/x"

    @pytest.mark.asyncio
    async def test_get_json_sends_bearer_token_and_params(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"items": []})

        async with AsyncHTTPClient(BASE_URL, token="abc", transport=httpx.MockTransport(handler)) as client:
            body = await client.get_json("/products", {"searchCriteria[pageSize]": "50"})

        assert body == {"items": []}
        assert seen["auth"] == "Bearer abc"
        assert seen["params"] == {"searchCriteria[pageSize]": "50"}

    @pytest.mark.asyncio
    async def test_post_json_encodes_payload(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["method"] = request.method
            return httpx.Response(200, json="token-123")

        async with AsyncHTTPClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            body = await client.post_json("/integration/admin/token", {"username": "u", "password": "p"})

        assert body == "token-123"
        assert seen == {"body": {"username": "u", "password": "p"}, "method": "POST"}

    @pytest.mark.asyncio
    async def test_retryable_status_surfaces_as_retryable_error(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503, text="busy"))

        async with AsyncHTTPClient(BASE_URL, transport=transport) as client:
            with pytest.raises(CommerceAPIError) as exc_info:
                await client.get_json("/products")

        error = exc_info.value
        assert error.status_code == 503
        assert error.retryable is True
        assert error.url == f"{BASE_URL}/products"

    @pytest.mark.asyncio
    async def test_client_error_not_retryable(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(404, json={"message": "missing"}))

        async with AsyncHTTPClient(BASE_URL, transport=transport) as client:
            with pytest.raises(CommerceAPIError) as exc_info:
                await client.get_json("/categories/9")

        assert exc_info.value.status_code == 404
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_timeout_surfaces_as_retryable_error(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        async with AsyncHTTPClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(CommerceAPIError) as exc_info:
                await client.get_json("/products")

        assert exc_info.value.retryable is True
        assert "timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connection_error_surfaces_as_retryable_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with AsyncHTTPClient(BASE_URL, transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(CommerceAPIError) as exc_info:
                await client.get_json("/products")

        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_invalid_json_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))

        async with AsyncHTTPClient(BASE_URL, transport=transport) as client:
            with pytest.raises(CommerceAPIError, match="invalid JSON"):
                await client.get_json("/products")

    @pytest.mark.asyncio
    async def test_response_cache_memoizes_gets(self, clock):
        calls = []

        def handler(request):
            calls.append(str(request.url))
            return httpx.Response(200, json={"n": len(calls)})

        cache = TTLCache(ttl=300, now=clock)
        async with AsyncHTTPClient(BASE_URL, response_cache=cache, transport=httpx.MockTransport(handler)) as client:
            first = await client.get_json("/products", {"page": "1"})
            second = await client.get_json("/products", {"page": "1"})
            other = await client.get_json("/products", {"page": "2"})
            clock.advance(301)
            expired = await client.get_json("/products", {"page": "1"})

        assert first == second == {"n": 1}
        assert other == {"n": 2}
        assert expired == {"n": 3}
        assert client.request_count == 3

    @pytest.mark.asyncio
    async def test_use_cache_false_bypasses_cache(self, clock):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(200, json={"id": 3})

        cache = TTLCache(ttl=300, now=clock)
        async with AsyncHTTPClient(BASE_URL, response_cache=cache, transport=httpx.MockTransport(handler)) as client:
            await client.get_json("/categories/3", use_cache=False)
            await client.get_json("/categories/3", use_cache=False)

        assert len(calls) == 2
        assert len(cache) == 0
