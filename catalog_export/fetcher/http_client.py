"""Async Commerce API client with bearer auth, JSON handling and response caching."""

import json
from typing import Any, Dict, Iterable, Optional

import httpx

from catalog_export.errors import CommerceAPIError
from catalog_export.fetcher.cache import TTLCache


class AsyncHTTPClient:
    """
    Async HTTP client wrapper around httpx.AsyncClient.

    Provides:
    - A fixed per-request timeout
    - Bearer token authentication and JSON encoding/decoding
    - Uniform error surfacing through CommerceAPIError
    - Optional memoization of GET responses in a TTLCache
    - Context manager for proper lifecycle management
    """

    def __init__(
        self,
        base_url: str = "",
        token: Optional[str] = None,
        timeout: float = 30.0,
        response_cache: Optional[TTLCache] = None,
        retryable_status_codes: Iterable[int] = (429, 500, 502, 503, 504),
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        """
        Initialize HTTP client.

        Args:
            base_url: Commerce REST base URL; request paths are appended to it
            token: Bearer token, may be set later with set_token()
            timeout: Timeout in seconds applied to connect, read, write and pool
            response_cache: Cache for GET responses, keyed by URL and parameters
            retryable_status_codes: Status codes surfaced as retryable errors
            transport: Optional httpx transport (tests, ASGI apps)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.response_cache = response_cache
        self.retryable_status_codes = frozenset(retryable_status_codes)
        self.transport = transport
        self.request_count = 0
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        """Enter async context manager."""
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            transport=self.transport
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Exit async context manager."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def set_token(self, token: str) -> None:
        self.token = token

    def build_url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @staticmethod
    def cache_key(url: str, params: Optional[Dict[str, Any]] = None) -> str:
        return f"GET {httpx.URL(url, params=params or {})}"

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        use_cache: bool = True
    ) -> Any:
        """
        Perform GET request and decode the JSON body.

        Args:
            path: Path relative to base_url, or an absolute URL
            params: Query parameters
            use_cache: Serve from and store into the response cache

        Returns:
            Decoded JSON body

        Raises:
            CommerceAPIError: On timeouts, transport errors, non-2xx responses
                or invalid JSON
        """
        url = self.build_url(path)
        key = self.cache_key(url, params)

        if use_cache and self.response_cache is not None:
            cached = self.response_cache.get(key)
            if cached is not None:
                return cached

        body = await self._request("GET", url, params=params)

        if use_cache and self.response_cache is not None:
            self.response_cache.set(key, body)
        return body

    async def post_json(self, path: str, payload: Any) -> Any:
        """Perform POST request with a JSON payload and decode the JSON body."""
        return await self._request("POST", self.build_url(path), content=json.dumps(payload))

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        if not self._client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        self.request_count += 1
        try:
            response = await self._client.request(method, url, headers=self._headers(), **kwargs)
        except httpx.TimeoutException as e:
            raise CommerceAPIError(
                f"{method} {url} timed out after {self.timeout}s", url=url, retryable=True
            ) from e
        except httpx.TransportError as e:
            raise CommerceAPIError(
                f"{method} {url} failed: {e}", url=url, retryable=True
            ) from e

        if response.is_error:
            raise CommerceAPIError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
                url=url,
                retryable=response.status_code in self.retryable_status_codes
            )

        try:
            return response.json()
        except ValueError as e:
            raise CommerceAPIError(
                f"{method} {url} returned invalid JSON", status_code=response.status_code, url=url
            ) from e
