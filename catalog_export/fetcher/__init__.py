"""Async HTTP access, caching and bounded-concurrency primitives."""

from .cache import TTLCache
from .concurrency import BoundedConcurrencyRunner
from .http_client import AsyncHTTPClient
from .retry_handler import RetryHandler

__all__ = ["AsyncHTTPClient", "BoundedConcurrencyRunner", "RetryHandler", "TTLCache"]
