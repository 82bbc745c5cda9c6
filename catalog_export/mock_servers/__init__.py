"""Mock Commerce API for tests and local runs."""

from .app import MOCK_TOKEN, create_mock_commerce_app, serve

__all__ = ["MOCK_TOKEN", "create_mock_commerce_app", "serve"]
