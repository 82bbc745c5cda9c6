"""Pytest configuration and shared fixtures."""

from typing import List

import pytest


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleeper:
    """Async sleep replacement that returns immediately and records delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sleeper():
    return RecordingSleeper()


@pytest.fixture
def sample_config():
    """Provide a sample configuration for testing."""
    from catalog_export.models.config import PipelineConfig

    return PipelineConfig(
        commerce_base_url="http://commerce.test/rest/V1",
        commerce_token="mock-admin-token",
        max_retries=2,
        retry_delay=0.5,
        page_size=50,
        max_pages=25,
        category_batch_size=10,
        inventory_batch_size=20,
        inventory_concurrency=5,
        batch_pause=0.075,
        storage_provider="files",
        track_memory=False,
        total_timeout=60.0,
    )
