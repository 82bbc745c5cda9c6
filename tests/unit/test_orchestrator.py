"""Unit tests for the export pipeline orchestrator."""

import asyncio
import re
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from catalog_export.errors import StorageError
from catalog_export.models.data_models import PipelineState, StoredFile
from catalog_export.pipeline.orchestrator import ExportPipeline
from catalog_export.processor import parse_csv
from tests.fixtures.sample_data import category_body, products_page, source_item


STORED = StoredFile(
    file_name="products.csv.gz",
    url="https://shop.test/download?fileName=products.csv.gz",
    provider="files",
    location="public/products.csv.gz",
    size=10,
    content_type="application/gzip",
    last_modified="2024-01-01T00:00:00+00:00",
)


def commerce_handler(product_count=5, products_status=200, requests=None):
    """Minimal Commerce API: one product page, categories, inventory and token."""
    requests = requests if requests is not None else []

    def handler(request):
        path = request.url.path
        requests.append(path)
        if path.endswith("/integration/admin/token"):
            return httpx.Response(200, json="exchanged-token")
        if path.endswith("/products"):
            if products_status != 200:
                return httpx.Response(products_status)
            return httpx.Response(200, json=products_page(1, product_count, product_count))
        match = re.search(r"/categories/(\d+)$", path)
        if match:
            return httpx.Response(200, json=category_body(match.group(1)))
        if path.endswith("/inventory/source-items"):
            skus = request.url.params["searchCriteria[filter_groups][0][filters][0][value]"].split(",")
            return httpx.Response(200, json={"items": [source_item(sku, 4) for sku in skus]})
        return httpx.Response(404)

    return handler


def fake_storage(error=None):
    storage = MagicMock()
    storage.provider = "files"
    storage.write = AsyncMock(side_effect=error, return_value=STORED)
    return storage


def pipeline(config, handler, storage=None, sleeper=None, **kwargs):
    return ExportPipeline(
        config,
        logger=MagicMock(),
        storage=storage or fake_storage(),
        transport=httpx.MockTransport(handler),
        sleeper=sleeper or asyncio.sleep,
        **kwargs
    )


class TestExportPipeline:

    @pytest.mark.asyncio
    async def test_successful_run_walks_every_state(self, sample_config, sleeper):
        storage = fake_storage()

        outcome = await pipeline(sample_config, commerce_handler(), storage, sleeper).run()

        assert outcome.state is PipelineState.DONE
        assert [step.state for step in outcome.steps] == [
            PipelineState.AUTHENTICATING,
            PipelineState.FETCHING,
            PipelineState.ENRICHING,
            PipelineState.ASSEMBLING,
            PipelineState.STORING,
        ]
        assert all(step.status == "success" for step in outcome.steps)
        assert outcome.result.record_count == 5
        assert outcome.result.category_count == 3
        assert outcome.result.stored
        assert outcome.result.storage_type == "files"

        filename, content = storage.write.await_args.args
        assert filename == "products.csv.gz"
        rows = parse_csv(content)
        assert len(rows) == 6
        assert rows[1][0] == "SKU-0001"
        assert rows[1][3] == "4"

    @pytest.mark.asyncio
    async def test_missing_base_url_fails_before_network(self, sample_config, sleeper):
        requests = []
        config = sample_config.model_copy(update={"commerce_base_url": None})

        outcome = await pipeline(config, commerce_handler(requests=requests), sleeper=sleeper).run()

        assert outcome.state is PipelineState.FAILED
        assert outcome.failure.state is PipelineState.AUTHENTICATING
        assert outcome.failure.type == "ConfigurationError"
        assert requests == []

    @pytest.mark.asyncio
    async def test_missing_credentials_fail_before_network(self, sample_config, sleeper):
        requests = []
        config = sample_config.model_copy(update={"commerce_token": None, "commerce_username": "admin"})

        outcome = await pipeline(config, commerce_handler(requests=requests), sleeper=sleeper).run()

        assert outcome.failure.type == "ConfigurationError"
        assert "credentials" in outcome.failure.message
        assert requests == []

    @pytest.mark.asyncio
    async def test_credentials_exchanged_for_token(self, sample_config, sleeper):
        requests = []
        config = sample_config.model_copy(
            update={"commerce_token": None, "commerce_username": "admin", "commerce_password": "secret"}
        )

        outcome = await pipeline(config, commerce_handler(requests=requests), sleeper=sleeper).run()

        assert outcome.succeeded
        assert requests[0] == "/rest/V1/integration/admin/token"

    @pytest.mark.asyncio
    async def test_product_failure_fails_in_fetching(self, sample_config, sleeper):
        storage = fake_storage()

        outcome = await pipeline(sample_config, commerce_handler(products_status=500), storage, sleeper).run()

        assert outcome.state is PipelineState.FAILED
        assert outcome.failure.state is PipelineState.FETCHING
        assert outcome.failure.type == "CommerceAPIError"
        assert [(s.state, s.status) for s in outcome.steps] == [
            (PipelineState.AUTHENTICATING, "success"),
            (PipelineState.FETCHING, "error"),
        ]
        # Initial attempt plus max_retries
        assert sleeper.delays == [0.5, 0.5]
        storage.write.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exponential_backoff_from_config(self, sample_config, sleeper):
        config = sample_config.model_copy(update={"retry_backoff": "exponential", "retry_jitter_max": 0.0})

        outcome = await pipeline(config, commerce_handler(products_status=503), sleeper=sleeper).run()

        assert outcome.failure.state is PipelineState.FETCHING
        assert sleeper.delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_storage_failure_is_reported_not_fatal(self, sample_config, sleeper):
        storage = fake_storage(error=StorageError("bucket gone"))

        outcome = await pipeline(sample_config, commerce_handler(), storage, sleeper).run()

        assert outcome.state is PipelineState.DONE
        assert not outcome.result.stored
        assert outcome.result.error == {"message": "bucket gone", "type": "StorageError"}
        assert outcome.result.record_count == 5
        assert outcome.steps[-1].status == "error"

    @pytest.mark.asyncio
    async def test_total_timeout_fails_in_running_state(self, sample_config):
        async def slow_handler(request):
            if request.url.path.endswith("/products"):
                await asyncio.sleep(5)
            return httpx.Response(200, json={"items": []})

        config = sample_config.model_copy(update={"total_timeout": 0.05})

        outcome = await pipeline(config, slow_handler, sleeper=asyncio.sleep).run()

        assert outcome.state is PipelineState.FAILED
        assert outcome.failure.state is PipelineState.FETCHING
        assert outcome.failure.type == "TimeoutError"

    @pytest.mark.asyncio
    async def test_state_callback_sees_each_state(self, sample_config, sleeper):
        seen = []

        await pipeline(sample_config, commerce_handler(), sleeper=sleeper, on_state=seen.append).run()

        assert seen == [
            PipelineState.AUTHENTICATING,
            PipelineState.FETCHING,
            PipelineState.ENRICHING,
            PipelineState.ASSEMBLING,
            PipelineState.STORING,
        ]

    @pytest.mark.asyncio
    async def test_runs_do_not_share_caches(self, sample_config, sleeper):
        requests = []
        export = pipeline(sample_config, commerce_handler(requests=requests), sleeper=sleeper)

        await export.run()
        first = len(requests)
        await export.run()

        assert len(requests) == 2 * first
