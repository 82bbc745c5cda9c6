"""Category metadata resolution with a TTL cache."""

from typing import Dict, Iterable, List

from catalog_export.commerce.endpoints import category_path
from catalog_export.errors import AggregateBatchError, CommerceAPIError
from catalog_export.fetcher.cache import TTLCache
from catalog_export.fetcher.concurrency import BoundedConcurrencyRunner
from catalog_export.fetcher.http_client import AsyncHTTPClient
from catalog_export.models.data_models import CategoryRecord, Degraded, Ok, Outcome
from catalog_export.processor.transformer import extract_category_ids

__all__ = ["CategoryResolver", "extract_category_ids"]


class CategoryResolver:
    """
    Resolves category IDs to CategoryRecords.

    Cached, unexpired categories cost no network call. Misses are fetched one
    request per category through the concurrency runner, whose batch size
    bounds the number of simultaneous requests. A category that still fails
    after retries is left out of the result; products referencing it just
    show no name for it.
    """

    def __init__(
        self,
        client: AsyncHTTPClient,
        cache: TTLCache,
        runner: BoundedConcurrencyRunner,
        path_template: str = "/categories/{id}",
        logger=None
    ):
        self.client = client
        self.cache = cache
        self.runner = runner
        self.path_template = path_template
        self.logger = logger

    async def resolve(self, category_ids: Iterable[str]) -> Dict[str, CategoryRecord]:
        """Map each resolvable category ID to its record."""
        outcome = await self.resolve_outcome(category_ids)
        return outcome.value

    async def resolve_outcome(self, category_ids: Iterable[str]) -> Outcome[Dict[str, CategoryRecord]]:
        """
        Resolve categories, tagging the result Degraded if any were omitted.

        Returns:
            Ok(categories) when every ID resolved, otherwise
            Degraded(categories, cause) holding the ones that did
        """
        unique_ids = list(dict.fromkeys(str(cid) for cid in category_ids))
        resolved: Dict[str, CategoryRecord] = {}
        missing: List[str] = []

        for category_id in unique_ids:
            cached = self.cache.get(category_id)
            if cached is not None:
                resolved[category_id] = cached
            else:
                missing.append(category_id)

        if self.logger:
            self.logger.cache_stats("categories", hits=len(resolved), misses=len(missing))

        if not missing:
            return Ok(resolved)

        failed: List[str] = []
        try:
            results = await self.runner.run(missing, self._fetch_category)
        except AggregateBatchError as e:
            results = e.results
            failed = [str(item) for item in e.failed_items]

        for category_id, record in zip(missing, results):
            if record is not None:
                resolved[category_id] = record

        if failed:
            cause = f"{len(failed)} of {len(unique_ids)} categories could not be fetched: {', '.join(failed)}"
            if self.logger:
                self.logger.degraded("categories", cause)
            return Degraded(resolved, cause)

        return Ok(resolved)

    async def _fetch_category(self, category_id: str) -> CategoryRecord:
        # The category cache owns memoization here, not the response cache
        body = await self.client.get_json(
            category_path(self.path_template, category_id), use_cache=False
        )
        if not isinstance(body, dict):
            raise CommerceAPIError(f"Unexpected category payload for {category_id}: {body!r}")

        record = CategoryRecord.from_api(category_id, body)
        self.cache.set(category_id, record)
        return record
