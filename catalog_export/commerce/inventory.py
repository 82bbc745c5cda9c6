"""Inventory lookup through the source-items search endpoint."""

from typing import Any, Dict, Iterable, List

from catalog_export.commerce.endpoints import sku_filter_query
from catalog_export.errors import CommerceAPIError
from catalog_export.fetcher.concurrency import BoundedConcurrencyRunner
from catalog_export.fetcher.http_client import AsyncHTTPClient
from catalog_export.models.data_models import Degraded, InventoryRecord, JobState, Ok, Outcome


IN_STOCK_STATUSES = (1, "1", True, "in_stock")


def _quantity(value: Any) -> int:
    try:
        return max(0, int(float(value)))
    except (TypeError, ValueError):
        return 0


def aggregate_source_items(skus: Iterable[str], items: List[Dict[str, Any]]) -> Dict[str, InventoryRecord]:
    """
    Fold source-item rows into one record per requested SKU.

    Quantity is summed across every source of a SKU; the SKU is in stock if
    any source reports an in-stock status. Rows for SKUs that were not asked
    for are ignored.
    """
    wanted = set(skus)
    totals: Dict[str, int] = {}
    in_stock: Dict[str, bool] = {}

    for row in items:
        if not isinstance(row, dict):
            continue
        sku = row.get("sku")
        if sku not in wanted:
            continue
        totals[sku] = totals.get(sku, 0) + _quantity(row.get("quantity"))
        in_stock[sku] = in_stock.get(sku, False) or row.get("status") in IN_STOCK_STATUSES

    return {
        sku: InventoryRecord(sku=sku, quantity=totals[sku], in_stock=in_stock[sku])
        for sku in totals
    }


class InventoryResolver:
    """
    Resolves stock figures for a list of SKUs.

    SKUs are grouped into ``batch_size`` search requests. Inventory is often
    incomplete upstream, so SKUs missing from the response, and every SKU of
    a batch whose request failed, get the default record (0, out of stock).
    This resolver never raises for inventory problems.
    """

    def __init__(
        self,
        client: AsyncHTTPClient,
        runner: BoundedConcurrencyRunner,
        batch_size: int = 50,
        path: str = "/inventory/source-items",
        logger=None
    ):
        self.client = client
        self.runner = runner
        self.batch_size = batch_size
        self.path = path
        self.logger = logger

    async def resolve(self, skus: Iterable[str]) -> Dict[str, InventoryRecord]:
        """Map every SKU to its inventory record."""
        outcome = await self.resolve_outcome(skus)
        return outcome.value

    async def resolve_outcome(self, skus: Iterable[str]) -> Outcome[Dict[str, InventoryRecord]]:
        unique_skus = [sku for sku in dict.fromkeys(skus) if sku]
        inventory = {sku: InventoryRecord.default(sku) for sku in unique_skus}
        batches = [
            unique_skus[i:i + self.batch_size]
            for i in range(0, len(unique_skus), self.batch_size)
        ]

        jobs = await self.runner.run_jobs(batches, self._fetch_batch)

        failed_jobs = [job for job in jobs if job.state is JobState.FAILED]
        for job in jobs:
            if job.state is JobState.SUCCEEDED:
                inventory.update(job.result)

        if failed_jobs:
            defaulted = sum(len(job.item) for job in failed_jobs)
            cause = (
                f"{len(failed_jobs)} of {len(batches)} inventory batches failed, "
                f"{defaulted} SKUs defaulted: {failed_jobs[-1].error}"
            )
            if self.logger:
                self.logger.degraded("inventory", cause)
            return Degraded(inventory, cause)

        return Ok(inventory)

    async def _fetch_batch(self, skus: List[str]) -> Dict[str, InventoryRecord]:
        body = await self.client.get_json(self.path, sku_filter_query(skus))
        if not isinstance(body, dict):
            raise CommerceAPIError(f"Unexpected inventory payload: {body!r}")
        return aggregate_source_items(skus, body.get("items") or [])
