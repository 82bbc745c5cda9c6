"""Joins products with category and inventory data."""

import asyncio
from dataclasses import dataclass, replace
from typing import Dict, List

from catalog_export.commerce.categories import CategoryResolver
from catalog_export.commerce.inventory import InventoryResolver
from catalog_export.models.data_models import (
    CategoryRecord,
    Degraded,
    InventoryRecord,
    Outcome,
    ProductRecord,
)


@dataclass
class EnrichmentReport:
    """Enriched products plus what each resolver reported."""
    products: List[ProductRecord]
    categories: Dict[str, CategoryRecord]
    category_outcome: Outcome[Dict[str, CategoryRecord]]
    inventory_outcome: Outcome[Dict[str, InventoryRecord]]

    @property
    def degraded(self) -> bool:
        return self.category_outcome.degraded or self.inventory_outcome.degraded


class EnrichmentOrchestrator:
    """
    Runs the category and inventory resolvers concurrently and merges their
    results into each product.

    A resolver that blows up unexpectedly contributes empty data instead of
    failing enrichment; products are never dropped.
    """

    def __init__(
        self,
        category_resolver: CategoryResolver,
        inventory_resolver: InventoryResolver,
        logger=None
    ):
        self.category_resolver = category_resolver
        self.inventory_resolver = inventory_resolver
        self.logger = logger

    async def enrich(self, products: List[ProductRecord]) -> List[ProductRecord]:
        report = await self.enrich_with_report(products)
        return report.products

    async def enrich_with_report(self, products: List[ProductRecord]) -> EnrichmentReport:
        """
        Enrich products and report resolver outcomes.

        Returns:
            EnrichmentReport with products in input order, one output per input
        """
        category_ids = list(dict.fromkeys(cid for p in products for cid in p.category_ids))
        skus = [p.sku for p in products]

        category_result, inventory_result = await asyncio.gather(
            self.category_resolver.resolve_outcome(category_ids),
            self.inventory_resolver.resolve_outcome(skus),
            return_exceptions=True
        )

        category_outcome = self._settle("categories", category_result, {})
        inventory_outcome = self._settle("inventory", inventory_result, {})

        categories = category_outcome.value
        inventory = inventory_outcome.value

        enriched = [
            replace(
                product,
                categories=[
                    {"id": cid, "name": categories[cid].name}
                    for cid in product.category_ids
                    if cid in categories
                ],
                inventory=inventory.get(product.sku) or InventoryRecord.default(product.sku),
            )
            for product in products
        ]

        return EnrichmentReport(
            products=enriched,
            categories=categories,
            category_outcome=category_outcome,
            inventory_outcome=inventory_outcome,
        )

    def _settle(self, source: str, result, empty) -> Outcome:
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            cause = f"{type(result).__name__}: {result}"
            if self.logger:
                self.logger.degraded(source, cause)
            return Degraded(empty, cause)
        return result
