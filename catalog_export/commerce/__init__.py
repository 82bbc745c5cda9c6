"""Commerce API access: auth, products, categories, inventory and enrichment."""

from catalog_export.commerce.auth import resolve_token
from catalog_export.commerce.categories import CategoryResolver
from catalog_export.commerce.enrichment import EnrichmentOrchestrator, EnrichmentReport
from catalog_export.commerce.inventory import InventoryResolver
from catalog_export.commerce.products import ProductFetcher

__all__ = [
    "CategoryResolver",
    "EnrichmentOrchestrator",
    "EnrichmentReport",
    "InventoryResolver",
    "ProductFetcher",
    "resolve_token",
]
