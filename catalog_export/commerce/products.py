"""Paginated product fetching from the Commerce products endpoint."""

import math
from typing import Any, Dict, List, Optional, Set

from catalog_export.commerce.endpoints import products_query
from catalog_export.fetcher.http_client import AsyncHTTPClient
from catalog_export.fetcher.retry_handler import RetryHandler
from catalog_export.models.data_models import ProductRecord
from catalog_export.processor.transformer import project_product, validate_fields


# Raw API attributes needed by each export field
SOURCE_ATTRIBUTES: Dict[str, List[str]] = {
    "sku": ["sku"],
    "name": ["name"],
    "price": ["price"],
    "status": ["status"],
    "created_at": ["created_at"],
    "updated_at": ["updated_at"],
    "categories": ["category_ids", "extension_attributes", "custom_attributes"],
    "images": ["media_gallery_entries"],
    "qty": [],
    "in_stock": [],
}


def fields_parameter(fields: List[str]) -> str:
    """Build the ``fields`` query value, e.g. ``items[sku,name],total_count``."""
    attributes: Dict[str, None] = {"sku": None}
    for field in fields:
        for attribute in SOURCE_ATTRIBUTES[field]:
            attributes.setdefault(attribute, None)
    return f"items[{','.join(attributes)}],total_count"


class ProductFetcher:
    """
    Fetches every product page until the data or the page cap runs out.

    Pagination terminates when:
    - The page count derived from page 1's ``total_count`` is reached
    - ``max_pages`` is reached
    - A page has no items, or no ``items`` array at all
    - ``total_count`` is absent and a page comes back short
    """

    def __init__(
        self,
        client: AsyncHTTPClient,
        retry_handler: RetryHandler,
        page_size: int = 100,
        max_pages: int = 25,
        products_path: str = "/products",
        logger=None
    ):
        self.client = client
        self.retry_handler = retry_handler
        self.page_size = page_size
        self.max_pages = max_pages
        self.products_path = products_path
        self.logger = logger
        self.pages_fetched = 0

    async def fetch_all(self, fields: Optional[List[str]] = None) -> List[ProductRecord]:
        """
        Fetch and project all products.

        Args:
            fields: Export fields; defaults to the standard export fields

        Returns:
            Projected product records in API order

        Raises:
            CommerceAPIError: If a page still fails after retries
        """
        fields = validate_fields(fields)
        fields_param = fields_parameter(fields)
        records: List[ProductRecord] = []
        seen_skus: Set[str] = set()
        total_pages = self.max_pages
        total_known = False
        page = 1

        while page <= total_pages:
            body = await self._fetch_page(page, fields_param)
            items = body.get("items") if isinstance(body, dict) else None
            if not isinstance(items, list) or not items:
                break

            if page == 1:
                total_count = body.get("total_count")
                if isinstance(total_count, int):
                    total_known = True
                    total_pages = min(math.ceil(total_count / self.page_size), self.max_pages)

            for item in items:
                if not isinstance(item, dict):
                    continue
                record = project_product(item, fields)
                # SKUs are unique; pages can overlap if the catalog changes mid-run
                if record.sku in seen_skus:
                    continue
                seen_skus.add(record.sku)
                records.append(record)
            self.pages_fetched += 1

            if self.logger:
                self.logger.page_fetched(page=page, items=len(items), total_pages=total_pages)

            if not total_known and len(items) < self.page_size:
                break
            page += 1

        return records

    async def _fetch_page(self, page: int, fields_param: str) -> Any:
        params = products_query(self.page_size, page, fields_param)
        return await self.retry_handler.execute(self.client.get_json, self.products_path, params)
