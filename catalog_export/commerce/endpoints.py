"""Commerce REST endpoint paths and search-criteria query builders."""

from typing import Dict, Iterable, Optional


def products_query(
    page_size: int,
    current_page: int,
    fields: Optional[str] = None
) -> Dict[str, str]:
    """Query parameters for one page of the products endpoint."""
    params = {
        "searchCriteria[pageSize]": str(page_size),
        "searchCriteria[currentPage]": str(current_page),
    }
    if fields:
        params["fields"] = fields
    return params


def category_path(template: str, category_id: str) -> str:
    return template.replace("{id}", str(category_id))


def sku_filter_query(skus: Iterable[str]) -> Dict[str, str]:
    """Search criteria matching every source item whose SKU is in ``skus``."""
    prefix = "searchCriteria[filter_groups][0][filters][0]"
    return {
        f"{prefix}[field]": "sku",
        f"{prefix}[value]": ",".join(skus),
        f"{prefix}[condition_type]": "in",
    }
