"""Field projection and CSV row mapping for product records.

Products are projected right after each page is fetched so that only the
fields needed for the export are kept in memory, then mapped to CSV rows once
enrichment has added categories and inventory.
"""

from typing import Any, Dict, Iterable, List, Optional

from catalog_export.errors import ConfigurationError
from catalog_export.models.data_models import ProductRecord


# Export field -> CSV column title, in default column order
FIELD_COLUMNS: Dict[str, str] = {
    "sku": "entity.id",
    "name": "entity.name",
    "categories": "entity.category",
    "price": "entity.value",
    "qty": "entity.inventory",
    "in_stock": "entity.in_stock",
    "images": "entity.base_image",
    "status": "entity.status",
    "created_at": "entity.created_at",
    "updated_at": "entity.updated_at",
}

DEFAULT_FIELDS: List[str] = ["sku", "name", "price", "qty", "categories", "images"]

DEFAULT_MEDIA_PREFIX = "catalog/product"


def validate_fields(fields: Optional[Iterable[str]]) -> List[str]:
    """
    Validate requested export fields.

    Args:
        fields: Requested field names; empty or None selects DEFAULT_FIELDS

    Returns:
        Field list without duplicates, in the requested order

    Raises:
        ConfigurationError: If any field is not exportable
    """
    requested = list(dict.fromkeys(fields or []))
    if not requested:
        return list(DEFAULT_FIELDS)

    invalid = [f for f in requested if f not in FIELD_COLUMNS]
    if invalid:
        raise ConfigurationError(
            f"Invalid fields requested: {', '.join(invalid)}. "
            f"Available fields are: {', '.join(FIELD_COLUMNS)}"
        )
    return requested


def header_for(fields: Iterable[str]) -> List[str]:
    return [FIELD_COLUMNS[f] for f in fields]


def _custom_attributes_dict(raw: Any) -> Dict[str, Any]:
    """Commerce sends custom attributes as ``[{attribute_code, value}]``."""
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, list):
        return {
            entry["attribute_code"]: entry.get("value")
            for entry in raw
            if isinstance(entry, dict) and "attribute_code" in entry
        }
    return {}


def extract_category_ids(product: Dict[str, Any]) -> List[str]:
    """
    Collect every category ID referenced by a raw product.

    The result is the union, in first-seen order, of:
    - ``category_ids``
    - ``extension_attributes.category_links[].category_id``
    - the ``category_ids`` custom attribute (list or comma-separated string)

    All IDs are returned as strings.
    """
    ids: Dict[str, None] = {}

    def add(value: Any) -> None:
        if value is None or value == "":
            return
        ids.setdefault(str(value).strip(), None)

    direct = product.get("category_ids")
    if isinstance(direct, list):
        for value in direct:
            add(value)

    links = (product.get("extension_attributes") or {}).get("category_links")
    if isinstance(links, list):
        for link in links:
            if isinstance(link, dict):
                add(link.get("category_id"))

    custom = _custom_attributes_dict(product.get("custom_attributes")).get("category_ids")
    if isinstance(custom, str):
        for value in custom.split(","):
            add(value)
    elif isinstance(custom, list):
        for value in custom:
            add(value)

    return list(ids)


def _to_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def project_product(raw: Dict[str, Any], fields: Iterable[str]) -> ProductRecord:
    """
    Build a ProductRecord keeping only what the requested fields need.

    ``sku`` is always kept. ``media_gallery_entries`` is kept whenever
    ``images`` is requested, and the category sources whenever ``categories``
    is requested; everything else not requested is dropped.
    """
    fields = set(fields)
    wants_categories = "categories" in fields

    return ProductRecord(
        sku=str(raw.get("sku", "")),
        name=raw.get("name") if "name" in fields else None,
        price=_to_float(raw.get("price")) if "price" in fields else None,
        status=_to_int(raw.get("status")) if "status" in fields else None,
        created_at=raw.get("created_at") if "created_at" in fields else None,
        updated_at=raw.get("updated_at") if "updated_at" in fields else None,
        category_ids=extract_category_ids(raw) if wants_categories else [],
        media_gallery_entries=list(raw.get("media_gallery_entries") or []) if "images" in fields else [],
        extension_attributes=dict(raw.get("extension_attributes") or {}) if wants_categories else {},
        custom_attributes=_custom_attributes_dict(raw.get("custom_attributes")) if wants_categories else {},
    )


def image_url(entry: Dict[str, Any], media_base_url: Optional[str] = None) -> str:
    """Resolve a media gallery entry to a URL."""
    if not isinstance(entry, dict):
        return ""
    if entry.get("url"):
        return entry["url"]

    file_path = entry.get("file") or ""
    if not file_path:
        return ""
    if file_path.startswith(("http://", "https://")):
        return file_path

    prefix = (media_base_url or DEFAULT_MEDIA_PREFIX).rstrip("/")
    return f"{prefix}/{file_path.lstrip('/')}"


def _position(entry: Any) -> int:
    if not isinstance(entry, dict):
        return 0
    return _to_int(entry.get("position")) or 0


def primary_image_url(entries: List[Dict[str, Any]], media_base_url: Optional[str] = None) -> str:
    """URL of the lowest-position gallery entry, or an empty string."""
    if not entries:
        return ""
    first = min(entries, key=_position)
    return image_url(first, media_base_url)


def _format_number(value: Optional[float]) -> str:
    if value is None:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


def product_to_row(
    product: ProductRecord,
    fields: Iterable[str],
    media_base_url: Optional[str] = None
) -> List[str]:
    """Map an enriched product to CSV cell values in ``fields`` order."""
    inventory = product.inventory
    values = {
        "sku": lambda: product.sku,
        "name": lambda: product.name or "",
        "categories": lambda: ", ".join(c["name"] for c in product.categories if c.get("name")),
        "price": lambda: _format_number(product.price),
        "qty": lambda: str(inventory.quantity if inventory else 0),
        "in_stock": lambda: "true" if inventory and inventory.in_stock else "false",
        "images": lambda: primary_image_url(product.media_gallery_entries, media_base_url),
        "status": lambda: "" if product.status is None else str(product.status),
        "created_at": lambda: product.created_at or "",
        "updated_at": lambda: product.updated_at or "",
    }
    return [values[f]() for f in fields]
