"""FastAPI mock of the Commerce REST API used by the export pipeline."""

import random
import re
from typing import Any, Dict, List, Optional

import click
import uvicorn
from fastapi import APIRouter, Body, FastAPI, Header, HTTPException, Query


MOCK_TOKEN = "mock-admin-token"
PRODUCT_FIELDS_PATTERN = re.compile(r"items\[([^\]]*)\]")


def mock_product(index: int, category_count: int) -> Dict[str, Any]:
    """Deterministic product number ``index`` (1-based)."""
    primary = str((index % category_count) + 1)
    secondary = str(((index * 3) % category_count) + 1)
    product = {
        "id": index,
        "sku": f"SKU-{index:04d}",
        "name": f"Product {index}",
        "price": round(10 + (index * 7.5) % 490, 2),
        "status": 1,
        "created_at": "2024-01-01 00:00:00",
        "updated_at": "2024-06-01 12:00:00",
        "category_ids": [primary],
        "media_gallery_entries": [
            {"file": f"/s/k/sku-{index:04d}-alt.jpg", "position": 2},
            {"file": f"/s/k/sku-{index:04d}.jpg", "position": 1},
        ],
        "extension_attributes": {},
        "custom_attributes": [{"attribute_code": "color", "value": "blue"}],
    }
    # Half the catalog links its second category through extension attributes
    if index % 2 == 0:
        product["extension_attributes"]["category_links"] = [
            {"position": 0, "category_id": secondary}
        ]
    return product


def mock_category(category_id: int) -> Dict[str, Any]:
    return {
        "id": category_id,
        "name": f"Category {category_id}",
        "path": f"1/2/{category_id}",
        "parent_id": 2,
        "level": 2,
        "is_active": True,
    }


def mock_source_items(index: int, sku: str) -> List[Dict[str, Any]]:
    quantity = index % 50
    items = [{"sku": sku, "source_code": "default", "quantity": quantity, "status": 1 if quantity else 0}]
    if index % 10 == 0:
        items.append({"sku": sku, "source_code": "warehouse", "quantity": 5, "status": 1})
    return items


def project_fields(items: List[Dict[str, Any]], fields: Optional[str]) -> List[Dict[str, Any]]:
    """Apply a ``fields=items[a,b],total_count`` projection to product items."""
    match = PRODUCT_FIELDS_PATTERN.search(fields or "")
    if not match:
        return items
    wanted = {name.strip() for name in match.group(1).split(",") if name.strip()}
    return [{k: v for k, v in item.items() if k in wanted} for item in items]


def create_mock_commerce_app(
    product_count: int = 120,
    category_count: int = 12,
    error_rate: float = 0.0,
    random_seed: Optional[int] = None,
    missing_inventory_every: int = 0,
    failing_categories: Optional[List[str]] = None,
    token: str = MOCK_TOKEN,
    username: str = "admin",
    password: str = "admin123",
    base_path: str = "/rest/V1"
) -> FastAPI:
    """
    Create a mock Commerce API with deterministic catalog data.

    Args:
        product_count: Number of products in the catalog
        category_count: Number of categories products are spread over
        error_rate: Probability of a 503 on any GET (0.0-1.0)
        random_seed: Seed for the error injection
        missing_inventory_every: Omit inventory for every Nth product (0 = never)
        failing_categories: Category IDs that always answer 500
        token: Bearer token the API accepts and issues
        username: Admin username accepted by the token endpoint
        password: Admin password accepted by the token endpoint
        base_path: Prefix of every route

    Returns:
        FastAPI application; ``app.state.request_counts`` counts requests per route
    """
    app = FastAPI(title="Mock Commerce API")
    router = APIRouter(prefix=base_path)
    rng = random.Random(random_seed)
    failing = set(failing_categories or [])
    products = [mock_product(i, category_count) for i in range(1, product_count + 1)]
    product_index = {p["sku"]: p["id"] for p in products}

    app.state.request_counts = {"token": 0, "products": 0, "categories": 0, "inventory": 0}

    def count(route: str) -> None:
        app.state.request_counts[route] += 1

    def authorize(authorization: Optional[str]) -> None:
        if authorization != f"Bearer {token}":
            raise HTTPException(status_code=401, detail="The consumer isn't authorized to access resources.")

    def maybe_fail() -> None:
        if error_rate and rng.random() < error_rate:
            raise HTTPException(status_code=503, detail="Simulated error")

    @router.post("/integration/admin/token")
    async def issue_token(credentials: Dict[str, str] = Body(...)):
        count("token")
        if credentials.get("username") != username or credentials.get("password") != password:
            raise HTTPException(status_code=401, detail="Invalid login or password.")
        return token

    @router.get("/products")
    async def get_products(
        page_size: int = Query(20, alias="searchCriteria[pageSize]"),
        current_page: int = Query(1, alias="searchCriteria[currentPage]"),
        fields: Optional[str] = Query(None),
        authorization: Optional[str] = Header(None)
    ):
        count("products")
        authorize(authorization)
        maybe_fail()
        if page_size < 1 or current_page < 1:
            raise HTTPException(status_code=400, detail="Invalid search criteria")

        start = (current_page - 1) * page_size
        items = project_fields(products[start:start + page_size], fields)
        return {"items": items, "total_count": product_count}

    @router.get("/categories/{category_id}")
    async def get_category(category_id: int, authorization: Optional[str] = Header(None)):
        count("categories")
        authorize(authorization)
        maybe_fail()
        if str(category_id) in failing:
            raise HTTPException(status_code=500, detail="Simulated category failure")
        if not 1 <= category_id <= category_count:
            raise HTTPException(status_code=404, detail=f"No such entity with id = {category_id}")
        return mock_category(category_id)

    @router.get("/inventory/source-items")
    async def get_source_items(
        value: str = Query("", alias="searchCriteria[filter_groups][0][filters][0][value]"),
        authorization: Optional[str] = Header(None)
    ):
        count("inventory")
        authorize(authorization)
        maybe_fail()

        items = []
        skus = [sku for sku in value.split(",") if sku]
        for sku in skus:
            index = product_index.get(sku)
            if index is None:
                continue
            if missing_inventory_every and index % missing_inventory_every == 0:
                continue
            items.extend(mock_source_items(index, sku))
        return {"items": items, "total_count": len(items)}

    @app.get("/health")
    async def health():
        return {"status": "healthy", "products": product_count}

    app.include_router(router)
    return app


@click.command()
@click.option("--host", default="127.0.0.1", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
@click.option("--products", "product_count", default=120, type=int, help="Catalog size")
@click.option("--categories", "category_count", default=12, type=int, help="Number of categories")
@click.option("--error-rate", default=0.0, type=float, help="Probability of simulated 503s")
@click.option("--seed", default=42, type=int, help="Random seed for error injection")
def serve(host: str, port: int, product_count: int, category_count: int, error_rate: float, seed: int) -> None:
    """Serve the mock Commerce API under /rest/V1."""
    app = create_mock_commerce_app(
        product_count=product_count,
        category_count=category_count,
        error_rate=error_rate,
        random_seed=seed,
    )
    click.echo(f"Mock Commerce API token: {MOCK_TOKEN}")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    serve()
