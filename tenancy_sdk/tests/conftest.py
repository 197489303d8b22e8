"""
tenancy_sdk test configuration.

All tests run against a throwaway SQLite file database (aiosqlite), no
external services required. Override by setting environment variables
before running pytest.
"""
from __future__ import annotations

import os
from dataclasses import dataclass

import pytest
import pytest_asyncio

# ── Environment ────────────────────────────────────────────────────────────
# These must be set before any tenancy_sdk modules are imported.

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("TENANCY_LOG_LEVEL", "WARNING")
os.environ.setdefault("TENANCY_ERROR_BACKEND", "none")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")


# ── Fixtures ───────────────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def reset_module_singletons():
    """
    Reset cached config and tenant context between tests so no state
    bleeds from one test into the next.
    """
    from tenancy_sdk.tier0_core.config import _reset_config
    from tenancy_sdk.tier1_runtime.context import clear_context

    _reset_config()
    clear_context()
    yield
    clear_context()
    _reset_config()


@pytest_asyncio.fixture
async def database(tmp_path, monkeypatch):
    """A fresh SQLite database with every table created."""
    from tenancy_sdk.tier0_core import data
    from tenancy_sdk.tier0_core.config import _reset_config

    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'tenancy.db'}")
    _reset_config()
    data._reset()
    await data.create_all()
    yield
    await data.dispose_engine()


@dataclass
class Tenants:
    """Ids of the rows seeded by the ``seeded`` fixture."""
    org_a: int
    org_b: int
    store_a: int
    store_a2: int
    store_b: int
    customer_a: int
    customer_b: int
    product_a: int
    product_b: int
    order_a: int
    order_b: int
    cart_a: int
    cart_b: int


@pytest_asyncio.fixture
async def seeded(database) -> Tenants:
    """
    Two organizations. Org A owns stores A and A2, org B owns store B.
    Customer A shops in store A, customer B in store B.
    Seeded through the platform client, with no request context.
    """
    from tenancy_sdk.tier3_platform.clients import PlatformClient

    platform = PlatformClient()
    org_a = await platform.organizations.create({"name": "Acme", "slug": "acme"})
    org_b = await platform.organizations.create({"name": "Globex", "slug": "globex"})
    store_a = await platform.stores.create(
        {"organization_id": org_a.id, "name": "Acme Main", "slug": "main"}
    )
    store_a2 = await platform.stores.create(
        {"organization_id": org_a.id, "name": "Acme Outlet", "slug": "outlet"}
    )
    store_b = await platform.stores.create(
        {"organization_id": org_b.id, "name": "Globex Shop", "slug": "shop"}
    )
    customer_a = await platform.users.create(
        {"organization_id": org_a.id, "email": "ann@example.com"}
    )
    customer_b = await platform.users.create(
        {"organization_id": org_b.id, "email": "bob@example.com"}
    )
    product_a = await platform.products.create(
        {"store_id": store_a.id, "name": "Acme Mug", "base_price": 12, "stock_quantity": 10}
    )
    product_b = await platform.products.create(
        {"store_id": store_b.id, "name": "Globex Mug", "base_price": 15, "stock_quantity": 5}
    )
    order_a = await platform.orders.create(
        {"store_id": store_a.id, "customer_id": customer_a.id, "order_number": "A-1"}
    )
    order_b = await platform.orders.create(
        {"store_id": store_b.id, "customer_id": customer_b.id, "order_number": "B-1"}
    )
    cart_a = await platform.carts.create({"store_id": store_a.id, "user_id": customer_a.id})
    cart_b = await platform.carts.create({"store_id": store_b.id, "user_id": customer_b.id})
    return Tenants(
        org_a=org_a.id,
        org_b=org_b.id,
        store_a=store_a.id,
        store_a2=store_a2.id,
        store_b=store_b.id,
        customer_a=customer_a.id,
        customer_b=customer_b.id,
        product_a=product_a.id,
        product_b=product_b.id,
        order_a=order_a.id,
        order_b=order_b.id,
        cart_a=cart_a.id,
        cart_b=cart_b.id,
    )
