"""
tenancy_sdk.tier3_platform.clients
────────────────────────────────────
Boundary-specific data-access facades built on the interception layer.

    OrganizationClient   filters/stamps organization_id
    StoreClient          filters/stamps store_id (+ user for store_and_user)
    StorefrontClient     store_id + end-customer identity; public commerce paths
    PlatformClient       escape hatch: no scoping; maintenance code only

Each client exposes exactly the entities its boundary's registry lists, as
attributes returning an EntityAccessor::

    store = StoreClient()
    mugs = await store.products.find_many(where={"name": {"contains": "mug"}})

    async with store.transaction() as tx:
        order = await tx.orders.create({"order_number": "A-1001"})
        await tx.order_items.create_many([...])
"""
from __future__ import annotations

import time
from collections.abc import AsyncGenerator, Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from tenancy_sdk.tier0_core.config import get_config
from tenancy_sdk.tier0_core.data import get_session
from tenancy_sdk.tier0_core.errors import (
    EscapeHatchMisuseError,
    MissingTenantContextError,
    PlatformError,
)
from tenancy_sdk.tier0_core.logging import get_logger
from tenancy_sdk.tier0_core.metrics import operation_duration, scope_refusals, scoped_operations
from tenancy_sdk.tier0_core.query import Operation, QueryArgs
from tenancy_sdk.tier1_runtime.context import TenantContext, get_context
from tenancy_sdk.tier3_platform.interception import ScopeInterceptor
from tenancy_sdk.tier3_platform.scope_policy import Boundary, ScopeRegistry, get_registry


log = get_logger(__name__)

Where = Mapping[str, Any]
OrderBy = Mapping[str, str] | Sequence[Mapping[str, str]]


class EntityAccessor:
    """The standard verbs for one entity, routed through the owning client."""

    def __init__(self, client: ScopedClient, entity: str) -> None:
        self._client = client
        self.entity = entity

    async def find_unique(self, where: Where) -> Any:
        return await self._client._dispatch(self.entity, Operation.FIND_UNIQUE, QueryArgs(where=where))

    async def find_first(self, where: Where | None = None, order_by: OrderBy | None = None) -> Any:
        return await self._client._dispatch(
            self.entity, Operation.FIND_FIRST, QueryArgs(where=where, order_by=order_by)
        )

    async def find_many(
        self,
        where: Where | None = None,
        order_by: OrderBy | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[Any]:
        return await self._client._dispatch(
            self.entity,
            Operation.FIND_MANY,
            QueryArgs(where=where, order_by=order_by, limit=limit, offset=offset),
        )

    async def count(self, where: Where | None = None) -> int:
        return await self._client._dispatch(self.entity, Operation.COUNT, QueryArgs(where=where))

    async def create(self, data: Mapping[str, Any]) -> Any:
        return await self._client._dispatch(self.entity, Operation.CREATE, QueryArgs(data=data))

    async def create_many(self, data: Sequence[Mapping[str, Any]]) -> int:
        return await self._client._dispatch(
            self.entity, Operation.CREATE_MANY, QueryArgs(data=list(data))
        )

    async def update(self, where: Where, data: Mapping[str, Any]) -> Any:
        return await self._client._dispatch(
            self.entity, Operation.UPDATE, QueryArgs(where=where, data=data)
        )

    async def update_many(self, where: Where | None, data: Mapping[str, Any]) -> int:
        return await self._client._dispatch(
            self.entity, Operation.UPDATE_MANY, QueryArgs(where=where, data=data)
        )

    async def delete(self, where: Where) -> Any:
        return await self._client._dispatch(self.entity, Operation.DELETE, QueryArgs(where=where))

    async def delete_many(self, where: Where | None = None) -> int:
        return await self._client._dispatch(self.entity, Operation.DELETE_MANY, QueryArgs(where=where))

    def __repr__(self) -> str:
        return f"<EntityAccessor {self._client.boundary.value}.{self.entity}>"


class ScopedClient:
    """
    Base facade. Subclasses only pick a boundary; the boundary's registry
    decides which entities exist on the client and how each is scoped.

    Outside a transaction every verb runs in its own session against the
    live request context. Inside transaction() all verbs share one session
    and one context snapshot taken when the transaction opened.
    """

    boundary: Boundary

    def __init__(
        self,
        *,
        _session: AsyncSession | None = None,
        _snapshot: TenantContext | None = None,
    ) -> None:
        self.registry: ScopeRegistry = get_registry(self.boundary)
        self._interceptor = ScopeInterceptor(self.registry)
        self._session = _session
        self._snapshot = _snapshot

    def entity(self, name: str) -> EntityAccessor:
        if name not in self.registry:
            raise AttributeError(
                f"{type(self).__name__} has no entity {name!r} "
                f"(not on the {self.boundary.value} boundary)"
            )
        return EntityAccessor(self, name)

    def __getattr__(self, name: str) -> EntityAccessor:
        if name.startswith("_") or name == "registry":
            raise AttributeError(name)
        return self.entity(name)

    def __dir__(self) -> list[str]:
        return sorted(set(super().__dir__()) | set(self.registry.entities()))

    def _context(self) -> TenantContext | None:
        if self._session is not None:
            return self._snapshot
        return get_context()

    async def _dispatch(self, entity: str, operation: Operation, args: QueryArgs) -> Any:
        ctx = self._context()
        boundary = self.boundary.value
        # context failures surface here, before a session is opened
        try:
            prepared = self._interceptor.prepare(entity, operation, args, ctx)
        except PlatformError as exc:
            scope_refusals(boundary=boundary, entity=entity, reason=exc.code).inc()
            raise

        start = time.monotonic()
        try:
            if self._session is not None:
                result = await self._interceptor.run(self._session, prepared)
            else:
                async with get_session() as session:
                    result = await self._interceptor.run(session, prepared)
        finally:
            operation_duration(boundary=boundary, operation=operation.value).observe(
                time.monotonic() - start
            )
        scoped_operations(boundary=boundary, entity=entity, operation=operation.value).inc()
        return result

    def _snapshot_for_transaction(self) -> TenantContext | None:
        ctx = get_context()
        if ctx is None:
            raise MissingTenantContextError("transaction", "transaction")
        return ctx

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[ScopedClient, None]:
        """
        Run several verbs atomically under one context snapshot.

        Commits when the block exits cleanly, rolls back on any exception.
        Calls made through the yielded client ignore later context changes.
        """
        if self._session is not None:
            # already inside a transaction: join it
            yield self
            return
        snapshot = self._snapshot_for_transaction()
        async with get_session() as session:
            yield type(self)(_session=session, _snapshot=snapshot)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} entities={len(self.registry.entities())}>"


class OrganizationClient(ScopedClient):
    """Organization-level administration: users, stores, tickets, audit log."""
    boundary = Boundary.ORGANIZATION


class StoreClient(ScopedClient):
    """Store back-office: catalog, orders, payment setup, staff."""
    boundary = Boundary.STORE


class StorefrontClient(ScopedClient):
    """
    Public commerce paths (cart, wishlist, checkout, account). Store plus
    end-customer identity; the most restrictive variant.
    """
    boundary = Boundary.STOREFRONT


class PlatformClient(ScopedClient):
    """
    Escape hatch: unscoped access to every entity, across all tenants.

    Reserved for migrations, seed scripts and scheduled jobs. With
    TENANCY_ESCAPE_HATCH_GUARD enabled (the default) every call is refused
    while a request tenant context is active, so request-handling code
    cannot reach it.
    """
    boundary = Boundary.PLATFORM

    def _context(self) -> TenantContext | None:
        return None

    def _guard(self, entity: str, operation: Operation) -> None:
        if get_config().escape_hatch_guard and get_context() is not None:
            log.warning("tenancy.escape_hatch_refused", entity=entity, operation=operation.value)
            scope_refusals(
                boundary=self.boundary.value, entity=entity, reason=EscapeHatchMisuseError.code
            ).inc()
            raise EscapeHatchMisuseError(entity, operation.value)

    async def _dispatch(self, entity: str, operation: Operation, args: QueryArgs) -> Any:
        self._guard(entity, operation)
        log.info("tenancy.escape_hatch", entity=entity, operation=operation.value)
        return await super()._dispatch(entity, operation, args)

    def _snapshot_for_transaction(self) -> TenantContext | None:
        return None


__all__ = [
    "EntityAccessor", "ScopedClient", "OrganizationClient", "StoreClient",
    "StorefrontClient", "PlatformClient",
]
