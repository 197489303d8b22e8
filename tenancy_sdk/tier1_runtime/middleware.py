"""
tenancy_sdk.tier1_runtime.middleware
──────────────────────────────────────
ASGI middleware that establishes the tenant context once per inbound
request and restores it when the request finishes.

Resolving *which* tenant a request belongs to (bearer-token claims,
hostname lookup) is the job of the injected resolver; this module only
guarantees that its answer is set before the app runs and never outlives
the request.

Supports: FastAPI / Starlette or any raw ASGI app.
"""
from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any

from tenancy_sdk.tier0_core.logging import get_logger
from tenancy_sdk.tier1_runtime.context import TenantContext, tenant_context


TenantResolver = Callable[[dict], Awaitable[TenantContext | None]]

log = get_logger(__name__)


class TenantContextMiddleware:
    """
    ASGI middleware that sets a TenantContext for every HTTP request.

    Usage (FastAPI / Starlette)::

        async def resolve(scope: dict) -> TenantContext | None:
            claims = await verify_bearer(scope)
            return TenantContext(organization_id=claims.org, store_id=claims.store)

        app.add_middleware(TenantContextMiddleware, resolver=resolve)

    When the resolver returns None no context is set, so any scoped data
    access in the request fails with MissingTenantContextError.
    """

    def __init__(self, app: Any, resolver: TenantResolver) -> None:
        self.app = app
        self.resolver = resolver

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        ctx = await self.resolver(scope)
        start = time.perf_counter()
        try:
            if ctx is None:
                await self.app(scope, receive, send)
            else:
                with tenant_context(ctx):
                    await self.app(scope, receive, send)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            log.info(
                "request_completed",
                duration_ms=round(duration_ms, 2),
                path=scope.get("path", ""),
                method=scope.get("method", ""),
                tenant_resolved=ctx is not None,
            )


__all__ = ["TenantContextMiddleware", "TenantResolver"]
