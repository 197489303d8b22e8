"""
tenancy_sdk.tier1_runtime.context
───────────────────────────────────
Request tenant context: the organization, store and user the current
request acts for. Propagated across async boundaries into logs and into
every scoped data access.

Uses Python contextvars for async-safe, framework-agnostic storage: each
asyncio task (and each thread) sees its own value, so concurrent requests
never observe each other's context, including across await points.
Tenant ids are also bound into structlog contextvars for log correlation.
"""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass

from tenancy_sdk.tier0_core.logging import bind_context, get_logger, unbind_context


log = get_logger(__name__)

_LOG_FIELDS = ("organization_id", "store_id", "user_id")


# ── Domain model ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class TenantContext:
    """Tenant identifiers resolved for one inbound request. Never persisted."""
    organization_id: int | None = None
    store_id: int | None = None
    user_id: int | None = None

    def get(self, field_name: str) -> int | None:
        return getattr(self, field_name)


# ── ContextVar storage ────────────────────────────────────────────────────────

_ctx: ContextVar[TenantContext | None] = ContextVar(
    "tenant_context",
    default=None,
)


# ── Public API ────────────────────────────────────────────────────────────────

def get_context() -> TenantContext | None:
    """Return the current tenant context, or None if none was set."""
    return _ctx.get()


def set_context(ctx: TenantContext) -> Token:
    """
    Set the tenant context for the current async scope.

    Called once per request by the authentication / domain-resolution
    layer, before any scoped access. Returns a token for reset_context().
    """
    current = _ctx.get()
    if current is not None and current != ctx:
        log.warning(
            "tenancy.context_overwritten",
            previous_store_id=current.store_id,
            previous_organization_id=current.organization_id,
        )
    token = _ctx.set(ctx)
    bind_context(
        organization_id=ctx.organization_id,
        store_id=ctx.store_id,
        user_id=ctx.user_id,
    )
    return token


def reset_context(token: Token) -> None:
    """Restore whatever context was active before the matching set_context()."""
    _ctx.reset(token)
    restored = _ctx.get()
    if restored is None:
        unbind_context(*_LOG_FIELDS)
    else:
        bind_context(
            organization_id=restored.organization_id,
            store_id=restored.store_id,
            user_id=restored.user_id,
        )


def clear_context() -> None:
    """Drop the tenant context for the current scope. Call at end of request."""
    _ctx.set(None)
    unbind_context(*_LOG_FIELDS)


@contextmanager
def tenant_context(ctx: TenantContext) -> Iterator[TenantContext]:
    """
    Activate *ctx* for the duration of the block and restore the previous
    context afterwards, even on error.

    Usage::

        with tenant_context(TenantContext(organization_id=1, store_id=7)):
            products = await StoreClient().products.find_many()
    """
    token = set_context(ctx)
    try:
        yield ctx
    finally:
        reset_context(token)


def get_organization_id() -> int | None:
    ctx = _ctx.get()
    return ctx.organization_id if ctx else None


def get_store_id() -> int | None:
    ctx = _ctx.get()
    return ctx.store_id if ctx else None


def get_user_id() -> int | None:
    ctx = _ctx.get()
    return ctx.user_id if ctx else None


__all__ = [
    "TenantContext", "get_context", "set_context", "reset_context",
    "clear_context", "tenant_context", "get_organization_id",
    "get_store_id", "get_user_id",
]
