"""
tenancy_sdk.tier3_platform.interception
─────────────────────────────────────────
Query interception: one generic function, driven by the scope registry,
that rewrites the arguments of every verb on every scoped entity before
they reach the connection manager.

Per call:
  1. resolve the entity's ScopePolicy
  2. resolve the TenantContext; absent context or a missing required key
     fails here, before any session is touched
  3. create/create_many: stamp tenant keys into every row, overriding
     client-supplied values under the same column
  4. reads, updates, deletes: AND the tenant filter with the caller's
     filter. The caller's filter is nested one level down so it can
     narrow the result but never drop, replace or OR away the tenant part
  5. delegate to tier0_core.query.run_operation and return its result as is

Updates also overwrite tenant columns in their payload, so a row can never
be moved into another tenant.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tenancy_sdk.tier0_core.data import get_model
from tenancy_sdk.tier0_core.errors import (
    InsufficientTenantContextError,
    MissingTenantContextError,
    RecordNotFoundError,
    ValidationError,
)
from tenancy_sdk.tier0_core.logging import get_logger
from tenancy_sdk.tier0_core.query import Operation, QueryArgs, compile_where, run_operation
from tenancy_sdk.tier1_runtime.context import TenantContext
from tenancy_sdk.tier3_platform.scope_policy import ScopeMode, ScopePolicy, ScopeRegistry


log = get_logger(__name__)


# ── Key resolution ────────────────────────────────────────────────────────────

def resolve_keys(
    entity: str,
    policy: ScopePolicy,
    ctx: TenantContext | None,
    operation: Operation,
) -> dict[str, int]:
    """
    Return ``{column: value}`` for the entity's own tenant keys.

    Raises MissingTenantContextError when no context is set and
    InsufficientTenantContextError when a required field is absent.
    """
    if ctx is None:
        log.warning("tenancy.context_missing", entity=entity, operation=operation.value)
        raise MissingTenantContextError(entity, operation.value)
    values: dict[str, int] = {}
    for key in policy.keys:
        value = ctx.get(key.context_field)
        if value is None:
            if policy.anonymous and key.context_field == "user_id":
                continue
            log.warning(
                "tenancy.context_insufficient",
                entity=entity,
                operation=operation.value,
                missing=key.context_field,
            )
            raise InsufficientTenantContextError(entity, operation.value, key.context_field)
        values[key.column] = value
    return values


def tenant_filter(
    entity: str,
    registry: ScopeRegistry,
    ctx: TenantContext | None,
    operation: Operation,
) -> dict[str, Any]:
    """
    Build the ``where`` mapping that confines *entity* to the context's
    tenant. Relational entities inherit their parent's filter through the
    declared relationship, recursively. Empty for unscoped entities.
    """
    policy = registry.policy_for(entity)
    if policy.mode is ScopeMode.UNSCOPED:
        return {}
    where: dict[str, Any] = dict(resolve_keys(entity, policy, ctx, operation))
    if policy.parent is not None:
        parent_where = tenant_filter(policy.parent.entity, registry, ctx, operation)
        where[policy.parent.relationship] = {"is": parent_where}
    return where


def apply_scope(
    entity: str,
    operation: Operation,
    args: QueryArgs,
    ctx: TenantContext | None,
    registry: ScopeRegistry,
) -> QueryArgs:
    """Rewrite *args* so the operation is confined to the context's tenant."""
    policy = registry.policy_for(entity)
    if policy.mode is ScopeMode.UNSCOPED:
        return args

    keys = resolve_keys(entity, policy, ctx, operation)
    # a user column skipped by the anonymous fallback is written as NULL,
    # never taken from the payload
    stamp = {**{column: None for column in policy.columns}, **keys}

    if operation.is_create:
        rows = [{**row, **stamp} for row in args.rows()]
        if operation is Operation.CREATE_MANY:
            scoped = replace(args, data=rows)
        else:
            scoped = replace(args, data=rows[0] if rows else None)
    else:
        where = tenant_filter(entity, registry, ctx, operation)
        if args.where:
            where = {"AND": [where, args.where]}
        scoped = replace(args, where=where)
        if operation.is_update and args.rows():
            scoped = replace(scoped, data={**args.rows()[0], **stamp})

    log.debug(
        "tenancy.scope_applied",
        boundary=registry.boundary.value,
        entity=entity,
        operation=operation.value,
        keys=sorted(keys),
    )
    return scoped


# ── Interceptor ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PreparedOperation:
    """An operation rewritten for one tenant, ready to run on a session."""
    entity: str
    operation: Operation
    args: QueryArgs
    # relational writes: the parents the payload points at must all match this
    parent_where: Mapping[str, Any] | None = None
    parent_count: int = 0


class ScopeInterceptor:
    """
    Applies one boundary's registry to every operation it executes.

    Holds no per-request state: the context is passed in by the caller
    (the live context, or a transaction snapshot). Every context lookup,
    including the parent scope of relational writes, happens in prepare(),
    so run() needs only a session.
    """

    def __init__(self, registry: ScopeRegistry) -> None:
        self.registry = registry

    def prepare(
        self,
        entity: str,
        operation: Operation,
        args: QueryArgs,
        ctx: TenantContext | None,
    ) -> PreparedOperation:
        """Validate the request and rewrite its arguments. Touches no data."""
        if entity not in self.registry:
            raise AttributeError(
                f"{entity!r} is not exposed on the {self.registry.boundary.value} boundary"
            )
        scoped = apply_scope(entity, operation, args, ctx, self.registry)
        # an empty batch is a valid no-op, a single write needs a payload
        if operation is not Operation.CREATE_MANY and (
            operation.is_create or operation.is_update
        ) and not args.rows():
            raise ValidationError(fields={"data": "required"})

        policy = self.registry.policy_for(entity)
        if policy.parent is None or not (operation.is_create or operation.is_update):
            return PreparedOperation(entity, operation, scoped)

        rel = get_model(entity).__mapper__.relationships[policy.parent.relationship]
        (fk,) = [c.key for c in rel.local_columns]
        (pk,) = [c.key for c in rel.remote_side]
        rows = scoped.rows()
        if operation.is_create and any(row.get(fk) is None for row in rows):
            raise ValidationError(fields={fk: "required"})
        parent_ids = sorted({row[fk] for row in rows if row.get(fk) is not None})
        if not parent_ids:
            return PreparedOperation(entity, operation, scoped)

        parent_where = {
            "AND": [
                tenant_filter(policy.parent.entity, self.registry, ctx, operation),
                {pk: {"in": parent_ids}},
            ]
        }
        return PreparedOperation(entity, operation, scoped, parent_where, len(parent_ids))

    async def run(self, session: AsyncSession, prepared: PreparedOperation) -> Any:
        """Execute an operation returned by prepare()."""
        if prepared.parent_where is not None:
            await self._verify_parents(session, prepared)
        model = get_model(prepared.entity)
        return await run_operation(session, model, prepared.operation, prepared.args)

    async def _verify_parents(self, session: AsyncSession, prepared: PreparedOperation) -> None:
        """
        A relational row may only point at a parent visible in the same
        scope. A parent owned by another tenant is reported as not found.
        """
        parent = self.registry.policy_for(prepared.entity).parent
        parent_model = get_model(parent.entity)
        stmt = select(func.count()).select_from(parent_model).where(
            compile_where(parent_model, prepared.parent_where)
        )
        visible = await session.scalar(stmt)
        if visible != prepared.parent_count:
            raise RecordNotFoundError(parent.entity)


__all__ = [
    "resolve_keys", "tenant_filter", "apply_scope", "PreparedOperation",
    "ScopeInterceptor",
]
