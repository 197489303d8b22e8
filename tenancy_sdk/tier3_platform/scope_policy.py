"""
tenancy_sdk.tier3_platform.scope_policy
─────────────────────────────────────────
Static declaration, per client boundary and per entity, of which tenant
key(s) govern visibility and ownership.

Every policy names the context field → column mapping explicitly: on the
storefront, orders are owned through ``customer_id`` while carts and
wishlists use ``user_id``. Unscoped entities are listed in each table as ``UNSCOPED`` so
the pass-through is visible here and not buried in accessor code.

The tables are built and validated once at import time and are read-only
afterwards (MappingProxyType); request-time code only performs lookups.
"""
from __future__ import annotations

import enum
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType

from sqlalchemy.orm import RelationshipDirection

from tenancy_sdk.tier0_core.data import get_model, model_names
from tenancy_sdk.tier0_core.errors import ConfigurationError


class Boundary(str, enum.Enum):
    PLATFORM = "platform"
    ORGANIZATION = "organization"
    STORE = "store"
    STOREFRONT = "storefront"


class ScopeMode(str, enum.Enum):
    STORE_ONLY = "store_only"
    STORE_AND_USER = "store_and_user"
    CUSTOMER_ONLY = "customer_only"
    ORGANIZATION_ONLY = "organization_only"
    RELATIONAL = "relational"
    UNSCOPED = "unscoped"


@dataclass(frozen=True)
class TenantKey:
    """TenantContext field ``context_field`` is stored in ``column``."""
    context_field: str
    column: str


@dataclass(frozen=True)
class ParentLink:
    """Ownership inherited through ORM relationship ``relationship`` to ``entity``."""
    relationship: str
    entity: str


@dataclass(frozen=True)
class ScopePolicy:
    mode: ScopeMode
    keys: tuple[TenantKey, ...] = ()
    parent: ParentLink | None = None
    # store_and_user only: with no user in context, degrade to the store filter
    anonymous: bool = False

    @property
    def columns(self) -> tuple[str, ...]:
        return tuple(k.column for k in self.keys)


UNSCOPED = ScopePolicy(ScopeMode.UNSCOPED)


def store_only(column: str = "store_id") -> ScopePolicy:
    return ScopePolicy(ScopeMode.STORE_ONLY, (TenantKey("store_id", column),))


def store_and_user(
    user_column: str = "user_id", store_column: str = "store_id", anonymous: bool = False
) -> ScopePolicy:
    return ScopePolicy(
        ScopeMode.STORE_AND_USER,
        (TenantKey("store_id", store_column), TenantKey("user_id", user_column)),
        anonymous=anonymous,
    )


def customer_only(column: str = "customer_id") -> ScopePolicy:
    return ScopePolicy(ScopeMode.CUSTOMER_ONLY, (TenantKey("user_id", column),))


def organization_only(column: str = "organization_id") -> ScopePolicy:
    return ScopePolicy(ScopeMode.ORGANIZATION_ONLY, (TenantKey("organization_id", column),))


def relational(relationship: str, entity: str, *keys: TenantKey) -> ScopePolicy:
    return ScopePolicy(ScopeMode.RELATIONAL, tuple(keys), parent=ParentLink(relationship, entity))


# ── Registry ──────────────────────────────────────────────────────────────────

class ScopeRegistry:
    """Immutable entity → ScopePolicy table for one client boundary."""

    def __init__(self, boundary: Boundary, policies: Mapping[str, ScopePolicy]) -> None:
        self.boundary = boundary
        self._policies = MappingProxyType(dict(policies))

    def policy_for(self, entity: str) -> ScopePolicy:
        try:
            return self._policies[entity]
        except KeyError:
            raise KeyError(
                f"{entity!r} is not exposed on the {self.boundary.value} boundary"
            ) from None

    def entities(self) -> list[str]:
        return sorted(self._policies)

    def items(self) -> Iterator[tuple[str, ScopePolicy]]:
        return iter(self._policies.items())

    def __contains__(self, entity: object) -> bool:
        return entity in self._policies

    def __repr__(self) -> str:
        return f"ScopeRegistry({self.boundary.value}, {len(self._policies)} entities)"


_GLOBAL_CATALOGS: dict[str, ScopePolicy] = {
    "brands": UNSCOPED,
    "system_payment_methods": UNSCOPED,
}

_ORGANIZATION: dict[str, ScopePolicy] = {
    "users": organization_only(),
    "stores": organization_only(),
    "support_tickets": organization_only(),
    "audit_logs": organization_only(),
    "suppliers": organization_only(),
    **_GLOBAL_CATALOGS,
}

_STORE: dict[str, ScopePolicy] = {
    "store_users": store_only(),
    "user_settings": store_and_user(),
    "store_payment_methods": store_only(),
    "categories": store_only(),
    "products": store_only(),
    "product_variants": relational("product", "products"),
    "product_images": relational("product", "products"),
    "orders": store_only(),
    "order_items": relational("order", "orders"),
    "payments": relational("order", "orders"),
    "carts": store_only(),
    "cart_items": store_only(),
    # shared by every store of the organization
    "suppliers": organization_only(),
    **_GLOBAL_CATALOGS,
}

_STOREFRONT: dict[str, ScopePolicy] = {
    "products": store_only(),
    "product_variants": relational("product", "products"),
    "product_images": relational("product", "products"),
    "categories": store_only(),
    "store_payment_methods": store_only(),
    "carts": store_and_user(),
    "cart_items": relational("cart", "carts", TenantKey("store_id", "store_id")),
    "wishlists": store_and_user(),
    "orders": store_and_user(user_column="customer_id"),
    "order_items": relational("order", "orders"),
    "addresses": customer_only(),
    **_GLOBAL_CATALOGS,
}


def _platform_table() -> dict[str, ScopePolicy]:
    # the escape hatch sees every entity, all of them unscoped
    return {name: UNSCOPED for name in model_names()}


def validate_registry(registry: ScopeRegistry) -> ScopeRegistry:
    """Check a registry against the ORM models. Raises ConfigurationError."""
    problems: list[str] = []
    for entity, policy in registry.items():
        model = get_model(entity)
        if model is None:
            problems.append(f"{entity}: no such table")
            continue
        columns = model.__mapper__.columns
        for key in policy.keys:
            if key.column not in columns:
                problems.append(f"{entity}: no column {key.column!r}")
            if key.context_field not in ("organization_id", "store_id", "user_id"):
                problems.append(f"{entity}: unknown context field {key.context_field!r}")
        if policy.mode is ScopeMode.UNSCOPED and (policy.keys or policy.parent):
            problems.append(f"{entity}: unscoped policy declares tenant keys")
        if policy.mode is not ScopeMode.UNSCOPED and not (policy.keys or policy.parent):
            problems.append(f"{entity}: scoped policy declares no tenant key")
        if policy.mode is ScopeMode.RELATIONAL:
            problems.extend(_check_parent(registry, entity, model, policy))
        elif policy.parent is not None:
            problems.append(f"{entity}: only relational policies may declare a parent")
    if problems:
        raise ConfigurationError(
            user_message="Invalid tenant scope registry.",
            detail=f"{registry.boundary.value} registry: " + "; ".join(problems),
        )
    return registry


def _check_parent(
    registry: ScopeRegistry, entity: str, model: type, policy: ScopePolicy
) -> list[str]:
    link = policy.parent
    if link is None:
        return [f"{entity}: relational policy without a parent"]
    rel = model.__mapper__.relationships.get(link.relationship)
    if rel is None or rel.direction is not RelationshipDirection.MANYTOONE:
        return [f"{entity}: {link.relationship!r} is not a many-to-one relationship"]
    if rel.mapper.class_.__tablename__ != link.entity:
        return [f"{entity}: {link.relationship!r} does not point at {link.entity!r}"]
    if link.entity not in registry:
        return [f"{entity}: parent {link.entity!r} is not on this boundary"]
    if registry.policy_for(link.entity).mode is ScopeMode.UNSCOPED:
        return [f"{entity}: parent {link.entity!r} is unscoped"]
    return []


_REGISTRIES: dict[Boundary, ScopeRegistry] = {
    boundary: validate_registry(ScopeRegistry(boundary, table))
    for boundary, table in (
        (Boundary.PLATFORM, _platform_table()),
        (Boundary.ORGANIZATION, _ORGANIZATION),
        (Boundary.STORE, _STORE),
        (Boundary.STOREFRONT, _STOREFRONT),
    )
}


def get_registry(boundary: Boundary) -> ScopeRegistry:
    return _REGISTRIES[boundary]


__all__ = [
    "Boundary", "ScopeMode", "TenantKey", "ParentLink", "ScopePolicy",
    "UNSCOPED", "store_only", "store_and_user", "customer_only",
    "organization_only", "relational", "ScopeRegistry", "validate_registry",
    "get_registry",
]
