"""
tenancy_sdk
───────────
Stable top-level exports. Import from here, not from sub-modules directly.
Every name exported here is part of the public API and subject to semver.
"""
from tenancy_sdk.tier0_core.logging import get_logger
from tenancy_sdk.tier0_core.errors import (
    PlatformError,
    AuthError,
    ForbiddenError,
    ValidationError,
    NotFoundError,
    ConfigurationError,
    MissingTenantContextError,
    InsufficientTenantContextError,
    EscapeHatchMisuseError,
    RecordNotFoundError,
    CrossTenantNotFound,
)
from tenancy_sdk.tier0_core.config import get_config, TenancyConfig
from tenancy_sdk.tier0_core.data import get_session, get_engine, dispose_engine
from tenancy_sdk.tier0_core.metrics import start_metrics_server
from tenancy_sdk.tier0_core.query import Operation, QueryArgs

from tenancy_sdk.tier1_runtime.context import (
    TenantContext,
    get_context,
    set_context,
    reset_context,
    clear_context,
    tenant_context,
    get_organization_id,
    get_store_id,
    get_user_id,
)
from tenancy_sdk.tier1_runtime.middleware import TenantContextMiddleware

from tenancy_sdk.tier3_platform.scope_policy import (
    Boundary,
    ScopeMode,
    ScopePolicy,
    get_registry,
)
from tenancy_sdk.tier3_platform.clients import (
    OrganizationClient,
    StoreClient,
    StorefrontClient,
    PlatformClient,
)

__version__ = "0.1.0"
__all__ = [
    # logging
    "get_logger",
    # errors
    "PlatformError", "AuthError", "ForbiddenError", "ValidationError",
    "NotFoundError", "ConfigurationError", "MissingTenantContextError",
    "InsufficientTenantContextError", "EscapeHatchMisuseError",
    "RecordNotFoundError", "CrossTenantNotFound",
    # config
    "get_config", "TenancyConfig",
    # data
    "get_session", "get_engine", "dispose_engine",
    # metrics
    "start_metrics_server",
    # query
    "Operation", "QueryArgs",
    # context
    "TenantContext", "get_context", "set_context", "reset_context",
    "clear_context", "tenant_context", "get_organization_id",
    "get_store_id", "get_user_id",
    # middleware
    "TenantContextMiddleware",
    # scope registry
    "Boundary", "ScopeMode", "ScopePolicy", "get_registry",
    # clients
    "OrganizationClient", "StoreClient", "StorefrontClient", "PlatformClient",
]
