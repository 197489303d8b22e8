"""
tenancy_sdk.tier0_core.errors
───────────────────────────────
Standard error taxonomy, error codes, user-safe messages, and optional
Sentry/OTel error capture. Raising a PlatformError here automatically
reports it if an error backend is configured.

Tenancy failures (missing or insufficient context, escape-hatch misuse)
are authorization failures, not business validation errors. A scoped
update/delete that matches nothing raises RecordNotFoundError whether the
row is absent or owned by another tenant.

Select via:    TENANCY_ERROR_BACKEND=sentry|otel|none
"""
from __future__ import annotations

from typing import Any


# ── Base error ────────────────────────────────────────────────────────────────

class PlatformError(Exception):
    """
    Base class for all errors. Every error has:
    - code: stable machine-readable string (snake_case)
    - user_message: safe to surface to end users
    - detail: internal context, never shown to users
    - status_code: HTTP status code for API responses
    """

    status_code: int = 500
    code: str = "internal_error"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "An unexpected error occurred.",
        detail: str | None = None,
        **metadata: Any,
    ) -> None:
        self.code = code or self.__class__.code
        self.user_message = user_message
        self.detail = detail or user_message
        self.metadata = metadata
        super().__init__(self.detail)
        _capture(self)

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.user_message,
            }
        }


# ── Typed error classes ───────────────────────────────────────────────────────

class AuthError(PlatformError):
    """Authentication or authorization failure."""
    status_code = 401
    code = "auth_error"


class ForbiddenError(PlatformError):
    """Principal is authenticated but not authorized for this action."""
    status_code = 403
    code = "forbidden"


class ValidationError(PlatformError):
    """Input validation failure."""
    status_code = 422
    code = "validation_error"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "Validation failed.",
        fields: dict | None = None,
        **metadata: Any,
    ) -> None:
        self.fields = fields or {}
        super().__init__(code, user_message, **metadata)

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.fields:
            d["error"]["fields"] = self.fields
        return d


class NotFoundError(PlatformError):
    """Requested resource does not exist."""
    status_code = 404
    code = "not_found"


class ConfigurationError(PlatformError):
    """Misconfiguration detected at startup."""
    status_code = 500
    code = "configuration_error"


# ── Tenancy errors ────────────────────────────────────────────────────────────

class MissingTenantContextError(AuthError):
    """A scoped operation ran with no tenant context set at all."""
    code = "missing_tenant_context"

    def __init__(self, entity: str, operation: str) -> None:
        super().__init__(
            user_message="Unauthorized access.",
            detail=f"No tenant context for {operation} on {entity!r}",
            entity=entity,
            operation=operation,
        )


class InsufficientTenantContextError(ForbiddenError):
    """Tenant context is set but lacks a key the entity's scope requires."""
    code = "insufficient_tenant_context"

    def __init__(self, entity: str, operation: str, missing: str) -> None:
        self.missing = missing
        super().__init__(
            user_message="Access denied.",
            detail=f"Tenant context lacks {missing!r} required for {operation} on {entity!r}",
            entity=entity,
            operation=operation,
            missing=missing,
        )


class EscapeHatchMisuseError(ForbiddenError):
    """The unscoped platform client was used while a request context is active."""
    code = "escape_hatch_misuse"

    def __init__(self, entity: str, operation: str) -> None:
        super().__init__(
            user_message="Access denied.",
            detail=(
                f"Unscoped {operation} on {entity!r} refused: a request "
                "tenant context is active"
            ),
            entity=entity,
            operation=operation,
        )


class RecordNotFoundError(NotFoundError):
    """
    No row matched a single-row update or delete.

    Raised identically for a row that does not exist and for a row owned
    by a different tenant.
    """
    code = "record_not_found"

    def __init__(self, entity: str) -> None:
        self.entity = entity
        super().__init__(
            user_message="Record not found.",
            detail=f"No {entity!r} record matched the given filter",
            entity=entity,
        )


CrossTenantNotFound = RecordNotFoundError


# ── Error capture backend ─────────────────────────────────────────────────────

def _capture(error: PlatformError) -> None:
    """Send error to configured backend. Called automatically by PlatformError.__init__."""
    from tenancy_sdk.tier0_core.config import get_config

    backend = get_config().error_backend.lower()
    if backend == "none":
        return
    if backend == "sentry":
        _capture_sentry(error)
    elif backend == "otel":
        _capture_otel(error)


def _capture_sentry(error: PlatformError) -> None:
    try:
        import sentry_sdk
    except ImportError:
        return
    if error.status_code >= 500:
        sentry_sdk.capture_exception(error)
    else:
        sentry_sdk.capture_message(str(error), level="warning")


def _capture_otel(error: PlatformError) -> None:
    try:
        from opentelemetry import trace
    except ImportError:
        return
    span = trace.get_current_span()
    span.record_exception(error)
    span.set_status(trace.StatusCode.ERROR, str(error))


__all__ = [
    "PlatformError", "AuthError", "ForbiddenError", "ValidationError",
    "NotFoundError", "ConfigurationError", "MissingTenantContextError",
    "InsufficientTenantContextError", "EscapeHatchMisuseError",
    "RecordNotFoundError", "CrossTenantNotFound",
]
