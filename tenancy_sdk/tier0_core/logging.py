"""
tenancy_sdk.tier0_core.logging
────────────────────────────────
Structured logs for the data-access layer. The request context binds
organization_id, store_id and user_id into structlog's contextvars, so
every event logged while a request is in flight carries its tenant.

Write payloads and caller filters may hold customer PII; those fields are
masked at any depth before rendering.

Minimal stack: structlog (stdout JSON or console)
Configure via: TENANCY_LOG_LEVEL, TENANCY_LOG_FORMAT=json|console
"""
from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from typing import Any

import structlog

from tenancy_sdk.tier0_core.config import get_config


# ── Redaction ─────────────────────────────────────────────────────────────────

_SECRET_KEYS = frozenset({
    "password", "password_hash", "secret", "token", "api_key",
    "authorization", "access_token", "refresh_token",
})

# customer data held by users, addresses and payment setup rows
_PII_KEYS = frozenset({
    "email", "phone", "first_name", "last_name",
    "address_line1", "address_line2", "postal_code",
    "card_number", "cvv",
})

_REDACTED = "[REDACTED]"


def _mask(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            k: _REDACTED if str(k).lower() in _SECRET_KEYS | _PII_KEYS else _mask(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_mask(v) for v in value]
    return value


def _redact_processor(logger: Any, method: str, event_dict: dict) -> dict:
    """Mask secrets and customer PII, including inside nested payloads."""
    for key, value in list(event_dict.items()):
        if key.lower() in _SECRET_KEYS or key.lower() in _PII_KEYS:
            event_dict[key] = _REDACTED
        elif isinstance(value, (Mapping, list, tuple)):
            event_dict[key] = _mask(value)
    return event_dict


# ── Configuration ─────────────────────────────────────────────────────────────

def _configure_structlog() -> None:
    config = get_config()
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    shared: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        _redact_processor,
    ]
    renderer = (
        structlog.dev.ConsoleRenderer()
        if config.log_format == "console"
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(level)
    # engine echo goes through the same handler
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if config.database_echo else logging.WARNING
    )


# ── Public API ────────────────────────────────────────────────────────────────

_configured = False


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Return a structured logger bound to the given name.

    Usage:
        log = get_logger(__name__)
        log.info("tenancy.escape_hatch", entity="orders", operation="find_many")
    """
    global _configured
    if not _configured:
        _configure_structlog()
        _configured = True
    return structlog.get_logger(name or __name__)


def bind_context(**kwargs: Any) -> None:
    """Bind fields to every log call made from the current task or thread."""
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)

