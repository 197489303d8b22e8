"""
tenancy_sdk.tier0_core.metrics
────────────────────────────────
Counters and histograms with standard naming and labels, plus the
data-access layer's own metrics. Exported via a Prometheus /metrics
endpoint.

Minimal stack: prometheus-client
Configure via: TENANCY_METRICS_PORT (default: 8001)
"""
from __future__ import annotations

from typing import Callable

from prometheus_client import Counter, Histogram, start_http_server

from tenancy_sdk.tier0_core.config import get_config

# Standard labels applied to every metric
_DEFAULT_LABELS = ["service", "env"]


def _default_labels() -> dict[str, str]:
    config = get_config()
    return dict(zip(_DEFAULT_LABELS, (config.app_name, config.environment)))


def counter(name: str, description: str, labels: list[str] | None = None) -> Callable:
    """
    Create a counter with standard labels.

    Usage:
        refusals = counter("tenancy_scope_refusals_total", "Refused calls", ["reason"])
        refusals(reason="missing_tenant_context").inc()
    """
    c = Counter(name, description, _DEFAULT_LABELS + (labels or []))

    def _counter(**extra_labels: str) -> Counter:
        return c.labels(**_default_labels(), **extra_labels)

    return _counter


def histogram(
    name: str,
    description: str,
    labels: list[str] | None = None,
    buckets: tuple = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
) -> Callable:
    """Create a histogram with standard labels."""
    h = Histogram(name, description, _DEFAULT_LABELS + (labels or []), buckets=buckets)

    def _histogram(**extra_labels: str) -> Histogram:
        return h.labels(**_default_labels(), **extra_labels)

    return _histogram


def start_metrics_server(port: int | None = None) -> None:
    """
    Start the Prometheus HTTP metrics server on a dedicated port.
    Call once at application startup.
    """
    start_http_server(port or get_config().metrics_port)


# ── Data-access metrics ───────────────────────────────────────────────────────

scoped_operations = counter(
    "tenancy_operations_total",
    "Operations executed through a client, by boundary",
    ["boundary", "entity", "operation"],
)

scope_refusals = counter(
    "tenancy_scope_refusals_total",
    "Operations refused before touching data",
    ["boundary", "entity", "reason"],
)

operation_duration = histogram(
    "tenancy_operation_duration_seconds",
    "Time spent executing one client operation",
    ["boundary", "operation"],
)


__all__ = [
    "counter", "histogram", "start_metrics_server",
    "scoped_operations", "scope_refusals", "operation_duration",
]
