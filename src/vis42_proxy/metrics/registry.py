"""Prometheus metrics for remote connection health and proxied operations."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

SUPERVISOR_STATES: Final = ("idle", "connecting", "connected")

vis42_proxy_connect_attempts_total: Final = Counter(  # type: ignore[assignment]
    "vis42_proxy_connect_attempts_total",
    "Total connection attempts by terminal outcome",
    ["outcome"],
)

vis42_proxy_transport_connect_total: Final = Counter(  # type: ignore[assignment]
    "vis42_proxy_transport_connect_total",
    "Total per-transport connect steps",
    ["transport", "outcome"],
)

vis42_proxy_connection_state: Final = Gauge(  # type: ignore[assignment]
    "vis42_proxy_connection_state",
    "Current supervisor state (one-hot)",
    ["state"],
)

vis42_proxy_connection_closed_total: Final = Counter(  # type: ignore[assignment]
    "vis42_proxy_connection_closed_total",
    "Total remote connection close notifications",
)

vis42_proxy_operation_duration_seconds: Final = Histogram(  # type: ignore[assignment]
    "vis42_proxy_operation_duration_seconds",
    "Proxied operation duration in seconds",
    ["operation", "outcome"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 120.0),
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_connect_attempt(outcome: str) -> None:
    """Record a finished connection attempt ("success", "timeout", "failure")."""
    vis42_proxy_connect_attempts_total.labels(outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_transport_connect(transport: str, outcome: str) -> None:
    """Record one transport's connect step."""
    vis42_proxy_transport_connect_total.labels(transport=transport, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_connection_state(state: str) -> None:
    """Set the gauge to 1 for ``state`` and 0 for all others."""
    for s in SUPERVISOR_STATES:
        vis42_proxy_connection_state.labels(state=s).set(1 if s == state else 0)  # type: ignore[no-untyped-call]


def record_connection_closed() -> None:
    vis42_proxy_connection_closed_total.inc()  # type: ignore[no-untyped-call]


def record_operation(operation: str, outcome: str, duration_seconds: float) -> None:
    """Record a proxied operation's duration."""
    vis42_proxy_operation_duration_seconds.labels(operation=operation, outcome=outcome).observe(
        duration_seconds,
    )  # type: ignore[no-untyped-call]
