"""Metrics module."""

from .registry import (
    record_connect_attempt,
    record_connection_closed,
    record_connection_state,
    record_operation,
    record_transport_connect,
    start_metrics_server,
)

__all__ = [
    "record_connect_attempt",
    "record_connection_closed",
    "record_connection_state",
    "record_operation",
    "record_transport_connect",
    "start_metrics_server",
]
