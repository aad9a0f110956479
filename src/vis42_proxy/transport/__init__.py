"""Remote connection layer: lazy supervisor, connection attempt and MCP transports."""

from .connection_supervisor import ConnectionSupervisor, SupervisorConfig, SupervisorState
from .exceptions import (
    ConnectTimeoutError,
    HandlerError,
    ProxyError,
    RemoteConnectionError,
    SupervisorClosedError,
    TransportError,
)
from .types import ClientIdentity, RemoteHandle, Transport, TransportVariant

__all__ = [
    "ClientIdentity",
    "ConnectTimeoutError",
    "ConnectionSupervisor",
    "HandlerError",
    "ProxyError",
    "RemoteConnectionError",
    "RemoteHandle",
    "SupervisorClosedError",
    "SupervisorConfig",
    "SupervisorState",
    "Transport",
    "TransportError",
    "TransportVariant",
]
