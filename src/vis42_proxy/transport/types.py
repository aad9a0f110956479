"""Boundary types shared by the connection supervisor and the concrete transports.

The supervisor only ever talks to transports and handles through these
protocols, so tests can drive it with in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from vis42_proxy.const import CLIENT_NAME, VIS42_VERSION


class TransportVariant(Enum):
    """Which slot of the negotiation a transport occupies."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ClientIdentity:
    """Name and version sent in the remote ``initialize`` handshake.

    Attributes:
        name: Client implementation name
        version: Client implementation version
    """

    name: str = CLIENT_NAME
    version: str = VIS42_VERSION


CloseListener = Callable[[], None]


@runtime_checkable
class RemoteHandle(Protocol):
    """A live, connected reference to the remote service."""

    @property
    def closed(self) -> bool: ...

    def add_close_listener(self, listener: CloseListener) -> None:
        """Register ``listener`` for the single close notification.

        Listeners added after the handle has closed are invoked immediately.
        """
        ...

    async def invoke(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        """Run a remote operation by name. Opaque to the supervisor."""
        ...

    async def aclose(self) -> None:
        """Close the connection and release transport resources."""
        ...


class Transport(Protocol):
    """An unconnected transport bound to an address and header set.

    Construction never fails; only :meth:`connect` can.
    """

    name: str

    async def connect(self, identity: ClientIdentity) -> RemoteHandle: ...


TransportFactory = Callable[[str, Mapping[str, str]], Transport]
