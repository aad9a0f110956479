"""One end-to-end negotiation with the remote server.

The attempt tries the primary transport, falls back to the secondary one on an
ordinary connect failure, and races the whole sequence against one deadline.
A deadline expiry at any step ends the attempt without trying further
transports.
"""

from __future__ import annotations

from collections.abc import Mapping

from vis42_proxy.logging_abstraction import LogSink, safe_log
from vis42_proxy.metrics import record_transport_connect
from vis42_proxy.transport.exceptions import (
    ConnectTimeoutError,
    RemoteConnectionError,
    TransportError,
    describe_error,
)
from vis42_proxy.transport.timeout_guard import TimeoutGuard
from vis42_proxy.transport.types import (
    ClientIdentity,
    RemoteHandle,
    Transport,
    TransportFactory,
    TransportVariant,
)

__all__ = ["ConnectionAttempt", "build_headers"]


def build_headers(credential: str | None) -> dict[str, str]:
    """Return the request headers for both transports.

    A bearer Authorization header is added only when ``credential`` is a
    non-empty string.
    """
    headers: dict[str, str] = {}
    if credential:
        headers["Authorization"] = f"Bearer {credential}"
    return headers


class ConnectionAttempt:
    """A single, non-reusable primary/fallback negotiation.

    Attributes:
        transports_tried: Variants attempted, in order
        transport_names: Names of the transports attempted, in order
        variant: The variant that connected, or None until one does

    """

    def __init__(
        self,
        primary_factory: TransportFactory,
        fallback_factory: TransportFactory,
        server_url: str,
        headers: Mapping[str, str],
        identity: ClientIdentity,
        timeout_ms: int,
        log: LogSink | None = None,
        per_transport_deadline: bool = False,
    ) -> None:
        self.primary_factory: TransportFactory = primary_factory
        self.fallback_factory: TransportFactory = fallback_factory
        self.server_url: str = server_url
        self.headers: dict[str, str] = dict(headers)
        self.identity: ClientIdentity = identity
        self.timeout_ms: int = timeout_ms
        self.per_transport_deadline: bool = per_transport_deadline
        self._log: LogSink | None = log

        self.transports_tried: list[TransportVariant] = []
        self.transport_names: list[str] = []
        self.variant: TransportVariant | None = None
        self._started: bool = False

    async def run(self) -> RemoteHandle:
        """Negotiate a connection and return the connected handle.

        Raises:
            ConnectTimeoutError: The deadline fired before any transport connected
            RemoteConnectionError: Primary and fallback both failed to connect
            RuntimeError: If the attempt was already run

        """
        if self._started:
            msg = "ConnectionAttempt can only be run once"
            raise RuntimeError(msg)
        self._started = True

        with TimeoutGuard(self.timeout_ms) as guard:
            primary = self.primary_factory(self.server_url, dict(self.headers))
            try:
                return await self._connect_step(TransportVariant.PRIMARY, primary, guard)
            except TransportError as err:
                primary_error = err

            fallback = self.fallback_factory(self.server_url, dict(self.headers))
            safe_log(
                self._log,
                f"{primary_error.transport} connect failed ({primary_error.reason}), falling back to {fallback.name}...",
            )
            if not self.per_transport_deadline:
                return await self._fallback_step(fallback, guard, primary_error)

            guard.cancel()
            with TimeoutGuard(self.timeout_ms) as fallback_guard:
                return await self._fallback_step(fallback, fallback_guard, primary_error)

    async def _fallback_step(
        self,
        transport: Transport,
        guard: TimeoutGuard,
        primary_error: TransportError,
    ) -> RemoteHandle:
        try:
            return await self._connect_step(TransportVariant.FALLBACK, transport, guard)
        except TransportError as fallback_error:
            raise RemoteConnectionError([primary_error, fallback_error]) from fallback_error

    async def _connect_step(
        self,
        variant: TransportVariant,
        transport: Transport,
        guard: TimeoutGuard,
    ) -> RemoteHandle:
        self.transports_tried.append(variant)
        self.transport_names.append(transport.name)
        try:
            handle = await guard.race(transport.connect(self.identity))
        except ConnectTimeoutError as err:
            record_transport_connect(transport.name, "timeout")
            err.transports_tried = tuple(self.transport_names)
            raise
        except TransportError:
            record_transport_connect(transport.name, "failure")
            raise
        except Exception as err:
            record_transport_connect(transport.name, "failure")
            raise TransportError(transport.name, describe_error(err)) from err

        record_transport_connect(transport.name, "success")
        self.variant = variant
        safe_log(self._log, f"Using {transport.name} transport.")
        return handle
