"""Lazy, self-healing owner of the remote connection.

The supervisor holds at most one cached handle or one in-flight connection
attempt, never both. Concurrent ``acquire()`` calls made while an attempt is
running all wait on that same attempt. A failed attempt leaves the supervisor
idle so the next call starts over, and a close notification from the cached
handle clears the cache so the next call reconnects.

**Concurrency**: Designed for a single asyncio event loop. ``acquire()`` has no
suspension point between reading and writing its state, so no lock is needed.
Do not share an instance across threads or event loops.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from vis42_proxy.const import DEFAULT_CONNECT_TIMEOUT_MS
from vis42_proxy.logging_abstraction import LogSink, safe_log
from vis42_proxy.metrics import record_connect_attempt, record_connection_closed, record_connection_state
from vis42_proxy.transport.connection_attempt import ConnectionAttempt, build_headers
from vis42_proxy.transport.exceptions import ConnectTimeoutError, SupervisorClosedError, describe_error
from vis42_proxy.transport.types import ClientIdentity, RemoteHandle, TransportFactory

__all__ = ["ConnectionSupervisor", "SupervisorConfig", "SupervisorState"]


class SupervisorState(Enum):
    """Supervisor state enumeration."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class SupervisorConfig:
    """Construction options for :class:`ConnectionSupervisor`.

    Attributes:
        primary_factory: Builds the preferred transport
        fallback_factory: Builds the transport tried after a non-timeout primary failure
        server_url: Remote endpoint both transports connect to
        credential: Bearer token; no Authorization header is sent when absent
        connect_timeout_ms: Deadline for one whole connection attempt
        client_identity: Name/version passed to the remote handshake
        log: Single-argument string sink for state-transition lines
        per_transport_deadline: Give each transport its own full deadline instead of sharing one

    """

    primary_factory: TransportFactory
    fallback_factory: TransportFactory
    server_url: str
    credential: str | None = None
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS
    client_identity: ClientIdentity = field(default_factory=ClientIdentity)
    log: LogSink | None = None
    per_transport_deadline: bool = False


class ConnectionSupervisor:
    """Hands out the shared remote handle, connecting on first use."""

    def __init__(
        self,
        config: SupervisorConfig,
        attempt_factory: Callable[[SupervisorConfig], ConnectionAttempt] | None = None,
    ) -> None:
        """Initialize the supervisor in the idle state. No I/O happens here.

        Args:
            config: Connection options
            attempt_factory: Builds a fresh ConnectionAttempt per negotiation (override for tests)

        """
        self.config: SupervisorConfig = config
        self._attempt_factory: Callable[[SupervisorConfig], ConnectionAttempt] = (
            attempt_factory or _default_attempt
        )
        self._handle: RemoteHandle | None = None
        self._in_flight: asyncio.Task[RemoteHandle] | None = None
        self.attempts_started: int = 0
        record_connection_state(SupervisorState.IDLE.value)

    @property
    def state(self) -> SupervisorState:
        if self._handle is not None:
            return SupervisorState.CONNECTED
        if self._in_flight is not None:
            return SupervisorState.CONNECTING
        return SupervisorState.IDLE

    @property
    def cached_handle(self) -> RemoteHandle | None:
        return self._handle

    async def acquire(self) -> RemoteHandle:
        """Return a connected handle: cached, from the in-flight attempt, or from a new attempt.

        Returning the cached handle never suspends. Cancelling one waiting
        caller does not cancel the shared attempt.

        Raises:
            ConnectTimeoutError: The connect deadline elapsed
            RemoteConnectionError: Every transport failed to connect
            SupervisorClosedError: aclose() cancelled the attempt this caller was waiting on

        """
        if self._handle is not None:
            return self._handle
        if self._in_flight is None:
            self.attempts_started += 1
            self._in_flight = asyncio.create_task(self._connect(), name="vis42-connect")
            self._in_flight.add_done_callback(_consume_unobserved_failure)
            record_connection_state(SupervisorState.CONNECTING.value)
        in_flight = self._in_flight
        try:
            return await asyncio.shield(in_flight)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if in_flight.cancelled() and current is not None and not current.cancelling():
                raise SupervisorClosedError from None
            raise

    async def _connect(self) -> RemoteHandle:
        log = self.config.log
        safe_log(log, "Lazy-connecting to remote server...")
        attempt = self._attempt_factory(self.config)
        try:
            handle = await attempt.run()
        except asyncio.CancelledError:
            self._release_in_flight()
            record_connect_attempt("cancelled")
            safe_log(log, "Remote connection attempt cancelled.")
            raise
        except Exception as err:
            self._release_in_flight()
            record_connect_attempt("timeout" if isinstance(err, ConnectTimeoutError) else "failure")
            safe_log(log, f"Remote connection failed: {describe_error(err)}")
            raise

        self._handle = handle
        self._release_in_flight()
        record_connect_attempt("success")
        record_connection_state(SupervisorState.CONNECTED.value)
        safe_log(log, "Connected to remote server.")
        handle.add_close_listener(lambda: self._on_handle_closed(handle))
        return handle

    def _release_in_flight(self) -> None:
        # aclose() may already have detached this task and a newer attempt may own the slot
        if self._in_flight is asyncio.current_task():
            self._in_flight = None
            if self._handle is None:
                record_connection_state(SupervisorState.IDLE.value)

    def _on_handle_closed(self, handle: RemoteHandle) -> None:
        record_connection_closed()
        safe_log(self.config.log, "Remote client connection closed.")
        # A handle that is no longer cached (replaced or shut down) must not clear its successor
        if self._handle is handle:
            self._handle = None
            record_connection_state(SupervisorState.IDLE.value)

    async def aclose(self) -> None:
        """Shut down: cancel any in-flight attempt and close the cached handle."""
        in_flight, self._in_flight = self._in_flight, None
        if in_flight is not None and not in_flight.done():
            _ = in_flight.cancel()
            _ = await asyncio.wait((in_flight,))

        handle, self._handle = self._handle, None
        record_connection_state(SupervisorState.IDLE.value)
        if handle is not None:
            safe_log(self.config.log, "Closing remote connection...")
            await handle.aclose()


def _default_attempt(config: SupervisorConfig) -> ConnectionAttempt:
    return ConnectionAttempt(
        primary_factory=config.primary_factory,
        fallback_factory=config.fallback_factory,
        server_url=config.server_url,
        headers=build_headers(config.credential),
        identity=config.client_identity,
        timeout_ms=config.connect_timeout_ms,
        log=config.log,
        per_transport_deadline=config.per_transport_deadline,
    )


def _consume_unobserved_failure(task: asyncio.Task[RemoteHandle]) -> None:
    # Callers may all have been cancelled while the attempt ran; their shield
    # leaves nobody to observe the outcome, which _connect() already logged.
    if not task.cancelled():
        _ = task.exception()
