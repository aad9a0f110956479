"""Exception hierarchy for remote connection and proxying errors.

Each failure mode has its own type so callers branch on the class, never on
message text. The connection attempt uses the type alone to tell a deadline
expiry from a rejected transport.
"""

from __future__ import annotations

from collections.abc import Sequence


class ProxyError(Exception):
    """Base class for all proxy errors."""


class ConnectTimeoutError(ProxyError, TimeoutError):
    """The connect deadline elapsed before any transport connected.

    Subclasses the built-in TimeoutError so generic ``except TimeoutError``
    handlers also see it. Terminal for the attempt: no further transport is
    tried.

    Attributes:
        timeout_ms: The deadline that was exceeded
        transports_tried: Transport names attempted before the deadline fired

    """

    def __init__(self, timeout_ms: int, transports_tried: Sequence[str] = ()) -> None:
        self.timeout_ms: int = timeout_ms
        self.transports_tried: tuple[str, ...] = tuple(transports_tried)
        super().__init__(f"Connection timed out after {timeout_ms}ms")


class TransportError(ProxyError):
    """A single transport variant failed to connect for a non-timeout reason.

    Raised when:
    - The remote rejects the transport (wrong protocol, 4xx/5xx)
    - Network error (DNS, refused, reset)
    - MCP initialize handshake fails

    Attributes:
        transport: Name of the transport that failed (e.g. "StreamableHTTP")
        reason: Human-readable failure reason from the underlying error

    """

    def __init__(self, transport: str, reason: str) -> None:
        self.transport: str = transport
        self.reason: str = reason
        super().__init__(f"{transport} connect failed: {reason}")


class RemoteConnectionError(ProxyError):
    """Every transport variant was tried and none connected.

    Note: Named RemoteConnectionError to avoid shadowing Python's built-in ConnectionError.

    Attributes:
        errors: The per-transport failures, in the order they happened

    """

    def __init__(self, errors: Sequence[TransportError]) -> None:
        self.errors: tuple[TransportError, ...] = tuple(errors)
        last = self.errors[-1].reason if self.errors else "no transport attempted"
        tried = ", ".join(e.transport for e in self.errors) or "none"
        super().__init__(f"Unable to connect to remote server ({tried}): {last}")

    @property
    def transports_tried(self) -> tuple[str, ...]:
        return tuple(e.transport for e in self.errors)


class SupervisorClosedError(ProxyError):
    """The supervisor was shut down while a caller waited for the shared attempt."""

    def __init__(self) -> None:
        super().__init__("Connection supervisor closed while connecting")


class HandlerError(ProxyError):
    """A proxied operation failed after the remote connection was established.

    Does not invalidate the cached connection. Only the handle's close
    notification does that.

    Attributes:
        operation: The remote operation that failed (e.g. "list_tools")
        reason: Failure reason from the underlying error

    """

    def __init__(self, operation: str, reason: str) -> None:
        self.operation: str = operation
        self.reason: str = reason
        super().__init__(f"{operation} failed: {reason}")


def describe_error(err: BaseException) -> str:
    """Return a readable reason for ``err``.

    Task groups wrap a lone failure in an exception group whose own message
    says nothing useful, so single-member groups are unwrapped first. Errors
    with an empty message fall back to the class name.
    """
    while isinstance(err, BaseExceptionGroup) and len(err.exceptions) == 1:
        err = err.exceptions[0]
    return str(err) or type(err).__name__
