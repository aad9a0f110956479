"""MCP client transports (StreamableHTTP primary, SSE fallback) and their connected handle.

The SDK's stream context managers are built on anyio task groups and must be
entered and exited by the same task. Each :class:`McpRemoteHandle` therefore
owns a runner task that opens the streams, runs the ``ClientSession`` and
stays parked until the handle is closed or the remote stream ends.
"""

from __future__ import annotations

import asyncio
import contextlib
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from contextlib import AbstractAsyncContextManager
from typing import Any

import anyio
from anyio.abc import ObjectReceiveStream, ObjectSendStream
from mcp import ClientSession, types
from mcp.client.sse import sse_client
from mcp.client.streamable_http import streamablehttp_client
from mcp.shared.exceptions import McpError

from vis42_proxy.logging_abstraction import LogSink, safe_log
from vis42_proxy.transport.exceptions import HandlerError, describe_error
from vis42_proxy.transport.types import ClientIdentity, CloseListener

__all__ = [
    "McpHttpTransport",
    "McpRemoteHandle",
    "SseTransport",
    "StreamableHttpTransport",
]

StreamOpener = Callable[[], AbstractAsyncContextManager[tuple[Any, ...]]]


class McpRemoteHandle:
    """A connected MCP client session, cached by the supervisor until it closes.

    Attributes:
        transport_name: Transport that produced this handle
        identity: Client identity sent in the initialize handshake

    """

    def __init__(self, transport_name: str, identity: ClientIdentity, log: LogSink | None = None) -> None:
        self.transport_name: str = transport_name
        self.identity: ClientIdentity = identity
        self._log: LogSink | None = log
        self._session: ClientSession | None = None
        self._runner: asyncio.Task[None] | None = None
        self._stop: asyncio.Event = asyncio.Event()
        self._listeners: list[CloseListener] = []
        self._closed: bool = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def session(self) -> ClientSession | None:
        return self._session

    async def start(self, open_streams: StreamOpener) -> None:
        """Open the streams and complete the MCP initialize handshake.

        Cancelling the caller also cancels the runner so no half-open
        connection is left behind.
        """
        ready: asyncio.Future[ClientSession] = asyncio.get_running_loop().create_future()
        self._runner = asyncio.create_task(self._run(open_streams, ready), name=f"vis42-{self.transport_name}")
        try:
            self._session = await ready
        except asyncio.CancelledError:
            _ = self._runner.cancel()
            raise

    async def _run(self, open_streams: StreamOpener, ready: asyncio.Future[ClientSession]) -> None:
        try:
            async with open_streams() as streams:
                read_stream, write_stream = streams[0], streams[1]
                relay_send, relay_receive = anyio.create_memory_object_stream[Any](0)
                async with anyio.create_task_group() as tg:
                    tg.start_soon(self._relay, read_stream, relay_send)
                    async with ClientSession(
                        relay_receive,
                        write_stream,
                        message_handler=self._on_message,
                        client_info=types.Implementation(name=self.identity.name, version=self.identity.version),
                    ) as session:
                        _ = await session.initialize()
                        if not ready.done():
                            ready.set_result(session)
                        _ = await self._stop.wait()
                    tg.cancel_scope.cancel()
        except Exception as err:
            if not ready.done():
                ready.set_exception(err)
            else:
                safe_log(self._log, f"CLIENT ERROR: {describe_error(err)}")
        finally:
            if not ready.done():
                _ = ready.cancel()
            self._mark_closed()

    async def _relay(self, source: ObjectReceiveStream[Any], sink: ObjectSendStream[Any]) -> None:
        # Forward inbound messages to the session; the end of the source is the close signal.
        try:
            with contextlib.suppress(anyio.ClosedResourceError, anyio.BrokenResourceError):
                async with sink:
                    async for item in source:
                        await sink.send(item)
        finally:
            self._stop.set()

    async def _on_message(self, message: object) -> None:
        if isinstance(message, Exception):
            safe_log(self._log, f"CLIENT ERROR: {describe_error(message)}")

    def _mark_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            self._notify(listener)

    def _notify(self, listener: CloseListener) -> None:
        try:
            listener()
        except Exception as e:  # noqa: BLE001
            safe_log(self._log, f"Close listener failed: {describe_error(e)}")

    def add_close_listener(self, listener: CloseListener) -> None:
        if self._closed:
            self._notify(listener)
        else:
            self._listeners.append(listener)

    async def invoke(self, operation: str, *args: Any, **kwargs: Any) -> Any:
        """Call ``ClientSession.<operation>(*args, **kwargs)`` on the remote session.

        Raises:
            McpError: The remote answered with a protocol error (passed through unchanged)
            HandlerError: The handle is closed, the operation is unknown, or the call failed locally

        """
        session = self._session
        if session is None or self._closed:
            raise HandlerError(operation, "remote connection is closed")
        method = getattr(session, operation, None)
        if method is None or operation.startswith("_"):
            raise HandlerError(operation, "unknown remote operation")
        try:
            return await method(*args, **kwargs)
        except McpError:
            raise
        except Exception as err:
            raise HandlerError(operation, describe_error(err)) from err

    async def aclose(self) -> None:
        """Close the session and wait for the runner to release the streams."""
        self._stop.set()
        runner = self._runner
        if runner is not None and not runner.done():
            _ = await asyncio.wait((runner,))
        self._mark_closed()


class McpHttpTransport(ABC):
    """Base for MCP transports bound to a URL and header set.

    Subclasses provide :meth:`open_streams`. Construction performs no I/O.
    """

    name: str = "MCP"

    def __init__(self, url: str, headers: Mapping[str, str], *, log: LogSink | None = None) -> None:
        self.url: str = url
        self.headers: dict[str, str] = dict(headers)
        self._log: LogSink | None = log

    @abstractmethod
    def open_streams(self) -> AbstractAsyncContextManager[tuple[Any, ...]]:
        """Return the SDK context manager yielding the read and write streams."""

    async def connect(self, identity: ClientIdentity) -> McpRemoteHandle:
        handle = McpRemoteHandle(self.name, identity, log=self._log)
        await handle.start(self.open_streams)
        return handle

    def __repr__(self) -> str:
        return f"{type(self).__name__}(url={self.url!r}, headers={sorted(self.headers)!r})"


class StreamableHttpTransport(McpHttpTransport):
    """Streamable HTTP transport (preferred)."""

    name = "StreamableHTTP"

    def open_streams(self) -> AbstractAsyncContextManager[tuple[Any, ...]]:
        return streamablehttp_client(self.url, headers=self.headers)


class SseTransport(McpHttpTransport):
    """Legacy HTTP+SSE transport (fallback)."""

    name = "SSE"

    def open_streams(self) -> AbstractAsyncContextManager[tuple[Any, ...]]:
        return sse_client(self.url, headers=self.headers)
