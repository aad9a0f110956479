"""Local stdio MCP server that forwards requests to the remote VIS42 server.

The server answers the local client's ``initialize`` handshake right away. No
remote connection is made until the first proxied request, which obtains the
shared handle from the :class:`ConnectionSupervisor`.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import timedelta
from typing import Any

from mcp import types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from vis42_proxy.const import DEFAULT_TOOL_CALL_TIMEOUT_MS, SERVER_NAME, VIS42_VERSION
from vis42_proxy.correlation import correlation_context
from vis42_proxy.instrumentation import with_logging
from vis42_proxy.logging_abstraction import LogSink, safe_log
from vis42_proxy.transport.connection_supervisor import ConnectionSupervisor

__all__ = ["ProxyServer"]

RequestBody = Callable[[Any], Awaitable[Any]]


def _cursor(request: Any) -> str | None:
    return getattr(request.params, "cursor", None)


class ProxyServer:
    """Wires the seven proxied MCP operations onto a low-level MCP server."""

    def __init__(
        self,
        supervisor: ConnectionSupervisor,
        log: LogSink | None,
        name: str = SERVER_NAME,
        version: str = VIS42_VERSION,
        tool_call_timeout_ms: int = DEFAULT_TOOL_CALL_TIMEOUT_MS,
    ) -> None:
        self.supervisor: ConnectionSupervisor = supervisor
        self.tool_call_timeout_ms: int = tool_call_timeout_ms
        self._log: LogSink | None = log
        self.server: Server[Any] = Server(name, version=version)
        self._register_handlers()

    def _register_handlers(self) -> None:
        routes: tuple[tuple[str, type, RequestBody], ...] = (
            ("tools/list", types.ListToolsRequest, self._list_tools),
            ("tools/call", types.CallToolRequest, self._call_tool),
            ("resources/list", types.ListResourcesRequest, self._list_resources),
            ("resources/read", types.ReadResourceRequest, self._read_resource),
            ("resources/templates/list", types.ListResourceTemplatesRequest, self._list_resource_templates),
            ("prompts/list", types.ListPromptsRequest, self._list_prompts),
            ("prompts/get", types.GetPromptRequest, self._get_prompt),
        )
        for operation, request_type, body in routes:
            self.server.request_handlers[request_type] = self._make_handler(operation, body)

    def _make_handler(self, operation: str, body: RequestBody) -> Callable[[Any], Awaitable[types.ServerResult]]:
        logged = with_logging(operation, body, self._log)

        async def handler(request: Any) -> types.ServerResult:
            with correlation_context():
                result = await logged(request)
            return types.ServerResult(result)

        return handler

    async def _list_tools(self, request: types.ListToolsRequest) -> types.ListToolsResult:
        handle = await self.supervisor.acquire()
        result = await handle.invoke("list_tools", _cursor(request))
        safe_log(self._log, f"tools/list: {len(result.tools)} tools")
        return result

    async def _call_tool(self, request: types.CallToolRequest) -> types.CallToolResult:
        name = request.params.name
        safe_log(self._log, f"tools/call: invoking {name}")
        handle = await self.supervisor.acquire()
        return await handle.invoke(
            "call_tool",
            name,
            request.params.arguments,
            read_timeout_seconds=timedelta(milliseconds=self.tool_call_timeout_ms),
        )

    async def _list_resources(self, request: types.ListResourcesRequest) -> types.ListResourcesResult:
        handle = await self.supervisor.acquire()
        return await handle.invoke("list_resources", _cursor(request))

    async def _read_resource(self, request: types.ReadResourceRequest) -> types.ReadResourceResult:
        handle = await self.supervisor.acquire()
        return await handle.invoke("read_resource", request.params.uri)

    async def _list_resource_templates(
        self,
        request: types.ListResourceTemplatesRequest,
    ) -> types.ListResourceTemplatesResult:
        handle = await self.supervisor.acquire()
        return await handle.invoke("list_resource_templates", _cursor(request))

    async def _list_prompts(self, request: types.ListPromptsRequest) -> types.ListPromptsResult:
        handle = await self.supervisor.acquire()
        return await handle.invoke("list_prompts", _cursor(request))

    async def _get_prompt(self, request: types.GetPromptRequest) -> types.GetPromptResult:
        handle = await self.supervisor.acquire()
        return await handle.invoke("get_prompt", request.params.name, request.params.arguments)

    async def serve(self) -> None:
        """Serve MCP on stdin/stdout until the local client disconnects."""
        safe_log(self._log, "Connecting local stdio server...")
        async with stdio_server() as (read_stream, write_stream):
            safe_log(
                self._log,
                "Proxy ready: stdio server running. Remote connection will be established on first request.",
            )
            await self.server.run(read_stream, write_stream, self.server.create_initialization_options())
