from __future__ import annotations

import argparse
import asyncio
import logging
import os
import platform
import sys
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any

import dotenv

from vis42_proxy.const import (
    CLIENT_NAME,
    DEFAULT_CONNECT_TIMEOUT_MS,
    DEFAULT_SERVER_URL,
    DEFAULT_TOOL_CALL_TIMEOUT_MS,
    VIS42_DEBUG,
    VIS42_VERSION,
    env_bool,
    env_int,
)
from vis42_proxy.correlation import correlation_context
from vis42_proxy.logging_abstraction import LogSink, get_logger, make_log_sink
from vis42_proxy.metrics import start_metrics_server
from vis42_proxy.server import ProxyServer
from vis42_proxy.transport import ClientIdentity, ConnectionSupervisor, SupervisorConfig
from vis42_proxy.transport.mcp_transports import SseTransport, StreamableHttpTransport

if sys.platform != "win32":
    import uvloop

logger = get_logger(__name__)
log: LogSink = make_log_sink(logger)


@dataclass
class ProxySettings:
    """Runtime settings resolved from the environment and CLI."""

    server_url: str = DEFAULT_SERVER_URL
    api_token: str | None = None
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS
    tool_call_timeout_ms: int = DEFAULT_TOOL_CALL_TIMEOUT_MS
    per_transport_deadline: bool = False
    metrics_port: int | None = None

    @classmethod
    def from_env(cls, args: argparse.Namespace | None = None) -> ProxySettings:
        """Read settings from ``os.environ``; CLI values in ``args`` take precedence."""
        metrics_port = os.environ.get("VIS42_METRICS_PORT", "")
        settings = cls(
            server_url=os.environ.get("VIS42_SERVER_URL") or DEFAULT_SERVER_URL,
            api_token=os.environ.get("VIS42_API_TOKEN") or None,
            connect_timeout_ms=env_int("VIS42_CONNECT_TIMEOUT_MS", DEFAULT_CONNECT_TIMEOUT_MS),
            tool_call_timeout_ms=env_int("VIS42_TOOL_CALL_TIMEOUT_MS", DEFAULT_TOOL_CALL_TIMEOUT_MS),
            per_transport_deadline=env_bool("VIS42_PER_TRANSPORT_DEADLINE"),
            metrics_port=int(metrics_port) if metrics_port.isdigit() else None,
        )
        if args is not None:
            if args.url:
                settings.server_url = args.url
            if args.timeout_ms is not None:
                settings.connect_timeout_ms = args.timeout_ms
        return settings


def warn_if_no_token(api_token: str | None, log_sink: LogSink) -> None:
    """Log a warning when the API token is absent or empty."""
    if not api_token:
        log_sink("WARNING: VIS42_API_TOKEN is not set; requests will be rejected by the remote server")


def log_startup(settings: ProxySettings, log_sink: LogSink) -> None:
    """Log the startup banner. The token itself is never logged, only its length."""
    log_sink(f"Starting proxy: SERVER_URL={settings.server_url}")
    token = settings.api_token
    log_sink(f"API_TOKEN={f'set ({len(token)} chars)' if token else 'NOT SET'}")
    log_sink(f"Python {platform.python_version()}")
    log_sink(f"vis42-proxy v{VIS42_VERSION}")
    warn_if_no_token(token, log_sink)


def build_supervisor(settings: ProxySettings, log_sink: LogSink) -> ConnectionSupervisor:
    """Create the process-wide supervisor. No connection is made here."""
    return ConnectionSupervisor(
        SupervisorConfig(
            primary_factory=partial(StreamableHttpTransport, log=log_sink),
            fallback_factory=partial(SseTransport, log=log_sink),
            server_url=settings.server_url,
            credential=settings.api_token,
            connect_timeout_ms=settings.connect_timeout_ms,
            client_identity=ClientIdentity(name=CLIENT_NAME, version=VIS42_VERSION),
            log=log_sink,
            per_transport_deadline=settings.per_transport_deadline,
        ),
    )


def _log_unhandled(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
    exc = context.get("exception")
    message = context.get("message", "unhandled error")
    if exc is not None:
        logger.error("UNHANDLED ERROR: %s: %r", message, exc, extra={"task": str(context.get("task", ""))})
    else:
        logger.error("UNHANDLED ERROR: %s", message)


async def run_proxy(settings: ProxySettings, log_sink: LogSink = log) -> None:
    """Serve the local stdio server until it closes, then release the remote connection."""
    asyncio.get_running_loop().set_exception_handler(_log_unhandled)
    supervisor = build_supervisor(settings, log_sink)
    proxy = ProxyServer(supervisor, log_sink, tool_call_timeout_ms=settings.tool_call_timeout_ms)
    try:
        await proxy.serve()
    finally:
        log_sink("Local server closed, shutting down...")
        await supervisor.aclose()


def positive_int(raw: str) -> int:
    """argparse type for a strictly positive integer."""
    try:
        value = int(raw)
    except ValueError:
        msg = f"invalid int value: {raw!r}"
        raise argparse.ArgumentTypeError(msg) from None
    if value <= 0:
        msg = f"must be a positive integer, got {value}"
        raise argparse.ArgumentTypeError(msg)
    return value


def parse_cli(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="VIS42 MCP proxy (stdio to StreamableHTTP/SSE)")
    _ = parser.add_argument("--url", help="Remote MCP server URL (overrides VIS42_SERVER_URL)", default=None)
    _ = parser.add_argument(
        "--timeout-ms",
        dest="timeout_ms",
        type=positive_int,
        default=None,
        help="Connect deadline in milliseconds (overrides VIS42_CONNECT_TIMEOUT_MS)",
    )
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    _ = parser.add_argument("-D", "--debug", action="store_true", help="Enable debug mode")
    args = parser.parse_args(argv)

    if args.debug or VIS42_DEBUG:
        logger.set_level(logging.DEBUG)
        logger.debug("Debug logging enabled")

    if args.env:
        env_path = args.env.expanduser().resolve()
        if not env_path.exists():
            logger.error("Environment file not found", extra={"path": str(env_path)})
        elif dotenv.load_dotenv(env_path, override=True):
            logger.info("Environment variables loaded", extra={"source": str(env_path)})
        else:
            logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})

    return args


def _run(coro: Any) -> None:
    if sys.platform == "win32":
        asyncio.run(coro)
    else:
        uvloop.run(coro)


def main(argv: list[str] | None = None) -> None:
    """Entry point for the ``vis42-proxy`` command."""
    with correlation_context():
        args = parse_cli(argv)
        settings = ProxySettings.from_env(args)
        log_startup(settings, log)
        if settings.metrics_port:
            start_metrics_server(settings.metrics_port)
            logger.info("Metrics server listening", extra={"port": settings.metrics_port})

        try:
            _run(run_proxy(settings))
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        except asyncio.CancelledError:
            logger.info("Proxy cancelled, shutting down...")
        except Exception as e:
            logger.exception("FATAL: %s", e)
            sys.exit(1)
        else:
            logger.info("vis42-proxy stopped gracefully")


if __name__ == "__main__":
    main()
