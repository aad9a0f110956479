"""
Timing and logging for proxied operations.

Every request the local server forwards to the remote server goes through
:func:`with_logging`, which logs its start and its outcome with the elapsed
time. Errors are observed and re-raised untouched.
"""

from __future__ import annotations

import asyncio
import functools
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from vis42_proxy.logging_abstraction import LogSink, safe_log
from vis42_proxy.metrics import record_operation
from vis42_proxy.transport.exceptions import describe_error

__all__ = [
    "measure_time",
    "with_logging",
]

RequestT = TypeVar("RequestT")
ResultT = TypeVar("ResultT")


def measure_time(start_time: float) -> float:
    """
    Calculate elapsed time in milliseconds.

    Args:
        start_time: Start time from time.perf_counter()

    Returns:
        Elapsed time in milliseconds
    """
    return (time.perf_counter() - start_time) * 1000


def with_logging(
    operation: str,
    fn: Callable[[RequestT], Awaitable[ResultT]],
    log: LogSink | None,
) -> Callable[[RequestT], Awaitable[ResultT]]:
    """
    Wrap an async request handler with start/success/failure log lines.

    Logs ``Proxying <operation>...`` before the call, then either
    ``<operation> completed in <n>ms`` or ``<operation> FAILED in <n>ms: <message>``.
    The wrapper keeps no state between calls, so it can wrap any number of
    handlers independently.

    Args:
        operation: Human-readable operation name, e.g. "resources/list"
        fn: The handler body
        log: Single-argument string sink

    Example:
        handler = with_logging("tools/list", list_tools, log)
        result = await handler(request)
    """

    @functools.wraps(fn)
    async def wrapper(request: RequestT) -> ResultT:
        start_time = time.perf_counter()
        safe_log(log, f"Proxying {operation}...")
        try:
            result = await fn(request)
        except asyncio.CancelledError:
            elapsed_ms = measure_time(start_time)
            safe_log(log, f"{operation} FAILED in {elapsed_ms:.0f}ms: cancelled")
            record_operation(operation, "cancelled", elapsed_ms / 1000)
            raise
        except Exception as e:
            elapsed_ms = measure_time(start_time)
            safe_log(log, f"{operation} FAILED in {elapsed_ms:.0f}ms: {describe_error(e)}")
            record_operation(operation, "failure", elapsed_ms / 1000)
            raise
        elapsed_ms = measure_time(start_time)
        safe_log(log, f"{operation} completed in {elapsed_ms:.0f}ms")
        record_operation(operation, "success", elapsed_ms / 1000)
        return result

    return wrapper
