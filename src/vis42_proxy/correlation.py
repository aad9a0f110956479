"""
Per-request correlation IDs for proxy log lines.

Each proxied MCP request runs under its own ID so that the start, connect and
completion lines it produces can be grouped even when requests overlap on the
event loop.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "get_correlation_id",
    "new_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "vis42_correlation_id",
    default=None,
)


def new_correlation_id() -> str:
    """Return a fresh UUID4 hex correlation ID."""
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Scope a correlation ID to the enclosed block.

    A new ID is generated when none is given. The previous ID is restored on
    exit, including when the block raises.

    Args:
        correlation_id: Explicit ID to use (tests pass fixed values)

    Yields:
        The ID active inside the block
    """
    active_id = correlation_id or new_correlation_id()
    token = _correlation_id.set(active_id)
    try:
        yield active_id
    finally:
        _correlation_id.reset(token)

