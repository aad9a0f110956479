"""Single-shot, cancellable connect deadline."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable
from types import TracebackType
from typing import TypeVar

from vis42_proxy.transport.exceptions import ConnectTimeoutError

__all__ = ["TimeoutGuard"]

T = TypeVar("T")


def _discard_outcome(task: asyncio.Future[object]) -> None:
    # Outcome of work abandoned at the deadline; retrieve it so asyncio does not warn.
    if not task.cancelled():
        _ = task.exception()


class TimeoutGuard:
    """A deadline timer that fires at most once and is never restarted.

    One guard covers one connection attempt. Every connect step of the attempt
    is raced against the same guard through :meth:`race`, so the budget is
    shared across steps rather than reset between them. Use it as a context
    manager so the timer is cancelled on every exit path::

        with TimeoutGuard(30_000) as guard:
            handle = await guard.race(transport.connect(identity))

    """

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms: int = timeout_ms
        self._timer: asyncio.TimerHandle | None = None
        self._expired: asyncio.Event | None = None

    def __enter__(self) -> TimeoutGuard:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.cancel()

    def start(self) -> None:
        """Arm the timer. Must be called from inside the running event loop.

        Raises:
            RuntimeError: If the guard was already started

        """
        if self._expired is not None:
            msg = "TimeoutGuard can only be started once"
            raise RuntimeError(msg)
        loop = asyncio.get_running_loop()
        self._expired = asyncio.Event()
        self._timer = loop.call_later(self.timeout_ms / 1000, self._fire)

    def _fire(self) -> None:
        self._timer = None
        if self._expired is not None:
            self._expired.set()

    def cancel(self) -> None:
        """Disarm the timer. Safe to call repeatedly and after the guard fired."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def active(self) -> bool:
        """True while the timer is armed and has not fired."""
        return self._timer is not None

    @property
    def expired(self) -> bool:
        return self._expired is not None and self._expired.is_set()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the deadline fires first.

        If both finish in the same loop iteration the work wins. When the
        deadline wins, the pending work is cancelled so transports that honor
        cancellation release their resources.

        Raises:
            ConnectTimeoutError: The deadline fired before ``awaitable`` completed
            RuntimeError: If the guard was never started

        """
        if self._expired is None:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            msg = "TimeoutGuard.race() called before start()"
            raise RuntimeError(msg)
        if self._expired.is_set():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise ConnectTimeoutError(self.timeout_ms)

        work = asyncio.ensure_future(awaitable)
        expiry = asyncio.ensure_future(self._expired.wait())
        try:
            _ = await asyncio.wait((work, expiry), return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            _ = work.cancel()
            raise
        finally:
            _ = expiry.cancel()

        if work.done():
            return work.result()

        _ = work.cancel()
        work.add_done_callback(_discard_outcome)
        raise ConnectTimeoutError(self.timeout_ms)
