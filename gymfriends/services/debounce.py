"""Single-handle debounce timer for the asyncio event loop."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Delay ``action`` by ``delay_ms``; rescheduling replaces the pending call.

    Only one timer handle is ever stored. Calls already fired are not
    cancelled, they run to completion as tracked tasks.
    """

    def __init__(self, delay_ms: int, action: Callable[..., Any], *, name: str = "") -> None:
        self.delay_ms = delay_ms
        self.name = name or getattr(action, "__name__", "debounced")
        self._action = action
        self._handle: asyncio.TimerHandle | None = None
        self._args: tuple[Any, ...] = ()
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, *args: Any) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._args = args
        self._handle = loop.call_later(self.delay_ms / 1000.0, self._fire)
        logger.debug("Debounce %s scheduled in %sms", self.name, self.delay_ms)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        self._handle = None
        args, self._args = self._args, ()
        try:
            result = self._action(*args)
        except Exception:
            logger.exception("Debounced action %s failed", self.name)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Debounced action %s failed: %s", self.name, exc, exc_info=exc)

    async def flush(self) -> None:
        """Run the pending call immediately, if any, and wait for it."""

        if self._handle is None:
            return
        self._handle.cancel()
        self._handle = None
        args, self._args = self._args, ()
        result = self._action(*args)
        if inspect.isawaitable(result):
            await result

    async def drain(self) -> None:
        """Wait for already-fired calls to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


__all__ = ["Debouncer"]
