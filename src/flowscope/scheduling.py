"""Cancellable asyncio timers used for debounced resize and deferred queries."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

log = logging.getLogger(__name__)


class Debouncer:
    """Coalesce bursts of calls; only the last call in a ``delay`` window runs."""

    def __init__(self, delay: float, callback: Callable[..., Any]) -> None:
        self.delay = delay
        self.callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def trigger(self, *args: Any) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._handle = loop.call_later(self.delay, self._fire, args)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, args: tuple) -> None:
        self._handle = None
        self.callback(*args)


class DeferredTask:
    """Run a callback after ``delay`` seconds, superseding any pending run."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self._task: Optional["asyncio.Task[Any]"] = None
        self._generation = 0

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def schedule(self, callback: Callable[..., Any], *args: Any) -> "asyncio.Task[Any]":
        self.cancel()
        self._generation += 1
        self._task = asyncio.get_running_loop().create_task(
            self._run(self._generation, callback, args)
        )
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            log.debug("cancelling superseded deferred task")
            self._task.cancel()
        self._task = None

    async def _run(self, generation: int, callback: Callable[..., Any], args: tuple) -> Any:
        if self.delay > 0:
            await asyncio.sleep(self.delay)
        if generation != self._generation:
            return None
        return callback(*args)


__all__ = ["Debouncer", "DeferredTask"]
