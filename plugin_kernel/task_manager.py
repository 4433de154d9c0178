"""Lifecycle tracking for background asyncio tasks owned by the kernel."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Track named and anonymous background asyncio tasks.

    Both kinds remove themselves from tracking once they complete, and any
    exception they finish with is logged so it is never silently lost.
    """

    def __init__(self) -> None:
        self._named: dict[str, asyncio.Task[Any]] = {}
        self._anonymous: set[asyncio.Task[Any]] = set()

    def add(self, task: asyncio.Task[Any], name: str | None = None) -> None:
        """Register a task, optionally under a unique name.

        A named task replaces any prior task with the same name (the old task
        is *not* cancelled automatically).
        """
        if name is not None:
            self._named[name] = task
            task.add_done_callback(lambda done: self._discard_named(name, done))
        else:
            self._anonymous.add(task)
            task.add_done_callback(self._anonymous.discard)
        task.add_done_callback(self._log_exception)

    def _discard_named(self, name: str, task: asyncio.Task[Any]) -> None:
        if self._named.get(name) is task:
            del self._named[name]

    def _log_exception(self, task: asyncio.Task[Any]) -> None:
        """Log unhandled task exceptions so they are not silently lost."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.warning(
                "task.exception",
                extra={
                    "event": "task.exception",
                    "task": task.get_name(),
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    def get(self, name: str) -> asyncio.Task[Any] | None:
        """Return the named task or ``None`` if not tracked."""
        return self._named.get(name)

    def is_running(self, name: str) -> bool:
        """Return True when a named task is tracked and not yet done."""
        task = self._named.get(name)
        return task is not None and not task.done()

    def __len__(self) -> int:
        return sum(1 for task in self._all() if not task.done())

    def _all(self) -> list[asyncio.Task[Any]]:
        return list(self._named.values()) + list(self._anonymous)

    async def cancel(self, name: str) -> None:
        """Cancel a named task and await its completion."""
        task = self._named.pop(name, None)
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        pending = [task for task in self._all() if not task.done()]
        for task in pending:
            task.cancel()
        # Failures are reported by the done callback.
        await asyncio.gather(*pending, return_exceptions=True)
        self._named.clear()
        self._anonymous.clear()

    async def await_all(self) -> None:
        """Await all tracked tasks without cancelling them.

        Tasks added while waiting are awaited as well.
        """
        while True:
            pending = [task for task in self._all() if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)
