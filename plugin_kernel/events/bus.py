"""Event bus for decoupled plugin communication.

Usage:
    bus = EventBus()

    def on_ready(payload):
        print(f"Ready: {payload.name}")

    bus.on("plugin:initialized", on_ready)
    bus.emit("plugin:initialized", PluginInitialized(name="cache"))

    # Listeners recorded under a scope can be dropped in one call
    bus.on_scoped("cache", "config.changed", on_config_changed)
    bus.remove_scope("cache")
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import inspect
import logging
from typing import Any

from ..task_manager import TaskManager

LOGGER = logging.getLogger(__name__)

Handler = Callable[..., Any]


class EventBus:
    """Named-event publish/subscribe registry with per-scope bulk removal.

    Handlers for an event run in registration order. A handler that raises
    is logged and skipped; it never stops the remaining handlers and never
    reaches the caller of ``emit``.

    A subscription may be held by a plain ``on()`` call and by any number of
    scopes at once. It stays live until its last holder lets go, so removing
    one scope never silences a handler another scope still holds.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Handler]] = {}
        # event -> handlers held by plain on() calls
        self._plain: dict[str, list[Handler]] = {}
        # scope -> event -> handlers registered through on_scoped()
        self._scopes: dict[str, dict[str, list[Handler]]] = {}
        self._tasks = TaskManager()

    def on(self, event: str, handler: Handler) -> None:
        """Subscribe ``handler`` to ``event``.

        Registering the same handler twice for one event has no effect.
        """
        _add_unique(self._plain.setdefault(event, []), handler)
        self._subscribe(event, handler)

    def off(self, event: str, handler: Handler) -> None:
        """Unsubscribe ``handler`` from ``event`` for every holder.

        Unknown pairs are ignored.
        """
        handlers = self._listeners.get(event)
        if handlers is None or handler not in handlers:
            return
        _discard(self._plain, event, handler)
        for scope in list(self._scopes):
            self._release_scoped(scope, event, handler)
        self._unsubscribe(event, handler)

    def off_scoped(self, scope: str, event: str, handler: Handler) -> None:
        """Drop ``scope``'s hold on ``handler``; other holders keep it live."""
        if not self._release_scoped(scope, event, handler):
            return
        if not self._is_held(event, handler):
            self._unsubscribe(event, handler)

    def _subscribe(self, event: str, handler: Handler) -> None:
        if _add_unique(self._listeners.setdefault(event, []), handler):
            LOGGER.debug("Subscribed to event: %s", event)

    def _unsubscribe(self, event: str, handler: Handler) -> None:
        if _discard(self._listeners, event, handler):
            LOGGER.debug("Unsubscribed from event: %s", event)

    def _release_scoped(self, scope: str, event: str, handler: Handler) -> bool:
        events = self._scopes.get(scope)
        if events is None or not _discard(events, event, handler):
            return False
        if not events:
            del self._scopes[scope]
        return True

    def _is_held(self, event: str, handler: Handler) -> bool:
        if handler in self._plain.get(event, ()):
            return True
        return any(handler in events.get(event, ()) for events in self._scopes.values())

    def emit(self, event: str, *args: Any) -> None:
        """Invoke every handler of ``event`` synchronously with ``args``.

        A handler returning an awaitable has it scheduled on the running loop;
        without a running loop the awaitable is discarded with a warning.
        """
        for handler in list(self._listeners.get(event, ())):
            try:
                result = handler(*args)
            except Exception as exc:
                self._log_handler_failure(event, exc)
                continue
            if inspect.isawaitable(result):
                self._schedule(event, result)

    async def publish(self, event: str, *args: Any) -> None:
        """Invoke every handler of ``event``, awaiting asynchronous ones in order."""
        handlers = list(self._listeners.get(event, ()))
        if not handlers:
            LOGGER.debug("No subscribers for event: %s", event)
            return

        for handler in handlers:
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                self._log_handler_failure(event, exc)

    def _schedule(self, event: str, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            LOGGER.warning(
                "event_bus.handler.not_awaited",
                extra={"event": "event_bus.handler.not_awaited", "bus_event": event},
            )
            return
        self._tasks.add(loop.create_task(self._run_async(event, awaitable)))

    async def _run_async(self, event: str, awaitable: Any) -> None:
        try:
            await awaitable
        except Exception as exc:
            self._log_handler_failure(event, exc)

    def _log_handler_failure(self, event: str, exc: Exception) -> None:
        LOGGER.error(
            "event_bus.handler.failed",
            extra={
                "event": "event_bus.handler.failed",
                "bus_event": event,
                "error_type": type(exc).__name__,
                "error": str(exc),
            },
            exc_info=exc,
        )

    async def drain(self) -> None:
        """Wait for handler coroutines scheduled by ``emit`` to finish."""
        await self._tasks.await_all()

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Clear the handlers of ``event``, or of every event when omitted."""
        if event is None:
            self._listeners.clear()
            self._plain.clear()
            self._scopes.clear()
            return
        self._listeners.pop(event, None)
        self._plain.pop(event, None)
        for scope in list(self._scopes):
            events = self._scopes[scope]
            events.pop(event, None)
            if not events:
                del self._scopes[scope]

    def listener_count(self, event: str) -> int:
        """Return the number of handlers subscribed to ``event``."""
        return len(self._listeners.get(event, ()))

    def on_scoped(self, scope: str, event: str, handler: Handler) -> None:
        """Subscribe ``handler`` and record it under ``scope`` for bulk removal."""
        _add_unique(self._scopes.setdefault(scope, {}).setdefault(event, []), handler)
        self._subscribe(event, handler)

    def remove_scope(self, scope: str) -> None:
        """Release every hold recorded under ``scope``.

        Handlers still held by another scope or a plain ``on()`` stay
        subscribed.
        """
        events = self._scopes.pop(scope, None)
        if events is None:
            return
        for event, handlers in events.items():
            for handler in handlers:
                if not self._is_held(event, handler):
                    self._unsubscribe(event, handler)
        LOGGER.debug("Removed listener scope: %s", scope)

    def has_scope(self, scope: str) -> bool:
        """Return True when ``scope`` currently tracks at least one handler."""
        return scope in self._scopes


class ScopedEventBus:
    """View of an ``EventBus`` whose registrations are bound to one scope.

    The kernel creates one per plugin and destroys it when the plugin is torn
    down, so a plugin's listeners never outlive the plugin.
    """

    def __init__(self, bus: EventBus, scope: str) -> None:
        self._bus = bus
        self._scope = scope

    @property
    def scope(self) -> str:
        return self._scope

    def on(self, event: str, handler: Handler) -> None:
        self._bus.on_scoped(self._scope, event, handler)

    def off(self, event: str, handler: Handler) -> None:
        self._bus.off_scoped(self._scope, event, handler)

    def emit(self, event: str, *args: Any) -> None:
        self._bus.emit(event, *args)

    async def publish(self, event: str, *args: Any) -> None:
        await self._bus.publish(event, *args)

    def destroy(self) -> None:
        """Unsubscribe every handler registered through this view."""
        self._bus.remove_scope(self._scope)


def _add_unique(handlers: list[Handler], handler: Handler) -> bool:
    if handler in handlers:
        return False
    handlers.append(handler)
    return True


def _discard(registry: dict[str, list[Handler]], event: str, handler: Handler) -> bool:
    """Remove ``handler`` from ``registry[event]``, pruning the emptied event."""
    handlers = registry.get(event)
    if handlers is None or handler not in handlers:
        return False
    handlers.remove(handler)
    if not handlers:
        del registry[event]
    return True
