"""Tests for the EventBus and ScopedEventBus."""

from __future__ import annotations

import asyncio
from typing import Any
import unittest

from plugin_kernel.events.bus import EventBus, ScopedEventBus


class EventBusTests(unittest.IsolatedAsyncioTestCase):
    """Validate subscription, dispatch and handler isolation."""

    async def test_emit_calls_handler_with_arguments(self) -> None:
        bus = EventBus()
        received: list[tuple[Any, ...]] = []
        bus.on("test", lambda *args: received.append(args))
        bus.emit("test", "arg1", "arg2")
        self.assertEqual(received, [("arg1", "arg2")])

    async def test_handlers_run_in_registration_order(self) -> None:
        bus = EventBus()
        order: list[int] = []
        bus.on("test", lambda: order.append(1))
        bus.on("test", lambda: order.append(2))
        bus.on("test", lambda: order.append(3))
        bus.emit("test")
        self.assertEqual(order, [1, 2, 3])

    async def test_duplicate_subscription_is_ignored(self) -> None:
        bus = EventBus()
        calls: list[Any] = []
        bus.on("test", calls.append)
        bus.on("test", calls.append)
        bus.emit("test", 1)
        self.assertEqual(calls, [1])
        self.assertEqual(bus.listener_count("test"), 1)

    async def test_off_removes_handler(self) -> None:
        bus = EventBus()
        calls: list[Any] = []
        bus.on("test", calls.append)
        bus.off("test", calls.append)
        bus.emit("test", 1)
        self.assertEqual(calls, [])
        self.assertEqual(bus.listener_count("test"), 0)

    async def test_off_unknown_handler_is_noop(self) -> None:
        bus = EventBus()
        bus.off("missing", print)
        self.assertEqual(bus.listener_count("missing"), 0)

    async def test_emit_without_listeners_is_noop(self) -> None:
        bus = EventBus()
        bus.emit("non-existent", 1)
        await bus.publish("non-existent", 1)

    async def test_failing_handler_does_not_stop_others(self) -> None:
        bus = EventBus()
        calls: list[str] = []

        def broken() -> None:
            raise RuntimeError("Handler error")

        bus.on("test", broken)
        bus.on("test", lambda: calls.append("second"))

        with self.assertLogs("plugin_kernel.events.bus", level="ERROR") as logs:
            bus.emit("test")

        self.assertEqual(calls, ["second"])
        self.assertTrue(any("event_bus.handler.failed" in line for line in logs.output))

    async def test_handler_added_during_emit_waits_for_next_emit(self) -> None:
        bus = EventBus()
        calls: list[str] = []

        def late() -> None:
            calls.append("late")

        def first() -> None:
            calls.append("first")
            bus.on("test", late)

        bus.on("test", first)
        bus.emit("test")
        self.assertEqual(calls, ["first"])
        bus.emit("test")
        self.assertEqual(calls, ["first", "first", "late"])

    async def test_async_handler_scheduled_by_emit(self) -> None:
        bus = EventBus()
        calls: list[Any] = []

        async def handler(value: Any) -> None:
            await asyncio.sleep(0)
            calls.append(value)

        bus.on("test", handler)
        bus.emit("test", 42)
        await bus.drain()
        self.assertEqual(calls, [42])

    async def test_async_handler_failure_is_logged(self) -> None:
        bus = EventBus()

        async def handler() -> None:
            raise ValueError("async boom")

        bus.on("test", handler)
        with self.assertLogs("plugin_kernel.events.bus", level="ERROR"):
            bus.emit("test")
            await bus.drain()

    async def test_publish_awaits_async_handlers_in_order(self) -> None:
        bus = EventBus()
        order: list[str] = []

        async def slow() -> None:
            await asyncio.sleep(0.01)
            order.append("slow")

        bus.on("test", slow)
        bus.on("test", lambda: order.append("sync"))
        await bus.publish("test")
        self.assertEqual(order, ["slow", "sync"])

    async def test_remove_all_listeners_for_one_event(self) -> None:
        bus = EventBus()
        bus.on("a", print)
        bus.on("b", print)
        bus.remove_all_listeners("a")
        self.assertEqual(bus.listener_count("a"), 0)
        self.assertEqual(bus.listener_count("b"), 1)

    async def test_remove_all_listeners(self) -> None:
        bus = EventBus()
        bus.on("a", print)
        bus.on_scoped("scope", "b", print)
        bus.remove_all_listeners()
        self.assertEqual(bus.listener_count("a"), 0)
        self.assertEqual(bus.listener_count("b"), 0)
        self.assertFalse(bus.has_scope("scope"))


class EventBusScopeTests(unittest.TestCase):
    """Validate scope bookkeeping on the underlying bus."""

    def test_remove_scope_drops_only_its_handlers(self) -> None:
        bus = EventBus()
        calls: list[str] = []

        def scoped_handler() -> None:
            calls.append("scoped")

        def global_handler() -> None:
            calls.append("global")

        bus.on_scoped("plugin-a", "test", scoped_handler)
        bus.on("test", global_handler)
        self.assertTrue(bus.has_scope("plugin-a"))

        bus.remove_scope("plugin-a")
        bus.emit("test")

        self.assertEqual(calls, ["global"])
        self.assertFalse(bus.has_scope("plugin-a"))

    def test_off_updates_scope_records(self) -> None:
        bus = EventBus()
        bus.on_scoped("plugin-a", "test", print)
        bus.off("test", print)
        self.assertFalse(bus.has_scope("plugin-a"))

    def test_shared_handler_survives_removal_of_one_scope(self) -> None:
        bus = EventBus()
        heard: list[Any] = []

        def shared(value: Any) -> None:
            heard.append(value)

        bus.on_scoped("a", "ping", shared)
        bus.on_scoped("b", "ping", shared)
        bus.remove_scope("a")
        bus.emit("ping", 1)

        self.assertEqual(heard, [1])
        self.assertFalse(bus.has_scope("a"))
        self.assertTrue(bus.has_scope("b"))

        bus.remove_scope("b")
        bus.emit("ping", 2)
        self.assertEqual(heard, [1])
        self.assertEqual(bus.listener_count("ping"), 0)

    def test_plain_subscription_survives_scope_removal(self) -> None:
        bus = EventBus()
        heard: list[Any] = []
        bus.on("ping", heard.append)
        bus.on_scoped("a", "ping", heard.append)
        self.assertEqual(bus.listener_count("ping"), 1)

        bus.remove_scope("a")
        bus.emit("ping", 1)

        self.assertEqual(heard, [1])

    def test_off_scoped_releases_only_that_scope(self) -> None:
        bus = EventBus()
        heard: list[Any] = []
        bus.on_scoped("a", "ping", heard.append)
        bus.on_scoped("b", "ping", heard.append)

        bus.off_scoped("a", "ping", heard.append)
        bus.emit("ping", 1)

        self.assertEqual(heard, [1])
        self.assertFalse(bus.has_scope("a"))
        self.assertTrue(bus.has_scope("b"))

    def test_remove_unknown_scope_is_noop(self) -> None:
        bus = EventBus()
        bus.remove_scope("missing")
        self.assertFalse(bus.has_scope("missing"))

    def test_coroutine_discarded_without_running_loop(self) -> None:
        bus = EventBus()

        async def handler() -> None:
            return None

        bus.on("test", handler)
        with self.assertLogs("plugin_kernel.events.bus", level="WARNING") as logs:
            bus.emit("test")
        self.assertTrue(
            any("event_bus.handler.not_awaited" in line for line in logs.output)
        )


class ScopedEventBusTests(unittest.TestCase):
    """Validate the per-plugin view of the bus."""

    def test_scoped_listeners_reach_shared_bus(self) -> None:
        bus = EventBus()
        scoped = ScopedEventBus(bus, "plugin-a")
        calls: list[Any] = []
        scoped.on("test", calls.append)

        bus.emit("test", 1)
        scoped.emit("test", 2)

        self.assertEqual(calls, [1, 2])
        self.assertEqual(scoped.scope, "plugin-a")

    def test_destroy_removes_only_scoped_listeners(self) -> None:
        bus = EventBus()
        scoped = ScopedEventBus(bus, "plugin-a")
        calls: list[str] = []
        scoped.on("test", lambda: calls.append("scoped"))
        bus.on("test", lambda: calls.append("global"))

        scoped.destroy()
        bus.emit("test")

        self.assertEqual(calls, ["global"])

    def test_off_through_scoped_view(self) -> None:
        bus = EventBus()
        scoped = ScopedEventBus(bus, "plugin-a")
        calls: list[Any] = []
        scoped.on("test", calls.append)
        scoped.off("test", calls.append)
        scoped.emit("test", 1)
        self.assertEqual(calls, [])
        self.assertFalse(bus.has_scope("plugin-a"))

    def test_two_scopes_are_independent(self) -> None:
        bus = EventBus()
        first = ScopedEventBus(bus, "a")
        second = ScopedEventBus(bus, "b")
        calls: list[str] = []
        first.on("test", lambda: calls.append("a"))
        second.on("test", lambda: calls.append("b"))

        first.destroy()
        bus.emit("test")

        self.assertEqual(calls, ["b"])

    def test_scoped_off_keeps_handler_held_elsewhere(self) -> None:
        bus = EventBus()
        first = ScopedEventBus(bus, "a")
        second = ScopedEventBus(bus, "b")
        calls: list[Any] = []
        first.on("test", calls.append)
        second.on("test", calls.append)

        first.off("test", calls.append)
        bus.emit("test", 1)

        self.assertEqual(calls, [1])


if __name__ == "__main__":
    unittest.main()
