"""Tests for kernel and plugin lifecycle states."""

from __future__ import annotations

import unittest

from plugin_kernel.exceptions import InvalidStateTransitionError
from plugin_kernel.state import (
    PLUGIN_TRANSITIONS,
    KernelState,
    PluginState,
    can_transition,
    ensure_transition,
)


class PluginStateTests(unittest.TestCase):
    """Validate the plugin transition table."""

    def test_happy_path_is_allowed(self) -> None:
        self.assertTrue(can_transition(PluginState.REGISTERED, PluginState.INITIALIZING))
        self.assertTrue(can_transition(PluginState.INITIALIZING, PluginState.ACTIVE))
        self.assertTrue(can_transition(PluginState.ACTIVE, PluginState.DESTROYED))

    def test_failure_paths_are_allowed(self) -> None:
        self.assertTrue(can_transition(PluginState.INITIALIZING, PluginState.ERROR))
        self.assertTrue(can_transition(PluginState.ERROR, PluginState.DESTROYED))
        self.assertTrue(can_transition(PluginState.REGISTERED, PluginState.DESTROYED))

    def test_destroyed_is_terminal(self) -> None:
        self.assertEqual(PLUGIN_TRANSITIONS[PluginState.DESTROYED], frozenset())
        for target in PluginState:
            self.assertFalse(can_transition(PluginState.DESTROYED, target))

    def test_active_cannot_reinitialize(self) -> None:
        self.assertFalse(can_transition(PluginState.ACTIVE, PluginState.INITIALIZING))
        self.assertFalse(can_transition(PluginState.ACTIVE, PluginState.REGISTERED))

    def test_every_state_has_an_entry(self) -> None:
        self.assertEqual(set(PLUGIN_TRANSITIONS), set(PluginState))

    def test_ensure_transition_raises_with_details(self) -> None:
        with self.assertRaises(InvalidStateTransitionError) as ctx:
            ensure_transition("cache", PluginState.DESTROYED, PluginState.ACTIVE)
        self.assertEqual(ctx.exception.plugin_name, "cache")
        self.assertEqual(ctx.exception.from_state, "destroyed")
        self.assertEqual(ctx.exception.to_state, "active")

    def test_ensure_transition_allows_valid_edge(self) -> None:
        ensure_transition("cache", PluginState.REGISTERED, PluginState.INITIALIZING)


class KernelStateTests(unittest.TestCase):
    """Validate kernel state values."""

    def test_values_compare_as_strings(self) -> None:
        self.assertEqual(KernelState.IDLE, "idle")
        self.assertEqual(KernelState.INITIALIZING, "initializing")
        self.assertEqual(KernelState.INITIALIZED, "initialized")
        self.assertEqual(KernelState.DESTROYED, "destroyed")


if __name__ == "__main__":
    unittest.main()
