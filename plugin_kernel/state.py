"""Kernel and plugin lifecycle states with their allowed transitions."""

from __future__ import annotations

from enum import Enum

from .exceptions import InvalidStateTransitionError


class KernelState(str, Enum):
    """Lifecycle of the kernel as a whole."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    INITIALIZED = "initialized"
    DESTROYED = "destroyed"


class PluginState(str, Enum):
    """Lifecycle of a single registered plugin."""

    REGISTERED = "registered"
    INITIALIZING = "initializing"
    ACTIVE = "active"
    ERROR = "error"
    DESTROYED = "destroyed"


PLUGIN_TRANSITIONS: dict[PluginState, frozenset[PluginState]] = {
    PluginState.REGISTERED: frozenset(
        {PluginState.INITIALIZING, PluginState.ERROR, PluginState.DESTROYED}
    ),
    PluginState.INITIALIZING: frozenset({PluginState.ACTIVE, PluginState.ERROR}),
    PluginState.ACTIVE: frozenset({PluginState.DESTROYED}),
    PluginState.ERROR: frozenset({PluginState.DESTROYED}),
    PluginState.DESTROYED: frozenset(),
}


def can_transition(current: PluginState, target: PluginState) -> bool:
    """Return True when ``current -> target`` is an allowed plugin transition."""
    return target in PLUGIN_TRANSITIONS[current]


def ensure_transition(
    plugin_name: str, current: PluginState, target: PluginState
) -> None:
    """Raise ``InvalidStateTransitionError`` for a forbidden transition."""
    if not can_transition(current, target):
        raise InvalidStateTransitionError(plugin_name, current.value, target.value)
