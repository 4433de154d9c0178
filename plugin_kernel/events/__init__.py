"""Event bus and the payloads the kernel publishes on it."""

from .bus import EventBus, ScopedEventBus
from .domain import (
    KernelDestroyed,
    KernelInitialized,
    PluginFailed,
    PluginInitialized,
    PluginInitializing,
    PluginRegistered,
    PluginUnregistered,
)

__all__ = [
    "EventBus",
    "KernelDestroyed",
    "KernelInitialized",
    "PluginFailed",
    "PluginInitialized",
    "PluginInitializing",
    "PluginRegistered",
    "PluginUnregistered",
    "ScopedEventBus",
]
