"""Top-level package for plugin-kernel."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .config import load_config
    from .events.bus import EventBus, ScopedEventBus
    from .exceptions import (
        CircularDependencyError,
        ConfigValidationError,
        HookTimeoutError,
        InvalidStateTransitionError,
        KernelBusyError,
        KernelDestroyedError,
        KernelError,
        PluginAlreadyRegisteredError,
        PluginDependencyConflictError,
        PluginDependencyFailedError,
        PluginDependencyMissingError,
        PluginDestroyError,
        PluginInitializationError,
        PluginNotFoundError,
    )
    from .kernel import Kernel, KernelOptions
    from .logging_utils import configure_logging
    from .plugins.interface import FunctionPlugin, Plugin
    from .state import KernelState, PluginState

__version__ = "0.1.0"

_EXCEPTIONS = {
    "CircularDependencyError",
    "ConfigValidationError",
    "HookTimeoutError",
    "InvalidStateTransitionError",
    "KernelBusyError",
    "KernelDestroyedError",
    "KernelError",
    "PluginAlreadyRegisteredError",
    "PluginDependencyConflictError",
    "PluginDependencyFailedError",
    "PluginDependencyMissingError",
    "PluginDestroyError",
    "PluginInitializationError",
    "PluginNotFoundError",
}

__all__ = sorted(
    _EXCEPTIONS
    | {
        "EventBus",
        "FunctionPlugin",
        "Kernel",
        "KernelOptions",
        "KernelState",
        "Plugin",
        "PluginState",
        "ScopedEventBus",
        "configure_logging",
        "load_config",
    }
)


def __getattr__(name: str) -> Any:
    """Lazily import symbols so importing the package stays cheap."""
    if name in {"Kernel", "KernelOptions"}:
        from . import kernel

        return getattr(kernel, name)
    if name in {"EventBus", "ScopedEventBus"}:
        from .events import bus

        return getattr(bus, name)
    if name in {"Plugin", "FunctionPlugin"}:
        from .plugins import interface

        return getattr(interface, name)
    if name in {"KernelState", "PluginState"}:
        from . import state

        return getattr(state, name)
    if name in _EXCEPTIONS:
        from . import exceptions

        return getattr(exceptions, name)
    if name == "load_config":
        from .config import load_config

        return load_config
    if name == "configure_logging":
        from .logging_utils import configure_logging

        return configure_logging
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
