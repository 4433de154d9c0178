"""Plugin interface.

A plugin is any object exposing ``name``, ``version``, an optional
``dependencies`` sequence and an ``install(kernel)`` method. It may also
provide any of the optional lifecycle hooks:

- ``on_init(context)``: called once, in dependency order, during
  ``Kernel.init()`` (or right after registration on an initialized kernel)
- ``on_destroy()``: called when the plugin is torn down
- ``on_error(error)``: called when ``on_init`` fails

``on_init`` and ``on_destroy`` may be coroutine functions. Optional hooks are
looked up by attribute, so leaving one undefined (or ``None``) skips it.

Usage:
    class CachePlugin(Plugin):
        name = "cache"
        version = "1.0.0"
        dependencies = ("config",)

        def install(self, kernel):
            self.bus = kernel.get_scoped_event_bus(self.name)

        async def on_init(self, context):
            context["cache"] = await connect(context["config"]["cache_url"])

    kernel = Kernel()
    kernel.register(ConfigPlugin())
    kernel.register(CachePlugin())
    await kernel.init()
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
import inspect
from typing import Any

HOOK_NAMES = ("on_init", "on_destroy", "on_error")


class Plugin(ABC):
    """Base class for plugins.

    Subclasses set ``name`` and ``version``, implement ``install`` and define
    whichever optional hooks they need.
    """

    name: str = "unknown"
    version: str = "0.0.0"
    description: str = ""
    dependencies: Sequence[str] = ()

    @abstractmethod
    def install(self, kernel: Any) -> None:
        """Attach the plugin to the kernel.

        Runs synchronously inside ``Kernel.register()``. Raising here aborts
        the registration without leaving anything behind.

        Args:
            kernel: The registering kernel
        """


def _noop_install(kernel: Any) -> None:
    return None


@dataclass
class FunctionPlugin(Plugin):
    """Plugin assembled from plain callables."""

    name: str
    version: str = "0.0.0"
    dependencies: list[str] = field(default_factory=list)
    install: Callable[[Any], None] = _noop_install
    on_init: Callable[[Any], Any] | None = None
    on_destroy: Callable[[], Any] | None = None
    on_error: Callable[[BaseException], Any] | None = None
    description: str = ""


def get_hook(plugin: Any, hook: str) -> Callable[..., Any] | None:
    """Return the plugin's ``hook`` callable, or ``None`` when absent."""
    candidate = getattr(plugin, hook, None)
    return candidate if callable(candidate) else None


def get_dependencies(plugin: Any) -> tuple[str, ...]:
    """Return the plugin's declared dependencies as a tuple."""
    return tuple(getattr(plugin, "dependencies", None) or ())


async def call_hook(hook: Callable[..., Any], *args: Any) -> Any:
    """Call a lifecycle hook and await its result when it is awaitable."""
    result = hook(*args)
    if inspect.isawaitable(result):
        return await result
    return result
