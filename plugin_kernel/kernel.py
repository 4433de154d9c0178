"""Micro-kernel managing plugin registration, ordering and lifecycle.

The kernel owns the plugin registry, a single shared context object and the
event bus. Plugins are initialized one at a time in dependency order; a
failure rolls back every plugin activated by the same ``init()`` pass.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass
import logging
from typing import Any, Generic, TypeVar

from .events.bus import EventBus, ScopedEventBus
from .events.domain import (
    KERNEL_DESTROYED,
    KERNEL_INITIALIZED,
    PLUGIN_ERROR,
    PLUGIN_INITIALIZED,
    PLUGIN_INITIALIZING,
    PLUGIN_REGISTERED,
    PLUGIN_UNREGISTERED,
    KernelDestroyed,
    KernelInitialized,
    PluginFailed,
    PluginInitialized,
    PluginInitializing,
    PluginRegistered,
    PluginUnregistered,
)
from .exceptions import (
    CircularDependencyError,
    HookTimeoutError,
    KernelBusyError,
    KernelDestroyedError,
    PluginAlreadyRegisteredError,
    PluginDependencyConflictError,
    PluginDependencyFailedError,
    PluginDependencyMissingError,
    PluginDestroyError,
    PluginInitializationError,
    PluginNotFoundError,
)
from .graph import resolve_order
from .plugins.interface import call_hook, get_dependencies, get_hook
from .state import KernelState, PluginState, ensure_transition
from .task_manager import TaskManager

LOGGER = logging.getLogger(__name__)

ContextT = TypeVar("ContextT")


@dataclass
class KernelOptions:
    """Construction options for ``Kernel``.

    Attributes:
        context: Shared context object; a fresh ``dict`` when omitted
        hook_timeout_seconds: Upper bound for each awaited ``on_init`` /
            ``on_destroy`` call. ``None`` waits indefinitely.
    """

    context: Any = None
    hook_timeout_seconds: float | None = None

    @classmethod
    def from_config(
        cls, config: Mapping[str, Any], context: Any = None
    ) -> KernelOptions:
        """Build options from a mapping returned by ``load_config()``."""
        section = config.get("kernel") or {}
        return cls(
            context=context,
            hook_timeout_seconds=section.get("hook_timeout_seconds"),
        )


@dataclass
class PluginEntry:
    """Registry record wrapping a plugin with its state and scoped bus."""

    plugin: Any
    scoped_bus: ScopedEventBus
    state: PluginState = PluginState.REGISTERED
    error: BaseException | None = None
    teardown: asyncio.Task[None] | None = None

    @property
    def name(self) -> str:
        return self.plugin.name

    @property
    def tearing_down(self) -> bool:
        return self.teardown is not None and not self.teardown.done()

    def transition_to(self, target: PluginState) -> None:
        ensure_transition(self.name, self.state, target)
        self.state = target


class Kernel(Generic[ContextT]):
    """Plugin micro-kernel.

    Responsibilities:
    - Register plugins, enforcing unique names and present dependencies
    - Initialize plugins sequentially in topological order, with rollback
    - Tear plugins down in reverse order, releasing their scoped listeners
    - Share one mutable context object and one event bus between plugins
    """

    def __init__(self, options: KernelOptions | None = None) -> None:
        options = options or KernelOptions()
        self._context: Any = options.context if options.context is not None else {}
        self._hook_timeout = options.hook_timeout_seconds
        self._plugins: dict[str, PluginEntry] = {}
        self._event_bus = EventBus()
        self._state = KernelState.IDLE
        self._init_task: asyncio.Task[None] | None = None
        self._destroy_task: asyncio.Task[None] | None = None
        self._background = TaskManager()
        # Late initializations run one at a time, in registration order.
        self._late_init_lock = asyncio.Lock()

    # Registration

    def register(self, plugin: Any) -> None:
        """Register a plugin and run its ``install`` hook.

        On an initialized kernel the plugin is then initialized in the
        background; failures there surface only as ``plugin:error`` events.

        Raises:
            KernelDestroyedError: If the kernel is destroyed or being destroyed
            PluginAlreadyRegisteredError: If the name is already registered
            PluginDependencyMissingError: If a dependency is not registered
        """
        if self._is_shutting_down():
            raise KernelDestroyedError("Cannot register plugins on a destroyed kernel")

        name = plugin.name
        if name in self._plugins:
            raise PluginAlreadyRegisteredError(name)
        for dependency in get_dependencies(plugin):
            if dependency not in self._plugins:
                raise PluginDependencyMissingError(name, dependency)

        scoped_bus = ScopedEventBus(self._event_bus, name)
        entry = PluginEntry(plugin=plugin, scoped_bus=scoped_bus)
        self._plugins[name] = entry

        try:
            plugin.install(self)
        except Exception as exc:
            del self._plugins[name]
            scoped_bus.destroy()
            LOGGER.warning(
                "kernel.plugin.install_failed",
                extra={
                    "event": "kernel.plugin.install_failed",
                    "plugin": name,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
            raise

        LOGGER.info(
            "kernel.plugin.registered",
            extra={
                "event": "kernel.plugin.registered",
                "plugin": name,
                "version": plugin.version,
            },
        )
        self._event_bus.emit(
            PLUGIN_REGISTERED, PluginRegistered(name=name, version=plugin.version)
        )

        if self._state is KernelState.INITIALIZED:
            self._start_background_init(entry)

    def _start_background_init(self, entry: PluginEntry) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            LOGGER.warning(
                "kernel.plugin.init_deferred",
                extra={
                    "event": "kernel.plugin.init_deferred",
                    "plugin": entry.name,
                    "reason": "no running event loop",
                },
            )
            return
        task = loop.create_task(
            self._init_in_background(entry), name=f"plugin-init:{entry.name}"
        )
        self._background.add(task, name=entry.name)

    async def _init_in_background(self, entry: PluginEntry) -> None:
        try:
            async with self._late_init_lock:
                await self._init_late_plugin(entry)
        except Exception as exc:
            # Already reported through on_error and the plugin:error event.
            LOGGER.error(
                "kernel.plugin.late_init_failed",
                extra={
                    "event": "kernel.plugin.late_init_failed",
                    "plugin": entry.name,
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )

    async def _init_late_plugin(self, entry: PluginEntry) -> None:
        if entry.state is not PluginState.REGISTERED:
            return
        for dependency in get_dependencies(entry.plugin):
            if self.get_plugin_state(dependency) is not PluginState.ACTIVE:
                exc = PluginDependencyFailedError(entry.name, dependency)
                entry.error = exc
                entry.transition_to(PluginState.ERROR)
                await self._report_failure(entry, exc)
                raise exc
        await self._init_plugin(entry)

    # Initialization

    async def init(self) -> None:
        """Initialize every registered plugin in dependency order.

        Concurrent callers share a single in-flight initialization. On an
        initialized kernel this initializes plugins whose late registration
        was deferred, reporting their failures as ``plugin:error`` events.

        Raises:
            KernelDestroyedError: If the kernel is destroyed or being destroyed
            CircularDependencyError: If the dependency graph has a cycle
            PluginInitializationError: If a plugin's ``on_init`` fails
        """
        if self._is_shutting_down():
            raise KernelDestroyedError("Cannot initialize destroyed kernel")
        if self._state is KernelState.INITIALIZED:
            await self._init_deferred()
            return

        if self._init_task is None or self._init_task.done():
            self._state = KernelState.INITIALIZING
            self._init_task = asyncio.ensure_future(self._run_init())
            self._init_task.add_done_callback(self._clear_init_task)
        await asyncio.shield(self._init_task)

    async def _init_deferred(self) -> None:
        if not any(
            entry.state is PluginState.REGISTERED for entry in self._plugins.values()
        ):
            return
        for entry in self._sorted_entries():
            if entry.state is PluginState.REGISTERED and not self._background.is_running(
                entry.name
            ):
                self._start_background_init(entry)
        await self._background.await_all()

    def _clear_init_task(self, task: asyncio.Task[None]) -> None:
        if self._init_task is task:
            self._init_task = None
        if not task.cancelled():
            # Mark the exception retrieved; callers receive it via shield().
            task.exception()

    async def _run_init(self) -> None:
        activated: list[PluginEntry] = []
        try:
            while True:
                pending = [
                    entry
                    for entry in self._sorted_entries()
                    if entry.state is PluginState.REGISTERED
                ]
                if not pending:
                    break
                for entry in pending:
                    try:
                        await self._init_plugin(entry)
                    except Exception as exc:
                        raise PluginInitializationError(entry.name, exc) from exc
                    activated.append(entry)
        except BaseException as exc:
            await self._rollback(activated)
            self._state = KernelState.IDLE
            LOGGER.error(
                "kernel.init.failed",
                extra={
                    "event": "kernel.init.failed",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                    "rolled_back": [entry.name for entry in reversed(activated)],
                },
            )
            raise

        self._state = KernelState.INITIALIZED
        active = [
            name
            for name, entry in self._plugins.items()
            if entry.state is PluginState.ACTIVE
        ]
        LOGGER.info(
            "kernel.initialized",
            extra={"event": "kernel.initialized", "plugins": active},
        )
        self._event_bus.emit(KERNEL_INITIALIZED, KernelInitialized(plugins=active))

    async def _init_plugin(self, entry: PluginEntry) -> None:
        if entry.state is not PluginState.REGISTERED:
            return

        entry.transition_to(PluginState.INITIALIZING)
        self._event_bus.emit(PLUGIN_INITIALIZING, PluginInitializing(name=entry.name))

        on_init = get_hook(entry.plugin, "on_init")
        if on_init is not None:
            try:
                await self._run_hook(entry, "on_init", on_init, self._context)
            except asyncio.CancelledError:
                entry.transition_to(PluginState.ERROR)
                raise
            except Exception as exc:
                entry.error = exc
                entry.transition_to(PluginState.ERROR)
                await self._report_failure(entry, exc)
                raise

        entry.transition_to(PluginState.ACTIVE)
        LOGGER.debug(
            "kernel.plugin.initialized",
            extra={"event": "kernel.plugin.initialized", "plugin": entry.name},
        )
        self._event_bus.emit(PLUGIN_INITIALIZED, PluginInitialized(name=entry.name))

    async def _report_failure(self, entry: PluginEntry, exc: Exception) -> None:
        on_error = get_hook(entry.plugin, "on_error")
        if on_error is not None:
            try:
                await call_hook(on_error, exc)
            except Exception as hook_exc:
                LOGGER.error(
                    "kernel.plugin.on_error_failed",
                    extra={
                        "event": "kernel.plugin.on_error_failed",
                        "plugin": entry.name,
                        "error_type": type(hook_exc).__name__,
                        "error": str(hook_exc),
                    },
                )
        self._event_bus.emit(PLUGIN_ERROR, PluginFailed(name=entry.name, error=exc))

    async def _rollback(self, activated: list[PluginEntry]) -> None:
        for entry in reversed(activated):
            try:
                await self._destroy_plugin(entry)
            except Exception as exc:
                LOGGER.error(
                    "kernel.rollback.failed",
                    extra={
                        "event": "kernel.rollback.failed",
                        "plugin": entry.name,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                )

    async def _run_hook(
        self, entry: PluginEntry, hook_name: str, hook: Callable[..., Any], *args: Any
    ) -> Any:
        if self._hook_timeout is None:
            return await call_hook(hook, *args)
        deadline = asyncio.timeout(self._hook_timeout)
        try:
            async with deadline:
                return await call_hook(hook, *args)
        except TimeoutError as exc:
            # A TimeoutError raised by the hook itself is not ours to relabel.
            if not deadline.expired():
                raise
            raise HookTimeoutError(entry.name, hook_name, self._hook_timeout) from exc

    # Teardown

    async def _destroy_plugin(self, entry: PluginEntry) -> None:
        """Tear ``entry`` down once; concurrent callers share the same run."""
        if entry.teardown is None:
            if entry.state is PluginState.DESTROYED:
                return
            entry.teardown = asyncio.ensure_future(self._run_teardown(entry))
        elif entry.teardown.done():
            return
        await asyncio.shield(entry.teardown)

    async def _run_teardown(self, entry: PluginEntry) -> None:
        entry.scoped_bus.destroy()
        on_destroy = get_hook(entry.plugin, "on_destroy")
        try:
            if on_destroy is not None:
                await self._run_hook(entry, "on_destroy", on_destroy)
        finally:
            entry.transition_to(PluginState.DESTROYED)

    async def unregister(self, name: str) -> None:
        """Tear down a plugin and remove it from the registry.

        Raises:
            PluginNotFoundError: If no plugin has this name
            KernelBusyError: If initialization involving the plugin, its own
                teardown or a kernel ``destroy()`` is in flight
            PluginDependencyConflictError: If another plugin depends on it
            PluginDestroyError: If ``on_destroy`` fails (the plugin is still removed)
        """
        entry = self._plugins.get(name)
        if entry is None:
            raise PluginNotFoundError(name)
        if self._is_shutting_down():
            raise KernelBusyError(
                f'Cannot unregister plugin "{name}" while the kernel is being destroyed'
            )
        if entry.tearing_down:
            raise KernelBusyError(f'Plugin "{name}" is already being torn down')
        if self._state is KernelState.INITIALIZING:
            raise KernelBusyError(
                f'Cannot unregister plugin "{name}" while the kernel is initializing'
            )
        if entry.state is PluginState.INITIALIZING:
            raise KernelBusyError(f'Plugin "{name}" is still initializing')

        for other_name, other in self._plugins.items():
            if other_name != name and name in get_dependencies(other.plugin):
                raise PluginDependencyConflictError(name, other_name)

        failure: Exception | None = None
        try:
            await self._destroy_plugin(entry)
        except Exception as exc:
            failure = exc

        if self._plugins.get(name) is entry:
            del self._plugins[name]
        LOGGER.info(
            "kernel.plugin.unregistered",
            extra={"event": "kernel.plugin.unregistered", "plugin": name},
        )
        self._event_bus.emit(PLUGIN_UNREGISTERED, PluginUnregistered(name=name))

        if failure is not None:
            raise PluginDestroyError(name, failure) from failure

    async def destroy(self) -> None:
        """Tear down every plugin in reverse dependency order.

        Failures of individual ``on_destroy`` hooks are logged and never stop
        the remaining teardown. Calling this again is a no-op.

        Raises:
            KernelBusyError: If ``init()`` is in flight
        """
        if self._state is KernelState.DESTROYED:
            return
        if self._state is KernelState.INITIALIZING:
            raise KernelBusyError("Cannot destroy the kernel while it is initializing")

        if self._destroy_task is None:
            self._destroy_task = asyncio.ensure_future(self._run_destroy())
        await asyncio.shield(self._destroy_task)

    async def _run_destroy(self) -> None:
        await self._background.cancel_all()

        for entry in reversed(self._teardown_order()):
            try:
                await self._destroy_plugin(entry)
            except Exception as exc:
                LOGGER.error(
                    "kernel.destroy.failed",
                    extra={
                        "event": "kernel.destroy.failed",
                        "plugin": entry.name,
                        "error_type": type(exc).__name__,
                        "error": str(exc),
                    },
                    exc_info=exc,
                )

        self._plugins.clear()
        self._event_bus.remove_all_listeners()
        self._state = KernelState.DESTROYED
        LOGGER.info("kernel.destroyed", extra={"event": "kernel.destroyed"})
        self._event_bus.emit(KERNEL_DESTROYED, KernelDestroyed())

    async def wait_for_background(self) -> None:
        """Wait until every background (late-registration) initialization settles."""
        await self._background.await_all()

    # Ordering helpers

    def _dependency_graph(self) -> dict[str, tuple[str, ...]]:
        return {
            name: get_dependencies(entry.plugin)
            for name, entry in self._plugins.items()
        }

    def _sorted_entries(self) -> list[PluginEntry]:
        return [self._plugins[name] for name in resolve_order(self._dependency_graph())]

    def _teardown_order(self) -> list[PluginEntry]:
        try:
            return self._sorted_entries()
        except CircularDependencyError as exc:
            LOGGER.warning(
                "kernel.destroy.cyclic_graph",
                extra={"event": "kernel.destroy.cyclic_graph", "cycle": exc.cycle},
            )
            return list(self._plugins.values())

    def _is_shutting_down(self) -> bool:
        return self._state is KernelState.DESTROYED or self._destroy_task is not None

    # Event bus pass-through

    @property
    def event_bus(self) -> EventBus:
        return self._event_bus

    def on(self, event: str, handler: Callable[..., Any]) -> None:
        self._event_bus.on(event, handler)

    def off(self, event: str, handler: Callable[..., Any]) -> None:
        self._event_bus.off(event, handler)

    def emit(self, event: str, *args: Any) -> None:
        self._event_bus.emit(event, *args)

    # Read accessors

    def get_plugin(self, name: str) -> Any | None:
        entry = self._plugins.get(name)
        return entry.plugin if entry is not None else None

    def has_plugin(self, name: str) -> bool:
        return name in self._plugins

    def list_plugins(self) -> list[str]:
        return list(self._plugins)

    def get_plugin_state(self, name: str) -> PluginState | None:
        entry = self._plugins.get(name)
        return entry.state if entry is not None else None

    def get_state(self) -> KernelState:
        return self._state

    def is_initialized(self) -> bool:
        return self._state is KernelState.INITIALIZED

    def get_context(self) -> ContextT:
        return self._context

    def get_scoped_event_bus(self, name: str) -> ScopedEventBus | None:
        """Return the plugin's scoped bus; its listeners die with the plugin."""
        entry = self._plugins.get(name)
        return entry.scoped_bus if entry is not None else None
