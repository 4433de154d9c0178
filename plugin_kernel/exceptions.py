"""Domain exception hierarchy for the plugin kernel."""

from __future__ import annotations

from collections.abc import Sequence


class KernelError(RuntimeError):
    """Base class for all kernel-level errors."""

    code = "KERNEL_ERROR"


class PluginAlreadyRegisteredError(KernelError):
    """Raised when a plugin name is already present in the registry."""

    code = "PLUGIN_ALREADY_REGISTERED"

    def __init__(self, plugin_name: str) -> None:
        super().__init__(f'Plugin "{plugin_name}" already registered')
        self.plugin_name = plugin_name


class PluginNotFoundError(KernelError):
    """Raised when a plugin name is not present in the registry."""

    code = "PLUGIN_NOT_FOUND"

    def __init__(self, plugin_name: str) -> None:
        super().__init__(f'Plugin "{plugin_name}" not found')
        self.plugin_name = plugin_name


class PluginDependencyMissingError(KernelError):
    """Raised when a declared dependency has not been registered yet."""

    code = "PLUGIN_DEPENDENCY_MISSING"

    def __init__(self, plugin_name: str, dependency: str) -> None:
        super().__init__(
            f'Plugin "{plugin_name}" requires "{dependency}" to be registered first'
        )
        self.plugin_name = plugin_name
        self.dependency = dependency


class PluginDependencyConflictError(KernelError):
    """Raised when unregistering a plugin that another plugin depends on."""

    code = "PLUGIN_DEPENDENCY_CONFLICT"

    def __init__(self, plugin_name: str, dependent: str) -> None:
        super().__init__(
            f'Cannot unregister plugin "{plugin_name}": '
            f'plugin "{dependent}" depends on it'
        )
        self.plugin_name = plugin_name
        self.dependent = dependent


class PluginDependencyFailedError(KernelError):
    """Raised when a late plugin's dependency did not reach the active state."""

    code = "PLUGIN_DEPENDENCY_FAILED"

    def __init__(self, plugin_name: str, dependency: str) -> None:
        super().__init__(
            f'Plugin "{plugin_name}" cannot initialize: '
            f'dependency "{dependency}" is not active'
        )
        self.plugin_name = plugin_name
        self.dependency = dependency


class CircularDependencyError(KernelError):
    """Raised when the dependency graph contains a cycle."""

    code = "CIRCULAR_DEPENDENCY"

    def __init__(self, cycle: Sequence[str]) -> None:
        self.cycle = list(cycle)
        super().__init__(
            "Circular dependency detected: " + " -> ".join(self.cycle)
        )


class PluginInitializationError(KernelError):
    """Raised by ``Kernel.init()`` when a plugin's init hook fails."""

    code = "PLUGIN_INITIALIZATION_FAILED"

    def __init__(self, plugin_name: str, cause: BaseException) -> None:
        super().__init__(f'Plugin "{plugin_name}" failed to initialize: {cause}')
        self.plugin_name = plugin_name
        self.cause = cause


class PluginDestroyError(KernelError):
    """Raised by ``Kernel.unregister()`` when a plugin's destroy hook fails."""

    code = "PLUGIN_DESTROY_FAILED"

    def __init__(self, plugin_name: str, cause: BaseException) -> None:
        super().__init__(f'Plugin "{plugin_name}" failed to tear down: {cause}')
        self.plugin_name = plugin_name
        self.cause = cause


class HookTimeoutError(KernelError):
    """Raised when a lifecycle hook exceeds the configured timeout."""

    code = "HOOK_TIMEOUT"

    def __init__(self, plugin_name: str, hook: str, timeout: float) -> None:
        super().__init__(
            f'Hook "{hook}" of plugin "{plugin_name}" timed out after {timeout}s'
        )
        self.plugin_name = plugin_name
        self.hook = hook
        self.timeout = timeout


class InvalidStateTransitionError(KernelError):
    """Raised when a plugin entry is moved along a forbidden edge."""

    code = "INVALID_STATE_TRANSITION"

    def __init__(self, plugin_name: str, from_state: str, to_state: str) -> None:
        super().__init__(
            f'Plugin "{plugin_name}" cannot move from {from_state} to {to_state}'
        )
        self.plugin_name = plugin_name
        self.from_state = from_state
        self.to_state = to_state


class KernelDestroyedError(KernelError):
    """Raised when operating on a kernel that has been destroyed."""

    code = "KERNEL_DESTROYED"


class KernelBusyError(KernelError):
    """Raised when an operation would race an in-flight initialization."""

    code = "KERNEL_BUSY"


class ConfigValidationError(KernelError):
    """Raised when configuration cannot be validated safely."""

    code = "CONFIG_INVALID"
