"""Plugin contract consumed by the kernel."""

from .interface import FunctionPlugin, Plugin, call_hook, get_dependencies

__all__ = ["FunctionPlugin", "Plugin", "call_hook", "get_dependencies"]
