from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

PLUGIN_REGISTERED = "plugin:registered"
PLUGIN_INITIALIZING = "plugin:initializing"
PLUGIN_INITIALIZED = "plugin:initialized"
PLUGIN_ERROR = "plugin:error"
PLUGIN_UNREGISTERED = "plugin:unregistered"
KERNEL_INITIALIZED = "kernel:initialized"
KERNEL_DESTROYED = "kernel:destroyed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PluginRegistered:
    name: str
    version: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class PluginInitializing:
    name: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class PluginInitialized:
    name: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class PluginFailed:
    name: str
    error: BaseException
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class PluginUnregistered:
    name: str
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class KernelInitialized:
    plugins: list[str]
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass
class KernelDestroyed:
    timestamp: datetime = field(default_factory=_utcnow)
