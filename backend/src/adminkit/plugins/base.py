"""
Plugin definitions and per-invocation contexts.

A plugin is either a ``ServicePlugin`` (scheduled tasks, HTTP endpoints,
bound secrets) or a ``ClientPlugin`` (render/destroy into a mount point).
Both carry the same ``PluginLifecycle`` value instead of sharing a base class,
and the host matches on the concrete type.
"""
from __future__ import annotations

import inspect
import re
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, ClassVar, Protocol, Union, runtime_checkable

from croniter import croniter

from ..core.exceptions import PluginRegistrationError

if TYPE_CHECKING:
    from .mount import MountPoint

PLUGIN_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9._-]*/[a-z0-9][a-z0-9._-]*$")
ENDPOINT_METHODS = frozenset(("GET", "POST", "PUT", "PATCH", "DELETE"))

# Hooks may be plain functions or coroutines
Hook = Callable[..., Union[Awaitable[Any], Any]]


class PluginRuntime(str, Enum):
    CLIENT = "client"
    SERVICE = "service"


def validate_plugin_id(plugin_id: str) -> str:
    if not isinstance(plugin_id, str) or not PLUGIN_ID_PATTERN.match(plugin_id):
        raise PluginRegistrationError(
            f"Invalid plugin id '{plugin_id}': expected '<namespace>/<name>'",
            details={"plugin_id": str(plugin_id)},
        )
    return plugin_id


async def call_hook(hook: Hook, *args: Any) -> Any:
    """Call a sync or async hook and return its result."""
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


@dataclass(frozen=True)
class PluginMeta:
    name: str
    version: str
    description: str | None = None
    author: str | None = None
    homepage: str | None = None
    tags: tuple[str, ...] = ()
    icon: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", tuple(self.tags))


@runtime_checkable
class PluginLogger(Protocol):
    """Variadic logger handed to plugins; ``child`` is optional."""

    def debug(self, msg: str, *args: Any) -> None: ...

    def info(self, msg: str, *args: Any) -> None: ...

    def warn(self, msg: str, *args: Any) -> None: ...

    def error(self, msg: str, *args: Any) -> None: ...


@runtime_checkable
class PluginStorage(Protocol):
    """Per-plugin key/value storage. Atomic per key, no cross-key transactions."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any) -> None: ...

    async def delete(self, key: str) -> None: ...

    async def list(self, prefix: str | None = None) -> list[str]: ...


@dataclass(frozen=True)
class PluginLifecycle:
    """Optional lifecycle hooks, each called with the plugin's context."""

    setup: Hook | None = None
    start: Hook | None = None
    stop: Hook | None = None
    teardown: Hook | None = None

    def hook(self, name: str) -> Hook | None:
        return getattr(self, name)


@dataclass(frozen=True)
class ScheduledTask:
    """A cron-triggered unit of work. Timing is owned by the scheduler."""

    name: str
    cron: str
    execute: Hook

    def __post_init__(self) -> None:
        if not self.name:
            raise PluginRegistrationError("Scheduled task requires a name")
        if not croniter.is_valid(self.cron):
            raise PluginRegistrationError(
                f"Invalid cron expression for task '{self.name}': {self.cron}",
                details={"task": self.name, "cron": self.cron},
            )


@dataclass(frozen=True)
class ServiceEndpoint:
    method: str
    path: str
    handler: Hook

    def __post_init__(self) -> None:
        method = str(self.method).upper()
        if method not in ENDPOINT_METHODS:
            raise PluginRegistrationError(
                f"Unsupported endpoint method '{self.method}'",
                details={"method": self.method, "allowed": sorted(ENDPOINT_METHODS)},
            )
        if not self.path.startswith("/"):
            raise PluginRegistrationError(f"Endpoint path must start with '/': {self.path}")
        object.__setattr__(self, "method", method)

    @property
    def route(self) -> tuple[str, str]:
        return self.method, self.path


@dataclass(frozen=True)
class PluginRequest:
    """Inbound request handed to a service endpoint handler."""

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    body: Any = None

    def json(self) -> Any:
        return self.body if self.body is not None else {}


def _freeze_defaults(defaults: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(defaults or {}))


@dataclass(frozen=True)
class ServicePlugin:
    """Server-side plugin: tasks, endpoints, declared bindings and secrets."""

    runtime: ClassVar[PluginRuntime] = PluginRuntime.SERVICE

    id: str
    meta: PluginMeta
    defaults: Mapping[str, Any] = field(default_factory=dict)
    lifecycle: PluginLifecycle = field(default_factory=PluginLifecycle)
    tasks: tuple[ScheduledTask, ...] = ()
    endpoints: tuple[ServiceEndpoint, ...] = ()
    # Names of host bindings and secrets the plugin may read
    bindings: tuple[str, ...] = ()
    secrets: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        validate_plugin_id(self.id)
        object.__setattr__(self, "defaults", _freeze_defaults(self.defaults))
        object.__setattr__(self, "tasks", tuple(self.tasks))
        object.__setattr__(self, "endpoints", tuple(self.endpoints))
        object.__setattr__(self, "bindings", tuple(self.bindings))
        object.__setattr__(self, "secrets", tuple(self.secrets))

        task_names = [t.name for t in self.tasks]
        if len(task_names) != len(set(task_names)):
            raise PluginRegistrationError(f"Duplicate task names in '{self.id}'", details={"tasks": task_names})
        routes = [e.route for e in self.endpoints]
        if len(routes) != len(set(routes)):
            raise PluginRegistrationError(
                f"Duplicate endpoints in '{self.id}'",
                details={"endpoints": [f"{m} {p}" for m, p in routes]},
            )


@dataclass(frozen=True)
class ClientPlugin:
    """Client-side plugin rendering into a mount point."""

    runtime: ClassVar[PluginRuntime] = PluginRuntime.CLIENT

    id: str
    meta: PluginMeta
    defaults: Mapping[str, Any] = field(default_factory=dict)
    lifecycle: PluginLifecycle = field(default_factory=PluginLifecycle)
    render: Hook | None = None
    destroy: Hook | None = None

    def __post_init__(self) -> None:
        validate_plugin_id(self.id)
        object.__setattr__(self, "defaults", _freeze_defaults(self.defaults))


PluginDefinition = Union[ServicePlugin, ClientPlugin]


@dataclass(frozen=True)
class PluginPair:
    """A service plugin and a client plugin shipped together with shared defaults."""

    service: ServicePlugin
    client: ClientPlugin
    defaults: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.service.id == self.client.id:
            raise PluginRegistrationError(
                "A plugin pair needs distinct ids for its service and client",
                details={"plugin_id": self.service.id},
            )
        object.__setattr__(self, "defaults", _freeze_defaults(self.defaults))

    def __iter__(self) -> Iterator[PluginDefinition]:
        yield self.service
        yield self.client


@dataclass(frozen=True)
class PluginContext:
    """Fields every plugin context carries. Built fresh for each invocation."""

    id: str
    config: Mapping[str, Any]
    logger: PluginLogger
    storage: PluginStorage
    env: Mapping[str, str]
    runtime: PluginRuntime


@dataclass(frozen=True)
class ServiceContext(PluginContext):
    bindings: Any
    secrets: Mapping[str, str]


@dataclass(frozen=True)
class ClientContext(PluginContext):
    services: Mapping[str, Any]
    bridge: Any
    mount: MountPoint | None = None
