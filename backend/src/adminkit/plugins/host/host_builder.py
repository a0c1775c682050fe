from __future__ import annotations

import os
from collections.abc import Awaitable, Callable, Iterable, Mapping
from types import MappingProxyType
from typing import Any

from ...core.config import get_settings_instance
from ...core.encryption import SecretsEncryptionService
from ...core.exceptions import SecretsEncryptionError
from ..base import ClientContext, ClientPlugin, PluginRequest, PluginRuntime, ServiceContext, ServicePlugin
from ..mount import MountPoint
from ._storage_ops import StorageBackend
from .base import ImmutableCapabilityMixin
from .exceptions import CapabilityDenied
from .log_capability import PluginLog
from .secrets_capability import SecretsCapability
from .storage_capability import PluginScopedStorage


class ServiceBindings:
    """Host objects a service plugin may reach, limited to the names it declared.

    Immutable after construction so a plugin cannot swap a binding or add an
    undeclared one. Reading an undeclared name raises ``CapabilityDenied``;
    a declared name the host does not provide reads as None.
    """

    __slots__ = ("_available", "_declared", "_plugin_id")

    def __init__(self, *, plugin_id: str, declared: Iterable[str], available: Mapping[str, Any]) -> None:
        declared_set = frozenset(declared)
        object.__setattr__(self, "_plugin_id", plugin_id)
        object.__setattr__(self, "_declared", declared_set)
        object.__setattr__(self, "_available", MappingProxyType({k: available.get(k) for k in declared_set}))

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("ServiceBindings attributes are immutable")

    def __delattr__(self, name: str) -> None:
        raise AttributeError("ServiceBindings attributes cannot be deleted")

    def __getattr__(self, name: str) -> Any:
        # Only reached for names that are not slots or methods
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def __getitem__(self, name: str) -> Any:
        if name not in object.__getattribute__(self, "_declared"):
            raise CapabilityDenied(name, object.__getattribute__(self, "_plugin_id"))
        return object.__getattribute__(self, "_available")[name]

    def __contains__(self, name: object) -> bool:
        return name in object.__getattribute__(self, "_declared")

    @property
    def declared(self) -> frozenset[str]:
        return object.__getattribute__(self, "_declared")


class ClientBridge(ImmutableCapabilityMixin):
    """Channel from a client plugin back to the host.

    ``emit`` publishes a fire-and-forget event; ``request`` calls a service
    plugin endpoint through the host dispatcher.
    """

    __slots__ = ("_emit", "_plugin_id", "_request")

    _plugin_id: str
    _emit: Callable[[str, str, Any], None]
    _request: Callable[[str, str, PluginRequest], Awaitable[Any]] | None

    def __init__(
        self,
        *,
        plugin_id: str,
        emit: Callable[[str, str, Any], None],
        request: Callable[[str, str, PluginRequest], Awaitable[Any]] | None = None,
    ) -> None:
        object.__setattr__(self, "_plugin_id", plugin_id)
        object.__setattr__(self, "_emit", emit)
        object.__setattr__(self, "_request", request)

    def emit(self, event: str, payload: Any = None) -> None:
        self._emit(self._plugin_id, event, payload)

    async def request(self, method: str, path: str, body: Any = None) -> Any:
        if self._request is None:
            raise CapabilityDenied("bridge.request", self._plugin_id)
        method = method.upper()
        return await self._request(method, path, PluginRequest(method=method, path=path, body=body))


def plugin_env(prefix: str, environ: Mapping[str, str] | None = None) -> Mapping[str, str]:
    """Environment variables visible to plugins: only those starting with ``prefix``."""
    source = os.environ if environ is None else environ
    return MappingProxyType({k: v for k, v in source.items() if k.startswith(prefix)})


class ContextBuilder:
    """Builds a fresh, immutable context for every plugin invocation."""

    def __init__(
        self,
        *,
        storage_backend: StorageBackend,
        encryption: SecretsEncryptionService | None = None,
        bindings: Mapping[str, Any] | None = None,
        environ: Mapping[str, str] | None = None,
        env_prefix: str | None = None,
        max_storage_bytes: int | None = None,
    ) -> None:
        settings = get_settings_instance()
        self.storage_backend = storage_backend
        self.encryption = encryption
        self.bindings = dict(bindings or {})
        self.env_prefix = env_prefix if env_prefix is not None else settings.plugin_env_prefix
        self.max_storage_bytes = max_storage_bytes
        self._environ = environ

    def _common(self, plugin_id: str, config: Mapping[str, Any], runtime: PluginRuntime) -> dict[str, Any]:
        return {
            "id": plugin_id,
            "config": MappingProxyType(dict(config)),
            "logger": PluginLog(plugin_id=plugin_id, runtime=runtime.value),
            "storage": PluginScopedStorage(
                plugin_id=plugin_id, backend=self.storage_backend, max_bytes=self.max_storage_bytes
            ),
            "env": plugin_env(self.env_prefix, self._environ),
            "runtime": runtime,
        }

    def secrets_for(self, plugin_id: str) -> SecretsCapability:
        if self.encryption is None:
            raise SecretsEncryptionError(f"no encryption key configured for secrets of '{plugin_id}'")
        return SecretsCapability(plugin_id=plugin_id, backend=self.storage_backend, encryption=self.encryption)

    async def service_context(self, plugin: ServicePlugin, config: Mapping[str, Any]) -> ServiceContext:
        secrets: Mapping[str, str | None] = MappingProxyType({})
        if plugin.secrets:
            secrets = await self.secrets_for(plugin.id).resolve(plugin.secrets)
        return ServiceContext(
            **self._common(plugin.id, config, PluginRuntime.SERVICE),
            bindings=ServiceBindings(plugin_id=plugin.id, declared=plugin.bindings, available=self.bindings),
            secrets=secrets,
        )

    def client_context(
        self,
        plugin: ClientPlugin,
        config: Mapping[str, Any],
        *,
        services: Mapping[str, Any],
        bridge: ClientBridge,
        mount: MountPoint | None = None,
    ) -> ClientContext:
        return ClientContext(
            **self._common(plugin.id, config, PluginRuntime.CLIENT),
            services=MappingProxyType(dict(services)),
            bridge=bridge,
            mount=mount,
        )
