"""Host capabilities handed to plugins through their contexts."""

from ._storage_ops import InMemoryStorageBackend, SqlStorageBackend, StorageBackend
from .exceptions import CapabilityDenied
from .host_builder import ClientBridge, ContextBuilder, ServiceBindings, plugin_env
from .log_capability import PluginLog
from .secrets_capability import SecretsCapability
from .storage_capability import PluginScopedStorage

__all__ = [
    "CapabilityDenied",
    "ClientBridge",
    "ContextBuilder",
    "InMemoryStorageBackend",
    "PluginLog",
    "PluginScopedStorage",
    "SecretsCapability",
    "ServiceBindings",
    "SqlStorageBackend",
    "StorageBackend",
    "plugin_env",
]
