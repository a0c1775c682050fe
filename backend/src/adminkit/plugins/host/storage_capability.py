from __future__ import annotations

import json
from typing import Any

from ...core.config import get_settings_instance
from ...core.exceptions import StorageQuotaExceeded
from ._storage_ops import StorageBackend
from .base import ImmutableCapabilityMixin


class PluginScopedStorage(ImmutableCapabilityMixin):
    """Small-object JSON storage scoped to one plugin id. Not for large blobs.

    Values must be JSON serializable; the encoded size is capped by
    ``plugin_storage_max_bytes``. Immutable so a plugin cannot re-point it at
    another plugin's id.
    """

    __slots__ = ("_backend", "_max_bytes", "_plugin_id")
    NAMESPACE = "storage"

    _plugin_id: str
    _backend: StorageBackend
    _max_bytes: int

    def __init__(self, *, plugin_id: str, backend: StorageBackend, max_bytes: int | None = None):
        object.__setattr__(self, "_plugin_id", plugin_id)
        object.__setattr__(self, "_backend", backend)
        if max_bytes is None:
            max_bytes = get_settings_instance().plugin_storage_max_bytes
        object.__setattr__(self, "_max_bytes", int(max_bytes))

    @property
    def plugin_id(self) -> str:
        return self._plugin_id

    async def get(self, key: str) -> Any | None:
        raw = await self._backend.get(self._plugin_id, self.NAMESPACE, key)
        return raw.get("json") if raw else None

    async def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise ValueError(f"storage value for '{key}' is not JSON serializable: {e}") from e
        size = len(payload.encode("utf-8"))
        if self._max_bytes and size > self._max_bytes:
            raise StorageQuotaExceeded(size, self._max_bytes)
        await self._backend.set(self._plugin_id, self.NAMESPACE, key, {"json": json.loads(payload)})

    async def delete(self, key: str) -> None:
        await self._backend.delete(self._plugin_id, self.NAMESPACE, key)

    async def list(self, prefix: str | None = None) -> list[str]:
        return await self._backend.list_keys(self._plugin_id, self.NAMESPACE, prefix)
