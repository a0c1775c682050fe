from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from types import MappingProxyType

from ...core.encryption import SecretsEncryptionService
from ._storage_ops import StorageBackend
from .base import ImmutableCapabilityMixin

logger = logging.getLogger(__name__)


class SecretsCapability(ImmutableCapabilityMixin):
    """Encrypted KV store for credentials scoped per plugin.

    Backed by the storage backend with ``namespace='secret'``. Values are
    Fernet-encrypted so nothing is stored in plaintext. Service plugins never
    see this object; they receive the read-only mapping built by ``resolve``.
    """

    __slots__ = ("_backend", "_enc", "_plugin_id")
    NAMESPACE = "secret"

    _plugin_id: str
    _backend: StorageBackend
    _enc: SecretsEncryptionService

    def __init__(self, *, plugin_id: str, backend: StorageBackend, encryption: SecretsEncryptionService):
        object.__setattr__(self, "_plugin_id", plugin_id)
        object.__setattr__(self, "_backend", backend)
        object.__setattr__(self, "_enc", encryption)

    async def set(self, key: str, value: str) -> None:
        enc = self._enc.encrypt(value)
        await self._backend.set(self._plugin_id, self.NAMESPACE, key, {"v": enc})
        logger.info("host.secrets.set", extra={"plugin_id": self._plugin_id, "key": key})

    async def get(self, key: str) -> str | None:
        raw = await self._backend.get(self._plugin_id, self.NAMESPACE, key)
        if not raw or not raw.get("v"):
            return None
        return self._enc.decrypt(raw["v"])

    async def delete(self, key: str) -> None:
        await self._backend.delete(self._plugin_id, self.NAMESPACE, key)
        logger.info("host.secrets.delete", extra={"plugin_id": self._plugin_id, "key": key})

    async def keys(self) -> list[str]:
        return await self._backend.list_keys(self._plugin_id, self.NAMESPACE)

    async def resolve(self, names: Iterable[str]) -> Mapping[str, str | None]:
        """Decrypt the declared secrets into a read-only mapping; unset names map to None."""
        resolved = {name: await self.get(name) for name in names}
        return MappingProxyType(resolved)
