"""Plugin storage model for plugin runtime state.

Provides key/value storage for plugins scoped by ``(plugin_id, namespace, key)``.
Namespaces separate ordinary plugin state (``storage``) from encrypted
credentials (``secret``).
"""

from sqlalchemy import JSON, Column, String, UniqueConstraint

from .base import BaseModel


class PluginStorageEntry(BaseModel):
    """Key/value row owned by exactly one plugin id.

    plugin_id: The plugin identifier (``"<namespace>/<name>"``).
    namespace: One of 'storage' or 'secret'.
    key: Arbitrary key within the (plugin, namespace) scope.
    value: JSON payload.
    """

    __tablename__ = "plugin_storage"

    plugin_id = Column(String(200), nullable=False, index=True)
    namespace = Column(String(50), nullable=False, index=True)
    key = Column(String(200), nullable=False, index=True)
    value = Column(JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("plugin_id", "namespace", "key", name="uq_plugin_storage_key"),
    )

    def __repr__(self) -> str:
        return f"<PluginStorageEntry(plugin={self.plugin_id}, ns={self.namespace}, key={self.key})>"
