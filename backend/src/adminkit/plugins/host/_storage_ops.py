"""Storage backends behind plugin storage and secrets.

Entries are keyed by ``(plugin_id, namespace, key)``. Namespaces keep ordinary
plugin state (``storage``) apart from encrypted credentials (``secret``).
Each operation touches exactly one key; there are no cross-key transactions.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ...core.exceptions import ValidationError
from ...data.store import translate_store_error
from ...models.base import utc_now
from ...models.plugin_storage import PluginStorageEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class StorageBackend(Protocol):
    async def get(self, plugin_id: str, namespace: str, key: str) -> Any | None: ...

    async def set(self, plugin_id: str, namespace: str, key: str, value: Any) -> None: ...

    async def delete(self, plugin_id: str, namespace: str, key: str) -> None: ...

    async def list_keys(self, plugin_id: str, namespace: str, prefix: str | None = None) -> list[str]: ...


class InMemoryStorageBackend:
    """Process-local backend, used when no database is configured and in tests."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str, str], Any] = {}
        self._lock = asyncio.Lock()

    async def get(self, plugin_id: str, namespace: str, key: str) -> Any | None:
        async with self._lock:
            return self._entries.get((plugin_id, namespace, key))

    async def set(self, plugin_id: str, namespace: str, key: str, value: Any) -> None:
        async with self._lock:
            self._entries[(plugin_id, namespace, key)] = value

    async def delete(self, plugin_id: str, namespace: str, key: str) -> None:
        async with self._lock:
            self._entries.pop((plugin_id, namespace, key), None)

    async def list_keys(self, plugin_id: str, namespace: str, prefix: str | None = None) -> list[str]:
        async with self._lock:
            keys = [k for (pid, ns, k) in self._entries if pid == plugin_id and ns == namespace]
        if prefix:
            keys = [k for k in keys if k.startswith(prefix)]
        return sorted(keys)


def _where(plugin_id: str, namespace: str, key: str | None = None) -> list[Any]:
    conditions = [
        PluginStorageEntry.plugin_id == plugin_id,
        PluginStorageEntry.namespace == namespace,
    ]
    if key is not None:
        conditions.append(PluginStorageEntry.key == key)
    return conditions


# Dialects with INSERT .. ON CONFLICT; the unique key makes the write a single atomic statement
_UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _upsert(dialect: str, plugin_id: str, namespace: str, key: str, value: Any) -> Any:
    insert = _UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise ValidationError(
            f"Plugin storage does not support the '{dialect}' dialect",
            details={"dialect": dialect, "supported": sorted(_UPSERT_INSERTS)},
        )
    stmt = insert(PluginStorageEntry).values(plugin_id=plugin_id, namespace=namespace, key=key, value=value)
    return stmt.on_conflict_do_update(
        index_elements=["plugin_id", "namespace", "key"],
        set_={"value": stmt.excluded.value, "updated_at": utc_now()},
    )


class SqlStorageBackend:
    """Backend over the ``plugin_storage`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, plugin_id: str, namespace: str, key: str) -> Any | None:
        try:
            async with self._session_factory() as db:
                res = await db.execute(select(PluginStorageEntry.value).where(*_where(plugin_id, namespace, key)))
                return res.scalars().first()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "plugin storage get") from e

    async def set(self, plugin_id: str, namespace: str, key: str, value: Any) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(_upsert(db.bind.dialect.name, plugin_id, namespace, key, value))
                await db.commit()
        except SQLAlchemyError as e:
            logger.warning(
                "Plugin storage write failed",
                extra={"plugin_id": plugin_id, "namespace": namespace, "key": key},
            )
            raise translate_store_error(e, "plugin storage set") from e

    async def delete(self, plugin_id: str, namespace: str, key: str) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(sa_delete(PluginStorageEntry).where(*_where(plugin_id, namespace, key)))
                await db.commit()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "plugin storage delete") from e

    async def list_keys(self, plugin_id: str, namespace: str, prefix: str | None = None) -> list[str]:
        stmt = select(PluginStorageEntry.key).where(*_where(plugin_id, namespace))
        if prefix:
            stmt = stmt.where(PluginStorageEntry.key.startswith(prefix, autoescape=True))
        try:
            async with self._session_factory() as db:
                res = await db.execute(stmt.order_by(PluginStorageEntry.key))
                return [row[0] for row in res.all()]
        except SQLAlchemyError as e:
            raise translate_store_error(e, "plugin storage list") from e
