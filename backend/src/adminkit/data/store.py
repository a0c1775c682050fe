"""Record store over an async SQLAlchemy engine.

Tables are reflected on first use and cached per store. Every driver failure
is re-raised as a ``StoreError`` with the original exception chained; nothing
here retries or substitutes a fallback value.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

from sqlalchemy import MetaData, Table, Text, cast, delete, func, insert, inspect, select, update
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    InterfaceError,
    NoSuchTableError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlalchemy.sql.elements import ColumnElement

from ..core.exceptions import StoreError, TableNotFoundError, UnknownColumnError, ValidationError
from ..core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def translate_store_error(exc: SQLAlchemyError, operation: str) -> StoreError:
    """Map a SQLAlchemy failure onto the store error taxonomy."""
    if isinstance(exc, IntegrityError):
        return StoreError(
            f"Constraint violation during {operation}",
            error_code="CONSTRAINT_VIOLATION",
            status_code=409,
            details={"operation": operation, "reason": str(exc.orig)},
        )
    if isinstance(exc, (OperationalError, InterfaceError)) or (
        isinstance(exc, DBAPIError) and exc.connection_invalidated
    ):
        return StoreError(
            f"Record store unavailable during {operation}",
            error_code="STORE_UNAVAILABLE",
            status_code=503,
            details={"operation": operation, "reason": str(exc)},
        )
    return StoreError(
        f"Record store failure during {operation}",
        details={"operation": operation, "reason": str(exc)},
    )


def resolve_column(table: Table, name: str) -> ColumnElement[Any]:
    column = table.columns.get(name)
    if column is None:
        raise UnknownColumnError(table.fullname, name)
    return column


def primary_key_column(table: Table) -> ColumnElement[Any]:
    """Single-column primary key, falling back to an ``id`` column for keyless views."""
    pk = list(table.primary_key.columns)
    if len(pk) == 1:
        return pk[0]
    if len(pk) > 1:
        raise ValidationError(
            f"Table '{table.fullname}' has a composite primary key",
            details={"table": table.fullname, "primary_key": [c.name for c in pk]},
        )
    return resolve_column(table, "id")


def writable_values(table: Table, values: Mapping[str, Any]) -> dict[str, Any]:
    """Keep only the keys that are columns of ``table``."""
    writable = {k: v for k, v in values.items() if k in table.columns}
    if not writable:
        raise ValidationError(
            f"No writable columns for '{table.fullname}'",
            details={"table": table.fullname, "columns": sorted(values)},
        )
    dropped = sorted(set(values) - set(writable))
    if dropped:
        logger.debug("Ignoring unknown columns", extra={"table": table.fullname, "dropped": ",".join(dropped)})
    return writable


def _row_dict(row: Any) -> dict[str, Any]:
    return dict(row._mapping)


class RecordStore:
    """Reflection and row access for arbitrary ``schema.table`` pairs."""

    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._metadata = MetaData()
        self._tables: dict[tuple[str | None, str], Table] = {}
        self._reflect_lock = asyncio.Lock()

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def get_table(self, schema: str | None, table: str) -> Table:
        key = (schema, table)
        cached = self._tables.get(key)
        if cached is not None:
            return cached

        async with self._reflect_lock:
            cached = self._tables.get(key)
            if cached is not None:
                return cached

            def _reflect(sync_conn: Any) -> Table:
                return Table(table, self._metadata, schema=schema, autoload_with=sync_conn)

            try:
                async with self._engine.connect() as conn:
                    reflected = await conn.run_sync(_reflect)
            except NoSuchTableError as e:
                raise TableNotFoundError(schema or "", table) from e
            except SQLAlchemyError as e:
                raise translate_store_error(e, "reflect") from e

            self._tables[key] = reflected
            logger.debug(
                "Reflected table",
                extra={"schema": schema, "table": table, "columns": len(reflected.columns)},
            )
            return reflected

    def forget(self, schema: str | None, table: str) -> None:
        """Drop a cached reflection so the next access re-reads the table definition."""
        cached = self._tables.pop((schema, table), None)
        if cached is not None:
            self._metadata.remove(cached)

    async def fetch_page(
        self,
        table: Table,
        predicate: ColumnElement[bool],
        *,
        order_by: ColumnElement[Any] | None,
        offset: int,
        limit: int,
    ) -> tuple[int, list[dict[str, Any]]]:
        """Count matching rows and read one page inside the same transaction."""
        count_stmt = select(func.count()).select_from(table).where(predicate)
        page_stmt = select(table).where(predicate)
        if order_by is not None:
            page_stmt = page_stmt.order_by(order_by)
        page_stmt = page_stmt.offset(offset).limit(limit)

        try:
            async with self._engine.begin() as conn:
                total = (await conn.execute(count_stmt)).scalar_one()
                rows = (await conn.execute(page_stmt)).all()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "query") from e
        return int(total), [_row_dict(r) for r in rows]

    async def count_rows(self, table: Table, predicate: ColumnElement[bool] | None = None) -> int:
        stmt = select(func.count()).select_from(table)
        if predicate is not None:
            stmt = stmt.where(predicate)
        try:
            async with self._engine.connect() as conn:
                total = (await conn.execute(stmt)).scalar_one()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "count") from e
        return int(total)

    async def get_row(self, table: Table, record_id: Any) -> dict[str, Any] | None:
        pk = primary_key_column(table)
        try:
            async with self._engine.connect() as conn:
                row = (await conn.execute(select(table).where(pk == record_id))).first()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "read") from e
        return _row_dict(row) if row is not None else None

    async def insert_row(self, table: Table, values: Mapping[str, Any]) -> dict[str, Any]:
        values = writable_values(table, values)
        stmt = insert(table).values(**values)
        returning = self._engine.dialect.insert_returning
        if returning:
            stmt = stmt.returning(*table.columns)
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(stmt)
                if returning:
                    return _row_dict(result.one())
                inserted_pk = result.inserted_primary_key
        except SQLAlchemyError as e:
            raise translate_store_error(e, "insert") from e

        row = dict(values)
        if inserted_pk is not None:
            for column, value in zip(table.primary_key.columns, inserted_pk, strict=False):
                row.setdefault(column.name, value)
        return row

    async def update_row(
        self, table: Table, record_id: Any, values: Mapping[str, Any]
    ) -> tuple[dict[str, Any], dict[str, Any]] | None:
        """Update one row; returns ``(previous, current)`` or None if the row does not exist.

        The previous snapshot is read in the same transaction as the update.
        """
        values = writable_values(table, values)
        pk = primary_key_column(table)
        try:
            async with self._engine.begin() as conn:
                previous = (await conn.execute(select(table).where(pk == record_id))).first()
                if previous is None:
                    return None
                await conn.execute(update(table).where(pk == record_id).values(**values))
                current = (await conn.execute(select(table).where(pk == record_id))).one()
        except SQLAlchemyError as e:
            raise translate_store_error(e, "update") from e
        return _row_dict(previous), _row_dict(current)

    async def delete_row(self, table: Table, record_id: Any) -> int:
        """Delete one row by primary key and return the confirmed row count."""
        pk = primary_key_column(table)
        try:
            async with self._engine.begin() as conn:
                result = await conn.execute(delete(table).where(pk == record_id))
        except SQLAlchemyError as e:
            raise translate_store_error(e, "delete") from e
        return result.rowcount or 0

    async def distinct_values(
        self,
        table: Table,
        column_name: str,
        *,
        search: str | None = None,
        limit: int,
    ) -> list[Any]:
        column = resolve_column(table, column_name)
        stmt = select(column).distinct().where(column.is_not(None))
        if search:
            stmt = stmt.where(cast(column, Text).ilike(f"%{search}%"))
        stmt = stmt.order_by(column).limit(limit)
        try:
            async with self._engine.connect() as conn:
                return list((await conn.execute(stmt)).scalars().all())
        except SQLAlchemyError as e:
            raise translate_store_error(e, "distinct values") from e

    async def _inspect(self, fn: Callable[[Any], T], operation: str) -> T:
        try:
            async with self._engine.connect() as conn:
                return await conn.run_sync(lambda sync_conn: fn(inspect(sync_conn)))
        except NoSuchTableError:
            raise
        except SQLAlchemyError as e:
            raise translate_store_error(e, operation) from e

    async def list_tables(self, schemas: Sequence[str]) -> list[tuple[str, str]]:
        """``(schema, table)`` pairs for every table in the given schemas that exist."""

        def _collect(inspector: Any) -> list[tuple[str, str]]:
            available = set(inspector.get_schema_names())
            found: list[tuple[str, str]] = []
            for schema in schemas:
                if schema not in available:
                    continue
                found.extend((schema, name) for name in sorted(inspector.get_table_names(schema=schema)))
            return found

        return await self._inspect(_collect, "list tables")

    async def describe_table(self, schema: str, table: str) -> dict[str, Any]:
        def _describe(inspector: Any) -> dict[str, Any]:
            return {
                "columns": inspector.get_columns(table, schema=schema),
                "primary_key": inspector.get_pk_constraint(table, schema=schema).get("constrained_columns") or [],
                "foreign_keys": inspector.get_foreign_keys(table, schema=schema),
            }

        try:
            return await self._inspect(_describe, "describe table")
        except NoSuchTableError as e:
            raise TableNotFoundError(schema, table) from e
