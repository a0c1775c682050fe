"""Table catalog for the data explorer: listing, description, field values."""

from collections.abc import Sequence
from typing import Any

from ..core.config import get_settings_instance
from ..core.exceptions import ValidationError
from ..core.logging import get_logger
from ..models import AuditLogEntry, PluginStorageEntry
from ..schemas.data import ColumnInfo, ForeignKeyInfo, TableDescription, TableRef
from .store import RecordStore

logger = get_logger(__name__)

# adminkit's own tables are never reachable through the explorer, whatever schema they live in
INTERNAL_TABLES = frozenset(model.__tablename__ for model in (AuditLogEntry, PluginStorageEntry))


class TableCatalog:
    """Read-only view over the tables exposed by the data explorer.

    ``ensure_exposed`` is the single allow-list check; the query and record
    routes call it before handing a table to the engine or the mutation service.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        schemas: Sequence[str] | None = None,
        field_values_limit: int | None = None,
    ):
        settings = get_settings_instance()
        self.store = store
        self.schemas = tuple(schemas if schemas is not None else settings.data_explorer_schemas)
        self.field_values_limit = field_values_limit or settings.data_field_values_limit

    def ensure_exposed(self, schema: str, table: str | None = None) -> None:
        if schema not in self.schemas:
            raise ValidationError(
                f"Schema '{schema}' is not exposed",
                details={"schema": schema, "allowed": list(self.schemas)},
            )
        if table in INTERNAL_TABLES:
            raise ValidationError(
                f"Table '{schema}.{table}' is not exposed",
                details={"schema": schema, "table": table},
            )

    async def list_tables(self) -> list[TableRef]:
        pairs = await self.store.list_tables(self.schemas)
        return [TableRef(schema=schema, table=table) for schema, table in pairs if table not in INTERNAL_TABLES]

    async def describe(self, schema: str, table: str) -> TableDescription:
        self.ensure_exposed(schema, table)
        raw = await self.store.describe_table(schema, table)
        columns = [
            ColumnInfo(
                name=col["name"],
                data_type=str(col["type"]),
                nullable=bool(col.get("nullable", True)),
                default=str(col["default"]) if col.get("default") is not None else None,
            )
            for col in raw["columns"]
        ]
        foreign_keys = [
            ForeignKeyInfo(
                column=local,
                foreign_schema=fk.get("referred_schema"),
                foreign_table=fk["referred_table"],
                foreign_column=remote,
            )
            for fk in raw["foreign_keys"]
            for local, remote in zip(fk["constrained_columns"], fk["referred_columns"], strict=False)
        ]
        return TableDescription(
            schema=schema,
            table=table,
            columns=columns,
            primary_key=list(raw["primary_key"]),
            foreign_keys=foreign_keys,
        )

    async def field_values(self, schema: str, table: str, column: str, search: str | None = None) -> list[Any]:
        """Distinct non-null values of one column, for filter pickers."""
        self.ensure_exposed(schema, table)
        target = await self.store.get_table(schema, table)
        term = search.strip() if search else None
        return await self.store.distinct_values(target, column, search=term or None, limit=self.field_values_limit)

    async def overview(self) -> list[dict[str, Any]]:
        """Row count of every listed table."""
        overview = []
        for ref in await self.list_tables():
            target = await self.store.get_table(ref.schema_name, ref.table)
            overview.append(
                {"schema": ref.schema_name, "table": ref.table, "rows": await self.store.count_rows(target)}
            )
        logger.debug("Computed table overview", extra={"tables": len(overview)})
        return overview
