"""Unit tests for TableCatalog."""

import pytest

from adminkit.core.exceptions import UnknownColumnError, ValidationError
from adminkit.data.catalog import TableCatalog


@pytest.fixture
def catalog(record_store) -> TableCatalog:
    return TableCatalog(record_store, schemas=["main"], field_values_limit=2)


@pytest.mark.asyncio
async def test_list_tables(catalog):
    tables = await catalog.list_tables()
    assert [(t.schema_name, t.table) for t in tables] == [("main", "widgets")]
    assert tables[0].model_dump(by_alias=True) == {"schema": "main", "table": "widgets"}


@pytest.mark.asyncio
async def test_describe(catalog):
    description = await catalog.describe("main", "widgets")

    assert description.primary_key == ["id"]
    by_name = {c.name: c for c in description.columns}
    assert set(by_name) == {"id", "name", "colour", "active", "note"}
    assert by_name["note"].nullable is True
    assert by_name["name"].nullable is False
    assert "VARCHAR" in by_name["name"].data_type


@pytest.mark.asyncio
async def test_schema_outside_the_allow_list(catalog):
    with pytest.raises(ValidationError) as exc_info:
        await catalog.describe("temp", "widgets")
    assert exc_info.value.details["allowed"] == ["main"]


@pytest.mark.asyncio
async def test_field_values_are_capped(catalog):
    assert await catalog.field_values("main", "widgets", "colour") == ["blue", "green"]


@pytest.mark.asyncio
async def test_field_values_search(catalog):
    assert await catalog.field_values("main", "widgets", "colour", search="  re ") == ["green", "red"]


@pytest.mark.asyncio
async def test_field_values_unknown_column(catalog):
    with pytest.raises(UnknownColumnError):
        await catalog.field_values("main", "widgets", "weight")


@pytest.mark.asyncio
async def test_overview_counts_rows(catalog):
    assert await catalog.overview() == [{"schema": "main", "table": "widgets", "rows": 27}]


@pytest.mark.parametrize("table", ["audit_log", "plugin_storage"])
def test_internal_tables_are_never_exposed(catalog, table):
    with pytest.raises(ValidationError) as exc_info:
        catalog.ensure_exposed("main", table)
    assert exc_info.value.details == {"schema": "main", "table": table}


def test_exposed_table_passes(catalog):
    catalog.ensure_exposed("main", "widgets")
