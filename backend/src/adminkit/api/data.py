"""Data explorer API endpoints.

Request bodies arrive untyped and are validated against the strict request
grammar before anything reaches the query engine or the record store.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Path, Query, Request

from ..audit.context import audit_context_from_request
from ..auth.permissions import RECORD_WRITE_PERMISSIONS, Actor, record_write_flags, require_permission
from ..core.logging import get_logger
from ..core.response import AdminKitResponse
from ..data.catalog import TableCatalog
from ..data.engine import QueryEngine
from ..data.mutations import DataMutationService
from ..schemas.data import (
    BatchDeleteRequest,
    QueryDescriptor,
    RecordInsertRequest,
    RecordUpdateRequest,
    TablePermissions,
    parse_request,
)
from .dependencies import get_catalog, get_mutations, get_query_engine

logger = get_logger(__name__)
router = APIRouter(prefix="/data", tags=["data"])

QUERY_PERMISSIONS = ("data.query.execute", "dashboards.manage", "cms.entries.read")
OVERVIEW_PERMISSIONS = ("data.overview.read", "cms.collections.read", "dashboards.read")


@router.post("/query", summary="Run a data explorer query")
async def run_query(
    payload: Any = Body(...),
    actor: Actor = Depends(require_permission(*QUERY_PERMISSIONS)),
    engine: QueryEngine = Depends(get_query_engine),
    catalog: TableCatalog = Depends(get_catalog),
):
    """Filter, sort and paginate one table.

    Returns ``{data, total, page, limit, hasMore}`` inside the standard envelope.
    """
    descriptor = parse_request(QueryDescriptor, payload)
    catalog.ensure_exposed(descriptor.schema_name, descriptor.table)
    logger.info(
        "Data query",
        extra={
            "user_id": actor.user_id,
            "schema": descriptor.schema_name,
            "table": descriptor.table,
            "filters": len(descriptor.filters),
            "page": descriptor.page,
        },
    )
    result = await engine.query(descriptor)
    return AdminKitResponse.success(result)


@router.get("/tables", summary="List explorable tables")
async def list_tables(
    actor: Actor = Depends(require_permission(*QUERY_PERMISSIONS)),
    catalog: TableCatalog = Depends(get_catalog),
):
    return AdminKitResponse.success(await catalog.list_tables())


@router.get("/tables/{schema}/{table}", summary="Describe a table")
async def describe_table(
    schema: str = Path(..., min_length=1),
    table: str = Path(..., min_length=1),
    actor: Actor = Depends(require_permission(*QUERY_PERMISSIONS)),
    catalog: TableCatalog = Depends(get_catalog),
):
    return AdminKitResponse.success(await catalog.describe(schema, table))


@router.get("/tables/{schema}/{table}/values/{column}", summary="Distinct values of a column")
async def field_values(
    schema: str = Path(..., min_length=1),
    table: str = Path(..., min_length=1),
    column: str = Path(..., min_length=1),
    search: str | None = Query(None, description="Case-insensitive substring filter"),
    actor: Actor = Depends(require_permission(*QUERY_PERMISSIONS)),
    catalog: TableCatalog = Depends(get_catalog),
):
    values = await catalog.field_values(schema, table, column, search)
    return AdminKitResponse.success({"column": column, "values": values})


@router.get("/tables/{schema}/{table}/permissions", summary="Record writes the caller may perform")
async def table_permissions(
    schema: str = Path(..., min_length=1),
    table: str = Path(..., min_length=1),
    actor: Actor = Depends(require_permission(*QUERY_PERMISSIONS)),
    catalog: TableCatalog = Depends(get_catalog),
):
    catalog.ensure_exposed(schema, table)
    return AdminKitResponse.success(TablePermissions(**record_write_flags(actor)))


@router.get("/overview", summary="Row counts per table")
async def overview(
    actor: Actor = Depends(require_permission(*OVERVIEW_PERMISSIONS)),
    catalog: TableCatalog = Depends(get_catalog),
):
    return AdminKitResponse.success(await catalog.overview())


@router.post("/records", summary="Insert a record")
async def insert_record(
    request: Request,
    payload: Any = Body(...),
    actor: Actor = Depends(require_permission(RECORD_WRITE_PERMISSIONS["create"])),
    mutations: DataMutationService = Depends(get_mutations),
    catalog: TableCatalog = Depends(get_catalog),
):
    body = parse_request(RecordInsertRequest, payload)
    catalog.ensure_exposed(body.schema_name, body.table)
    row = await mutations.insert_record(
        body.schema_name, body.table, body.values, audit_context_from_request(request, actor.user_id)
    )
    return AdminKitResponse.created(row)


@router.patch("/records", summary="Update a record")
async def update_record(
    request: Request,
    payload: Any = Body(...),
    actor: Actor = Depends(require_permission(RECORD_WRITE_PERMISSIONS["update"])),
    mutations: DataMutationService = Depends(get_mutations),
    catalog: TableCatalog = Depends(get_catalog),
):
    body = parse_request(RecordUpdateRequest, payload)
    catalog.ensure_exposed(body.schema_name, body.table)
    row = await mutations.update_record(
        body.schema_name, body.table, body.id, body.values, audit_context_from_request(request, actor.user_id)
    )
    return AdminKitResponse.success(row)


@router.post("/records/batch-delete", summary="Delete several records")
async def batch_delete(
    request: Request,
    payload: Any = Body(...),
    actor: Actor = Depends(require_permission(RECORD_WRITE_PERMISSIONS["delete"])),
    mutations: DataMutationService = Depends(get_mutations),
    catalog: TableCatalog = Depends(get_catalog),
):
    body = parse_request(BatchDeleteRequest, payload)
    catalog.ensure_exposed(body.schema_name, body.table)
    result = await mutations.batch_delete(
        body.schema_name, body.table, body.ids, audit_context_from_request(request, actor.user_id)
    )
    return AdminKitResponse.success(result)
