"""Record mutations with audit trail.

Each logically distinct change produces exactly one audit event, emitted only
after the store has confirmed the change. Batch deletes run one row at a time
for that reason.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from ..audit.sink import AuditSink
from ..core.exceptions import AdminKitException, BatchDeleteError, RecordNotFoundError
from ..core.logging import get_logger
from ..schemas.audit import AuditContext, AuditEvent, AuditEventType
from .store import RecordStore, primary_key_column

logger = get_logger(__name__)


def _resource_type(schema: str, table: str) -> str:
    return f"{schema}.{table}"


class DataMutationService:
    """Insert, update and batch-delete rows of arbitrary tables."""

    def __init__(self, store: RecordStore, audit: AuditSink):
        self.store = store
        self.audit = audit

    async def insert_record(
        self, schema: str, table: str, values: Mapping[str, Any], audit_ctx: AuditContext
    ) -> dict[str, Any]:
        target = await self.store.get_table(schema, table)
        row = await self.store.insert_row(target, values)

        record_id = row.get(primary_key_column(target).name)
        await self.audit.record(
            AuditEvent(
                event_type=AuditEventType.DATA_INSERT.value,
                resource_type=_resource_type(schema, table),
                resource_id=str(record_id) if record_id is not None else None,
                new_values=row,
            ),
            audit_ctx,
        )
        logger.info("Record inserted", extra={"schema": schema, "table": table, "record_id": record_id})
        return row

    async def update_record(
        self,
        schema: str,
        table: str,
        record_id: Any,
        values: Mapping[str, Any],
        audit_ctx: AuditContext,
    ) -> dict[str, Any]:
        target = await self.store.get_table(schema, table)
        snapshots = await self.store.update_row(target, record_id, values)
        if snapshots is None:
            raise RecordNotFoundError(_resource_type(schema, table), record_id)

        previous, current = snapshots
        await self.audit.record(
            AuditEvent(
                event_type=AuditEventType.DATA_UPDATE.value,
                resource_type=_resource_type(schema, table),
                resource_id=str(record_id),
                previous_values=previous,
                new_values=current,
            ),
            audit_ctx,
        )
        logger.info("Record updated", extra={"schema": schema, "table": table, "record_id": record_id})
        return current

    async def batch_delete(
        self, schema: str, table: str, ids: Sequence[Any], audit_ctx: AuditContext
    ) -> dict[str, int]:
        """Delete ``ids`` one by one.

        An id that is missing or whose delete fails gets no audit event. The
        remaining ids are still attempted, then one ``BatchDeleteError`` naming
        every failed id is raised; there is no partial-success result.
        """
        target = await self.store.get_table(schema, table)
        resource_type = _resource_type(schema, table)
        deleted = 0
        failed: list[Any] = []

        for record_id in ids:
            try:
                confirmed = await self.store.delete_row(target, record_id)
            except AdminKitException as e:
                logger.warning(
                    "Delete failed",
                    extra={"resource_type": resource_type, "record_id": record_id, "error_code": e.error_code},
                )
                failed.append(record_id)
                continue

            if confirmed < 1:
                logger.warning("Delete matched no row", extra={"resource_type": resource_type, "record_id": record_id})
                failed.append(record_id)
                continue

            deleted += 1
            await self.audit.record(
                AuditEvent(
                    event_type=AuditEventType.DATA_DELETE.value,
                    resource_type=resource_type,
                    resource_id=str(record_id),
                ),
                audit_ctx,
            )

        if failed:
            raise BatchDeleteError(resource_type, failed)

        logger.info("Batch delete completed", extra={"resource_type": resource_type, "deleted": deleted})
        return {"deleted": deleted}
