"""Unit tests for DataMutationService audit behaviour.

The store and the audit sink are mocked so the tests can count audit events
exactly and simulate partial batch-delete failures.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import Column, Integer, MetaData, String, Table

from adminkit.core.exceptions import BatchDeleteError, RecordNotFoundError, StoreError
from adminkit.data.mutations import DataMutationService
from adminkit.schemas.audit import AuditContext, AuditEvent

ORDERS = Table(
    "orders",
    MetaData(),
    Column("id", Integer, primary_key=True),
    Column("status", String(20)),
    schema="public",
)

CTX = AuditContext(actor_user_id="user-1", ip_address="10.0.0.1", user_agent="pytest")


@pytest.fixture
def store():
    store = MagicMock()
    store.get_table = AsyncMock(return_value=ORDERS)
    store.insert_row = AsyncMock()
    store.update_row = AsyncMock()
    store.delete_row = AsyncMock()
    return store


@pytest.fixture
def audit():
    sink = MagicMock()
    sink.record = AsyncMock()
    return sink


@pytest.fixture
def service(store, audit) -> DataMutationService:
    return DataMutationService(store, audit)


def _events(audit) -> list[AuditEvent]:
    return [call.args[0] for call in audit.record.await_args_list]


@pytest.mark.asyncio
async def test_insert_emits_one_event_with_new_values(service, store, audit):
    store.insert_row.return_value = {"id": 7, "status": "open"}

    row = await service.insert_record("public", "orders", {"status": "open"}, CTX)

    assert row == {"id": 7, "status": "open"}
    (event,) = _events(audit)
    assert event.event_type == "data.insert"
    assert event.resource_type == "public.orders"
    assert event.resource_id == "7"
    assert event.new_values == {"id": 7, "status": "open"}
    assert event.previous_values is None
    assert audit.record.await_args.args[1] is CTX


@pytest.mark.asyncio
async def test_failed_insert_emits_nothing(service, store, audit):
    store.insert_row.side_effect = StoreError("down", error_code="STORE_UNAVAILABLE", status_code=503)

    with pytest.raises(StoreError):
        await service.insert_record("public", "orders", {"status": "open"}, CTX)
    audit.record.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_emits_both_snapshots(service, store, audit):
    store.update_row.return_value = ({"id": 3, "status": "open"}, {"id": 3, "status": "closed"})

    current = await service.update_record("public", "orders", 3, {"status": "closed"}, CTX)

    assert current == {"id": 3, "status": "closed"}
    (event,) = _events(audit)
    assert event.event_type == "data.update"
    assert event.resource_id == "3"
    assert event.previous_values == {"id": 3, "status": "open"}
    assert event.new_values == {"id": 3, "status": "closed"}


@pytest.mark.asyncio
async def test_update_of_missing_row(service, store, audit):
    store.update_row.return_value = None

    with pytest.raises(RecordNotFoundError):
        await service.update_record("public", "orders", 99, {"status": "closed"}, CTX)
    audit.record.assert_not_awaited()


@pytest.mark.asyncio
async def test_batch_delete_emits_one_event_per_row(service, store, audit):
    store.delete_row.return_value = 1

    result = await service.batch_delete("public", "orders", [1, 2, 3], CTX)

    assert result == {"deleted": 3}
    events = _events(audit)
    assert [e.resource_id for e in events] == ["1", "2", "3"]
    assert {e.event_type for e in events} == {"data.delete"}
    assert all(e.previous_values is None and e.new_values is None for e in events)


@pytest.mark.asyncio
async def test_batch_delete_with_one_failing_id(service, store, audit):
    """ids 1 and 3 are deleted and audited, 2 fails; the call still raises."""

    async def delete_row(table, record_id):
        if record_id == 2:
            raise StoreError("constraint", error_code="CONSTRAINT_VIOLATION", status_code=409)
        return 1

    store.delete_row.side_effect = delete_row

    with pytest.raises(BatchDeleteError) as exc_info:
        await service.batch_delete("public", "orders", [1, 2, 3], CTX)

    assert exc_info.value.details["failed_ids"] == ["2"]
    assert [e.resource_id for e in _events(audit)] == ["1", "3"]
    assert store.delete_row.await_count == 3


@pytest.mark.asyncio
async def test_batch_delete_of_missing_row_is_a_failure(service, store, audit):
    store.delete_row.side_effect = [1, 0]

    with pytest.raises(BatchDeleteError) as exc_info:
        await service.batch_delete("public", "orders", [1, 2], CTX)

    assert exc_info.value.details["failed_ids"] == ["2"]
    assert [e.resource_id for e in _events(audit)] == ["1"]


@pytest.mark.asyncio
async def test_audit_failure_propagates(service, store, audit):
    store.delete_row.return_value = 1
    audit.record.side_effect = StoreError("audit table unavailable")

    with pytest.raises(StoreError, match="audit table unavailable"):
        await service.batch_delete("public", "orders", [1, 2], CTX)
    assert store.delete_row.await_count == 1
