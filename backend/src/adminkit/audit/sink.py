"""Audit sinks.

``AuditSink`` is the interface mutation code depends on. ``SqlAuditLog`` is the
default implementation: it persists one ``AuditLogEntry`` per event and reads
the log back through the data explorer query engine.
"""

from typing import Protocol, runtime_checkable

from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.logging import get_logger
from ..data.engine import QueryEngine
from ..data.store import translate_store_error
from ..models.audit_log import AuditLogEntry
from ..schemas.audit import AuditContext, AuditEvent, AuditLogQuery
from ..schemas.data import FilterOperator, FilterRule, QueryResult, SortSpec

logger = get_logger(__name__)

# Query parameter -> audit_log column
_SEARCH_FILTERS = {
    "event_type": "event_type",
    "resource_type": "resource_type",
    "resource_id": "resource_identifier",
    "actor_user_id": "actor_user_id",
}


@runtime_checkable
class AuditSink(Protocol):
    """Receives exactly one call per logically distinct change."""

    async def record(self, event: AuditEvent, context: AuditContext) -> None: ...


class SqlAuditLog:
    """Persist audit events to the ``audit_log`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], engine: QueryEngine):
        self._session_factory = session_factory
        self._engine = engine

    async def record(self, event: AuditEvent, context: AuditContext) -> None:
        entry = AuditLogEntry(
            actor_user_id=context.actor_user_id,
            event_type=event.event_type,
            resource_type=event.resource_type,
            resource_identifier=event.resource_id,
            # Row snapshots can hold datetimes/decimals that the JSON column cannot store as-is
            previous_values=jsonable_encoder(event.previous_values) if event.previous_values is not None else None,
            new_values=jsonable_encoder(event.new_values) if event.new_values is not None else None,
            event_metadata=jsonable_encoder(event.metadata) or None,
            ip_address=context.ip_address,
            user_agent=context.user_agent,
            occurred_at=event.occurred_at,
        )
        try:
            async with self._session_factory() as session:
                session.add(entry)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error(
                "Failed to write audit event",
                extra={"event_type": event.event_type, "resource_type": event.resource_type},
            )
            raise translate_store_error(e, "audit write") from e

        logger.debug(
            "Audit event recorded",
            extra={
                "event_type": event.event_type,
                "resource_type": event.resource_type,
                "resource_id": event.resource_id,
                "actor_user_id": context.actor_user_id,
            },
        )

    async def search(self, params: AuditLogQuery) -> QueryResult:
        """Newest-first page of audit entries matching ``params``."""
        filters = tuple(
            FilterRule(column=column, operator=FilterOperator.EQ, value=getattr(params, field))
            for field, column in _SEARCH_FILTERS.items()
            if getattr(params, field) is not None
        )
        return await self._engine.query_table(
            AuditLogEntry.__table__,
            filters=filters,
            sort=SortSpec(column="occurred_at", ascending=False),
            page=params.page,
            limit=params.limit,
            search=params.search,
        )
