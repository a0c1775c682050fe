"""Query engine for the data explorer.

Turns a validated ``QueryDescriptor`` into one filtered, sorted page plus the
post-filter row count. The engine keeps no state of its own besides the store
handle, so one instance can serve concurrent requests.
"""

from collections.abc import Sequence
from typing import Any

from sqlalchemy import Table

from ..core.config import get_settings_instance
from ..core.exceptions import ValidationError
from ..core.logging import LoggerMixin
from ..schemas.data import FilterRule, QueryDescriptor, QueryResult, SortSpec
from .operators import compose_predicate
from .pagination import row_range
from .store import RecordStore, resolve_column


class QueryEngine(LoggerMixin):
    """Executes query descriptors against a ``RecordStore``."""

    def __init__(self, store: RecordStore, *, max_limit: int | None = None):
        self._store = store
        self._max_limit = max_limit if max_limit is not None else get_settings_instance().data_max_page_size

    @property
    def store(self) -> RecordStore:
        return self._store

    async def query(self, descriptor: QueryDescriptor) -> QueryResult:
        # Descriptors built with model_construct skip validation, so re-check the identifiers
        if not (descriptor.schema_name or "").strip() or not (descriptor.table or "").strip():
            raise ValidationError("schema and table are required", details={"fields": ["schema", "table"]})

        table = await self._store.get_table(descriptor.schema_name, descriptor.table)
        return await self.query_table(
            table,
            filters=descriptor.filters,
            sort=descriptor.sort,
            page=descriptor.page,
            limit=descriptor.limit,
            search=descriptor.search,
        )

    async def query_table(
        self,
        table: Table,
        *,
        filters: Sequence[FilterRule] = (),
        sort: SortSpec | None = None,
        page: int = 1,
        limit: int = 20,
        search: str | None = None,
    ) -> QueryResult:
        """Run a query against an already resolved table."""
        if limit > self._max_limit:
            raise ValidationError(
                f"limit must not exceed {self._max_limit}",
                details={"limit": limit, "max_limit": self._max_limit},
            )

        predicate = compose_predicate(table, filters, search=search)
        order_by: Any = None
        if sort is not None:
            column = resolve_column(table, sort.column)
            order_by = column.asc() if sort.ascending else column.desc()

        start, end = row_range(page, limit)
        total, rows = await self._store.fetch_page(
            table,
            predicate.expression,
            order_by=order_by,
            offset=start,
            limit=end - start + 1,
        )
        self.logger.debug(
            "Query executed",
            extra={
                "table": table.fullname,
                "filters": len(predicate),
                "page": page,
                "limit": limit,
                "total": total,
            },
        )
        return QueryResult(data=rows, total=total, page=page, limit=limit)
