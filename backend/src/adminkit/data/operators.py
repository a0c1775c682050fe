"""Filter operator dispatch.

Every ``FilterOperator`` maps to exactly one predicate builder in
``OPERATOR_PREDICATES``. A descriptor's rules are folded into a
``ComposedPredicate`` without mutating any builder state; the per-rule clauses
keep the order the rules were supplied in.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Table, Text, and_, cast, false, literal_column, or_, true
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.types import ARRAY, String, Uuid

from ..schemas.data import FilterOperator, FilterRule
from .store import resolve_column

PredicateBuilder = Callable[[ColumnElement[Any], Any], ColumnElement[bool]]

# Rendered verbatim so "= NULL" reaches the database instead of becoming "IS NULL"
_SQL_NULL = literal_column("NULL")


def _operand(value: Any) -> Any:
    return _SQL_NULL if value is None else value


def _eq(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    # SQL equality: comparing with NULL matches nothing, use ``is`` for NULL checks
    return column == _operand(value)


def _neq(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    return column != _operand(value)


def _gt(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    return column > value


def _gte(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    return column >= value


def _lt(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    return column < value


def _lte(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    return column <= value


def _like(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    return column.like(value)


def _ilike(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    return column.ilike(value)


def _in(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    return column.in_(list(value))


def _is(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    if value is None:
        return column.is_(None)
    return column.is_(true() if value else false())


def _contains(column: ColumnElement[Any], value: Any) -> ColumnElement[bool]:
    column_type = column.type
    if isinstance(column_type, ARRAY):
        items = list(value) if isinstance(value, (list, tuple)) else [value]
        return column.contains(items)
    if isinstance(column_type, JSONB):
        return column.contains(value)
    # Columns without containment operators fall back to a case-insensitive substring match
    return cast(column, Text).icontains(str(value))


OPERATOR_PREDICATES: dict[FilterOperator, PredicateBuilder] = {
    FilterOperator.EQ: _eq,
    FilterOperator.NEQ: _neq,
    FilterOperator.GT: _gt,
    FilterOperator.GTE: _gte,
    FilterOperator.LT: _lt,
    FilterOperator.LTE: _lte,
    FilterOperator.LIKE: _like,
    FilterOperator.ILIKE: _ilike,
    FilterOperator.IN: _in,
    FilterOperator.IS: _is,
    FilterOperator.CONTAINS: _contains,
}

_uncovered = set(FilterOperator) - set(OPERATOR_PREDICATES)
if _uncovered:
    raise RuntimeError(f"Filter operators without a predicate builder: {sorted(o.value for o in _uncovered)}")


def build_predicate(column: ColumnElement[Any], rule: FilterRule) -> ColumnElement[bool]:
    """Translate one rule into one store-level predicate."""
    return OPERATOR_PREDICATES[rule.operator](column, rule.value)


def _is_textual(column: ColumnElement[Any]) -> bool:
    return isinstance(column.type, (String, Uuid))


def search_predicate(columns: Iterable[ColumnElement[Any]], term: str) -> ColumnElement[bool] | None:
    """Case-insensitive match of ``term`` against any textual column, or None if there are none."""
    pattern = f"%{term}%"
    matches = [cast(column, Text).ilike(pattern) for column in columns if _is_textual(column)]
    if not matches:
        return None
    return or_(*matches)


@dataclass(frozen=True)
class ComposedPredicate:
    """Conjunction of per-rule clauses, in the order the rules were supplied."""

    clauses: tuple[ColumnElement[bool], ...] = ()

    @property
    def expression(self) -> ColumnElement[bool]:
        return and_(true(), *self.clauses)

    def __len__(self) -> int:
        return len(self.clauses)


def compose_predicate(
    table: Table,
    rules: Sequence[FilterRule],
    *,
    search: str | None = None,
) -> ComposedPredicate:
    """Fold ``rules`` (plus an optional free-text search) into one predicate."""
    clauses = tuple(build_predicate(resolve_column(table, rule.column), rule) for rule in rules)
    if search:
        searched = search_predicate(table.columns, search)
        if searched is not None:
            clauses = (*clauses, searched)
    return ComposedPredicate(clauses)
