"""Unit tests for filter operator dispatch and predicate composition.

SQL is compiled against the PostgreSQL dialect so containment operators render
the way they do in production.
"""

import pytest
from sqlalchemy import Boolean, Column, Integer, MetaData, String, Table, select
from sqlalchemy.dialects import postgresql
from sqlalchemy.dialects.postgresql import ARRAY, JSONB

from adminkit.core.exceptions import UnknownColumnError, ValidationError
from adminkit.data.operators import (
    OPERATOR_PREDICATES,
    ComposedPredicate,
    build_predicate,
    compose_predicate,
    search_predicate,
)
from adminkit.schemas.data import FilterOperator, FilterRule, QueryDescriptor, parse_request

metadata = MetaData()
articles = Table(
    "articles",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("title", String(200)),
    Column("views", Integer),
    Column("published", Boolean),
    Column("tags", ARRAY(String)),
    Column("attrs", JSONB),
    schema="public",
)


def _sql(clause) -> str:
    stmt = select(articles.c.id).where(clause)
    return str(stmt.compile(dialect=postgresql.dialect()))


def _literal_sql(clause) -> str:
    stmt = select(articles.c.id).where(clause)
    return str(stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))


def _rule(column: str, operator: str, value=None) -> FilterRule:
    return FilterRule(column=column, operator=operator, value=value)


class TestOperatorTable:
    def test_every_operator_has_a_builder(self):
        assert set(OPERATOR_PREDICATES) == set(FilterOperator)

    @pytest.mark.parametrize(
        ("operator", "value", "expected"),
        [
            ("eq", 10, "public.articles.views = 10"),
            ("neq", 10, "public.articles.views != 10"),
            ("gt", 10, "public.articles.views > 10"),
            ("gte", 10, "public.articles.views >= 10"),
            ("lt", 10, "public.articles.views < 10"),
            ("lte", 10, "public.articles.views <= 10"),
        ],
    )
    def test_comparison_operators(self, operator, value, expected):
        clause = build_predicate(articles.c.views, _rule("views", operator, value))
        assert expected in _literal_sql(clause)

    def test_like_is_case_sensitive_and_ilike_is_not(self):
        like_sql = _literal_sql(build_predicate(articles.c.title, _rule("title", "like", "Intro%")))
        ilike_sql = _literal_sql(build_predicate(articles.c.title, _rule("title", "ilike", "intro%")))

        assert "public.articles.title LIKE" in like_sql
        assert "ILIKE" not in like_sql
        assert "ILIKE" in ilike_sql

    def test_in_expands_members(self):
        clause = build_predicate(articles.c.views, _rule("views", "in", [1, 2, 3]))
        assert "IN (1, 2, 3)" in _literal_sql(clause)

    def test_eq_null_is_plain_equality(self):
        """Equality against null stays '= NULL' (matches nothing); 'is' is the null check."""
        sql = _sql(build_predicate(articles.c.title, _rule("title", "eq", None)))
        assert "public.articles.title = NULL" in sql
        assert "IS NULL" not in sql

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(None, "IS NULL"), (True, "IS true"), (False, "IS false")],
    )
    def test_is_operator(self, value, expected):
        clause = build_predicate(articles.c.published, _rule("published", "is", value))
        assert expected in _sql(clause)

    def test_contains_on_array_uses_containment(self):
        clause = build_predicate(articles.c.tags, _rule("tags", "contains", "python"))
        assert "@>" in _sql(clause)

    def test_contains_on_jsonb_uses_containment(self):
        clause = build_predicate(articles.c.attrs, _rule("attrs", "contains", {"lang": "en"}))
        assert "@>" in _sql(clause)

    def test_contains_on_text_falls_back_to_substring(self):
        sql = _sql(build_predicate(articles.c.title, _rule("title", "contains", "draft")))
        assert "CAST(public.articles.title AS TEXT)" in sql
        assert "LIKE" in sql


class TestFilterRuleShapes:
    @pytest.mark.parametrize(
        ("operator", "value"),
        [
            ("in", "not-a-list"),
            ("in", {"a": 1}),
            ("is", "yes"),
            ("like", 5),
            ("gt", None),
            ("lt", [1, 2]),
            ("contains", None),
        ],
    )
    def test_bad_value_shapes_are_rejected(self, operator, value):
        with pytest.raises(ValidationError):
            parse_request(FilterRule, {"column": "views", "operator": operator, "value": value})

    def test_unknown_operator_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_request(FilterRule, {"column": "views", "operator": "between", "value": [1, 2]})

    def test_in_value_is_frozen(self):
        values = [1, 2]
        rule = _rule("views", "in", values)
        values.append(3)
        assert rule.value == (1, 2)

    def test_descriptor_rejects_unknown_keys(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_request(QueryDescriptor, {"schema": "public", "table": "articles", "orderBy": "id"})
        assert exc_info.value.error_code == "VALIDATION_ERROR"

    @pytest.mark.parametrize("payload", [{"schema": " ", "table": "articles"}, {"schema": "public", "table": ""}])
    def test_descriptor_requires_schema_and_table(self, payload):
        with pytest.raises(ValidationError):
            parse_request(QueryDescriptor, payload)

    def test_descriptor_defaults(self):
        descriptor = parse_request(QueryDescriptor, {"schema": "public", "table": "articles", "search": "  "})
        assert descriptor.page == 1
        assert descriptor.limit == 20
        assert descriptor.filters == ()
        assert descriptor.search is None


class TestComposition:
    def test_empty_rules_match_everything(self):
        predicate = compose_predicate(articles, [])
        assert len(predicate) == 0
        assert "true" in _sql(predicate.expression)

    def test_clauses_keep_rule_order(self):
        rules = [_rule("views", "gt", 5), _rule("title", "ilike", "%a%"), _rule("published", "is", True)]
        predicate = compose_predicate(articles, rules)

        assert len(predicate) == 3
        sql = _sql(predicate.expression)
        assert sql.index("views >") < sql.index("ILIKE") < sql.index("IS true")

    def test_composition_is_not_cumulative(self):
        first = compose_predicate(articles, [_rule("views", "gt", 5)])
        second = compose_predicate(articles, [_rule("views", "lt", 2)])
        assert len(first) == len(second) == 1
        assert ">" not in _sql(second.expression).split("WHERE", 1)[1]

    def test_unknown_column_is_rejected(self):
        with pytest.raises(UnknownColumnError) as exc_info:
            compose_predicate(articles, [_rule("missing", "eq", 1)])
        assert exc_info.value.status_code == 400

    def test_search_adds_one_clause_over_text_columns(self):
        predicate = compose_predicate(articles, [_rule("views", "gt", 5)], search="hello")
        assert len(predicate) == 2
        sql = _sql(predicate.clauses[1])
        assert "CAST(public.articles.title AS TEXT) ILIKE" in sql
        assert "views" not in sql.split("WHERE", 1)[1]

    def test_search_without_text_columns(self):
        assert search_predicate([articles.c.id, articles.c.views], "x") is None

    def test_composed_predicate_is_immutable(self):
        predicate = ComposedPredicate()
        with pytest.raises(AttributeError):
            predicate.clauses = ()
