"""Pydantic schemas for the data explorer.

The request grammar is strict: unknown keys are rejected, every model is
frozen, and filter values are checked against the shape their operator
expects. Column existence is left to the record store.
"""

from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..core.config import get_settings_instance
from ..core.exceptions import ValidationError
from ..data.pagination import has_more


class FilterOperator(str, Enum):
    """Closed set of filter operators."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    LIKE = "like"
    ILIKE = "ilike"
    IN = "in"
    IS = "is"
    CONTAINS = "contains"


ORDERING_OPERATORS = frozenset((FilterOperator.GT, FilterOperator.GTE, FilterOperator.LT, FilterOperator.LTE))
PATTERN_OPERATORS = frozenset((FilterOperator.LIKE, FilterOperator.ILIKE))


class FilterRule(BaseModel):
    """One column-level condition: ``{column, operator, value}``."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    column: str = Field(..., min_length=1)
    operator: FilterOperator
    value: Any = None

    @model_validator(mode="after")
    def _check_value_shape(self) -> "FilterRule":
        op = self.operator
        value = self.value
        if op is FilterOperator.IN:
            if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, (list, tuple, set, frozenset)):
                raise ValueError("'in' expects a list of values")
            # Frozen copy so the caller's list can never be mutated through the rule
            object.__setattr__(self, "value", tuple(value))
        elif op is FilterOperator.IS:
            if not (value is None or isinstance(value, bool)):
                raise ValueError("'is' expects null, true or false")
        elif op in PATTERN_OPERATORS:
            if not isinstance(value, str):
                raise ValueError(f"'{op.value}' expects a string pattern")
        elif op in ORDERING_OPERATORS:
            if value is None or isinstance(value, (list, tuple, dict, bool)):
                raise ValueError(f"'{op.value}' expects an orderable scalar value")
        elif op is FilterOperator.CONTAINS and value is None:
            raise ValueError("'contains' expects a value")
        return self


class SortSpec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    column: str = Field(..., min_length=1)
    ascending: bool = True


def default_page_size() -> int:
    return get_settings_instance().data_default_page_size


class QueryDescriptor(BaseModel):
    """Validated description of one data explorer query.

    ``schema`` is exposed under its wire name but stored as ``schema_name`` so
    it does not shadow ``BaseModel`` attributes.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    schema_name: str = Field(..., alias="schema", min_length=1)
    table: str = Field(..., min_length=1)
    filters: tuple[FilterRule, ...] = ()
    sort: SortSpec | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(default_factory=default_page_size, ge=1)
    search: str | None = None

    @field_validator("schema_name", "table")
    @classmethod
    def _strip_identifier(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("search")
    @classmethod
    def _blank_search_is_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class QueryResult(BaseModel):
    """Result page. ``hasMore`` is always derived from page, limit and total."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    data: list[dict[str, Any]]
    total: int = Field(..., ge=0)
    page: int = Field(..., ge=1)
    limit: int = Field(..., ge=1)

    @computed_field(alias="hasMore")  # type: ignore[prop-decorator]
    @property
    def has_more(self) -> bool:
        return has_more(self.page, self.limit, self.total)


class RecordInsertRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    schema_name: str = Field(..., alias="schema", min_length=1)
    table: str = Field(..., min_length=1)
    values: dict[str, Any] = Field(..., min_length=1)


class RecordUpdateRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    schema_name: str = Field(..., alias="schema", min_length=1)
    table: str = Field(..., min_length=1)
    id: Any
    values: dict[str, Any] = Field(..., min_length=1)


class BatchDeleteRequest(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    schema_name: str = Field(..., alias="schema", min_length=1)
    table: str = Field(..., min_length=1)
    ids: tuple[Any, ...] = Field(..., min_length=1)


class TableRef(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    schema_name: str = Field(..., alias="schema")
    table: str


class ColumnInfo(BaseModel):
    name: str
    data_type: str
    nullable: bool
    default: str | None = None


class ForeignKeyInfo(BaseModel):
    column: str
    foreign_schema: str | None
    foreign_table: str
    foreign_column: str


class TableDescription(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    schema_name: str = Field(..., alias="schema")
    table: str
    columns: list[ColumnInfo]
    primary_key: list[str]
    foreign_keys: list[ForeignKeyInfo]


def parse_request(model: type[BaseModel], payload: Any) -> Any:
    """Validate an untyped request body against ``model``.

    pydantic errors are re-raised as the application's ``ValidationError`` so
    the caller sees one error type for malformed requests.
    """
    try:
        return model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid {model.__name__}",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


class TablePermissions(BaseModel):
    """Which record writes the current actor may perform on one table."""

    create: bool
    update: bool
    delete: bool
