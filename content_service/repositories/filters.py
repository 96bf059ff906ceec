"""
Filter and pagination compiler.

Turns a caller-supplied filter expression and list options into a
SQLAlchemy Core ``Select``. Every value is bound as a parameter; field
names and operators are checked against the entity descriptor before any
SQL is built.

Filter expression format::

    {"id": 7}                                  # shorthand for {"$eq": 7}
    {"status": {"$in": ["PENDING"]}, "post_id": 3}
    {"weight": {"$gte": 10, "$lt": 100}}
    [{"post_id": 1}, {"editor_id": 2}]         # groups, OR-ed together

Within a group all fields (and all operators of one field) are AND-ed.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import and_, or_, select, true
from sqlalchemy.sql import ColumnElement, Select

from ..domain.exceptions import InvalidFilterField, InvalidFilterOperator, ValidationException
from .descriptor import EntityDescriptor, FieldSpec, OpKind, SortDirection

FilterGroup = Mapping[str, Any]
FilterExpression = Union[FilterGroup, Sequence[FilterGroup]]

LIST_LIMIT_DEFAULT = 1000
LIST_LIMIT_MAX = 5000

DESC_PREFIX = "!"

PredicateBuilder = Callable[[Any, Any], ColumnElement]


def _eq(column, value):
    return column.is_(None) if value is None else column == value


def _ne(column, value):
    return column.is_not(None) if value is None else column != value


# (field, operator) -> predicate builder, keyed by operator name
OPERATORS: Dict[str, Tuple[OpKind, PredicateBuilder]] = {
    "$eq": (OpKind.EQUALITY, _eq),
    "$ne": (OpKind.EQUALITY, _ne),
    "$lt": (OpKind.COMPARISON, lambda column, value: column < value),
    "$lte": (OpKind.COMPARISON, lambda column, value: column <= value),
    "$gt": (OpKind.COMPARISON, lambda column, value: column > value),
    "$gte": (OpKind.COMPARISON, lambda column, value: column >= value),
    "$in": (OpKind.MEMBERSHIP, lambda column, value: column.in_(value)),
    "$notIn": (OpKind.MEMBERSHIP, lambda column, value: column.not_in(value)),
    "$null": (
        OpKind.BOOLEAN,
        lambda column, value: column.is_(None) if value else column.is_not(None),
    ),
    "$contains": (
        OpKind.TEXT,
        lambda column, value: column.contains(value, autoescape=True),
    ),
    "$startsWith": (
        OpKind.TEXT,
        lambda column, value: column.startswith(value, autoescape=True),
    ),
}


@dataclass
class ListOptions:
    """
    Pagination and ordering overrides for a list call.

    Attributes:
        limit: Maximum rows to return (default applied when None, clamped to the ceiling)
        offset: Rows to skip
        order_bys: Field names to order by; a leading "!" sorts descending
    """

    limit: Optional[int] = None
    offset: Optional[int] = None
    order_bys: Optional[Union[str, Sequence[str]]] = None


@dataclass(frozen=True)
class CompiledListOptions:
    limit: int
    offset: int
    order_by: Tuple[Tuple[str, SortDirection], ...]


def _check_value(
    descriptor: EntityDescriptor, spec: FieldSpec, operator: str, kind: OpKind, value: Any
) -> Any:
    """Validate an operator's value shape and apply the field's coercion."""

    def fail(reason: str):
        raise InvalidFilterOperator(descriptor.name, spec.name, operator, reason)

    if kind is OpKind.MEMBERSHIP:
        if isinstance(value, (str, bytes)) or not isinstance(value, (list, tuple, set, frozenset)):
            fail("expected a list of values")
        values = list(value)
    elif kind is OpKind.BOOLEAN:
        if not isinstance(value, bool):
            fail("expected true or false")
        return value
    elif kind is OpKind.TEXT:
        if not isinstance(value, str):
            fail("expected a string")
        return value
    elif kind is OpKind.COMPARISON:
        if value is None or isinstance(value, (list, tuple, set, dict)):
            fail("expected a single value")
        values = [value]
    else:
        if isinstance(value, (list, tuple, set, dict)):
            fail("expected a single value")
        values = [value]

    if spec.coerce is not None:
        try:
            values = [v if v is None else spec.coerce(v) for v in values]
        except (TypeError, ValueError) as e:
            fail(f"invalid value ({e})")

    return values if kind is OpKind.MEMBERSHIP else values[0]


def _compile_field(
    descriptor: EntityDescriptor, name: str, condition: Any
) -> List[ColumnElement]:
    spec = descriptor.get_field(name)
    allowed = descriptor.filterable(name)
    if spec is None or not allowed:
        raise InvalidFilterField(descriptor.name, name)

    if not isinstance(condition, Mapping):
        condition = {"$eq": condition}
    if not condition:
        raise InvalidFilterOperator(descriptor.name, name, "", "no operator given")

    column = descriptor.column(name)
    predicates = []
    for operator, value in condition.items():
        entry = OPERATORS.get(operator)
        if entry is None:
            raise InvalidFilterOperator(descriptor.name, name, operator, "unknown operator")
        kind, builder = entry
        if kind not in allowed:
            raise InvalidFilterOperator(descriptor.name, name, operator)
        predicates.append(builder(column, _check_value(descriptor, spec, operator, kind, value)))
    return predicates


def compile_filters(
    descriptor: EntityDescriptor, filters: Optional[FilterExpression]
) -> Optional[ColumnElement]:
    """
    Compile a filter expression into a boolean SQL expression.

    Args:
        descriptor: Entity the filter applies to
        filters: Filter group, sequence of groups (OR-ed), or None

    Returns:
        SQL predicate, or None for an unrestricted listing

    Raises:
        InvalidFilterField: If a field is not declared filterable
        InvalidFilterOperator: If an operator is unknown, not allowed, or badly valued
    """
    if filters is None:
        return None

    groups = [filters] if isinstance(filters, Mapping) else list(filters)
    if not groups:
        return None

    compiled = []
    for group in groups:
        if not isinstance(group, Mapping):
            raise InvalidFilterOperator(descriptor.name, "", "", "filter groups must be mappings")
        predicates = []
        for name, condition in group.items():
            predicates.extend(_compile_field(descriptor, name, condition))
        compiled.append(and_(*predicates) if predicates else true())

    return compiled[0] if len(compiled) == 1 else or_(*compiled)


def compile_list_options(
    descriptor: EntityDescriptor,
    list_options: Optional[ListOptions],
    limit_default: int = LIST_LIMIT_DEFAULT,
    limit_max: int = LIST_LIMIT_MAX,
) -> CompiledListOptions:
    """
    Resolve limit, offset and a deterministic ordering.

    The order is the explicit one if given, else the descriptor's default
    sort, and always ends with ``id`` ascending so pagination is stable.
    """
    options = list_options or ListOptions()

    errors = []
    if options.limit is not None and options.limit < 0:
        errors.append({"field": "limit", "reason": "must not be negative"})
    if options.offset is not None and options.offset < 0:
        errors.append({"field": "offset", "reason": "must not be negative"})
    if errors:
        raise ValidationException(descriptor.name, errors)

    limit = limit_default if options.limit is None else options.limit
    limit = min(limit, limit_max)
    offset = options.offset or 0

    order: List[Tuple[str, SortDirection]] = []
    order_bys = options.order_bys
    if isinstance(order_bys, str):
        order_bys = [order_bys]
    for raw in order_bys or ():
        direction = SortDirection.ASC
        name = raw
        if raw.startswith(DESC_PREFIX):
            direction = SortDirection.DESC
            name = raw[len(DESC_PREFIX):]
        spec = descriptor.get_field(name)
        if spec is None or not spec.exposed:
            raise InvalidFilterField(descriptor.name, name)
        order.append((name, direction))

    if not order:
        order.append(descriptor.default_sort)
    if not any(name == "id" for name, _ in order):
        order.append(("id", SortDirection.ASC))

    return CompiledListOptions(limit=limit, offset=offset, order_by=tuple(order))


def order_clauses(descriptor: EntityDescriptor, order_by: Sequence[Tuple[str, SortDirection]]):
    clauses = []
    for name, direction in order_by:
        column = descriptor.column(name)
        clauses.append(column.desc() if direction is SortDirection.DESC else column.asc())
    return clauses


def build_list_query(
    descriptor: EntityDescriptor,
    filters: Optional[FilterExpression] = None,
    list_options: Optional[ListOptions] = None,
    limit_default: int = LIST_LIMIT_DEFAULT,
    limit_max: int = LIST_LIMIT_MAX,
) -> Select:
    """Build the bounded, ordered, parameterized select for a list call."""
    where = compile_filters(descriptor, filters)
    options = compile_list_options(descriptor, list_options, limit_default, limit_max)

    query = select(*descriptor.columns())
    if where is not None:
        query = query.where(where)
    return (
        query.order_by(*order_clauses(descriptor, options.order_by))
        .limit(options.limit)
        .offset(options.offset)
    )


def build_collection_query(descriptor: EntityDescriptor) -> Select:
    """Select the exposed columns of the whole collection in default order, unbounded."""
    options = compile_list_options(descriptor, None)
    return select(*descriptor.exposed_columns()).order_by(
        *order_clauses(descriptor, options.order_by)
    )
