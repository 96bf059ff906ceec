"""
Entity descriptors.

A descriptor declares, for one entity type, the storage table, the ordered
field list with outward visibility, which fields may be filtered and with
which operator kinds, and the default sort. Descriptors carry no behavior;
the generic repository and the filter compiler consume them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, Optional, Tuple

from pydantic import TypeAdapter
from sqlalchemy import Table


class OpKind(str, Enum):
    """Families of filter operators a field can allow."""

    EQUALITY = "equality"
    COMPARISON = "comparison"
    MEMBERSHIP = "membership"
    BOOLEAN = "boolean"
    TEXT = "text"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


# Common operator sets
ID_OPS = frozenset({OpKind.EQUALITY, OpKind.COMPARISON, OpKind.MEMBERSHIP})
REF_OPS = frozenset({OpKind.EQUALITY, OpKind.MEMBERSHIP})
NUMBER_OPS = frozenset({OpKind.EQUALITY, OpKind.COMPARISON, OpKind.MEMBERSHIP})
STRING_OPS = frozenset({OpKind.EQUALITY, OpKind.MEMBERSHIP, OpKind.TEXT})
TIME_OPS = frozenset({OpKind.COMPARISON})
ENUM_OPS = frozenset({OpKind.EQUALITY, OpKind.MEMBERSHIP})

_int_adapter = TypeAdapter(int)
_datetime_adapter = TypeAdapter(datetime)


def to_int(value: Any) -> int:
    """Integer filter value; numeric strings are accepted, fractions are not."""
    return _int_adapter.validate_python(value)


def to_utc_datetime(value: Any) -> datetime:
    """Timestamp filter value from a datetime or ISO 8601 string, in UTC."""
    parsed = _datetime_adapter.validate_python(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


@dataclass(frozen=True)
class FieldSpec:
    """
    One column of an entity.

    Attributes:
        name: Column name
        exposed: Whether the field may be serialized to clients or the cache
        filter_ops: Operator kinds allowed when filtering on this field
        coerce: Optional converter applied to filter values before binding
    """

    name: str
    exposed: bool = True
    filter_ops: FrozenSet[OpKind] = frozenset()
    coerce: Optional[Callable[[Any], Any]] = None


@dataclass(frozen=True)
class EntityDescriptor:
    """
    Declarative description of one entity type.

    Attributes:
        name: Storage identity, also the cache key of the collection snapshot
        table: SQLAlchemy Core table
        fields: Ordered fields
        default_sort: Field and direction used when a list gives no order
        cached: Whether a full collection snapshot is kept in the cache
        timestamps: Whether rows carry created_at/updated_at
        referenced_by: (table, column) pairs of rows that reference this entity
    """

    name: str
    table: Table
    fields: Tuple[FieldSpec, ...]
    default_sort: Tuple[str, SortDirection] = ("id", SortDirection.ASC)
    cached: bool = False
    timestamps: bool = False
    referenced_by: Tuple[Tuple[Table, str], ...] = ()
    _by_name: Dict[str, FieldSpec] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        by_name = {spec.name: spec for spec in self.fields}
        missing = [name for name in by_name if name not in self.table.c]
        if missing:
            raise ValueError(f"{self.name}: fields not in table {self.table.name}: {missing}")
        if self.default_sort[0] not in by_name:
            raise ValueError(f"{self.name}: default sort field {self.default_sort[0]} undeclared")
        object.__setattr__(self, "_by_name", by_name)

    @property
    def field_names(self) -> Tuple[str, ...]:
        return tuple(spec.name for spec in self.fields)

    @property
    def exposed_fields(self) -> Tuple[str, ...]:
        return tuple(spec.name for spec in self.fields if spec.exposed)

    def get_field(self, name: str) -> Optional[FieldSpec]:
        return self._by_name.get(name)

    def filterable(self, name: str) -> FrozenSet[OpKind]:
        """Operator kinds allowed on a field; empty when it is not filterable."""
        spec = self._by_name.get(name)
        return spec.filter_ops if spec else frozenset()

    def column(self, name: str):
        return self.table.c[name]

    def columns(self):
        return [self.table.c[name] for name in self.field_names]

    def exposed_columns(self):
        return [self.table.c[name] for name in self.exposed_fields]
