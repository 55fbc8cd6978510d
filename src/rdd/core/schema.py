"""
Column declarations and the table schema built from them.

A record type declares its columns explicitly as ``Column`` class attributes
and names its table with the ``table=`` class keyword.  A SchemaRegistry turns
that declaration into an immutable TableSchema once per type and hands the
same schema to every instance of the type.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, field_validator

from rdd.core.field import Kind
from rdd.errors import SchemaError
from rdd.events import EventType, hooks_of
from rdd.sql.engine import Default

if TYPE_CHECKING:
    from rdd.core.field import Field
    from rdd.core.record import Record

logger = logging.getLogger(__name__)

T_Record = TypeVar("T_Record", bound="Record")


class ColumnDef(BaseModel):
    """Immutable description of one mapped column."""

    name: str
    attribute: str
    kind: Kind
    primary_key: bool = False
    unique_key: bool = False
    auto: bool = False
    nullable: bool = True
    default: Default = Default.NONE

    model_config = {"frozen": True}

    @field_validator("name")
    @classmethod
    def _name_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("column name cannot be empty")
        return v


class Column:
    """Class-level declaration of a mapped column.

    On an instance the attribute resolves to the record's own Field cell::

        class User(Record, table="users"):
            id = Column(Kind.TEXT, primary_key=True, auto=True, default=Default.NEW_UUID)
            name = Column(Kind.TEXT)

        user.name.set("Ada")
    """

    def __init__(
        self,
        kind: Kind,
        name: Optional[str] = None,
        *,
        primary_key: bool = False,
        unique_key: bool = False,
        auto: bool = False,
        nullable: bool = True,
        default: Default = Default.NONE,
    ) -> None:
        if not isinstance(kind, Kind):
            raise SchemaError(f"column kind must be a Kind, got {kind!r}")
        self.kind = kind
        self.name = name
        self.attribute: Optional[str] = None
        self.primary_key = primary_key
        self.unique_key = unique_key
        self.auto = auto
        self.nullable = nullable
        self.default = default

    def __set_name__(self, owner: type, attribute: str) -> None:
        self.attribute = attribute
        if self.name is None:
            self.name = attribute

    def __get__(self, instance: Any, owner: type) -> Any:
        if instance is None:
            return self
        return instance.field(self.name)

    def __set__(self, instance: Any, value: Any) -> None:
        instance.field(self.name).set(value)

    def definition(self) -> ColumnDef:
        return ColumnDef(
            name=self.name or "",
            attribute=self.attribute or "",
            kind=self.kind,
            primary_key=self.primary_key,
            unique_key=self.unique_key,
            auto=self.auto,
            nullable=self.nullable,
            default=self.default,
        )


class TableSchema(BaseModel):
    """Column model of one record type, shared read-only by all its instances."""

    table: str
    record_type: type
    columns: Tuple[ColumnDef, ...]
    hooks: FrozenSet[EventType] = frozenset()

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def primary_key(self) -> Tuple[ColumnDef, ...]:
        return tuple(c for c in self.columns if c.primary_key)

    @property
    def unique_key(self) -> Tuple[ColumnDef, ...]:
        return tuple(c for c in self.columns if c.unique_key)

    def column(self, name: str) -> ColumnDef:
        for c in self.columns:
            if c.name == name:
                return c
        raise KeyError(name)

    def names(self) -> List[str]:
        return [c.name for c in self.columns]

    def new_fields(self) -> Dict[str, Field]:
        """Fresh zero-valued cells, one per column, in declaration order."""
        from rdd.core.field import Field

        return {c.name: Field(c.kind) for c in self.columns}


def _shadows_record_api(cls: type, attribute: Optional[str]) -> bool:
    """True when a Column at ``attribute`` would hide a method, property or instance slot."""
    if attribute in getattr(cls, "__reserved__", ()):
        return True
    for base in cls.__mro__:
        if attribute in base.__dict__ and not isinstance(base.__dict__[attribute], Column):
            return True
    return False


def build_schema(cls: type) -> TableSchema:
    """Read the declaration of ``cls`` into a TableSchema."""
    table = getattr(cls, "__table__", None)
    if not table:
        raise SchemaError(
            f"{cls.__name__}: table name not defined (declare it with `table=`)",
            record_type=cls.__name__,
        )

    columns: List[ColumnDef] = []
    seen = set()
    for col in getattr(cls, "__columns__", ()):
        if col.name in seen:
            raise SchemaError(f"{cls.__name__}: duplicate column {col.name!r}", record_type=cls.__name__)
        seen.add(col.name)
        if _shadows_record_api(cls, col.attribute):
            raise SchemaError(
                f"{cls.__name__}: column attribute {col.attribute!r} clashes with a Record attribute",
                record_type=cls.__name__,
            )
        try:
            columns.append(col.definition())
        except ValueError as e:
            raise SchemaError(f"{cls.__name__}: {e}", record_type=cls.__name__) from e

    if not columns:
        raise SchemaError(f"{cls.__name__}: no columns declared", record_type=cls.__name__)

    return TableSchema(table=table, record_type=cls, columns=tuple(columns), hooks=hooks_of(cls))


class SchemaRegistry:
    """Memoizes one TableSchema per record type.

    Pass the registry to the code that instantiates records or creates
    tables; there is no module-level registry.
    """

    def __init__(self) -> None:
        self._schemas: Dict[type, TableSchema] = {}
        self._lock = threading.Lock()

    def register(self, cls: type) -> TableSchema:
        schema = self._schemas.get(cls)
        if schema is not None:
            return schema
        with self._lock:
            schema = self._schemas.get(cls)
            if schema is None:
                schema = build_schema(cls)
                self._schemas[cls] = schema
                logger.debug("registered schema %s -> %s (%d columns)", cls.__name__, schema.table, len(schema.columns))
        return schema

    schema_for = register

    def use(self, cls: Type[T_Record]) -> T_Record:
        """New instance of ``cls`` bound to its memoized schema."""
        return cls(self)

    def schemas(self) -> List[TableSchema]:
        return list(self._schemas.values())

    def __contains__(self, cls: object) -> bool:
        return cls in self._schemas

    def __len__(self) -> int:
        return len(self._schemas)
