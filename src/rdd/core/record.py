"""
Record / Workarea kernel.

* Columns are declared as ``Column`` class attributes, the table with the
  ``table=`` class keyword; RecordMeta collects both at class-creation time.
* Each instance owns one Field per column, the schema is shared.
* append / replace / delete build SQL for the target executor, run the
  lifecycle hooks around it and freeze the fields, either right away or when
  the surrounding transaction ends.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel

from rdd.core.field import Field, accepts
from rdd.core.schema import Column, SchemaRegistry, TableSchema
from rdd.events import EventType, Operation, emit
from rdd.sql.builder import (
    CreateTableOptions,
    Statement,
    build_create_table,
    build_delete,
    build_drop_table,
    build_insert,
    build_select_by_key,
    build_update,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import RowMapping

    from rdd.persistence.database import Executor

logger = logging.getLogger(__name__)

T_Record = TypeVar("T_Record", bound="Record")

_MISSING = object()


# metaclass that collects column declarations
class RecordMeta(type):
    """Attach ``__table__`` and the ordered ``__columns__`` at class-creation time."""

    def __new__(mcls, name: str, bases, ns, table: Optional[str] = None, **kw):
        cls = super().__new__(mcls, name, bases, ns, **kw)

        inherited: Dict[str, Column] = {}
        for base in reversed(cls.__mro__[1:]):
            for col in getattr(base, "__columns__", ()):
                inherited[col.attribute] = col
        for value in ns.values():
            if isinstance(value, Column):
                inherited[value.attribute] = value
        cls.__columns__ = tuple(inherited.values())

        if table is not None:
            cls.__table__ = table
        return cls


class Record(metaclass=RecordMeta):
    """Base class for mapped record types.

    Create instances through a SchemaRegistry (``registry.use(User)`` or
    ``User(registry)``) so every instance of a type shares one schema.
    """

    __table__: Optional[str] = None
    __columns__: tuple = ()
    # instance state; a column may not use these attribute names
    __reserved__ = frozenset({"_schema", "_fields", "last_operation"})

    def __init__(self, registry: SchemaRegistry) -> None:
        self._schema = registry.schema_for(type(self))
        self._fields: Dict[str, Field] = self._schema.new_fields()
        self.last_operation: Optional[Operation] = None

    @property
    def schema(self) -> TableSchema:
        return self._schema

    def field(self, column: str) -> Field:
        return self._fields[column]

    def fields(self) -> Dict[str, Field]:
        return dict(self._fields)

    def values(self) -> Dict[str, Any]:
        return {name: f.get() for name, f in self._fields.items()}

    # ---- change tracking ------------------------------------------------
    def changed(self) -> bool:
        return any(f.changed() for f in self._fields.values())

    def freeze(self) -> None:
        for f in self._fields.values():
            f.freeze()

    def reset(self) -> None:
        for f in self._fields.values():
            f.reset()

    def load(self, source: Any) -> None:
        """Copy matching values from ``source`` into the mapped columns.

        ``source`` may be a mapping, a pydantic model (column taken from the
        field alias, else its name), a dataclass (``metadata["column"]``, else
        the field name) or a plain object.  Unknown columns and values of the
        wrong kind are skipped.
        """
        for column, value in _source_items(source, self._fields):
            f = self._fields.get(column)
            if f is not None and accepts(f.kind, value):
                f.set(value)

    # ---- DDL ------------------------------------------------------------
    def create_table(self, db: Executor, options: Optional[CreateTableOptions] = None) -> None:
        create_table(self._schema, db, options)

    # ---- lifecycle ------------------------------------------------------
    def append(self, db: Executor, ctx: Any = None) -> None:
        emit(self, EventType.BEFORE_APPEND, operation=Operation.APPEND, database=db, context=ctx)

        self._execute(db, build_insert(self._schema, self._fields, db.engine))

        emit(self, EventType.AFTER_APPEND, operation=Operation.APPEND, database=db, context=ctx)
        self.last_operation = Operation.APPEND
        self._settle(db)

    def replace(self, db: Executor, ctx: Any = None) -> None:
        emit(self, EventType.BEFORE_REPLACE, operation=Operation.REPLACE, database=db, context=ctx)

        stmt = build_update(self._schema, self._fields, db.engine)
        if stmt is None:
            logger.debug("%s: nothing to update", self._schema.table)
        else:
            self._execute(db, stmt)

        emit(self, EventType.AFTER_REPLACE, operation=Operation.REPLACE, database=db, context=ctx)
        self.last_operation = Operation.REPLACE
        self._settle(db)

    def delete(self, db: Executor, ctx: Any = None) -> None:
        emit(self, EventType.BEFORE_DELETE, operation=Operation.DELETE, database=db, context=ctx)

        self._execute(db, build_delete(self._schema, self._fields, db.engine))

        emit(self, EventType.AFTER_DELETE, operation=Operation.DELETE, database=db, context=ctx)
        self.last_operation = Operation.DELETE

    # ---- reads ----------------------------------------------------------
    @classmethod
    def fetch(cls: Type[T_Record], registry: SchemaRegistry, db: Executor, *key: Any) -> T_Record:
        """Load one record by its primary (else unique) key values."""
        schema = registry.schema_for(cls)
        stmt = build_select_by_key(schema, db.engine, key)
        row = db.query_row(stmt.sql, *stmt.params)
        return _hydrate(cls, registry, db, row)

    # internal util
    def _execute(self, db: Executor, stmt: Statement) -> None:
        rows = db.run(stmt)
        if stmt.returning and rows:
            row = rows[0]
            for c in stmt.returning:
                self._fields[c.name].from_db(db.engine, row[c.name])

    def _settle(self, db: Executor) -> None:
        if db.within_transaction():
            db.register(self)  # type: ignore[attr-defined]
        else:
            self.freeze()

    def __repr__(self) -> str:
        cols = ", ".join(f"{k}={f.get()!r}" for k, f in self._fields.items())
        return f"{type(self).__name__}({cols})"


# helpers
def create_table(schema: TableSchema, db: Executor, options: Optional[CreateTableOptions] = None) -> None:
    opt = options or CreateTableOptions()
    if opt.drop_if_exists:
        db.run(build_drop_table(schema, db.engine))
    db.run(build_create_table(schema, db.engine, opt))
    logger.info("created table %s", schema.table)


def select(registry: SchemaRegistry, cls: Type[T_Record], db: Executor, sql: str, *args: Any) -> List[T_Record]:
    """Run ``sql`` and hydrate one frozen ``cls`` instance per row.

    Result columns are matched to record columns by name; columns the query
    does not return keep their zero value.
    """
    return [_hydrate(cls, registry, db, row) for row in db.query(sql, *args)]


def _hydrate(cls: Type[T_Record], registry: SchemaRegistry, db: Executor, row: RowMapping) -> T_Record:
    record = cls(registry)
    for name, f in record._fields.items():
        if name in row:
            f.from_db(db.engine, row[name])
    record.freeze()
    return record


def _source_items(source: Any, columns: Iterable[str]):
    if isinstance(source, Mapping):
        yield from source.items()
    elif isinstance(source, BaseModel):
        for name, info in type(source).model_fields.items():
            yield info.alias or name, getattr(source, name)
    elif dataclasses.is_dataclass(source) and not isinstance(source, type):
        for f in dataclasses.fields(source):
            yield f.metadata.get("column", f.name), getattr(source, f.name)
    else:
        # plain objects, __slots__ classes and namedtuples alike
        for column in columns:
            value = getattr(source, column, _MISSING)
            if value is not _MISSING:
                yield column, value
