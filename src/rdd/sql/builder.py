"""
SQL text generation for one table.

Every builder is a pure function of the schema, the record's Field cells and
the target Engine.  Columns are always emitted in declaration order so the
same record produces the same SQL text on every run.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from rdd.errors import NoKeyError
from rdd.sql.engine import (
    Default,
    Engine,
    column_type,
    default_expr,
    placeholder,
    quote_identifier,
    to_db,
)

if TYPE_CHECKING:
    from rdd.core.field import Field
    from rdd.core.schema import ColumnDef, TableSchema


@dataclass(frozen=True)
class CreateTableOptions:
    if_not_exists: bool = False
    drop_if_exists: bool = False


@dataclass(frozen=True)
class Statement:
    """SQL text plus its positional parameters.

    ``params[i]`` binds to placeholder ``:p{i+1}``.  ``returning`` lists the
    columns the statement hands back, in the order of its RETURNING clause.
    """

    sql: str
    params: Tuple[Any, ...] = ()
    returning: Tuple[ColumnDef, ...] = ()

    def bind_params(self) -> Dict[str, Any]:
        return {placeholder(i + 1)[1:]: v for i, v in enumerate(self.params)}


# helpers
def _q(engine: Engine, name: str) -> str:
    return quote_identifier(engine, name)


def _column_list(engine: Engine, columns: Tuple[ColumnDef, ...]) -> str:
    return ", ".join(_q(engine, c.name) for c in columns)


def _returning(engine: Engine, columns: Tuple[ColumnDef, ...]) -> str:
    if not columns:
        return ""
    return " RETURNING " + _column_list(engine, columns)


def _key_columns(schema: TableSchema) -> Tuple[ColumnDef, ...]:
    """Primary key columns, else unique key columns."""
    key = schema.primary_key or schema.unique_key
    if not key:
        raise NoKeyError(schema.table)
    return key


def _where_key(
    schema: TableSchema,
    fields: Mapping[str, Field],
    engine: Engine,
    args_count: int,
) -> Tuple[str, List[Any]]:
    parts: List[str] = []
    args: List[Any] = []
    for i, c in enumerate(_key_columns(schema), start=args_count + 1):
        parts.append(f"{_q(engine, c.name)} = {placeholder(i)}")
        args.append(fields[c.name].to_db(engine))
    return " AND ".join(parts), args


def column_create(engine: Engine, column: ColumnDef) -> str:
    """Column definition as it appears inside CREATE TABLE."""
    parts = [_q(engine, column.name), column_type(engine, column.kind)]
    if column.nullable and not column.primary_key:
        parts.append("NULL")
    else:
        parts.append("NOT NULL")
    if column.default is not Default.NONE:
        parts.append("DEFAULT " + default_expr(engine, column.default))
    return " ".join(parts)


# builders
def build_create_table(
    schema: TableSchema,
    engine: Engine,
    options: Optional[CreateTableOptions] = None,
) -> Statement:
    opt = options or CreateTableOptions()

    defs = [column_create(engine, c) for c in schema.columns]
    if schema.primary_key:
        defs.append(f"PRIMARY KEY ({_column_list(engine, schema.primary_key)})")
    if schema.unique_key:
        defs.append(f"UNIQUE ({_column_list(engine, schema.unique_key)})")

    head = "CREATE TABLE IF NOT EXISTS" if opt.if_not_exists else "CREATE TABLE"
    return Statement(f"{head} {_q(engine, schema.table)} ({', '.join(defs)});")


def build_drop_table(schema: TableSchema, engine: Engine) -> Statement:
    return Statement(f"DROP TABLE IF EXISTS {_q(engine, schema.table)};")


def build_insert(schema: TableSchema, fields: Mapping[str, Field], engine: Engine) -> Statement:
    supplied = tuple(c for c in schema.columns if not c.auto)
    returned = tuple(c for c in schema.columns if c.auto)

    values = ", ".join(placeholder(i) for i in range(1, len(supplied) + 1))
    sql = (
        f"INSERT INTO {_q(engine, schema.table)} ({_column_list(engine, supplied)}) "
        f"VALUES ({values}){_returning(engine, returned)};"
    )
    params = tuple(fields[c.name].to_db(engine) for c in supplied)
    return Statement(sql, params, returned)


def build_update(schema: TableSchema, fields: Mapping[str, Field], engine: Engine) -> Optional[Statement]:
    """UPDATE of the dirty, non-auto columns keyed by primary (else unique) key.

    Returns None when no column is dirty.  Raises NoKeyError when the table
    has neither key, even if nothing is dirty.
    """
    _key_columns(schema)

    dirty = tuple(c for c in schema.columns if not c.auto and fields[c.name].changed())
    if not dirty:
        return None
    returned = tuple(c for c in schema.columns if c.auto)

    assignments = ", ".join(f"{_q(engine, c.name)} = {placeholder(i)}" for i, c in enumerate(dirty, start=1))
    params = [fields[c.name].to_db(engine) for c in dirty]
    where, wargs = _where_key(schema, fields, engine, len(params))

    sql = (
        f"UPDATE {_q(engine, schema.table)} SET {assignments} "
        f"WHERE {where}{_returning(engine, returned)};"
    )
    return Statement(sql, tuple(params + wargs), returned)


def build_delete(schema: TableSchema, fields: Mapping[str, Field], engine: Engine) -> Statement:
    where, args = _where_key(schema, fields, engine, 0)
    return Statement(f"DELETE FROM {_q(engine, schema.table)} WHERE {where};", tuple(args))


def build_select(schema: TableSchema, engine: Engine) -> Statement:
    return Statement(f"SELECT {_column_list(engine, schema.columns)} FROM {_q(engine, schema.table)}")


def build_select_by_key(schema: TableSchema, engine: Engine, key: Tuple[Any, ...]) -> Statement:
    """SELECT of one row by its primary (else unique) key values, given in declaration order."""
    columns = _key_columns(schema)
    if len(key) != len(columns):
        raise ValueError(f"{schema.table}: expected {len(columns)} key value(s), got {len(key)}")

    where = " AND ".join(f"{_q(engine, c.name)} = {placeholder(i)}" for i, c in enumerate(columns, start=1))
    params = tuple(to_db(engine, c.kind, v) for c, v in zip(columns, key))
    return Statement(f"{build_select(schema, engine).sql} WHERE {where};", params)
