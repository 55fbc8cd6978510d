"""
Dialect tables: identifier quoting, column types, default expressions and
value marshalling for each supported engine.

SQLSERVER is declared so callers can name it, every helper rejects it with
UnsupportedEngineError until it gets its own tables.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any, Dict

from rdd.core.field import Kind, instant
from rdd.errors import UnsupportedEngineError


class Engine(Enum):
    SQLITE = "sqlite"
    COCKROACH = "cockroach"
    SQLSERVER = "sqlserver"

    @classmethod
    def from_dialect(cls, name: str) -> Engine:
        """Engine for a SQLAlchemy dialect name (``engine.dialect.name``)."""
        try:
            return _DIALECTS[name]
        except KeyError:
            raise UnsupportedEngineError(name) from None


class Default(Enum):
    """Store-side default expressions a column may declare."""

    NONE = ""
    NEW_UUID = "new_uuid"
    NOW = "now"


_DIALECTS: Dict[str, Engine] = {
    "sqlite": Engine.SQLITE,
    "postgresql": Engine.COCKROACH,
    "cockroachdb": Engine.COCKROACH,
    "mssql": Engine.SQLSERVER,
}

# UUIDv4 text built from SQLite core functions only
_SQLITE_UUID = (
    "(lower(hex(randomblob(4))) || '-' || lower(hex(randomblob(2))) || '-4' || "
    "substr(lower(hex(randomblob(2))), 2) || '-' || "
    "substr('89ab', abs(random()) % 4 + 1, 1) || "
    "substr(lower(hex(randomblob(2))), 2) || '-' || lower(hex(randomblob(6))))"
)

_DEFAULTS: Dict[Engine, Dict[Default, str]] = {
    Engine.SQLITE: {
        Default.NEW_UUID: _SQLITE_UUID,
        Default.NOW: "CURRENT_TIMESTAMP",
    },
    Engine.COCKROACH: {
        Default.NEW_UUID: "gen_random_uuid()",
        Default.NOW: "current_timestamp()",
    },
}

_TYPES: Dict[Engine, Dict[Kind, str]] = {
    Engine.SQLITE: {
        Kind.TEXT: "TEXT",
        Kind.INTEGER: "INTEGER",
        Kind.INT64: "INTEGER",
        Kind.BOOLEAN: "INTEGER",
        Kind.DOUBLE: "REAL",
        Kind.TIMESTAMP: "TEXT",
    },
    Engine.COCKROACH: {
        Kind.TEXT: "TEXT",
        Kind.INTEGER: "BIGINT",
        Kind.INT64: "BIGINT",
        Kind.BOOLEAN: "BOOLEAN",
        Kind.DOUBLE: "DOUBLE PRECISION",
        Kind.TIMESTAMP: "TIMESTAMPTZ",
    },
}


def _require(engine: Engine) -> None:
    if engine not in (Engine.SQLITE, Engine.COCKROACH):
        raise UnsupportedEngineError(engine)


def quote_identifier(engine: Engine, name: str) -> str:
    _require(engine)
    return '"' + name.replace('"', '""') + '"'


def default_expr(engine: Engine, default: Default) -> str:
    _require(engine)
    if default is Default.NONE:
        return ""
    return _DEFAULTS[engine][default]


def column_type(engine: Engine, kind: Kind) -> str:
    _require(engine)
    return _TYPES[engine][kind.base]


def placeholder(n: int) -> str:
    """Bind name for the n-th (1-based) positional parameter."""
    return f":p{n}"


# ---- value marshalling ----------------------------------------------------
def to_db(engine: Engine, kind: Kind, value: Any) -> Any:
    _require(engine)
    if value is None or engine is not Engine.SQLITE:
        return value
    base = kind.base
    if base is Kind.BOOLEAN:
        return 1 if value else 0
    if base is Kind.TIMESTAMP:
        return instant(value).isoformat()
    return value


def from_db(engine: Engine, kind: Kind, raw: Any) -> Any:
    _require(engine)
    if raw is None:
        return kind.zero()
    base = kind.base
    if base is Kind.BOOLEAN:
        return bool(raw)
    if base is Kind.DOUBLE:
        return float(raw)
    if base is Kind.TIMESTAMP:
        if isinstance(raw, str):
            raw = dt.datetime.fromisoformat(raw)
        return instant(raw)
    if base in (Kind.INTEGER, Kind.INT64):
        return int(raw)
    if base is Kind.TEXT and not isinstance(raw, str):
        return str(raw)
    return raw


__all__ = [
    "Default",
    "Engine",
    "column_type",
    "default_expr",
    "from_db",
    "placeholder",
    "quote_identifier",
    "to_db",
]
