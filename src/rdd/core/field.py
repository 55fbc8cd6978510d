"""
Typed value cell with change tracking.

A Field keeps the value the caller set (``current``) and the value last
persisted (``baseline``).  ``changed()`` compares the two with equality that
fits the field's Kind; ``freeze()`` moves the baseline forward.

* Kind is a closed set, every per-kind rule below is a table keyed by Kind.
* Timestamps compare by instant.  Naive datetimes are taken as UTC.
* Nullable kinds hold ``None`` (not valid) or a value of their base kind.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict

if TYPE_CHECKING:
    from rdd.sql.engine import Engine

UTC = dt.timezone.utc
ZERO_TIME = dt.datetime(1, 1, 1, tzinfo=UTC)

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


class Kind(Enum):
    """Scalar kinds a column can hold."""

    TEXT = "text"
    INTEGER = "integer"
    INT64 = "int64"
    BOOLEAN = "boolean"
    DOUBLE = "double"
    TIMESTAMP = "timestamp"
    NULL_TEXT = "null_text"
    NULL_INTEGER = "null_integer"
    NULL_INT64 = "null_int64"
    NULL_BOOLEAN = "null_boolean"
    NULL_DOUBLE = "null_double"
    NULL_TIMESTAMP = "null_timestamp"

    @property
    def nullable(self) -> bool:
        return self.value.startswith("null_")

    @property
    def base(self) -> Kind:
        """Scalar kind behind a nullable variant (itself for plain kinds)."""
        if self.nullable:
            return Kind(self.value[len("null_"):])
        return self

    def zero(self) -> Any:
        if self.nullable:
            return None
        return _ZERO[self]


_ZERO: Dict[Kind, Any] = {
    Kind.TEXT: "",
    Kind.INTEGER: 0,
    Kind.INT64: 0,
    Kind.BOOLEAN: False,
    Kind.DOUBLE: 0.0,
    Kind.TIMESTAMP: ZERO_TIME,
}


# helpers
def instant(value: dt.datetime) -> dt.datetime:
    """Aware UTC datetime for ``value``; naive values are read as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _accept_int(v: Any) -> bool:
    if not _is_int(v):
        return False
    if not _INT64_MIN <= v <= _INT64_MAX:
        raise ValueError(f"{v} does not fit in 64 bits")
    return True


_ACCEPTS: Dict[Kind, Callable[[Any], bool]] = {
    Kind.TEXT: lambda v: isinstance(v, str),
    Kind.INTEGER: _accept_int,
    Kind.INT64: _accept_int,
    Kind.BOOLEAN: lambda v: isinstance(v, bool),
    Kind.DOUBLE: lambda v: isinstance(v, float) or _is_int(v),
    Kind.TIMESTAMP: lambda v: isinstance(v, dt.datetime),
}

_EQUAL: Dict[Kind, Callable[[Any, Any], bool]] = {
    Kind.TEXT: lambda a, b: a == b,
    Kind.INTEGER: lambda a, b: a == b,
    Kind.INT64: lambda a, b: a == b,
    Kind.BOOLEAN: lambda a, b: a == b,
    Kind.DOUBLE: lambda a, b: a == b,
    Kind.TIMESTAMP: lambda a, b: instant(a) == instant(b),
}

_EMPTY: Dict[Kind, Callable[[Any], bool]] = {
    Kind.TEXT: lambda v: v == "",
    Kind.INTEGER: lambda v: v == 0,
    Kind.INT64: lambda v: v == 0,
    Kind.BOOLEAN: lambda v: v is False,
    Kind.DOUBLE: lambda v: v == 0.0,
    Kind.TIMESTAMP: lambda v: instant(v) == ZERO_TIME,
}


def accepts(kind: Kind, value: Any) -> bool:
    """True when ``value`` may be stored in a field of ``kind``."""
    if value is None:
        return kind.nullable
    try:
        return _ACCEPTS[kind.base](value)
    except ValueError:
        return False


def coerce(kind: Kind, value: Any) -> Any:
    """Validate ``value`` for ``kind`` and normalise it (ints become floats for doubles)."""
    if value is None:
        if kind.nullable:
            return None
        raise TypeError(f"{kind.value} field does not accept None")
    if not _ACCEPTS[kind.base](value):
        raise TypeError(f"{kind.value} field does not accept {type(value).__name__}")
    if kind.base is Kind.DOUBLE:
        return float(value)
    return value


def equal(kind: Kind, a: Any, b: Any) -> bool:
    if kind.nullable:
        if a is None or b is None:
            return a is None and b is None
    return _EQUAL[kind.base](a, b)


class Field:
    """A current/baseline value pair of one Kind."""

    __slots__ = ("_kind", "_value", "_old")

    def __init__(self, kind: Kind) -> None:
        if not isinstance(kind, Kind):
            raise TypeError(f"unsupported field kind {kind!r}")
        self._kind = kind
        self._value = kind.zero()
        self._old = kind.zero()

    @property
    def kind(self) -> Kind:
        return self._kind

    def get(self) -> Any:
        return self._value

    def set(self, value: Any) -> None:
        self._value = coerce(self._kind, value)

    def changed(self) -> bool:
        return not equal(self._kind, self._value, self._old)

    def empty(self) -> bool:
        # a nullable cell is empty only when absent, a valid zero counts as set
        if self._kind.nullable:
            return self._value is None
        return _EMPTY[self._kind](self._value)

    def freeze(self) -> None:
        self._old = self._value

    def reset(self) -> None:
        self._value = self._kind.zero()
        self._old = self._kind.zero()

    # ---- storage marshalling -------------------------------------------
    def to_db(self, engine: "Engine") -> Any:
        # late import – avoids circular dep
        from rdd.sql.engine import to_db

        return to_db(engine, self._kind, self._value)

    def from_db(self, engine: "Engine", raw: Any) -> None:
        from rdd.sql.engine import from_db

        self.set(from_db(engine, self._kind, raw))

    def __repr__(self) -> str:
        flag = "*" if self.changed() else ""
        return f"Field[{self._kind.value}]({self._value!r}){flag}"
