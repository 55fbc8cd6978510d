"""
Public surface for rdd.
Importing this module does **not** open a database; call ``rdd.connect(url)``
(or build a ``Runtime``) during application start-up.
"""

from .bootstrap import connect, init_rdd
from .config import Settings
from .core.field import Field, Kind
from .core.record import Record, create_table, select
from .core.schema import Column, ColumnDef, SchemaRegistry, TableSchema
from .errors import (
    DuplicateKeyError,
    NoKeyError,
    NotFoundError,
    RddError,
    SchemaError,
    StoreError,
    TransactionStateError,
    UnsupportedEngineError,
)
from .events import EventParameters, EventType, Operation
from .persistence.database import Database, Transaction, is_duplicate_key
from .runtime import Runtime
from .sql.builder import CreateTableOptions
from .sql.engine import Default, Engine

__all__ = [
    "Column",
    "ColumnDef",
    "CreateTableOptions",
    "Database",
    "Default",
    "DuplicateKeyError",
    "Engine",
    "EventParameters",
    "EventType",
    "Field",
    "Kind",
    "NoKeyError",
    "NotFoundError",
    "Operation",
    "RddError",
    "Record",
    "Runtime",
    "SchemaError",
    "SchemaRegistry",
    "Settings",
    "StoreError",
    "TableSchema",
    "Transaction",
    "TransactionStateError",
    "UnsupportedEngineError",
    "connect",
    "create_table",
    "init_rdd",
    "is_duplicate_key",
    "select",
]
