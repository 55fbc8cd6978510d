"""
Wiring between SQLAlchemy and rdd.
Call ``connect()`` once at start-up, then ``init_rdd()`` to create the tables
of every registered record type.
"""

from __future__ import annotations

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from .core.record import create_table
from .core.schema import SchemaRegistry
from .persistence.database import Database
from .sql.builder import CreateTableOptions

logger = logging.getLogger(__name__)


def _sqlite_transactions(engine: Engine) -> None:
    """Let SQLAlchemy, not pysqlite, emit BEGIN so savepoints behave."""

    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def connect(url: str, *, echo: bool = False) -> Database:
    engine = create_engine(url, echo=echo, pool_pre_ping=True)
    if engine.dialect.name == "sqlite":
        _sqlite_transactions(engine)
    logger.debug("connected to %s", engine.url.render_as_string(hide_password=True))
    return Database(engine)


def init_rdd(db: Database, registry: SchemaRegistry, *, if_not_exists: bool = True) -> None:
    """Create the table of every schema known to ``registry``."""
    options = CreateTableOptions(if_not_exists=if_not_exists)
    for schema in registry.schemas():
        create_table(schema, db, options)


def register_all(registry: SchemaRegistry, *record_types: type) -> SchemaRegistry:
    for cls in record_types:
        registry.register(cls)
    return registry
