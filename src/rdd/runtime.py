"""
rdd.runtime  ──  one object that holds settings, schema registry and database

Usage pattern in user code
--------------------------
    from rdd import Runtime

    rt = Runtime.from_settings(Settings.from_env(), User, Order)
    user = rt.use(User)
    user.email.set("ada@example.com")
    user.append(rt.db)
"""

from __future__ import annotations

from typing import Optional, Type, TypeVar

from .bootstrap import connect, init_rdd, register_all
from .config import Settings, configure_logging
from .core.schema import SchemaRegistry
from .persistence.database import Database

T = TypeVar("T")


class Runtime:
    """Explicitly constructed bundle; nothing here is process-global."""

    def __init__(self, settings: Settings, registry: SchemaRegistry, db: Database) -> None:
        self.settings = settings
        self.registry = registry
        self.db = db

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *record_types: type,
        registry: Optional[SchemaRegistry] = None,
    ) -> "Runtime":
        settings = settings or Settings.from_env()
        configure_logging(settings.log_level)

        registry = register_all(registry or SchemaRegistry(), *record_types)
        db = connect(settings.database_url, echo=settings.echo_sql)
        if settings.create_tables:
            init_rdd(db, registry)
        return cls(settings, registry, db)

    def use(self, record_type: Type[T]) -> T:
        return self.registry.use(record_type)

    def close(self) -> None:
        self.db.close()
