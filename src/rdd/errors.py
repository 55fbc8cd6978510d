"""
Error types raised by rdd.

* RddError                 base class, carries ``code`` and ``details``
* SchemaError              malformed or incomplete record declaration
* NoKeyError               UPDATE/DELETE on a table without primary or unique key
* UnsupportedEngineError   dialect helper called for an engine with no mapping
* StoreError               anything the database reported
* DuplicateKeyError        unique / primary key violation (recoverable)
* NotFoundError            a query returned no row where one was expected
* TransactionStateError    commit/rollback/execute on a closed scope
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class RddError(Exception):
    """Base exception for all rdd errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "RDD_ERROR"
        self.details = details or {}


class SchemaError(RddError):
    """Record type declaration cannot be turned into a table schema."""

    def __init__(self, message: str, record_type: Optional[str] = None) -> None:
        super().__init__(message, code="SCHEMA_ERROR", details={"record_type": record_type})
        self.record_type = record_type


class NoKeyError(RddError):
    """Table has neither primary nor unique key, so no safe WHERE clause exists."""

    def __init__(self, table: str) -> None:
        super().__init__(
            f"table {table!r} has no primary or unique key defined",
            code="NO_KEY",
            details={"table": table},
        )
        self.table = table


class UnsupportedEngineError(RddError):
    def __init__(self, engine: Any) -> None:
        super().__init__(f"unsupported engine: {engine}", code="UNSUPPORTED_ENGINE", details={"engine": str(engine)})
        self.engine = engine


class StoreError(RddError):
    """The database rejected a statement.

    The driver exception is kept as ``__cause__``.
    """

    def __init__(self, message: str, statement: Optional[str] = None, code: Optional[str] = None) -> None:
        super().__init__(message, code=code or "STORE_ERROR", details={"statement": statement})
        self.statement = statement


class DuplicateKeyError(StoreError):
    """Primary or unique key constraint violated."""

    def __init__(self, message: str, statement: Optional[str] = None) -> None:
        super().__init__(message, statement=statement, code="DUPLICATE_KEY")


class NotFoundError(StoreError):
    def __init__(self, message: str = "no rows in result set", statement: Optional[str] = None) -> None:
        super().__init__(message, statement=statement, code="NOT_FOUND")


class TransactionStateError(StoreError):
    def __init__(self, message: str) -> None:
        super().__init__(message, code="TRANSACTION_STATE")
