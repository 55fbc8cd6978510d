"""
Statement execution on top of SQLAlchemy, plus transactions and savepoints.

Database      wraps an ``sqlalchemy.engine.Engine``; every call outside a
              transaction runs in its own short-lived BEGIN/COMMIT.
Transaction   owns one ``Connection``.  ``Database.begin()`` opens the root
              scope, ``Transaction.begin()`` opens a savepoint inside it.

Records that change inside a transaction are registered with its root scope
and frozen only when that root commits or rolls back.  Savepoint commit or
rollback never touches the in-memory state of records: rolling back a
savepoint restores the database, not the Field baselines.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterator, List, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection
from sqlalchemy.engine import Engine as SAEngine
from sqlalchemy.exc import DBAPIError

from rdd.errors import DuplicateKeyError, NotFoundError, StoreError, TransactionStateError
from rdd.events import EventType, emit
from rdd.sql.engine import Engine, placeholder, quote_identifier

if TYPE_CHECKING:
    from sqlalchemy.engine import RootTransaction, RowMapping

    from rdd.core.record import Record
    from rdd.sql.builder import Statement

logger = logging.getLogger(__name__)

_SQLITE_DUPLICATE = ("SQLITE_CONSTRAINT_PRIMARYKEY", "SQLITE_CONSTRAINT_UNIQUE")
_PG_UNIQUE_VIOLATION = "23505"


def is_duplicate_key(exc: BaseException) -> bool:
    """True when ``exc`` reports a primary or unique key violation.

    Accepts rdd errors, SQLAlchemy ``DBAPIError`` wrappers and raw driver
    exceptions alike.
    """
    if isinstance(exc, DuplicateKeyError):
        return True
    if isinstance(exc, StoreError) and exc.__cause__ is not None:
        exc = exc.__cause__
    orig = getattr(exc, "orig", None) or exc

    if getattr(orig, "sqlite_errorname", None) in _SQLITE_DUPLICATE:
        return True
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return code == _PG_UNIQUE_VIOLATION


def _translate(exc: DBAPIError, sql: str) -> StoreError:
    message = str(exc.orig) if exc.orig is not None else str(exc)
    if is_duplicate_key(exc):
        return DuplicateKeyError(message, statement=sql)
    return StoreError(message, statement=sql)


def _bind(args: tuple) -> Dict[str, Any]:
    return {placeholder(i + 1)[1:]: v for i, v in enumerate(args)}


class Executor:
    """Statement execution shared by Database and Transaction.

    SQL text uses ``:p1, :p2, ...`` for its positional arguments.
    """

    engine: Engine

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        raise NotImplementedError

    def within_transaction(self) -> bool:
        raise NotImplementedError

    def _run(self, sql: str, params: Dict[str, Any]) -> tuple[List[RowMapping], int]:
        logger.debug("exec %s %s", sql, params)
        try:
            with self._connection() as conn:
                result = conn.execute(text(sql), params)
                count = result.rowcount
                rows = list(result.mappings()) if result.returns_rows else []
                return rows, count
        except DBAPIError as e:
            raise _translate(e, sql) from e

    def execute(self, sql: str, *args: Any) -> int:
        """Run a statement, return the affected row count."""
        _, count = self._run(sql, _bind(args))
        return count

    def query(self, sql: str, *args: Any) -> List[RowMapping]:
        rows, _ = self._run(sql, _bind(args))
        return rows

    def query_row(self, sql: str, *args: Any) -> RowMapping:
        """First row of the result; NotFoundError when there is none."""
        rows, _ = self._run(sql, _bind(args))
        if not rows:
            raise NotFoundError(statement=sql)
        return rows[0]

    def run(self, statement: Statement) -> List[RowMapping]:
        rows, _ = self._run(statement.sql, statement.bind_params())
        return rows

    def is_duplicate_key(self, exc: BaseException) -> bool:
        return is_duplicate_key(exc)


class Database(Executor):
    """Root handle over a SQLAlchemy engine."""

    def __init__(self, sa_engine: SAEngine) -> None:
        self.sa_engine = sa_engine
        self.engine = Engine.from_dialect(sa_engine.dialect.name)

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        with self.sa_engine.begin() as conn:
            yield conn

    def within_transaction(self) -> bool:
        return False

    def begin(self) -> Transaction:
        conn = self.sa_engine.connect()
        try:
            trans = conn.begin()
        except DBAPIError as e:
            conn.close()
            raise _translate(e, "BEGIN") from e
        logger.debug("begin transaction")
        return Transaction(self, conn, trans)

    def close(self) -> None:
        self.sa_engine.dispose()


class TxState(Enum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Transaction(Executor):
    """A root transaction or a savepoint nested in one.

    Usable as a context manager: commits on normal exit, rolls back when the
    block raises.
    """

    def __init__(
        self,
        database: Database,
        connection: Connection,
        trans: Optional[RootTransaction] = None,
        parent: Optional[Transaction] = None,
    ) -> None:
        self.database = database
        self.engine = database.engine
        self.parent = parent
        self.state = TxState.OPEN
        self.name: Optional[str] = None if parent is None else f"sp_{uuid.uuid4().hex[:12]}"
        self._conn = connection
        self._trans = trans
        self._pending: List[Record] = []

    @property
    def savepoint(self) -> bool:
        return self.parent is not None

    @property
    def root(self) -> Transaction:
        tx = self
        while tx.parent is not None:
            tx = tx.parent
        return tx

    @property
    def pending(self) -> List[Record]:
        """Records waiting for the root scope to end, in registration order."""
        return list(self.root._pending)

    def within_transaction(self) -> bool:
        return True

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        self._check_open()
        yield self._conn

    def _check_open(self) -> None:
        # ending a scope also ends every savepoint nested in it
        tx: Optional[Transaction] = self
        while tx is not None:
            if tx.state is not TxState.OPEN:
                what = f"savepoint {tx.name}" if tx.savepoint else "transaction"
                raise TransactionStateError(f"{what} is already {tx.state.value}")
            tx = tx.parent

    def _control(self, sql: str) -> None:
        self._check_open()
        logger.debug("exec %s", sql)
        try:
            self._conn.exec_driver_sql(sql)
        except DBAPIError as e:
            raise _translate(e, sql) from e

    # ---- scopes ---------------------------------------------------------
    def begin(self) -> Transaction:
        """Open a savepoint nested in this scope."""
        self._check_open()
        sp = Transaction(self.database, self._conn, parent=self)
        self._control(f"SAVEPOINT {quote_identifier(self.engine, sp.name)}")
        return sp

    def register(self, record: Record) -> None:
        """Queue ``record`` to be frozen when the root scope ends."""
        root = self.root
        if not any(r is record for r in root._pending):
            root._pending.append(record)

    def commit(self, ctx: Any = None) -> None:
        self._check_open()
        if self.savepoint:
            self._control(f"RELEASE SAVEPOINT {quote_identifier(self.engine, self.name)}")
            self.state = TxState.COMMITTED
            return

        try:
            self._trans.commit()
        except DBAPIError as e:
            self._close(TxState.ROLLED_BACK)
            raise _translate(e, "COMMIT") from e
        self._close(TxState.COMMITTED)
        logger.debug("commit transaction, freezing %d record(s)", len(self._pending))

        pending, self._pending = self._pending, []
        remaining = iter(pending)
        try:
            for record in remaining:
                try:
                    emit(record, EventType.AFTER_COMMIT, database=self.database, context=ctx)
                finally:
                    record.freeze()
        finally:
            # rows are committed, a failing hook must not leave records dirty
            for record in remaining:
                record.freeze()

    def rollback(self) -> None:
        self._check_open()
        if self.savepoint:
            name = quote_identifier(self.engine, self.name)
            self._control(f"ROLLBACK TO SAVEPOINT {name}")
            self._control(f"RELEASE SAVEPOINT {name}")
            self.state = TxState.ROLLED_BACK
            return

        try:
            self._trans.rollback()
        except DBAPIError as e:
            raise _translate(e, "ROLLBACK") from e
        finally:
            self._close(TxState.ROLLED_BACK)
        logger.debug("rollback transaction, freezing %d record(s)", len(self._pending))

        # the transaction is over, stop tracking these as dirty
        pending, self._pending = self._pending, []
        for record in pending:
            record.freeze()

    def _close(self, state: TxState) -> None:
        self.state = state
        self._conn.close()

    def __enter__(self) -> Transaction:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.state is not TxState.OPEN:
            return
        if exc_type is None:
            self.commit()
        else:
            self.rollback()
