"""
Unit tests for the dialect tables and SQL builders.

No database is involved: every test inspects generated text and parameters.
"""

import datetime as dt

import pytest

from rdd import Default, Engine, Kind, NoKeyError, SchemaRegistry, UnsupportedEngineError
from rdd.sql import engine as dialect
from rdd.sql.builder import (
    CreateTableOptions,
    build_create_table,
    build_delete,
    build_drop_table,
    build_insert,
    build_select_by_key,
    build_update,
)

from tests.records import LogLine, Sample, Tag, User

UTC = dt.timezone.utc


@pytest.fixture
def registry():
    return SchemaRegistry()


class TestDialect:
    def test_quote_identifier(self):
        assert dialect.quote_identifier(Engine.SQLITE, "users") == '"users"'
        assert dialect.quote_identifier(Engine.COCKROACH, 'we"ird') == '"we""ird"'

    @pytest.mark.parametrize(
        "call",
        [
            lambda: dialect.quote_identifier(Engine.SQLSERVER, "t"),
            lambda: dialect.default_expr(Engine.SQLSERVER, Default.NOW),
            lambda: dialect.column_type(Engine.SQLSERVER, Kind.TEXT),
            lambda: dialect.to_db(Engine.SQLSERVER, Kind.TEXT, "x"),
        ],
    )
    def test_sqlserver_is_reserved(self, call):
        with pytest.raises(UnsupportedEngineError):
            call()

    def test_default_expressions(self):
        assert dialect.default_expr(Engine.SQLITE, Default.NOW) == "CURRENT_TIMESTAMP"
        assert dialect.default_expr(Engine.COCKROACH, Default.NOW) == "current_timestamp()"
        assert dialect.default_expr(Engine.COCKROACH, Default.NEW_UUID) == "gen_random_uuid()"
        assert "randomblob" in dialect.default_expr(Engine.SQLITE, Default.NEW_UUID)
        assert dialect.default_expr(Engine.SQLITE, Default.NONE) == ""

    @pytest.mark.parametrize(
        "kind,sqlite,cockroach",
        [
            (Kind.TEXT, "TEXT", "TEXT"),
            (Kind.INTEGER, "INTEGER", "BIGINT"),
            (Kind.INT64, "INTEGER", "BIGINT"),
            (Kind.BOOLEAN, "INTEGER", "BOOLEAN"),
            (Kind.DOUBLE, "REAL", "DOUBLE PRECISION"),
            (Kind.TIMESTAMP, "TEXT", "TIMESTAMPTZ"),
            (Kind.NULL_BOOLEAN, "INTEGER", "BOOLEAN"),
            (Kind.NULL_TIMESTAMP, "TEXT", "TIMESTAMPTZ"),
        ],
    )
    def test_column_types(self, kind, sqlite, cockroach):
        assert dialect.column_type(Engine.SQLITE, kind) == sqlite
        assert dialect.column_type(Engine.COCKROACH, kind) == cockroach

    def test_from_dialect(self):
        assert Engine.from_dialect("sqlite") is Engine.SQLITE
        assert Engine.from_dialect("postgresql") is Engine.COCKROACH
        assert Engine.from_dialect("cockroachdb") is Engine.COCKROACH
        assert Engine.from_dialect("mssql") is Engine.SQLSERVER
        with pytest.raises(UnsupportedEngineError):
            Engine.from_dialect("oracle")

    def test_sqlserver_database_fails_at_first_dialect_use(self, registry):
        from types import SimpleNamespace

        from rdd import Database

        database = Database(SimpleNamespace(dialect=SimpleNamespace(name="mssql")))
        assert database.engine is Engine.SQLSERVER
        with pytest.raises(UnsupportedEngineError):
            build_create_table(registry.register(Tag), database.engine)

    def test_sqlite_marshalling(self):
        ts = dt.datetime(2024, 5, 17, 13, 45, 12, 345678, tzinfo=UTC)
        assert dialect.to_db(Engine.SQLITE, Kind.BOOLEAN, True) == 1
        assert dialect.to_db(Engine.SQLITE, Kind.TIMESTAMP, ts) == "2024-05-17T13:45:12.345678+00:00"
        assert dialect.to_db(Engine.SQLITE, Kind.NULL_BOOLEAN, None) is None
        assert dialect.from_db(Engine.SQLITE, Kind.BOOLEAN, 0) is False
        assert dialect.from_db(Engine.SQLITE, Kind.TIMESTAMP, "2024-05-17T13:45:12.345678+00:00") == ts
        # CURRENT_TIMESTAMP format, UTC without offset
        assert dialect.from_db(Engine.SQLITE, Kind.TIMESTAMP, "2024-05-17 13:45:12") == ts.replace(microsecond=0)
        assert dialect.from_db(Engine.SQLITE, Kind.DOUBLE, 3) == 3.0
        assert dialect.from_db(Engine.SQLITE, Kind.TEXT, None) == ""
        assert dialect.from_db(Engine.SQLITE, Kind.NULL_TEXT, None) is None

    def test_cockroach_passes_values_through(self):
        ts = dt.datetime(2024, 5, 17, tzinfo=UTC)
        assert dialect.to_db(Engine.COCKROACH, Kind.BOOLEAN, True) is True
        assert dialect.to_db(Engine.COCKROACH, Kind.TIMESTAMP, ts) is ts


class TestCreateTable:
    def test_sqlite(self, registry):
        stmt = build_create_table(registry.register(Tag), Engine.SQLITE)
        assert stmt.sql == (
            'CREATE TABLE "tags" ("slug" TEXT NOT NULL, "label" TEXT NULL, '
            '"hits" INTEGER NULL, UNIQUE ("slug"));'
        )
        assert stmt.params == ()

    def test_if_not_exists_and_keys(self, registry):
        stmt = build_create_table(registry.register(User), Engine.SQLITE, CreateTableOptions(if_not_exists=True))
        assert stmt.sql.startswith('CREATE TABLE IF NOT EXISTS "users" ("id" TEXT NOT NULL DEFAULT (lower(')
        assert stmt.sql.endswith(', PRIMARY KEY ("id"), UNIQUE ("email"));')
        assert '"email" TEXT NULL' in stmt.sql
        assert '"created_by" TEXT NULL' in stmt.sql

    def test_cockroach(self, registry):
        stmt = build_create_table(registry.register(User), Engine.COCKROACH)
        assert stmt.sql == (
            'CREATE TABLE "users" ("id" TEXT NOT NULL DEFAULT gen_random_uuid(), '
            '"email" TEXT NULL, "name" TEXT NULL, "created_at" TIMESTAMPTZ NULL, '
            '"created_by" TEXT NULL, PRIMARY KEY ("id"), UNIQUE ("email"));'
        )

    def test_drop(self, registry):
        assert build_drop_table(registry.register(Tag), Engine.SQLITE).sql == 'DROP TABLE IF EXISTS "tags";'

    def test_sql_text_is_stable(self, registry):
        schema = registry.register(Sample)
        texts = {build_create_table(schema, Engine.SQLITE).sql for _ in range(5)}
        assert len(texts) == 1


class TestInsert:
    def test_auto_column_is_returned_not_bound(self, registry):
        user = registry.use(User)
        user.email.set("ada@example.com")
        user.name.set("Ada")
        stmt = build_insert(user.schema, user.fields(), Engine.SQLITE)

        assert stmt.sql == (
            'INSERT INTO "users" ("email", "name", "created_at", "created_by") '
            'VALUES (:p1, :p2, :p3, :p4) RETURNING "id";'
        )
        assert stmt.params[:2] == ("ada@example.com", "Ada")
        assert stmt.params[3] is None
        assert [c.name for c in stmt.returning] == ["id"]

    def test_one_auto_key_two_supplied(self, registry):
        from rdd import Column, Default, Record

        class Pair(Record, table="pairs"):
            id = Column(Kind.TEXT, primary_key=True, auto=True, default=Default.NEW_UUID)
            left = Column(Kind.TEXT)
            right = Column(Kind.INTEGER)

        rec = registry.use(Pair)
        stmt = build_insert(rec.schema, rec.fields(), Engine.COCKROACH)
        assert stmt.sql.count(":p") == 2
        assert len(stmt.params) == 2
        assert stmt.sql.endswith(' RETURNING "id";')
        assert stmt.bind_params() == {"p1": "", "p2": 0}

    def test_no_returning_without_auto_columns(self, registry):
        tag = registry.use(Tag)
        tag.slug.set("py")
        stmt = build_insert(tag.schema, tag.fields(), Engine.SQLITE)
        assert stmt.sql == 'INSERT INTO "tags" ("slug", "label", "hits") VALUES (:p1, :p2, :p3);'
        assert stmt.returning == ()


class TestUpdate:
    def test_where_uses_primary_key(self, registry):
        user = registry.use(User)
        user.id.set("u-1")
        user.email.set("ada@example.com")
        user.freeze()
        user.name.set("Ada")

        stmt = build_update(user.schema, user.fields(), Engine.SQLITE)
        assert stmt.sql == 'UPDATE "users" SET "name" = :p1 WHERE "id" = :p2 RETURNING "id";'
        assert stmt.params == ("Ada", "u-1")

    def test_where_falls_back_to_unique_key(self, registry):
        tag = registry.use(Tag)
        tag.slug.set("py")
        tag.freeze()
        tag.label.set("Python")
        tag.hits.set(3)

        stmt = build_update(tag.schema, tag.fields(), Engine.SQLITE)
        assert stmt.sql == 'UPDATE "tags" SET "label" = :p1, "hits" = :p2 WHERE "slug" = :p3;'
        assert stmt.params == ("Python", 3, "py")

    def test_composite_primary_key(self, registry):
        from rdd import Column, Record

        class Line(Record, table="lines"):
            order_id = Column(Kind.INTEGER, primary_key=True)
            line_no = Column(Kind.INTEGER, primary_key=True)
            sku = Column(Kind.TEXT, unique_key=True)
            qty = Column(Kind.INTEGER)

        line = registry.use(Line)
        line.order_id.set(10)
        line.line_no.set(2)
        line.freeze()
        line.qty.set(5)

        stmt = build_update(line.schema, line.fields(), Engine.SQLITE)
        assert stmt.sql == 'UPDATE "lines" SET "qty" = :p1 WHERE "order_id" = :p2 AND "line_no" = :p3;'
        assert stmt.params == (5, 10, 2)

    def test_nothing_dirty(self, registry):
        tag = registry.use(Tag)
        assert build_update(tag.schema, tag.fields(), Engine.SQLITE) is None

    def test_no_key_fails(self, registry):
        line = registry.use(LogLine)
        line.message.set("hello")
        with pytest.raises(NoKeyError) as exc_info:
            build_update(line.schema, line.fields(), Engine.SQLITE)
        assert exc_info.value.table == "log_lines"

    def test_auto_columns_never_set(self, registry):
        user = registry.use(User)
        user.id.set("u-1")
        stmt = build_update(user.schema, user.fields(), Engine.SQLITE)
        assert stmt is None


class TestDelete:
    def test_primary_key(self, registry):
        user = registry.use(User)
        user.id.set("u-1")
        user.email.set("ada@example.com")
        stmt = build_delete(user.schema, user.fields(), Engine.SQLITE)
        assert stmt.sql == 'DELETE FROM "users" WHERE "id" = :p1;'
        assert stmt.params == ("u-1",)

    def test_unique_key(self, registry):
        tag = registry.use(Tag)
        tag.slug.set("py")
        stmt = build_delete(tag.schema, tag.fields(), Engine.SQLITE)
        assert stmt.sql == 'DELETE FROM "tags" WHERE "slug" = :p1;'

    def test_no_key_fails(self, registry):
        line = registry.use(LogLine)
        with pytest.raises(NoKeyError):
            build_delete(line.schema, line.fields(), Engine.SQLITE)


def test_select_by_key(registry):
    stmt = build_select_by_key(registry.register(Tag), Engine.SQLITE, ("py",))
    assert stmt.sql == 'SELECT "slug", "label", "hits" FROM "tags" WHERE "slug" = :p1;'
    assert stmt.params == ("py",)
    with pytest.raises(ValueError):
        build_select_by_key(registry.register(Tag), Engine.SQLITE, ())
