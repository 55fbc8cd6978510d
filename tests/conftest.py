"""Shared fixtures: a file-backed SQLite database with every test table created."""

import pytest

from rdd import SchemaRegistry, connect, init_rdd

from tests.records import Audited, LogLine, Sample, Tag, User


@pytest.fixture
def registry():
    registry = SchemaRegistry()
    for cls in (User, Sample, Tag, LogLine, Audited):
        registry.register(cls)
    return registry


@pytest.fixture
def db(tmp_path, registry):
    database = connect(f"sqlite:///{tmp_path / 'rdd.db'}")
    init_rdd(database, registry)
    yield database
    database.close()
