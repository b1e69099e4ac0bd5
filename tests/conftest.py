"""Pytest fixtures for Blueshift tests"""
import textwrap
from pathlib import Path

import pytest

from blueshift.database import SQLiteHandle
from blueshift.migrations import Backend, MigrationRegistry


# Each file creates <table> on primary and <table>_rs on analytics, so tests
# can tell from the schema which unit ran where.
MIGRATION_SOURCE = '''
from blueshift import define


def up(db):
    db.execute("CREATE TABLE {table} (id INTEGER PRIMARY KEY, name TEXT)")


def down(db):
    db.execute("DROP TABLE {table}")


def redup(db):
    db.execute("CREATE TABLE {table}_rs (id INTEGER, name VARCHAR(256))")


def reddown(db):
    db.execute("DROP TABLE {table}_rs")


define(up=up, down=down, redup=redup, reddown=reddown)
'''


@pytest.fixture(autouse=True)
def reset_registry():
    """Isolate the process-wide registry between tests."""
    MigrationRegistry.default().reset()
    yield
    MigrationRegistry.default().reset()


@pytest.fixture
def registry():
    return MigrationRegistry()


@pytest.fixture
def primary_db(tmp_path):
    db = SQLiteHandle(tmp_path / "primary.sqlite", Backend.PRIMARY)
    yield db
    db.close()


@pytest.fixture
def analytics_db(tmp_path):
    db = SQLiteHandle(tmp_path / "analytics.sqlite", Backend.ANALYTICS)
    yield db
    db.close()


@pytest.fixture
def migrations_dir(tmp_path):
    path = tmp_path / "db" / "migrations"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def write_migration(migrations_dir):
    """Write a migration file; returns its path.

    With only a table name, writes the standard create/drop migration.
    Pass ``source`` to write arbitrary content.
    """
    def _write(version: int, name: str, table: str = None, source: str = None) -> Path:
        if source is None:
            source = MIGRATION_SOURCE.format(table=table or name)
        path = migrations_dir / f"{version}_{name}.py"
        path.write_text(textwrap.dedent(source))
        return path

    return _write
