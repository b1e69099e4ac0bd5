"""
Database handles

A DatabaseHandle is the capability the migration engine runs against: it
executes statements, manages transactions and exposes the backend's history
table. Every handle carries the Backend it belongs to, fixed at construction.

Built-in driver:
- sqlite: SQLiteHandle (stdlib sqlite3)

Other drivers (Postgres, Redshift, ...) are published by third-party
packages under the ``blueshift.drivers`` entry point group, each pointing at
a DatabaseHandle subclass whose constructor accepts
``(database, backend, history_table=..., **options)``.
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from importlib.metadata import entry_points
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Type, Union

from .config import BackendSettings, ConfigError
from .migrations.history import DEFAULT_HISTORY_TABLE, HistoryTable
from .migrations.router import Backend

logger = logging.getLogger(__name__)

DRIVER_GROUP = "blueshift.drivers"


class DatabaseHandle(ABC):
    """
    Abstract connection to one backend.

    Subclasses implement statement execution and the raw transaction
    primitives; transaction() layers re-entrancy on top so a migration's own
    transaction and the runner's history bookkeeping share one unit of work.
    """

    # DB-API parameter marker used by HistoryTable
    placeholder = "?"

    def __init__(self, backend: Union[Backend, str], history_table: str = DEFAULT_HISTORY_TABLE):
        self.backend = Backend.parse(backend)
        self.history_table = history_table
        self._depth = 0
        self._history: Optional[HistoryTable] = None

    @abstractmethod
    def execute(self, sql: str, params: Sequence[Any] = ()) -> Any:
        """Execute a single statement."""

    @abstractmethod
    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[tuple]:
        """Execute a query and return all rows."""

    @abstractmethod
    def begin(self) -> None:
        pass

    @abstractmethod
    def commit(self) -> None:
        pass

    @abstractmethod
    def rollback(self) -> None:
        pass

    @abstractmethod
    def table_exists(self, name: str) -> bool:
        pass

    def close(self) -> None:
        pass

    @contextmanager
    def transaction(self) -> Iterator["DatabaseHandle"]:
        """
        Run the enclosed block in a transaction.

        Nested calls join the outermost transaction; only the outermost
        level commits, or rolls back when an exception escapes it.
        """
        if self._depth:
            self._depth += 1
            try:
                yield self
            finally:
                self._depth -= 1
            return

        self.begin()
        self._depth = 1
        try:
            yield self
        except BaseException as e:
            self._depth = 0
            try:
                self.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback on {self.backend.value} failed: {rollback_error}")
                raise e
            raise
        self._depth = 0
        self.commit()

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @property
    def history(self) -> HistoryTable:
        """History table for this backend."""
        if self._history is None:
            self._history = HistoryTable(self, self.history_table)
        return self._history

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.backend.value}>"


class SQLiteHandle(DatabaseHandle):
    """
    SQLite-backed handle.

    The connection runs in autocommit mode; begin() issues an explicit
    BEGIN so DDL participates in the transaction.

    Example:
        db = SQLiteHandle("db/primary.sqlite", Backend.PRIMARY)
        with db.transaction():
            db.execute("CREATE TABLE users (id INTEGER PRIMARY KEY)")
    """

    def __init__(self,
                 database: Union[str, Path],
                 backend: Union[Backend, str],
                 history_table: str = DEFAULT_HISTORY_TABLE,
                 timeout: float = 5.0):
        super().__init__(backend, history_table)
        self.database = str(database)
        if self.database != ":memory:":
            Path(self.database).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.database, timeout=timeout, isolation_level=None)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        return self._conn.execute(sql, tuple(params))

    def fetchall(self, sql: str, params: Sequence[Any] = ()) -> List[tuple]:
        return self._conn.execute(sql, tuple(params)).fetchall()

    def begin(self) -> None:
        self._conn.execute("BEGIN")

    def commit(self) -> None:
        self._conn.execute("COMMIT")

    def rollback(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    def table_exists(self, name: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
        ).fetchone()
        return row is not None

    def close(self) -> None:
        self._conn.close()


BUILTIN_DRIVERS: Dict[str, Type[DatabaseHandle]] = {
    "sqlite": SQLiteHandle,
}


def get_driver(name: str) -> Type[DatabaseHandle]:
    """
    Resolve a driver name to a DatabaseHandle subclass.

    Built-in drivers win; otherwise the ``blueshift.drivers`` entry points
    are searched.

    Raises:
        ConfigError: If no driver is registered under ``name``
    """
    if name in BUILTIN_DRIVERS:
        return BUILTIN_DRIVERS[name]

    for ep in entry_points(group=DRIVER_GROUP):
        if ep.name != name:
            continue
        try:
            driver = ep.load()
        except Exception as e:
            raise ConfigError(f"Failed to load driver '{name}' from {ep.value}: {e}") from e
        if not (isinstance(driver, type) and issubclass(driver, DatabaseHandle)):
            raise ConfigError(f"Driver '{name}' is not a DatabaseHandle subclass")
        return driver

    raise ConfigError(f"Unknown database driver: {name!r}")


def connect(backend: Union[Backend, str],
            settings: BackendSettings,
            history_table: str = DEFAULT_HISTORY_TABLE) -> DatabaseHandle:
    """Open a handle for ``backend`` from its configuration section."""
    backend = Backend.parse(backend)
    if not settings.database:
        raise ConfigError(f"No database configured for {backend.value}")
    driver = get_driver(settings.driver)
    logger.debug(f"Connecting {backend.value} via {settings.driver} to {settings.database}")
    return driver(settings.database, backend, history_table=history_table, **settings.options)
