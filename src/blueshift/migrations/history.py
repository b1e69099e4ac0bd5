"""
Migration history for one backend.

Each backend keeps its own history table recording which migration
versions have been applied:

    schema_migrations(version INTEGER UNIQUE, applied_at TIMESTAMP)

All statements go through the handle, so history writes join whatever
transaction the handle has open.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_TABLE = "schema_migrations"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass
class AppliedVersionRecord:
    """A stored history row."""
    version: int
    applied_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "version": self.version,
            "applied_at": self.applied_at.isoformat() if self.applied_at else None,
        }


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


class HistoryTable:
    """
    History Table - applied versions for one backend

    Pattern: One row per applied version, removed again on revert
    Lifetime: Persistent in the backend database

    Example:
        history = HistoryTable(db)
        history.ensure()
        if 20160601192854 not in history.applied_versions():
            history.insert(20160601192854)
    """

    def __init__(self, db, table_name: str = DEFAULT_HISTORY_TABLE):
        """
        Args:
            db: DatabaseHandle the table lives in
            table_name: History table name (default: schema_migrations)
        """
        if not _IDENTIFIER.match(table_name):
            raise ValueError(f"Invalid history table name: {table_name!r}")
        self.db = db
        self.table_name = table_name

    def ensure(self) -> None:
        """Create the history table if it does not exist."""
        if self.db.table_exists(self.table_name):
            return
        self.db.execute(f"""
            CREATE TABLE {self.table_name} (
                version BIGINT NOT NULL UNIQUE,
                applied_at TIMESTAMP NOT NULL
            )
        """)
        logger.info(f"Created history table {self.table_name} on {self.db.backend.value}")

    def applied_versions(self) -> Set[int]:
        """Set of applied versions (empty if the table does not exist)."""
        if not self.db.table_exists(self.table_name):
            return set()
        rows = self.db.fetchall(f"SELECT version FROM {self.table_name}")
        return {int(row[0]) for row in rows}

    def records(self) -> List[AppliedVersionRecord]:
        """All history rows, ascending by version."""
        if not self.db.table_exists(self.table_name):
            return []
        rows = self.db.fetchall(
            f"SELECT version, applied_at FROM {self.table_name} ORDER BY version ASC"
        )
        return [
            AppliedVersionRecord(version=int(row[0]), applied_at=_parse_timestamp(row[1]))
            for row in rows
        ]

    def latest(self) -> int:
        """Most recently applied version, or 0 if none."""
        return max(self.applied_versions(), default=0)

    def is_applied(self, version: int) -> bool:
        return version in self.applied_versions()

    def insert(self, version: int) -> bool:
        """
        Record ``version`` as applied.

        Returns:
            True if a row was inserted, False if the version was already recorded
        """
        self.ensure()
        if self.is_applied(version):
            return False
        p = self.db.placeholder
        self.db.execute(
            f"INSERT INTO {self.table_name} (version, applied_at) VALUES ({p}, {p})",
            (version, datetime.now().isoformat()),
        )
        return True

    def delete(self, version: int) -> None:
        """Remove the record for ``version``."""
        if not self.db.table_exists(self.table_name):
            return
        p = self.db.placeholder
        self.db.execute(f"DELETE FROM {self.table_name} WHERE version = {p}", (version,))

    def clear(self) -> None:
        """
        Remove every history row (use with caution).

        The backend's schema is not touched; only the bookkeeping goes.
        """
        if self.db.table_exists(self.table_name):
            self.db.execute(f"DELETE FROM {self.table_name}")

    def __len__(self) -> int:
        return len(self.applied_versions())
