"""
Blueshift Migration System

Applies one migration definition to two databases: a primary transactional
store and an analytics warehouse, each receiving its own SQL.

Key Features:
- Separate up/down and redup/reddown operations per migration
- Per-backend history table (schema_migrations)
- Per-migration transactions covering both DDL and history bookkeeping
- One-step rollback computed from history
- History seeding without execution
"""

from .errors import (
    DuplicateMigrationError,
    HistoryInconsistencyError,
    IncompleteDefinitionError,
    MigrationError,
    UnknownBackendError,
)
from .history import AppliedVersionRecord, HistoryTable
from .migration_base import Migration, MigrationUnit, define
from .registry import MigrationRegistry, parse_version
from .router import Backend, BackendRouter, Direction
from .runner import NO_MIGRATIONS, MigrationResult, MigrationStatus, Runner

__all__ = [
    "AppliedVersionRecord",
    "Backend",
    "BackendRouter",
    "Direction",
    "DuplicateMigrationError",
    "HistoryInconsistencyError",
    "HistoryTable",
    "IncompleteDefinitionError",
    "Migration",
    "MigrationError",
    "MigrationRegistry",
    "MigrationResult",
    "MigrationStatus",
    "MigrationUnit",
    "NO_MIGRATIONS",
    "Runner",
    "UnknownBackendError",
    "define",
    "parse_version",
]
