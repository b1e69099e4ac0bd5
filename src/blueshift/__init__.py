"""
Blueshift - dual-backend schema migrations

One migration file, two databases: the primary transactional store gets
up/down, the analytics warehouse gets redup/reddown.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .migrations import (
    Backend,
    Direction,
    Migration,
    MigrationRegistry,
    Runner,
    define,
)
from .migrations.errors import (
    HistoryInconsistencyError,
    IncompleteDefinitionError,
    MigrationError,
    UnknownBackendError,
)

# Name used inside migration files: blueshift.migration(up=..., down=..., ...)
migration = define

__all__ = [
    "Backend",
    "Direction",
    "HistoryInconsistencyError",
    "IncompleteDefinitionError",
    "Migration",
    "MigrationError",
    "MigrationRegistry",
    "Runner",
    "UnknownBackendError",
    "define",
    "migration",
]
