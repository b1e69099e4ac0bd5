"""
Migration model

A Migration pairs two MigrationUnits, one per backend, under a single
version. Each unit holds a forward and a reverse operation.

Pattern:
- Migration files call define() with four operations
- up/down run against the primary database
- redup/reddown run against the analytics warehouse
- apply() only ever runs the unit that matches the handle's backend
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .errors import IncompleteDefinitionError, MigrationError
from .registry import MigrationRegistry
from .router import BackendRouter, Direction

logger = logging.getLogger(__name__)

# An operation receives the handle it is being applied to.
Operation = Callable[..., None]


@dataclass(frozen=True)
class MigrationUnit:
    """Forward and reverse operations for one backend."""
    forward: Operation
    reverse: Operation

    def __post_init__(self):
        if self.forward is None or self.reverse is None:
            raise IncompleteDefinitionError(
                "MigrationUnit requires both a forward and a reverse operation"
            )

    def apply(self, db, direction: Direction) -> None:
        """Run the operation for ``direction`` against ``db``."""
        operation = self.forward if Direction(direction) is Direction.UP else self.reverse
        operation(db)


class Migration:
    """
    A versioned schema change for both backends.

    Example:
        from blueshift import define

        def up(db):
            db.execute("CREATE TABLE users (id SERIAL PRIMARY KEY, email TEXT UNIQUE)")

        def down(db):
            db.execute("DROP TABLE users")

        def redup(db):
            db.execute("CREATE TABLE users (id INTEGER, email VARCHAR(256))")

        def reddown(db):
            db.execute("DROP TABLE users")

        define(up=up, down=down, redup=redup, reddown=reddown)
    """

    def __init__(self,
                 version: int,
                 up: Optional[Operation] = None,
                 down: Optional[Operation] = None,
                 redup: Optional[Operation] = None,
                 reddown: Optional[Operation] = None,
                 use_transactions: bool = True,
                 name: Optional[str] = None,
                 source: Optional[Path] = None):
        if any(op is None for op in (up, down, redup, reddown)):
            raise IncompleteDefinitionError(
                "must declare operations for up, down, redup, and reddown"
            )
        if not isinstance(version, int) or isinstance(version, bool):
            raise MigrationError(f"Migration version must be an integer, got {version!r}")
        if version < 1:
            raise MigrationError(f"Migration version must be >= 1, got {version}")

        self.version = version
        self.name = name or f"migration_{version}"
        self.source = Path(source) if source else None
        self.primary_migration = MigrationUnit(forward=up, reverse=down)
        self.analytics_migration = MigrationUnit(forward=redup, reverse=reddown)
        self.use_transactions = use_transactions

    def apply(self, db, direction: Direction) -> None:
        """
        Apply this migration to one backend.

        Only the unit matching ``db.backend`` runs. When transactions are
        enabled the operation runs inside ``db.transaction()``, which rolls
        back on failure; the operation's exception is re-raised unchanged.

        Args:
            db: DatabaseHandle tagged with its backend
            direction: Direction.UP or Direction.DOWN

        Raises:
            UnknownBackendError: If the handle's backend is not recognised
        """
        unit = BackendRouter.unit_for(self, db)
        direction = Direction(direction)
        logger.debug(f"Applying {self!r} to {db.backend.value} ({direction.value})")

        if self.use_transactions:
            with db.transaction():
                unit.apply(db, direction)
        else:
            unit.apply(db, direction)

    def no_transaction(self) -> None:
        """Run this migration without a wrapping transaction."""
        self.use_transactions = False

    def __repr__(self) -> str:
        return f"<Migration {self.version}: {self.name}>"

    def __eq__(self, other) -> bool:
        if not isinstance(other, Migration):
            return False
        return self.version == other.version

    def __lt__(self, other) -> bool:
        if not isinstance(other, Migration):
            return NotImplemented
        return self.version < other.version

    def __hash__(self) -> int:
        return hash(self.version)


def define(up: Optional[Operation] = None,
           down: Optional[Operation] = None,
           redup: Optional[Operation] = None,
           reddown: Optional[Operation] = None,
           use_transactions: bool = True,
           version: Optional[int] = None,
           name: Optional[str] = None,
           registry: Optional[MigrationRegistry] = None) -> Migration:
    """
    Declare a migration and register it.

    Called at the top level of a migration file. The version and name
    default to those of the file the registry is loading.

    Args:
        up: Forward operation for the primary database
        down: Reverse operation for the primary database
        redup: Forward operation for the analytics warehouse
        reddown: Reverse operation for the analytics warehouse
        use_transactions: Wrap each run in a transaction (default: True)
        version: Explicit version; required outside a migration file
        name: Descriptive name
        registry: Target registry (default: the registry loading the file,
                  otherwise the process-wide registry)

    Returns:
        The registered Migration

    Raises:
        IncompleteDefinitionError: If any of the four operations is missing
        MigrationError: If no version is given and no file is being loaded
    """
    if any(op is None for op in (up, down, redup, reddown)):
        raise IncompleteDefinitionError(
            "must declare operations for up, down, redup, and reddown"
        )

    registry = registry if registry is not None else MigrationRegistry.current()
    source = None
    if version is None:
        loading = registry.loading
        if loading is None:
            raise MigrationError(
                "define() needs an explicit version outside a migration file"
            )
        version = loading.version
        name = name or loading.name
        source = loading.path

    migration = Migration(
        version=version,
        up=up,
        down=down,
        redup=redup,
        reddown=reddown,
        use_transactions=use_transactions,
        name=name,
        source=source,
    )
    registry.register(migration)
    return migration
