"""
Backend routing

Maps a database handle to the MigrationUnit that belongs to its backend.
Identity comes from the Backend tag each handle carries, never from the
handle object itself.
"""

from enum import Enum
from typing import TYPE_CHECKING

from .errors import UnknownBackendError

if TYPE_CHECKING:
    from .migration_base import Migration, MigrationUnit


class Backend(str, Enum):
    """The two database targets a migration is applied to."""

    PRIMARY = "primary"
    ANALYTICS = "analytics"

    @classmethod
    def parse(cls, name: str) -> "Backend":
        """
        Resolve a backend from a name or alias.

        Accepts the enum values plus the aliases used on the command line
        (pg/postgres for primary, redshift/rs for analytics).

        Raises:
            UnknownBackendError: If the name matches no backend
        """
        if isinstance(name, Backend):
            return name
        key = str(name).strip().lower()
        backend = _ALIASES.get(key)
        if backend is None:
            raise UnknownBackendError(f"Unknown backend: {name!r}")
        return backend


_ALIASES = {
    "primary": Backend.PRIMARY,
    "pg": Backend.PRIMARY,
    "postgres": Backend.PRIMARY,
    "analytics": Backend.ANALYTICS,
    "redshift": Backend.ANALYTICS,
    "rs": Backend.ANALYTICS,
}


class Direction(str, Enum):
    """Direction a migration unit is run in."""

    UP = "up"
    DOWN = "down"


class BackendRouter:
    """
    Selects the unit of a Migration that matches a handle's backend.

    Stateless; the class exists so the selection rule lives in one place
    and can be patched in tests.
    """

    @staticmethod
    def unit_for(migration: "Migration", db) -> "MigrationUnit":
        """
        Return the unit of ``migration`` for ``db``'s backend.

        Raises:
            UnknownBackendError: If ``db.backend`` is neither primary nor analytics
        """
        backend = getattr(db, "backend", None)
        if backend is Backend.PRIMARY:
            return migration.primary_migration
        if backend is Backend.ANALYTICS:
            return migration.analytics_migration
        raise UnknownBackendError(
            f"Cannot apply {migration!r}: handle {db!r} has unknown backend {backend!r}"
        )
