"""
Migration Registry for Blueshift

Holds every defined Migration, keyed by version.

Features:
- Process-wide default registry with explicit reset() for test isolation
- Discovery of migration files from a directory (<version>_<name>.py)
- Duplicate version detection
- Version-ordered iteration for execution
"""

import importlib.util
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Set, Union

from .errors import DuplicateMigrationError, MigrationError

if TYPE_CHECKING:
    from .migration_base import Migration

logger = logging.getLogger(__name__)

MIGRATION_FILE_PATTERN = re.compile(r"^(?P<version>\d+)_(?P<name>\w+)\.py$")


def parse_version(filename: Union[str, Path]) -> Optional[int]:
    """
    Extract the numeric version prefix from a migration file name.

    Returns:
        The version, or None if the name is not a migration file
    """
    match = MIGRATION_FILE_PATTERN.match(Path(filename).name)
    if not match:
        return None
    return int(match.group("version"))


@dataclass(frozen=True)
class LoadingFile:
    """The migration file currently being evaluated."""
    path: Path
    version: int
    name: str


class MigrationRegistry:
    """
    Migration Registry - ordered collection of defined migrations

    Pattern: One process-wide instance via default(), explicit instances for tests
    Lifetime: Process; cleared with reset()

    Example:
        registry = MigrationRegistry.default()
        registry.discover("db/migrations")
        for migration in registry.all():
            print(migration)
    """

    _default: Optional["MigrationRegistry"] = None
    # Registry whose load_file() is executing a migration file right now
    _active: Optional["MigrationRegistry"] = None

    def __init__(self):
        self._migrations: Dict[int, "Migration"] = {}
        self._loaded_files: Set[Path] = set()
        self.loading: Optional[LoadingFile] = None

    @classmethod
    def default(cls) -> "MigrationRegistry":
        """Return the process-wide registry, creating it on first use."""
        if cls._default is None:
            cls._default = cls()
        return cls._default

    @classmethod
    def current(cls) -> "MigrationRegistry":
        """The registry loading a file, falling back to the default registry."""
        if cls._active is not None:
            return cls._active
        return cls.default()

    def register(self, migration: "Migration") -> None:
        """
        Register a migration.

        Raises:
            DuplicateMigrationError: If the version is already registered
        """
        if migration.version in self._migrations:
            existing = self._migrations[migration.version]
            raise DuplicateMigrationError(
                f"Duplicate migration version {migration.version}: "
                f"{migration} conflicts with {existing}"
            )
        self._migrations[migration.version] = migration

    def discover(self, directory: Union[str, Path]) -> List["Migration"]:
        """
        Load every migration file in ``directory`` in version order.

        Files loaded by an earlier call are skipped, so repeated discovery
        is cheap and never re-registers a version.

        Args:
            directory: Directory holding <version>_<name>.py files

        Returns:
            Migrations registered by this call

        Raises:
            MigrationError: If a file defines no migration or more than one
            DuplicateMigrationError: If two files share a version
        """
        directory = Path(directory)
        if not directory.is_dir():
            logger.warning(f"Migrations directory not found: {directory}")
            return []

        candidates = []
        for path in directory.glob("*.py"):
            version = parse_version(path)
            if version is None:
                if not path.name.startswith("_"):
                    logger.debug(f"Skipping non-migration file {path.name}")
                continue
            candidates.append((version, path))

        loaded = []
        for version, path in sorted(candidates):
            resolved = path.resolve()
            if resolved in self._loaded_files:
                continue
            loaded.append(self.load_file(resolved, version))
        return loaded

    def load_file(self, path: Path, version: Optional[int] = None) -> "Migration":
        """Evaluate one migration file and return the migration it defines."""
        path = Path(path)
        if version is None:
            version = parse_version(path)
            if version is None:
                raise MigrationError(f"Not a migration file name: {path.name}")
        match = MIGRATION_FILE_PATTERN.match(path.name)
        name = match.group("name") if match else path.stem

        spec = importlib.util.spec_from_file_location(f"blueshift_migration_{version}", path)
        module = importlib.util.module_from_spec(spec)

        before = set(self._migrations)
        previous = MigrationRegistry._active
        MigrationRegistry._active = self
        self.loading = LoadingFile(path=path, version=version, name=name)
        try:
            spec.loader.exec_module(module)
        except BaseException:
            for added in set(self._migrations) - before:
                del self._migrations[added]
            raise
        finally:
            self.loading = None
            MigrationRegistry._active = previous

        added = set(self._migrations) - before
        defined = len(added)
        if defined != 1 or version not in added:
            for extra in added:
                del self._migrations[extra]
            raise MigrationError(
                f"Migration file {path.name} must define exactly one migration for version {version}, found {defined}"
            )
        self._loaded_files.add(path.resolve())
        logger.debug(f"Loaded migration {version} from {path.name}")
        return self._migrations[version]

    def get(self, version: int) -> Optional["Migration"]:
        """Get a migration by version, or None."""
        return self._migrations.get(version)

    def all(self) -> List["Migration"]:
        """All migrations in ascending version order."""
        return [self._migrations[v] for v in sorted(self._migrations)]

    def listing(self) -> List["Migration"]:
        """All migrations in the order they were registered."""
        return list(self._migrations.values())

    def versions(self) -> List[int]:
        return sorted(self._migrations)

    def latest_version(self) -> int:
        """Highest registered version, or 0 if empty."""
        return max(self._migrations, default=0)

    def reset(self) -> None:
        """Clear all registered migrations and loaded-file bookkeeping."""
        self._migrations.clear()
        self._loaded_files.clear()
        self.loading = None

    def __len__(self) -> int:
        return len(self._migrations)

    def __contains__(self, version: int) -> bool:
        return version in self._migrations

    def __repr__(self) -> str:
        return f"<MigrationRegistry: {len(self)} migrations, latest {self.latest_version()}>"
