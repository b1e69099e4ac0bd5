"""
Migration runner.

Runs registered (or file-discovered) migrations against the primary and
analytics backends, one backend at a time, recording each applied version
in that backend's history table.

A version's history row is written in the same transaction as the
operation that applied it, so a failed step leaves history untouched.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import HistoryInconsistencyError, UnknownBackendError
from .migration_base import Migration
from .registry import MigrationRegistry
from .router import Backend, Direction

logger = logging.getLogger(__name__)

# Rollback target meaning "no migrations applied".
NO_MIGRATIONS = 0

BACKEND_ORDER = (Backend.PRIMARY, Backend.ANALYTICS)


@dataclass
class MigrationResult:
    """Outcome of one pass over one backend."""
    backend: Backend
    applied: List[int] = field(default_factory=list)
    reverted: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed_version: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "backend": self.backend.value,
            "applied": list(self.applied),
            "reverted": list(self.reverted),
            "skipped": list(self.skipped),
            "failed_version": self.failed_version,
            "error": str(self.error) if self.error else None,
        }


@dataclass
class MigrationStatus:
    """One row of a status listing."""
    version: int
    name: Optional[str]
    applied: bool
    applied_at: Optional[datetime] = None

    @property
    def missing(self) -> bool:
        """Recorded in history but no migration defines it."""
        return self.name is None


class Runner:
    """
    Migration Runner - applies and reverts migrations per backend

    Pattern: Sequential passes, one transaction per migration step
    Lifetime: One per CLI invocation or test

    Example:
        runner = Runner(primary_db, analytics_db, migrations_dir="db/migrations")
        results = runner.run_both()
        runner.rollback(Backend.ANALYTICS)
    """

    def __init__(self,
                 primary_db,
                 analytics_db,
                 registry: Optional[MigrationRegistry] = None,
                 migrations_dir: Optional[Union[str, Path]] = None,
                 allow_missing: bool = False):
        """
        Args:
            primary_db: Handle tagged Backend.PRIMARY
            analytics_db: Handle tagged Backend.ANALYTICS
            registry: Migration registry (default: the process-wide registry)
            migrations_dir: Directory to discover migration files from before each pass
            allow_missing: Warn instead of failing when history holds unknown versions

        Raises:
            UnknownBackendError: If a handle is tagged with the wrong backend
        """
        self.databases = {Backend.PRIMARY: primary_db, Backend.ANALYTICS: analytics_db}
        for backend, db in self.databases.items():
            if getattr(db, "backend", None) is not backend:
                raise UnknownBackendError(
                    f"Handle {db!r} passed as {backend.value} is tagged {getattr(db, 'backend', None)!r}"
                )
        self.registry = registry if registry is not None else MigrationRegistry.default()
        self.migrations_dir = Path(migrations_dir) if migrations_dir else None
        self.allow_missing = allow_missing

    @classmethod
    def from_config(cls, config, registry: Optional[MigrationRegistry] = None) -> "Runner":
        """Build a runner with handles opened from a BlueshiftConfig."""
        from ..database import connect

        primary = connect(Backend.PRIMARY, config.primary, config.history_table)
        try:
            analytics = connect(Backend.ANALYTICS, config.analytics, config.history_table)
        except Exception:
            primary.close()
            raise
        return cls(
            primary,
            analytics,
            registry=registry,
            migrations_dir=config.migrations_dir,
            allow_missing=config.allow_missing,
        )

    def database(self, backend: Union[Backend, str]):
        return self.databases[Backend.parse(backend)]

    def discover(self) -> List[Migration]:
        """Load migration files from the configured directory, if any."""
        if self.migrations_dir is None:
            return []
        return self.registry.discover(self.migrations_dir)

    # ------------------------------------------------------------------
    # Passes
    # ------------------------------------------------------------------

    def run(self,
            backend: Union[Backend, str],
            target: Optional[int] = None,
            apply_pending: bool = True) -> MigrationResult:
        """
        Migrate one backend to ``target``.

        Applied versions above ``target`` are reverted newest first; then
        unapplied versions up to ``target`` are applied oldest first. With no
        target every known migration is applied. With ``apply_pending=False``
        the pass only reverts.

        Raises:
            HistoryInconsistencyError: If history holds versions with no migration
            Exception: The failing operation's exception, unchanged
        """
        result = MigrationResult(backend=Backend.parse(backend))
        self._run_pass(result, target, apply_pending)
        return result

    def run_primary(self, target: Optional[int] = None) -> MigrationResult:
        return self.run(Backend.PRIMARY, target=target)

    def run_analytics(self, target: Optional[int] = None) -> MigrationResult:
        return self.run(Backend.ANALYTICS, target=target)

    def run_both(self) -> Dict[Backend, MigrationResult]:
        """
        Migrate primary, then analytics.

        The passes are independent: a failure on primary is recorded in its
        result and logged, and the analytics pass still runs.

        Returns:
            Result per backend, in execution order
        """
        results: Dict[Backend, MigrationResult] = {}
        for backend in BACKEND_ORDER:
            result = MigrationResult(backend=backend)
            try:
                self._run_pass(result, None, True)
            except Exception as e:
                logger.error(f"Migration pass for {backend.value} failed: {e}", exc_info=True)
            results[backend] = result
        return results

    def _run_pass(self, result: MigrationResult, target: Optional[int], apply_pending: bool) -> None:
        backend = result.backend
        db = self.databases[backend]
        try:
            self.discover()
            db.history.ensure()
            applied = db.history.applied_versions()
            self._check_history(backend, applied)

            to_revert = sorted(
                (v for v in applied if target is not None and v > target),
                reverse=True,
            )
            to_apply = [
                m for m in self.registry.all()
                if apply_pending and m.version not in applied
                and (target is None or m.version <= target)
            ]
            result.skipped = sorted(v for v in applied if v not in to_revert)

            for version in to_revert:
                migration = self.registry.get(version)
                if migration is None:
                    raise HistoryInconsistencyError(backend.value, [version])
                result.failed_version = version
                self._step(db, migration, Direction.DOWN)
                result.reverted.append(version)
                result.failed_version = None

            for migration in to_apply:
                result.failed_version = migration.version
                self._step(db, migration, Direction.UP)
                result.applied.append(migration.version)
                result.failed_version = None
        except Exception as e:
            result.error = e
            raise

        logger.info(
            f"{backend.value}: applied {len(result.applied)}, "
            f"reverted {len(result.reverted)}, skipped {len(result.skipped)}"
        )

    def _step(self, db, migration: Migration, direction: Direction) -> None:
        """Run one migration in one direction and update history with it."""
        started = time.monotonic()
        if migration.use_transactions:
            with db.transaction():
                self._apply_and_record(db, migration, direction)
        else:
            self._apply_and_record(db, migration, direction)

        duration_ms = int((time.monotonic() - started) * 1000)
        verb = "Applied" if direction is Direction.UP else "Reverted"
        logger.info(f"{verb} {migration!r} on {db.backend.value} ({duration_ms}ms)")

    @staticmethod
    def _apply_and_record(db, migration: Migration, direction: Direction) -> None:
        migration.apply(db, direction)
        if direction is Direction.UP:
            db.history.insert(migration.version)
        else:
            db.history.delete(migration.version)

    def _check_history(self, backend: Backend, applied) -> None:
        missing = [v for v in applied if v not in self.registry]
        if not missing:
            return
        if self.allow_missing:
            listed = ", ".join(str(v) for v in sorted(missing))
            logger.warning(f"Applied migrations not found on disk for {backend.value}: {listed}")
            return
        raise HistoryInconsistencyError(backend.value, missing)

    # ------------------------------------------------------------------
    # History maintenance
    # ------------------------------------------------------------------

    def insert_into_history(self, backend: Union[Backend, str]) -> List[int]:
        """
        Mark every known migration as applied without running it.

        Used when a backend is bootstrapped from a snapshot that already has
        the schema. Versions already recorded are left alone.

        Returns:
            Versions inserted by this call
        """
        db = self.database(backend)
        self.discover()
        inserted = []
        with db.transaction():
            db.history.ensure()
            for migration in self.registry.all():
                if db.history.insert(migration.version):
                    inserted.append(migration.version)
        logger.info(f"Inserted {len(inserted)} versions into {db.backend.value} history")
        return inserted

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def rollback_target(self, backend: Union[Backend, str]) -> Optional[int]:
        """
        Version a rollback of ``backend`` would leave it at.

        Computed from history alone: the second-latest applied version, or
        NO_MIGRATIONS when exactly one is applied. None when nothing is.
        """
        applied = sorted(self.database(backend).history.applied_versions())
        if not applied:
            return None
        if len(applied) == 1:
            return NO_MIGRATIONS
        return applied[-2]

    def rollback(self, backend: Union[Backend, str]) -> Optional[MigrationResult]:
        """
        Revert the latest applied migration of ``backend``.

        Only applied versions are reverted. Unapplied files, including
        late files older than the latest applied version, are not touched.

        Returns:
            The pass result, or None if nothing was applied
        """
        backend = Backend.parse(backend)
        target = self.rollback_target(backend)
        if target is None:
            logger.info(f"Nothing to roll back on {backend.value}")
            return None
        logger.info(f"Rolling back {backend.value} to {target}")
        return self.run(backend, target=target, apply_pending=False)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def status(self, backend: Union[Backend, str]) -> List[MigrationStatus]:
        """Every known or recorded version with its applied state, ascending."""
        db = self.database(backend)
        self.discover()
        records = {r.version: r for r in db.history.records()}
        versions = sorted(set(self.registry.versions()) | set(records))

        rows = []
        for version in versions:
            migration = self.registry.get(version)
            record = records.get(version)
            rows.append(MigrationStatus(
                version=version,
                name=migration.name if migration else None,
                applied=record is not None,
                applied_at=record.applied_at if record else None,
            ))
        return rows

    def close(self) -> None:
        for db in self.databases.values():
            db.close()
