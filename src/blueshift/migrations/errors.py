"""Exceptions raised by the Blueshift migration engine."""

from typing import Iterable, List


class MigrationError(Exception):
    """Base exception for migration errors"""
    pass


class IncompleteDefinitionError(MigrationError, ValueError):
    """Raised when a migration is declared without all four operations"""
    pass


class UnknownBackendError(MigrationError, ValueError):
    """Raised when a handle or name does not resolve to a known backend"""
    pass


class DuplicateMigrationError(MigrationError):
    """Raised when two migrations share a version"""
    pass


class HistoryInconsistencyError(MigrationError):
    """Raised when history records versions that have no migration definition"""

    def __init__(self, backend: str, versions: Iterable[int]):
        self.backend = backend
        self.versions: List[int] = sorted(versions)
        listed = ", ".join(str(v) for v in self.versions)
        super().__init__(
            f"Applied migrations not found on disk for {backend}: {listed}"
        )
