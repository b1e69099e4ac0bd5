"""
Unit tests for the per-backend history table

Tests cover:
- Table creation on first use
- Recording and removing applied versions
- Idempotent inserts
- Participation in the handle's transaction
"""

import shutil
import sqlite3
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from blueshift.database import SQLiteHandle
from blueshift.migrations import AppliedVersionRecord, Backend, HistoryTable


class TestHistoryTable(unittest.TestCase):
    """Test suite for HistoryTable."""

    def setUp(self):
        """Set up test database."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.temp_dir) / "history.sqlite"
        self.db = SQLiteHandle(self.db_path, Backend.PRIMARY)
        self.history = HistoryTable(self.db)

    def tearDown(self):
        """Clean up test database."""
        self.db.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    # ==================== Table Creation ====================

    def test_ensure_creates_table(self):
        """Test that ensure() creates schema_migrations."""
        self.assertFalse(self.db.table_exists("schema_migrations"))
        self.history.ensure()
        self.assertTrue(self.db.table_exists("schema_migrations"))

    def test_ensure_twice(self):
        """Test that ensure() is safe to repeat."""
        self.history.ensure()
        self.history.ensure()
        self.assertTrue(self.db.table_exists("schema_migrations"))

    def test_reads_without_table(self):
        """Test that reads on a fresh database return empty results."""
        self.assertEqual(self.history.applied_versions(), set())
        self.assertEqual(self.history.records(), [])
        self.assertEqual(self.history.latest(), 0)
        self.assertEqual(len(self.history), 0)

    def test_custom_table_name(self):
        """Test a non-default history table name."""
        history = HistoryTable(self.db, "blueshift_versions")
        history.insert(1)
        self.assertTrue(self.db.table_exists("blueshift_versions"))
        self.assertFalse(self.db.table_exists("schema_migrations"))

    def test_invalid_table_name(self):
        """Test that table names are restricted to identifiers."""
        with self.assertRaises(ValueError):
            HistoryTable(self.db, "versions; DROP TABLE users")

    # ==================== Recording ====================

    def test_insert(self):
        """Test recording a version."""
        self.assertTrue(self.history.insert(20160601192854))
        self.assertEqual(self.history.applied_versions(), {20160601192854})
        self.assertTrue(self.history.is_applied(20160601192854))

    def test_insert_idempotent(self):
        """Test that a second insert of the same version is a no-op."""
        self.history.insert(20160601192854)
        self.assertFalse(self.history.insert(20160601192854))
        self.assertEqual(len(self.history), 1)

    def test_version_column_is_unique(self):
        """Test that the table itself refuses duplicate versions."""
        self.history.insert(1)
        with self.assertRaises(sqlite3.IntegrityError):
            self.db.execute(
                "INSERT INTO schema_migrations (version, applied_at) VALUES (?, ?)",
                (1, datetime.now().isoformat()),
            )

    def test_records_ordered(self):
        """Test records come back ascending with timestamps."""
        for version in (20170101000000, 20160601192854, 20160601193000):
            self.history.insert(version)

        records = self.history.records()

        self.assertEqual([r.version for r in records],
                         [20160601192854, 20160601193000, 20170101000000])
        for record in records:
            self.assertIsInstance(record, AppliedVersionRecord)
            self.assertIsInstance(record.applied_at, datetime)

    def test_record_to_dict(self):
        """Test record serialization."""
        self.history.insert(1)
        data = self.history.records()[0].to_dict()
        self.assertEqual(data["version"], 1)
        self.assertIsNotNone(data["applied_at"])

    def test_latest(self):
        """Test latest applied version."""
        self.history.insert(3)
        self.history.insert(10)
        self.history.insert(7)
        self.assertEqual(self.history.latest(), 10)

    # ==================== Removal ====================

    def test_delete(self):
        """Test removing a version."""
        self.history.insert(1)
        self.history.insert(2)
        self.history.delete(2)
        self.assertEqual(self.history.applied_versions(), {1})

    def test_delete_without_table(self):
        """Test that delete on a fresh database does nothing."""
        self.history.delete(1)
        self.assertFalse(self.db.table_exists("schema_migrations"))

    def test_clear(self):
        """Test clearing history keeps the table."""
        self.history.insert(1)
        self.history.insert(2)
        self.history.clear()
        self.assertEqual(self.history.applied_versions(), set())
        self.assertTrue(self.db.table_exists("schema_migrations"))

    # ==================== Transactions ====================

    def test_insert_rolled_back_with_transaction(self):
        """Test that history writes join the handle's transaction."""
        self.history.ensure()
        with self.assertRaises(RuntimeError):
            with self.db.transaction():
                self.history.insert(1)
                raise RuntimeError("abort")
        self.assertEqual(self.history.applied_versions(), set())

    def test_persists_across_handles(self):
        """Test that history survives reopening the database."""
        self.history.insert(42)
        self.db.close()

        self.db = SQLiteHandle(self.db_path, Backend.PRIMARY)
        self.assertEqual(self.db.history.applied_versions(), {42})


if __name__ == "__main__":
    unittest.main()
