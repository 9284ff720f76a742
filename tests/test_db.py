"""Tests for the DatabaseManager and key-value table."""

import pytest
from sqlalchemy import text

from quotagate.db.manager import DatabaseManager
from quotagate.db.models import KeyValueRecord


class TestDatabaseManager:
    """Tests for DatabaseManager."""

    def test_init_db(self, temp_db_path: str) -> None:
        """Test database initialization."""
        manager = DatabaseManager(database_url=f"sqlite:///{temp_db_path}")
        manager.init_db()

        assert manager.health_check()
        manager.close()

    def test_wal_mode(self, db_manager: DatabaseManager) -> None:
        """Test SQLite connections use write-ahead logging."""
        with db_manager.engine.connect() as conn:
            mode = conn.execute(text("PRAGMA journal_mode")).scalar()
        assert mode.lower() == "wal"

    def test_session_commits(self, db_manager: DatabaseManager) -> None:
        """Test session context manager commits on success."""
        with db_manager.get_session() as session:
            session.add(KeyValueRecord(key="quota:tokens:total", value="12"))

        with db_manager.get_session() as session:
            record = session.get(KeyValueRecord, "quota:tokens:total")
            assert record is not None
            assert record.value == "12"
            assert record.updated_at is not None

    def test_session_rollback_on_exception(self, db_manager: DatabaseManager) -> None:
        """Test that sessions rollback on exception."""
        with pytest.raises(ValueError):
            with db_manager.get_session() as session:
                session.add(KeyValueRecord(key="rolled-back", value="1"))
                raise ValueError("Simulated error")

        with db_manager.get_session() as session:
            assert session.get(KeyValueRecord, "rolled-back") is None

    def test_close_and_reopen(self, temp_db_path: str) -> None:
        """Test a closed manager reconnects on next use."""
        manager = DatabaseManager(database_url=f"sqlite:///{temp_db_path}")
        manager.init_db()
        manager.close()

        assert manager.health_check() is True
        manager.close()
