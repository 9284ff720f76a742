"""SQL store backend implementation (durable default)."""

import json
import logging
from typing import Any

from sqlalchemy import select

from quotagate.db.manager import DatabaseManager
from quotagate.db.models import KeyValueRecord
from quotagate.errors import StoreReadError
from quotagate.store.base import KeyValueStore

logger = logging.getLogger(__name__)


class SqlStore(KeyValueStore):
    """
    SQLAlchemy-backed store, SQLite by default.

    Best for:
    - Single-host deployments that must survive restarts
    - Several processes sharing one quota history (SQLite WAL)

    Operations are short local transactions and run inline on the
    event loop.
    """

    def __init__(
        self,
        database_url: str | None = None,
        db_manager: DatabaseManager | None = None,
    ) -> None:
        """
        Initialize the SQL store.

        Args:
            database_url: SQLAlchemy URL (ignored when db_manager is given)
            db_manager: Existing database manager to reuse
        """
        if db_manager is None:
            if database_url is None:
                raise ValueError("SqlStore requires a database_url or db_manager")
            db_manager = DatabaseManager(database_url=database_url)
        self._db = db_manager
        self._initialized = False
        self._connected = False

    @property
    def name(self) -> str:
        return "sql"

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            self._db.init_db()
            self._initialized = True
            self._connected = True

    async def get(self, key: str) -> Any | None:
        try:
            self._ensure_initialized()
            with self._db.get_session() as session:
                record = session.get(KeyValueRecord, key)
                if record is None:
                    return None
                return json.loads(record.value)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupted value for {key}, treating as absent: {e}")
            return None
        except Exception as e:
            logger.error(f"SQL store GET error for {key}: {e}")
            raise StoreReadError(key, e) from e

    async def set(self, key: str, value: Any) -> bool:
        try:
            self._ensure_initialized()
            encoded = json.dumps(value)
            with self._db.get_session() as session:
                record = session.get(KeyValueRecord, key)
                if record is None:
                    session.add(KeyValueRecord(key=key, value=encoded))
                else:
                    record.value = encoded
            return True
        except Exception as e:
            logger.error(f"SQL store SET error for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        try:
            self._ensure_initialized()
            with self._db.get_session() as session:
                record = session.get(KeyValueRecord, key)
                if record is None:
                    return False
                session.delete(record)
                return True
        except Exception as e:
            logger.error(f"SQL store DELETE error for {key}: {e}")
            return False

    async def scan(self, prefix: str = "") -> list[str]:
        try:
            self._ensure_initialized()
            with self._db.get_session() as session:
                keys = session.scalars(select(KeyValueRecord.key)).all()
            return [k for k in keys if k.startswith(prefix)]
        except Exception as e:
            logger.error(f"SQL store SCAN error for {prefix!r}: {e}")
            return []

    async def increment(self, key: str, delta: int = 1) -> int:
        """Increment a counter inside a single transaction."""
        try:
            self._ensure_initialized()
            with self._db.get_session() as session:
                record = session.get(KeyValueRecord, key)
                if record is None:
                    new_value = delta
                    session.add(KeyValueRecord(key=key, value=json.dumps(new_value)))
                else:
                    new_value = int(json.loads(record.value) or 0) + delta
                    record.value = json.dumps(new_value)
            return new_value
        except Exception as e:
            logger.error(f"SQL store INCREMENT error for {key}: {e}")
            return 0

    async def close(self) -> None:
        self._db.close()
        self._initialized = False
        self._connected = False

    async def health_check(self) -> dict[str, Any]:
        healthy = self._db.health_check()
        return {
            "backend": self.name,
            "connected": healthy,
            "durable": self.is_durable,
            "database_url": self._db.database_url,
        }
