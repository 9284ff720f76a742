"""SQLAlchemy engine and session handling for the durable store."""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.orm import Session, sessionmaker

from quotagate.db.base import Base

logger = logging.getLogger(__name__)

SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL",
    "PRAGMA synchronous=NORMAL",
)


def _sqlite_file(database_url: str) -> Path | None:
    """Path of a file-backed SQLite database, None for anything else."""
    if not database_url.startswith("sqlite:///") or ":memory:" in database_url:
        return None
    return Path(database_url.removeprefix("sqlite:///"))


class DatabaseManager:
    """
    Owns the engine and session factory behind SqlStore.

    Several processes may open the same SQLite file. WAL lets readers
    continue during a write, and busy_timeout makes a writer wait for
    the lock instead of failing at once.
    """

    def __init__(
        self,
        database_url: str = "sqlite:///data/quotagate.db",
        echo: bool = False,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """
        Initialize the database manager.

        Args:
            database_url: SQLAlchemy database URL
            echo: Enable SQL echo logging
            busy_timeout_ms: Milliseconds SQLite waits on a lock held by
                another connection
        """
        self._database_url = database_url
        self._echo = echo
        self._busy_timeout_ms = busy_timeout_ms
        self._engine: Engine | None = None
        self._sessions: sessionmaker[Session] | None = None

    @property
    def database_url(self) -> str:
        return self._database_url

    @property
    def engine(self) -> Engine:
        """Engine, created on first use."""
        if self._engine is None:
            self._engine = self._build_engine()
        return self._engine

    def _build_engine(self) -> Engine:
        db_file = _sqlite_file(self._database_url)
        if db_file is not None:
            db_file.parent.mkdir(parents=True, exist_ok=True)

        engine = create_engine(self._database_url, echo=self._echo, pool_pre_ping=True)
        if self._database_url.startswith("sqlite"):
            event.listen(engine, "connect", self._on_sqlite_connect)
            logger.info(
                f"SQLite store at {db_file or ':memory:'} "
                f"(WAL, busy_timeout={self._busy_timeout_ms}ms)"
            )
        return engine

    def _on_sqlite_connect(self, dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        try:
            for pragma in SQLITE_PRAGMAS:
                cursor.execute(pragma)
            cursor.execute(f"PRAGMA busy_timeout={int(self._busy_timeout_ms)}")
        finally:
            cursor.close()

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Session scoped to one transaction.

        Commits when the block exits normally, rolls back when it raises.

        Usage:
            with db_manager.get_session() as session:
                session.get(KeyValueRecord, "quota:log:primary")
        """
        if self._sessions is None:
            self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        with self._sessions.begin() as session:
            yield session

    def init_db(self) -> None:
        """Create the key-value table if it does not exist."""
        Base.metadata.create_all(bind=self.engine)
        logger.debug(f"Store schema ready at {self._database_url}")

    def health_check(self) -> bool:
        """Whether a trivial query succeeds."""
        try:
            with self.engine.connect() as conn:
                return conn.execute(text("SELECT 1")).scalar() == 1
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return False

    def close(self) -> None:
        """Dispose of the engine; the next use reconnects."""
        if self._engine is None:
            return
        self._engine.dispose()
        self._engine = None
        self._sessions = None
        logger.info("Database connection closed")
