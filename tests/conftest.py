"""Pytest configuration and fixtures."""

import asyncio
import os
import tempfile
from collections.abc import Generator
from typing import Any

import pytest

from quotagate.adapters.base import GenerationClient, GenerationConfig, GenerationResult
from quotagate.cache import ResponseCache
from quotagate.clock import ManualClock
from quotagate.db.manager import DatabaseManager
from quotagate.errors import StoreReadError
from quotagate.events import AvailabilityNotifier
from quotagate.invoker import Invoker
from quotagate.quota.ledger import QuotaLedger
from quotagate.store.memory import InMemoryStore

SYSTEM_INSTRUCTION = "Answer in plain JSON."


class FakeGenerationClient(GenerationClient):
    """
    Scripted generation client.

    Each call consumes the next scripted outcome: a string is returned
    as the response text, an exception is raised. When the script runs
    out, default_text is returned. Setting gate holds every call until
    the event is set, and usage is attached to every result.
    """

    def __init__(self, outcomes: list[Any] | None = None, default_text: str = "ok") -> None:
        self.outcomes = list(outcomes or [])
        self.default_text = default_text
        self.calls: list[tuple[str, Any, GenerationConfig]] = []
        self.gate: asyncio.Event | None = None
        self.usage: dict[str, Any] = {}
        self.closed = False

    @property
    def name(self) -> str:
        return "fake"

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def generate(self, model_id: str, contents: Any, config: GenerationConfig) -> GenerationResult:
        self.calls.append((model_id, contents, config))
        if self.gate is not None:
            await self.gate.wait()

        outcome = self.outcomes.pop(0) if self.outcomes else self.default_text
        if isinstance(outcome, BaseException):
            raise outcome
        return GenerationResult(text=outcome, metadata=dict(self.usage))

    async def close(self) -> None:
        self.closed = True


class UnreadableKeysStore(InMemoryStore):
    """In-memory store whose reads of the keys in failing raise StoreReadError."""

    def __init__(self) -> None:
        super().__init__()
        self.failing: set[str] = set()

    async def get(self, key: str) -> Any | None:
        if key in self.failing:
            raise StoreReadError(key, ConnectionError("database is locked"))
        return await super().get(key)


@pytest.fixture
def temp_db_path() -> Generator[str, None, None]:
    """Create a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup, including WAL side files
    for suffix in ("", "-wal", "-shm"):
        try:
            os.unlink(db_path + suffix)
        except OSError:
            pass


@pytest.fixture
def db_manager(temp_db_path: str) -> Generator[DatabaseManager, None, None]:
    """Create a DatabaseManager with a temporary database."""
    manager = DatabaseManager(database_url=f"sqlite:///{temp_db_path}")
    manager.init_db()
    yield manager
    manager.close()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def notifier() -> AvailabilityNotifier:
    return AvailabilityNotifier()


@pytest.fixture
def ledger(store: InMemoryStore, clock: ManualClock, notifier: AvailabilityNotifier) -> QuotaLedger:
    """Ledger with the default caps (primary 2/50, secondary 15/1500)."""
    return QuotaLedger(store, clock=clock, notifier=notifier)


@pytest.fixture
def cache(store: InMemoryStore, clock: ManualClock) -> ResponseCache:
    return ResponseCache(store, clock=clock)


@pytest.fixture
def fake_client() -> FakeGenerationClient:
    return FakeGenerationClient()


@pytest.fixture
def invoker(
    ledger: QuotaLedger,
    cache: ResponseCache,
    fake_client: FakeGenerationClient,
    clock: ManualClock,
) -> Invoker:
    return Invoker(
        ledger,
        cache,
        fake_client,
        clock=clock,
        system_instruction=SYSTEM_INSTRUCTION,
    )
