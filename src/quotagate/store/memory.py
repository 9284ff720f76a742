"""In-memory store backend implementation."""

import asyncio
import copy
import logging
from typing import Any

from quotagate.store.base import KeyValueStore

logger = logging.getLogger(__name__)


class InMemoryStore(KeyValueStore):
    """
    In-memory store backend using a simple dictionary.

    Best for:
    - Tests and simulations
    - Ephemeral runs where losing quota history is acceptable

    Limitations:
    - Not shared across processes
    - Lost on restart, so hard blocks are forgotten
    """

    def __init__(self) -> None:
        self._store: dict[str, Any] = {}
        self._lock = asyncio.Lock()
        self._connected = True

    @property
    def name(self) -> str:
        return "memory"

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def is_durable(self) -> bool:
        return False

    async def get(self, key: str) -> Any | None:
        async with self._lock:
            value = self._store.get(key)
            # Callers may mutate what they read; never hand out our copy
            return copy.deepcopy(value)

    async def set(self, key: str, value: Any) -> bool:
        async with self._lock:
            self._store[key] = copy.deepcopy(value)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self._store:
                del self._store[key]
                return True
            return False

    async def scan(self, prefix: str = "") -> list[str]:
        async with self._lock:
            return [k for k in self._store if k.startswith(prefix)]

    async def increment(self, key: str, delta: int = 1) -> int:
        async with self._lock:
            new_value = int(self._store.get(key) or 0) + delta
            self._store[key] = new_value
            return new_value

    async def close(self) -> None:
        self._connected = False
        self._store.clear()

    async def health_check(self) -> dict[str, Any]:
        async with self._lock:
            total_keys = len(self._store)

        return {
            "backend": self.name,
            "connected": self.is_connected,
            "durable": self.is_durable,
            "total_keys": total_keys,
        }
