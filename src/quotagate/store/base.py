"""Abstract base class for durable key-value stores."""

from abc import ABC, abstractmethod
from typing import Any


class KeyValueStore(ABC):
    """
    Abstract base class for key-value store backends.

    The invocation layer keeps its ledger sequences, hard block
    markers, token counters and cached responses here. Values must
    be JSON-serializable; each backend owns its encoding.

    Implement this class to add new storage backends.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Unique identifier for this backend.

        Returns:
            Backend name (e.g., 'memory', 'sql', 'redis')
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """
        Check if the backend is connected and healthy.

        Returns:
            True if connected, False otherwise
        """
        ...

    @property
    def is_durable(self) -> bool:
        """Whether stored values survive a process restart."""
        return True

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """
        Get a value from the store.

        Args:
            key: Store key

        Returns:
            Stored value, or None if absent

        Raises:
            StoreReadError: If the backend could not be read
        """
        ...

    @abstractmethod
    async def set(self, key: str, value: Any) -> bool:
        """
        Set a value, overwriting any previous value.

        Args:
            key: Store key
            value: Value to store (must be JSON-serializable)

        Returns:
            True if successful, False otherwise
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Delete a value from the store.

        Args:
            key: Store key

        Returns:
            True if deleted, False if not found
        """
        ...

    @abstractmethod
    async def scan(self, prefix: str = "") -> list[str]:
        """
        List keys starting with a prefix.

        Args:
            prefix: Key prefix ("" lists every key)

        Returns:
            Matching keys
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release connections held by the backend."""
        ...

    async def increment(self, key: str, delta: int = 1) -> int:
        """
        Increment a numeric value.

        Args:
            key: Store key
            delta: Amount to add

        Returns:
            New value after increment
        """
        current = await self.get(key)
        if current is None:
            current = 0
        new_value = int(current) + delta
        await self.set(key, new_value)
        return new_value

    async def health_check(self) -> dict[str, Any]:
        """
        Perform a health check on the backend.

        Returns:
            Dict with health status info
        """
        return {
            "backend": self.name,
            "connected": self.is_connected,
            "durable": self.is_durable,
        }
