"""Redis store backend implementation."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from quotagate.errors import StoreReadError
from quotagate.store.base import KeyValueStore

logger = logging.getLogger(__name__)


class RedisStore(KeyValueStore):
    """
    Redis store backend for shared, durable state.

    Best for:
    - Several dashboard hosts sharing one quota history
    - Deployments where Redis persistence (AOF/RDB) is already configured

    Keys never expire on their own; the ledger and response cache
    apply their own time windows.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        prefix: str = "quotagate:",
        max_connections: int = 10,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
    ) -> None:
        """
        Initialize Redis store.

        Args:
            url: Redis connection URL
            prefix: Key prefix for namespacing
            max_connections: Maximum connections in pool
            socket_timeout: Socket timeout in seconds
            socket_connect_timeout: Connection timeout in seconds
        """
        self._url = url
        self._prefix = prefix
        self._max_connections = max_connections
        self._socket_timeout = socket_timeout
        self._socket_connect_timeout = socket_connect_timeout
        self._client: Any = None
        self._connected = False

    @property
    def name(self) -> str:
        return "redis"

    @property
    def is_connected(self) -> bool:
        return self._connected

    def _get_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _strip_key(self, key: str | bytes) -> str:
        if isinstance(key, bytes):
            key = key.decode("utf-8")
        return key[len(self._prefix):] if key.startswith(self._prefix) else key

    def _serialize(self, value: Any) -> str:
        return json.dumps({
            "v": value,
            "t": datetime.now(timezone.utc).isoformat(),
        })

    def _deserialize(self, data: str | bytes | None) -> Any | None:
        if data is None:
            return None
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            parsed = json.loads(data)
            return parsed.get("v")
        except (json.JSONDecodeError, TypeError, AttributeError):
            return None

    async def connect(self) -> bool:
        """
        Connect to Redis.

        Returns:
            True if connected successfully
        """
        if self._connected and self._client:
            return True

        try:
            import redis.asyncio as redis

            self._client = redis.from_url(
                self._url,
                max_connections=self._max_connections,
                socket_timeout=self._socket_timeout,
                socket_connect_timeout=self._socket_connect_timeout,
                decode_responses=False,
            )
            await self._client.ping()
            self._connected = True
            logger.info(f"Connected to Redis at {self._url}")
            return True

        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._connected = False
            return False

    async def _ensure_connected(self) -> bool:
        if not self._connected:
            return await self.connect()
        return True

    async def get(self, key: str) -> Any | None:
        if not await self._ensure_connected():
            raise StoreReadError(key)

        try:
            data = await self._client.get(self._get_key(key))
        except Exception as e:
            logger.error(f"Redis GET error for {key}: {e}")
            raise StoreReadError(key, e) from e
        return self._deserialize(data)

    async def set(self, key: str, value: Any) -> bool:
        if not await self._ensure_connected():
            return False

        try:
            await self._client.set(self._get_key(key), self._serialize(value))
            return True
        except Exception as e:
            logger.error(f"Redis SET error for {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        if not await self._ensure_connected():
            return False

        try:
            result = await self._client.delete(self._get_key(key))
            return result > 0
        except Exception as e:
            logger.error(f"Redis DELETE error for {key}: {e}")
            return False

    async def scan(self, prefix: str = "") -> list[str]:
        if not await self._ensure_connected():
            return []

        try:
            keys = []
            async for key in self._client.scan_iter(match=f"{self._get_key(prefix)}*"):
                keys.append(self._strip_key(key))
            return keys
        except Exception as e:
            logger.error(f"Redis SCAN error for {prefix!r}: {e}")
            return []

    async def increment(self, key: str, delta: int = 1) -> int:
        """Add to a counter in a WATCH/MULTI transaction, retrying on conflict."""
        if not await self._ensure_connected():
            return 0

        from redis.exceptions import WatchError

        full_key = self._get_key(key)
        try:
            async with self._client.pipeline(transaction=True) as pipe:
                while True:
                    try:
                        await pipe.watch(full_key)
                        current = self._deserialize(await pipe.get(full_key))
                        new_value = int(current or 0) + delta
                        pipe.multi()
                        pipe.set(full_key, self._serialize(new_value))
                        await pipe.execute()
                        return new_value
                    except WatchError:
                        logger.debug(f"Concurrent update of {key}, retrying increment")
        except Exception as e:
            logger.error(f"Redis INCREMENT error for {key}: {e}")
            return 0

    async def close(self) -> None:
        if self._client:
            try:
                await self._client.aclose()
            except Exception as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                self._client = None
                self._connected = False

    async def health_check(self) -> dict[str, Any]:
        if not await self._ensure_connected():
            return {
                "backend": self.name,
                "connected": False,
                "durable": self.is_durable,
                "error": "Not connected to Redis",
            }

        try:
            info = await self._client.info("server", "persistence")
            return {
                "backend": self.name,
                "connected": True,
                "durable": self.is_durable,
                "redis_version": info.get("redis_version"),
                "aof_enabled": info.get("aof_enabled"),
            }
        except Exception as e:
            return {
                "backend": self.name,
                "connected": self._connected,
                "durable": self.is_durable,
                "error": str(e),
            }
