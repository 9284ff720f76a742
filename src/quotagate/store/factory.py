"""Store factory for creating the durable substrate from configuration."""

import logging
from typing import Any

from quotagate.config import settings
from quotagate.store.base import KeyValueStore
from quotagate.store.memory import InMemoryStore
from quotagate.store.redis import RedisStore
from quotagate.store.sql import SqlStore

logger = logging.getLogger(__name__)

# Global store instance
_store_instance: KeyValueStore | None = None


def create_store(
    backend: str | None = None,
    **kwargs: Any,
) -> KeyValueStore:
    """
    Create a store backend instance.

    Args:
        backend: Backend type ("sql", "redis" or "memory"), defaults to config
        **kwargs: Additional arguments passed to the backend

    Returns:
        KeyValueStore instance

    Raises:
        ValueError: If backend type is unknown
    """
    backend_type = (backend or settings.store_backend).lower()

    if backend_type == "memory":
        logger.warning("Using in-memory store; quota history will not survive a restart")
        return InMemoryStore()

    elif backend_type == "sql":
        return SqlStore(
            database_url=kwargs.get("database_url", settings.database_url),
            db_manager=kwargs.get("db_manager"),
        )

    elif backend_type == "redis":
        url = kwargs.get("url", settings.redis_url)
        if not url:
            logger.warning(
                "Redis URL not configured, falling back to the SQL store. "
                "Set REDIS_URL environment variable to share state through Redis."
            )
            return SqlStore(database_url=kwargs.get("database_url", settings.database_url))

        return RedisStore(
            url=url,
            prefix=kwargs.get("prefix", settings.redis_prefix),
            max_connections=kwargs.get("max_connections", 10),
        )

    else:
        raise ValueError(f"Unknown store backend: {backend_type}")


def get_store() -> KeyValueStore:
    """
    Get the global store instance.

    Creates the store on first access using configuration settings.

    Returns:
        KeyValueStore instance
    """
    global _store_instance

    if _store_instance is None:
        _store_instance = create_store()
        logger.info(f"Initialized {_store_instance.name} store backend")

    return _store_instance


async def shutdown_store() -> None:
    """Close the global store and release its connections."""
    global _store_instance

    if _store_instance is not None:
        await _store_instance.close()
        _store_instance = None
        logger.info("Store shutdown complete")


def reset_store() -> None:
    """
    Reset the global store instance.

    Useful for testing or when configuration changes.
    """
    global _store_instance
    _store_instance = None
