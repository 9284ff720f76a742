"""
Response cache keyed by request content and tier.

Entries are trusted for a fixed window (24 hours by default) and
treated as absent afterwards. Stale entries are deleted lazily on
lookup and in bulk by the maintenance job.
"""

import hashlib
import json
import logging
from typing import Any

from quotagate.clock import Clock, SystemClock
from quotagate.errors import StoreReadError
from quotagate.store.base import KeyValueStore
from quotagate.tiers import ModelTier

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"


class ResponseCache:
    """Content-addressed memoization of generation results."""

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock | None = None,
        ttl_seconds: float = 86400,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._ttl = ttl_seconds

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    @staticmethod
    def fingerprint(payload: Any, tier: ModelTier) -> str:
        """
        Deterministic key for a (payload, tier) pair.

        Mapping key order does not affect the result.

        Args:
            payload: Request contents (anything json can encode, others via str)
            tier: Effective tier

        Returns:
            Hex SHA-256 digest
        """
        serialized = json.dumps(
            payload,
            sort_keys=True,
            separators=(",", ":"),
            default=str,
            ensure_ascii=False,
        )
        material = f"{serialized}|{tier.value}"
        return hashlib.sha256(material.encode("utf-8")).hexdigest()

    def _key(self, payload: Any, tier: ModelTier) -> str:
        return f"{CACHE_PREFIX}{self.fingerprint(payload, tier)}"

    def _is_fresh(self, entry: Any, now: float) -> bool:
        if not isinstance(entry, dict) or not isinstance(entry.get("text"), str):
            return False
        try:
            return now - float(entry["ts"]) < self._ttl
        except (KeyError, TypeError, ValueError):
            return False

    async def lookup(self, payload: Any, tier: ModelTier) -> str | None:
        """
        Get a cached response.

        Returns:
            The cached text, or None if absent or expired
        """
        key = self._key(payload, tier)
        try:
            entry = await self._store.get(key)
        except StoreReadError as e:
            logger.warning(f"Cache unreadable, treating as a miss: {e}")
            return None
        if entry is None:
            return None

        if not self._is_fresh(entry, self._clock.now()):
            await self._store.delete(key)
            logger.debug(f"Dropped stale cache entry {key}")
            return None

        return entry["text"]

    async def store(self, payload: Any, tier: ModelTier, text: str) -> bool:
        """Write a response, replacing any previous entry for the same key."""
        entry = {"text": text, "ts": self._clock.now(), "tier": tier.value}
        return await self._store.set(self._key(payload, tier), entry)

    async def purge_expired(self) -> int:
        """
        Delete every expired or malformed entry.

        Returns:
            Number of entries deleted
        """
        now = self._clock.now()
        purged = 0
        for key in await self._store.scan(CACHE_PREFIX):
            try:
                entry = await self._store.get(key)
            except StoreReadError as e:
                logger.warning(f"Skipping unreadable cache entry: {e}")
                continue
            if not self._is_fresh(entry, now):
                if await self._store.delete(key):
                    purged += 1

        if purged:
            logger.info(f"Purged {purged} expired cache entries")
        return purged
