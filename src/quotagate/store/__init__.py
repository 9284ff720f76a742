"""
Durable key-value substrate for ledger and cache bookkeeping.

Provides pluggable backends (SQL, Redis and in-memory) behind one
async contract.
"""

from quotagate.store.base import KeyValueStore
from quotagate.store.memory import InMemoryStore
from quotagate.store.redis import RedisStore
from quotagate.store.sql import SqlStore
from quotagate.store.factory import create_store, get_store, shutdown_store, reset_store

__all__ = [
    "KeyValueStore",
    "InMemoryStore",
    "RedisStore",
    "SqlStore",
    "create_store",
    "get_store",
    "shutdown_store",
    "reset_store",
]
