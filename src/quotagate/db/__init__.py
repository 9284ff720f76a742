"""Database package for the durable store."""

from quotagate.db.base import Base
from quotagate.db.manager import DatabaseManager
from quotagate.db.models import KeyValueRecord

__all__ = [
    "Base",
    "DatabaseManager",
    "KeyValueRecord",
]
