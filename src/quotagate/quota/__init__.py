"""
Quota tracking for the generation tiers.

Provides sliding window helpers and the durable per-tier ledger.
"""

from quotagate.quota.ledger import AvailabilitySnapshot, QuotaLedger, estimate_tokens
from quotagate.quota.window import prune, seconds_until_expiry, within

__all__ = [
    "AvailabilitySnapshot",
    "QuotaLedger",
    "estimate_tokens",
    "prune",
    "seconds_until_expiry",
    "within",
]
