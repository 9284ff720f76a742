"""Quota-aware resilient invocation layer for rate-limited generative AI tiers."""

from quotagate.errors import ConnectionFailureError, InvocationError, QuotaExceededError
from quotagate.layer import InvocationLayer, build_layer
from quotagate.tiers import ModelTier, TierPreference

__version__ = "0.1.0"

__all__ = [
    "ConnectionFailureError",
    "InvocationError",
    "InvocationLayer",
    "ModelTier",
    "QuotaExceededError",
    "TierPreference",
    "build_layer",
]
