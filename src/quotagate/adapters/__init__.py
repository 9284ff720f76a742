"""
Generation provider adapters.

Each adapter turns a provider-neutral request into one provider call.
"""

from quotagate.adapters.base import GenerationClient, GenerationConfig, GenerationResult
from quotagate.adapters.gemini import GeminiClient

__all__ = [
    "GenerationClient",
    "GenerationConfig",
    "GenerationResult",
    "GeminiClient",
]
