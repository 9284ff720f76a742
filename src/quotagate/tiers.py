"""Model tiers, caller preferences and per-tier quota caps."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ModelTier(str, Enum):
    """Concrete model classes backed by the generation provider."""

    PRIMARY = "primary"  # Low volume, high capability
    SECONDARY = "secondary"  # High volume, lower capability


class TierPreference(str, Enum):
    """Caller-facing tier choice. AUTO is resolved, never stored."""

    AUTO = "auto"
    PRIMARY = "primary"
    SECONDARY = "secondary"

    @classmethod
    def parse(cls, value: TierPreference | ModelTier | str | None) -> TierPreference:
        """
        Parse a preference from user input.

        Accepts enum members, their values, and the provider family
        aliases "pro" and "flash".

        Args:
            value: Raw preference (None or "" means auto)

        Returns:
            Matching preference

        Raises:
            ValueError: If the value names no known tier
        """
        if value is None:
            return cls.AUTO
        if isinstance(value, cls):
            return value
        if isinstance(value, ModelTier):
            return cls(value.value)

        normalized = str(value).strip().lower()
        if not normalized:
            return cls.AUTO
        normalized = _ALIASES.get(normalized, normalized)
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(
                f"Unknown tier preference: {value}. "
                f"Available: {[p.value for p in cls] + list(_ALIASES)}"
            ) from None

    @property
    def tier(self) -> ModelTier | None:
        """The forced tier, or None for AUTO."""
        if self is TierPreference.AUTO:
            return None
        return ModelTier(self.value)


_ALIASES = {
    "pro": "primary",
    "flash": "secondary",
}


@dataclass(frozen=True)
class QuotaWindowLimits:
    """Request caps for the per-minute and per-day windows of one tier."""

    rpm: int
    """Requests allowed in any trailing 60 seconds."""

    rpd: int
    """Requests allowed in any trailing 24 hours."""

    def __post_init__(self) -> None:
        if self.rpm < 0 or self.rpd < 0:
            raise ValueError(f"Quota caps must be non-negative, got rpm={self.rpm} rpd={self.rpd}")


DEFAULT_LIMITS: dict[ModelTier, QuotaWindowLimits] = {
    ModelTier.PRIMARY: QuotaWindowLimits(rpm=2, rpd=50),
    ModelTier.SECONDARY: QuotaWindowLimits(rpm=15, rpd=1500),
}

DEFAULT_MODEL_IDS: dict[ModelTier, str] = {
    ModelTier.PRIMARY: "gemini-3-pro-preview",
    ModelTier.SECONDARY: "gemini-3-flash-preview",
}
