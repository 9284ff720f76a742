"""Abstract base class for generation providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class GenerationConfig:
    """Provider-neutral request options."""

    system_instruction: str | None = None
    """Fixed instruction constraining the output format."""

    response_mime_type: str | None = None
    """e.g. 'application/json' to request structured output."""

    use_search: bool = False
    """Ground the answer with provider web search."""

    temperature: float | None = None

    def merged(self, **overrides: Any) -> GenerationConfig:
        """Copy with the given fields replaced; None values are ignored."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "system_instruction": self.system_instruction,
            "response_mime_type": self.response_mime_type,
            "use_search": self.use_search,
            "temperature": self.temperature,
        }


@dataclass
class GenerationResult:
    """Text returned by a provider for one call."""

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)


class GenerationClient(ABC):
    """
    Abstract base class for generation providers.

    generate() either returns text or raises the provider's own
    exception unchanged, so the invoker's classifier sees the
    original message and status code.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """
        Unique identifier for this provider.

        Returns:
            Provider name (e.g., 'gemini')
        """
        ...

    @abstractmethod
    async def generate(
        self,
        model_id: str,
        contents: Any,
        config: GenerationConfig,
    ) -> GenerationResult:
        """
        Send one generation request.

        Args:
            model_id: Concrete provider model identifier
            contents: Request payload
            config: Request options

        Returns:
            GenerationResult with the response text

        Raises:
            Exception: Any provider failure
        """
        ...

    async def close(self) -> None:
        """Release provider connections."""
        return None
