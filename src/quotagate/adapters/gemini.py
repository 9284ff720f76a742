"""Google Gemini generation client."""

import asyncio
import json
import logging
from typing import Any

from google import genai
from google.genai import types

from quotagate.adapters.base import GenerationClient, GenerationConfig, GenerationResult

logger = logging.getLogger(__name__)


class GeminiClient(GenerationClient):
    """
    Generation client for the Gemini API via google-genai.

    Provider exceptions propagate unchanged; only a local timeout is
    translated, into a RuntimeError the invoker treats as transient.
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout_seconds: float | None = 60.0,
        client: Any = None,
    ) -> None:
        """
        Initialize the Gemini client.

        Args:
            api_key: Gemini API key (falls back to GEMINI_API_KEY in the environment)
            timeout_seconds: Per-call timeout, None to wait indefinitely
            client: Preconfigured genai.Client
        """
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._client = client

    @property
    def name(self) -> str:
        return "gemini"

    def _get_client(self) -> Any:
        """Create the SDK client on first use so a missing key only fails calls."""
        if self._client is None:
            if self._api_key:
                self._client = genai.Client(api_key=self._api_key)
            else:
                self._client = genai.Client()
        return self._client

    def _build_config(self, config: GenerationConfig) -> types.GenerateContentConfig:
        gen_config = types.GenerateContentConfig(
            system_instruction=config.system_instruction,
            temperature=config.temperature,
        )
        if config.response_mime_type:
            gen_config.response_mime_type = config.response_mime_type
        if config.use_search:
            gen_config.tools = [types.Tool(google_search=types.GoogleSearch())]
        return gen_config

    @staticmethod
    def _to_contents(contents: Any) -> Any:
        if isinstance(contents, (str, list)):
            return contents
        return json.dumps(contents, ensure_ascii=False, default=str)

    async def generate(
        self,
        model_id: str,
        contents: Any,
        config: GenerationConfig,
    ) -> GenerationResult:
        request = self._get_client().aio.models.generate_content(
            model=model_id,
            contents=self._to_contents(contents),
            config=self._build_config(config),
        )

        try:
            if self._timeout:
                response = await asyncio.wait_for(request, timeout=self._timeout)
            else:
                response = await request
        except asyncio.TimeoutError:
            raise RuntimeError(f"Gemini timed out after {self._timeout}s") from None

        text = response.text or ""
        if not text.strip():
            logger.warning(f"Gemini returned an empty response for {model_id}")

        metadata: dict[str, Any] = {}
        usage = getattr(response, "usage_metadata", None)
        if usage is not None:
            metadata["prompt_tokens"] = getattr(usage, "prompt_token_count", None)
            metadata["output_tokens"] = getattr(usage, "candidates_token_count", None)

        return GenerationResult(text=text, metadata=metadata)
