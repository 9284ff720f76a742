"""
Invocation orchestrator.

Every generation request flows through Invoker: resolve the tier,
consult the response cache, pass the quota gate, call the provider
with retries, classify failures, then persist the result to the
cache and the ledger.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from typing import Any

from quotagate.adapters.base import GenerationClient, GenerationConfig
from quotagate.cache import ResponseCache
from quotagate.clock import Clock, SystemClock
from quotagate.errors import (
    ConnectionFailureError,
    ErrorClassifier,
    ErrorKind,
    QuotaExceededError,
    classify_by_message,
)
from quotagate.quota.ledger import QuotaLedger
from quotagate.tasks import BUILTIN_TASKS, TaskSpec, get_task
from quotagate.tiers import DEFAULT_MODEL_IDS, ModelTier, TierPreference

logger = logging.getLogger(__name__)

CONNECTION_TEST_TASK = "connection_test"


@dataclass
class InvocationResult:
    """Outcome of a successful invocation."""

    text: str
    tier: ModelTier
    model_id: str
    cached: bool
    """True when served from the cache or a concurrent identical call."""

    attempts: int
    """Provider calls made by this invocation (0 when cached)."""

    usage: dict[str, Any] = field(default_factory=dict)
    """Provider token usage for a fresh call, empty when cached."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "tier": self.tier.value,
            "model_id": self.model_id,
            "cached": self.cached,
            "attempts": self.attempts,
            "usage": dict(self.usage),
        }


@dataclass
class ConnectionCheck:
    """Result of a provider reachability check."""

    success: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "message": self.message}


class Invoker:
    """
    Single entry point for generation requests.

    Concurrent invocations with the same payload and effective tier
    share one provider call; the callers that join an in-flight call
    are treated as cache hits.
    """

    def __init__(
        self,
        ledger: QuotaLedger,
        cache: ResponseCache,
        client: GenerationClient,
        tasks: dict[str, TaskSpec] | None = None,
        clock: Clock | None = None,
        classifier: ErrorClassifier | None = None,
        model_ids: dict[ModelTier, str] | None = None,
        system_instruction: str | None = None,
        default_retry_budget: int = 3,
        backoff_seconds: float = 2.0,
    ) -> None:
        """
        Initialize the invoker.

        Args:
            ledger: Quota ledger shared by every caller
            cache: Response cache shared by every caller
            client: Generation provider
            tasks: Task registry (defaults to the built-in tasks)
            clock: Time source used for backoff sleeps
            classifier: Maps provider exceptions to an ErrorKind
            model_ids: Provider model identifier per tier
            system_instruction: Instruction attached to every request
            default_retry_budget: Attempts for tasks that declare none
            backoff_seconds: Base delay, multiplied by the attempt index
        """
        if default_retry_budget < 1:
            raise ValueError("default_retry_budget must be at least 1")

        self._ledger = ledger
        self._cache = cache
        self._client = client
        self._tasks = dict(BUILTIN_TASKS if tasks is None else tasks)
        self._clock = clock or SystemClock()
        self._classifier = classifier or classify_by_message
        self._model_ids = dict(model_ids or DEFAULT_MODEL_IDS)
        self._system_instruction = system_instruction
        self._default_retry_budget = default_retry_budget
        self._backoff_seconds = backoff_seconds
        self._in_flight: dict[str, asyncio.Future[InvocationResult]] = {}

    @property
    def tasks(self) -> dict[str, TaskSpec]:
        return dict(self._tasks)

    def model_id(self, tier: ModelTier) -> str:
        return self._model_ids[tier]

    def _resolve_task(self, task: str | TaskSpec) -> TaskSpec:
        if isinstance(task, TaskSpec):
            return task
        return get_task(task, self._tasks)

    def _build_config(self, spec: TaskSpec, config: GenerationConfig | None) -> GenerationConfig:
        base = config if config is not None else spec.config
        return base.merged(system_instruction=self._system_instruction)

    async def resolve_tier(
        self,
        task: str | TaskSpec,
        preference: TierPreference | str | None = TierPreference.AUTO,
    ) -> ModelTier:
        """
        Turn a caller preference into the tier that will serve the call.

        Args:
            task: Task name or TaskSpec, supplies the default tier
            preference: Caller preference (auto, primary, secondary)

        Returns:
            Effective tier
        """
        spec = self._resolve_task(task)
        forced = TierPreference.parse(preference).tier
        if forced is not None:
            return forced

        if spec.default_tier is ModelTier.PRIMARY and await self._ledger.should_prefer_secondary():
            logger.info(f"Primary tier exhausted, running {spec.name} on secondary")
            return ModelTier.SECONDARY
        return spec.default_tier

    async def invoke(
        self,
        task: str | TaskSpec,
        preference: TierPreference | str | None = TierPreference.AUTO,
        payload: Any = None,
        retry_budget: int | None = None,
        config: GenerationConfig | None = None,
    ) -> str:
        """
        Run a task and return the response text.

        Raises:
            QuotaExceededError: If the tier is blocked or the provider rejects it
            ConnectionFailureError: If every attempt failed for other reasons
            UnknownTaskError: If the task is not registered
        """
        result = await self.invoke_with_details(
            task,
            preference=preference,
            payload=payload,
            retry_budget=retry_budget,
            config=config,
        )
        return result.text

    async def invoke_with_details(
        self,
        task: str | TaskSpec,
        preference: TierPreference | str | None = TierPreference.AUTO,
        payload: Any = None,
        retry_budget: int | None = None,
        config: GenerationConfig | None = None,
        use_cache: bool = True,
    ) -> InvocationResult:
        """
        Run a task and describe how it was served.

        Args:
            task: Task name or TaskSpec
            preference: Caller tier preference
            payload: Request contents, also the cache key material
            retry_budget: Attempts override (at least 1)
            config: Output options replacing the task's own
            use_cache: Skip cache and call coalescing when False

        Returns:
            InvocationResult
        """
        spec = self._resolve_task(task)
        budget = retry_budget if retry_budget is not None else spec.retry_budget
        if budget is None:
            budget = self._default_retry_budget
        if budget < 1:
            raise ValueError(f"retry_budget must be at least 1, got {budget}")

        tier = await self.resolve_tier(spec, preference)
        model_id = self._model_ids[tier]
        gen_config = self._build_config(spec, config)

        if not use_cache:
            return await self._call(spec, tier, payload, budget, gen_config, persist=False)

        cached = await self._cache.lookup(payload, tier)
        if cached is not None:
            await self._ledger.record_saved_tokens(len(cached))
            logger.info(f"Cache hit for {spec.name} on {tier.value}")
            return InvocationResult(cached, tier, model_id, cached=True, attempts=0)

        key = self._cache.fingerprint(payload, tier)
        pending = self._in_flight.get(key)
        if pending is not None:
            logger.info(f"Joining in-flight {spec.name} call on {tier.value}")
            shared = await asyncio.shield(pending)
            await self._ledger.record_saved_tokens(len(shared.text))
            return InvocationResult(shared.text, tier, model_id, cached=True, attempts=0)

        # The call runs in its own task: cancelling any caller, the
        # starter included, only abandons that caller's wait.
        call = asyncio.ensure_future(self._call(spec, tier, payload, budget, gen_config, persist=True))
        self._in_flight[key] = call
        call.add_done_callback(functools.partial(self._finish_call, key))
        return await asyncio.shield(call)

    def _finish_call(self, key: str, call: asyncio.Future[InvocationResult]) -> None:
        if self._in_flight.get(key) is call:
            del self._in_flight[key]
        if not call.cancelled() and call.exception() is not None:
            # Retrieved here so an unjoined failure is not reported by asyncio
            logger.debug(f"Shared call {key} failed: {call.exception()}")

    async def _call(
        self,
        spec: TaskSpec,
        tier: ModelTier,
        payload: Any,
        budget: int,
        config: GenerationConfig,
        persist: bool,
    ) -> InvocationResult:
        """Pass the quota gate and call the provider within the retry budget."""
        model_id = self._model_ids[tier]
        await self._ledger.admit(tier)
        try:
            last_error: Exception | None = None
            for attempt in range(1, budget + 1):
                try:
                    response = await self._client.generate(model_id, payload, config)
                except Exception as e:
                    kind = self._classifier(e)
                    if kind is ErrorKind.QUOTA:
                        await self._ledger.record_hard_block(tier)
                        raise QuotaExceededError(tier, provider_confirmed=True) from e
                    if kind is ErrorKind.FATAL:
                        logger.error(f"{spec.name} failed on {model_id} with a non-retryable error: {e}")
                        raise ConnectionFailureError(attempt, e) from e

                    last_error = e
                    if attempt < budget:
                        delay = self._backoff_seconds * attempt
                        logger.warning(
                            f"{spec.name} attempt {attempt}/{budget} on {model_id} failed: {e}. "
                            f"Retrying in {delay:.1f}s"
                        )
                        await self._clock.sleep(delay)
                    continue

                text = response.text
                if persist:
                    await self._cache.store(payload, tier, text)
                await self._ledger.record_success(tier, len(text))
                return InvocationResult(
                    text, tier, model_id, cached=False, attempts=attempt, usage=dict(response.metadata)
                )

            logger.error(f"{spec.name} failed on {model_id} after {budget} attempt(s): {last_error}")
            raise ConnectionFailureError(budget, last_error) from last_error
        finally:
            self._ledger.release(tier)

    async def test_connection(self) -> ConnectionCheck:
        """
        Make one uncached call on the secondary tier.

        Returns:
            ConnectionCheck describing the outcome
        """
        spec = self._tasks.get(CONNECTION_TEST_TASK, BUILTIN_TASKS[CONNECTION_TEST_TASK])
        try:
            result = await self.invoke_with_details(
                spec,
                preference=TierPreference.SECONDARY,
                payload="ping",
                retry_budget=1,
                use_cache=False,
            )
        except QuotaExceededError as e:
            return ConnectionCheck(success=False, message=f"Quota exhausted: {e}")
        except ConnectionFailureError as e:
            return ConnectionCheck(success=False, message=str(e))

        return ConnectionCheck(success=True, message=f"Connected to {result.model_id}")
