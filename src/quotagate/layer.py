"""Composition root wiring the store, ledger, cache and invoker together."""

import logging
from dataclasses import dataclass

from quotagate.adapters.base import GenerationClient
from quotagate.adapters.gemini import GeminiClient
from quotagate.cache import ResponseCache
from quotagate.clock import Clock, SystemClock
from quotagate.config import Settings, get_settings
from quotagate.errors import ErrorClassifier
from quotagate.events import AvailabilityNotifier
from quotagate.invoker import Invoker
from quotagate.quota.ledger import QuotaLedger
from quotagate.store.base import KeyValueStore
from quotagate.store.factory import create_store

logger = logging.getLogger(__name__)

# Global layer instance
_layer_instance: "InvocationLayer | None" = None


@dataclass
class InvocationLayer:
    """The explicitly owned components of one invocation layer."""

    store: KeyValueStore
    ledger: QuotaLedger
    cache: ResponseCache
    invoker: Invoker
    notifier: AvailabilityNotifier
    client: GenerationClient

    async def close(self) -> None:
        """Close the provider client and the store."""
        await self.client.close()
        await self.store.close()


def build_layer(
    settings: Settings | None = None,
    *,
    store: KeyValueStore | None = None,
    client: GenerationClient | None = None,
    clock: Clock | None = None,
    notifier: AvailabilityNotifier | None = None,
    classifier: ErrorClassifier | None = None,
) -> InvocationLayer:
    """
    Build an invocation layer from settings.

    Any component passed explicitly replaces the one the settings
    would create, which is how tests substitute fakes.

    Args:
        settings: Configuration (defaults to the cached settings)
        store: Durable store
        client: Generation provider
        clock: Time source shared by the ledger, cache and invoker
        notifier: Receives ledger mutation events
        classifier: Provider error classifier

    Returns:
        InvocationLayer
    """
    cfg = settings or get_settings()
    clock = clock or SystemClock()
    notifier = notifier or AvailabilityNotifier()

    if store is None:
        store = create_store(
            cfg.store_backend,
            database_url=cfg.database_url,
            url=cfg.redis_url,
            prefix=cfg.redis_prefix,
        )
    if client is None:
        client = GeminiClient(
            api_key=cfg.gemini_api_key,
            timeout_seconds=cfg.gemini_timeout_seconds,
        )

    ledger = QuotaLedger(
        store,
        limits=cfg.tier_limits(),
        clock=clock,
        notifier=notifier,
        retention_seconds=cfg.quota_retention_hours * 3600,
        fallback_wait_threshold=cfg.fallback_wait_threshold_seconds,
    )
    cache = ResponseCache(store, clock=clock, ttl_seconds=cfg.cache_ttl_hours * 3600)
    invoker = Invoker(
        ledger,
        cache,
        client,
        clock=clock,
        classifier=classifier,
        model_ids=cfg.model_ids(),
        system_instruction=cfg.system_instruction,
        default_retry_budget=cfg.default_retry_budget,
        backoff_seconds=cfg.retry_backoff_seconds,
    )

    logger.info(f"Invocation layer ready ({store.name} store, {client.name} client)")
    return InvocationLayer(
        store=store,
        ledger=ledger,
        cache=cache,
        invoker=invoker,
        notifier=notifier,
        client=client,
    )


def get_layer() -> InvocationLayer:
    """
    Get the process-wide invocation layer.

    Creates the layer on first access using configuration settings.

    Returns:
        InvocationLayer instance
    """
    global _layer_instance

    if _layer_instance is None:
        _layer_instance = build_layer()

    return _layer_instance


async def shutdown_layer() -> None:
    """Close the process-wide layer and forget it."""
    global _layer_instance

    if _layer_instance is not None:
        await _layer_instance.close()
        _layer_instance = None
        logger.info("Invocation layer shutdown complete")


def reset_layer() -> None:
    """
    Reset the process-wide layer without closing it.

    Useful for testing or when configuration changes.
    """
    global _layer_instance
    _layer_instance = None
