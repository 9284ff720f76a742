"""
Quota ledger: per-tier request logs, hard blocks and availability.

Every tier keeps an ascending log of successful request timestamps
and an optional hard block marker written when the provider itself
rejects a call for quota reasons. Both live in the durable store so
a restarted process still honors them.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Any

from quotagate.clock import Clock, SystemClock
from quotagate.errors import QuotaExceededError, StoreReadError
from quotagate.events import AvailabilityNotifier, QuotaEvent, QuotaEventKind
from quotagate.quota.window import prune, seconds_until_expiry, within
from quotagate.store.base import KeyValueStore
from quotagate.tiers import DEFAULT_LIMITS, ModelTier, QuotaWindowLimits

logger = logging.getLogger(__name__)

DAY_SECONDS = 86400
MINUTE_SECONDS = 60

LOG_KEY = "quota:log:{tier}"
BLOCK_KEY = "quota:block:{tier}"
TOKENS_TOTAL_KEY = "quota:tokens:total"
TOKENS_SAVED_KEY = "quota:tokens:saved"


def estimate_tokens(size: int) -> int:
    """Approximate token count from a character count."""
    return math.ceil(max(0, size) / 4)


@dataclass
class AvailabilitySnapshot:
    """Point-in-time availability of one tier."""

    tier: ModelTier
    rpm_left: int
    rpm_cap: int
    rpd_left: int
    rpd_cap: int
    is_blocked: bool
    is_daily_blocked: bool
    is_hard_blocked: bool
    next_available_in_seconds: int
    """Whole seconds until the blocking window frees a slot (0 when open)."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "tier": self.tier.value,
            "rpm_left": self.rpm_left,
            "rpm_cap": self.rpm_cap,
            "rpd_left": self.rpd_left,
            "rpd_cap": self.rpd_cap,
            "is_blocked": self.is_blocked,
            "is_daily_blocked": self.is_daily_blocked,
            "is_hard_blocked": self.is_hard_blocked,
            "next_available_in_seconds": self.next_available_in_seconds,
        }


class QuotaLedger:
    """
    Answers whether a tier can be used right now, and if not, when.

    Read-then-write sequences on a tier are serialized by a per-tier
    asyncio.Lock. admit() reserves a slot for an in-flight call, so
    concurrent callers in one process never push a tier past its caps.
    """

    def __init__(
        self,
        store: KeyValueStore,
        limits: dict[ModelTier, QuotaWindowLimits] | None = None,
        clock: Clock | None = None,
        notifier: AvailabilityNotifier | None = None,
        retention_seconds: float = DAY_SECONDS,
        minute_seconds: float = MINUTE_SECONDS,
        fallback_wait_threshold: float = 15,
    ) -> None:
        """
        Initialize the ledger.

        Args:
            store: Durable store holding logs, markers and counters
            limits: Per-tier caps (defaults to the provider free tier)
            clock: Time source
            notifier: Receives an event after every mutation
            retention_seconds: Day window length, also the hard block duration
            minute_seconds: Minute window length
            fallback_wait_threshold: Longest minute-window wait before
                auto resolution prefers the secondary tier
        """
        self._store = store
        self._limits = dict(limits or DEFAULT_LIMITS)
        self._clock = clock or SystemClock()
        self._notifier = notifier
        self._retention = retention_seconds
        self._minute = minute_seconds
        self._fallback_wait_threshold = fallback_wait_threshold
        self._locks = {tier: asyncio.Lock() for tier in ModelTier}
        self._in_flight = {tier: 0 for tier in ModelTier}

    @property
    def limits(self) -> dict[ModelTier, QuotaWindowLimits]:
        return dict(self._limits)

    @property
    def clock(self) -> Clock:
        return self._clock

    def in_flight(self, tier: ModelTier) -> int:
        """Admitted calls on a tier that have not been released yet."""
        return self._in_flight[tier]

    async def _load_log(self, tier: ModelTier, now: float) -> list[float]:
        """Read a tier's log, pruning and writing back expired entries."""
        key = LOG_KEY.format(tier=tier.value)
        raw = await self._store.get(key)
        if not isinstance(raw, list):
            if raw is not None:
                logger.warning(f"Discarding malformed request log for {tier.value}")
            raw = []

        try:
            log = sorted(float(t) for t in raw)
        except (TypeError, ValueError):
            logger.warning(f"Discarding malformed request log for {tier.value}")
            log = []

        pruned = prune(log, now, self._retention)
        if len(pruned) != len(raw):
            await self._store.set(key, pruned)
        return pruned

    async def _load_block(self, tier: ModelTier) -> float | None:
        raw = await self._store.get(BLOCK_KEY.format(tier=tier.value))
        if raw is None:
            return None
        try:
            return float(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring malformed hard block marker for {tier.value}")
            return None

    def _unreadable(self, tier: ModelTier, error: StoreReadError) -> AvailabilitySnapshot:
        """Snapshot for a tier whose state could not be read: closed, retry after a minute."""
        logger.error(f"Quota state for {tier.value} unreadable, reporting it blocked: {error}")
        caps = self._limits[tier]
        return AvailabilitySnapshot(
            tier=tier,
            rpm_left=0,
            rpm_cap=caps.rpm,
            rpd_left=0,
            rpd_cap=caps.rpd,
            is_blocked=True,
            is_daily_blocked=True,
            is_hard_blocked=False,
            next_available_in_seconds=math.ceil(self._minute),
        )

    def _compute(
        self,
        tier: ModelTier,
        log: list[float],
        block: float | None,
        now: float,
        pending: int = 0,
    ) -> AvailabilitySnapshot:
        caps = self._limits[tier]
        minute_log = within(log, now, self._minute)
        day_log = within(log, now, self._retention)

        is_hard_blocked = block is not None and now - block < self._retention
        rpm_left = max(0, caps.rpm - len(minute_log) - pending)
        if is_hard_blocked:
            rpd_left = 0
        else:
            rpd_left = max(0, caps.rpd - len(day_log) - pending)

        day_exhausted = rpd_left == 0 or is_hard_blocked
        is_blocked = rpm_left == 0 or day_exhausted

        next_available = 0
        if day_exhausted:
            candidates = []
            if day_log:
                candidates.append(seconds_until_expiry(day_log[0], self._retention, now))
            if is_hard_blocked:
                candidates.append(seconds_until_expiry(block, self._retention, now))
            next_available = max(candidates, default=0)
        elif rpm_left == 0 and minute_log:
            next_available = seconds_until_expiry(minute_log[0], self._minute, now)

        return AvailabilitySnapshot(
            tier=tier,
            rpm_left=rpm_left,
            rpm_cap=caps.rpm,
            rpd_left=rpd_left,
            rpd_cap=caps.rpd,
            is_blocked=is_blocked,
            is_daily_blocked=day_exhausted,
            is_hard_blocked=is_hard_blocked,
            next_available_in_seconds=max(0, next_available),
        )

    async def _notify(self, kind: QuotaEventKind, tier: ModelTier, at: float) -> None:
        if self._notifier is not None:
            await self._notifier.notify(QuotaEvent(kind=kind, tier=tier, at=at))

    async def record_success(self, tier: ModelTier, response_size: int) -> None:
        """
        Log a completed request and add its estimated tokens.

        Args:
            tier: Tier that served the request
            response_size: Length of the response text in characters
        """
        async with self._locks[tier]:
            now = self._clock.now()
            try:
                log = await self._load_log(tier, now)
            except StoreReadError as e:
                # Never overwrite a log that could not be read
                logger.error(f"Request log for {tier.value} unreadable, success not recorded: {e}")
                log = None
            if log is not None:
                log.append(now)
                await self._store.set(LOG_KEY.format(tier=tier.value), log)

        tokens = estimate_tokens(response_size)
        if tokens:
            await self._store.increment(TOKENS_TOTAL_KEY, tokens)
        if log is not None:
            await self._notify(QuotaEventKind.SUCCESS, tier, now)

    async def record_hard_block(self, tier: ModelTier) -> None:
        """Mark a tier as closed for a full day after a provider quota rejection."""
        async with self._locks[tier]:
            now = self._clock.now()
            await self._store.set(BLOCK_KEY.format(tier=tier.value), now)

        logger.warning(f"Provider rejected {tier.value} tier for quota, blocking for {self._retention:.0f}s")
        await self._notify(QuotaEventKind.HARD_BLOCK, tier, now)

    async def availability(self, tier: ModelTier) -> AvailabilitySnapshot:
        """
        Compute the current availability of a tier.

        Expired log entries are pruned before counting. A tier whose
        state cannot be read is reported blocked.

        Args:
            tier: Tier to inspect

        Returns:
            AvailabilitySnapshot for the tier
        """
        async with self._locks[tier]:
            now = self._clock.now()
            try:
                log = await self._load_log(tier, now)
                block = await self._load_block(tier)
            except StoreReadError as e:
                return self._unreadable(tier, e)
            return self._compute(tier, log, block, now)

    async def snapshot_all(self) -> dict[ModelTier, AvailabilitySnapshot]:
        return {tier: await self.availability(tier) for tier in ModelTier}

    async def should_prefer_secondary(self) -> bool:
        """Whether auto resolution should skip the primary tier."""
        primary = await self.availability(ModelTier.PRIMARY)
        if primary.is_daily_blocked:
            return True
        return primary.is_blocked and primary.next_available_in_seconds > self._fallback_wait_threshold

    async def admit(self, tier: ModelTier) -> AvailabilitySnapshot:
        """
        Reserve a slot on a tier for one call.

        The reservation counts against both windows until release()
        is called, which callers must do in a finally block.

        Args:
            tier: Tier to call

        Returns:
            Availability seen at admission, before the reservation

        Raises:
            QuotaExceededError: If the tier is blocked or its state is unreadable
        """
        async with self._locks[tier]:
            now = self._clock.now()
            try:
                log = await self._load_log(tier, now)
                block = await self._load_block(tier)
            except StoreReadError as e:
                snapshot = self._unreadable(tier, e)
            else:
                snapshot = self._compute(tier, log, block, now, pending=self._in_flight[tier])
            if snapshot.is_blocked:
                raise QuotaExceededError(
                    tier,
                    retry_after=snapshot.next_available_in_seconds or None,
                )
            self._in_flight[tier] += 1
            return snapshot

    def release(self, tier: ModelTier) -> None:
        """Return a slot reserved by admit()."""
        if self._in_flight[tier] > 0:
            self._in_flight[tier] -= 1

    async def _read_counter(self, key: str) -> int:
        try:
            return int(await self._store.get(key) or 0)
        except StoreReadError as e:
            logger.warning(f"Token counter unreadable, reporting 0: {e}")
            return 0

    async def total_tokens_consumed(self) -> int:
        return await self._read_counter(TOKENS_TOTAL_KEY)

    async def record_saved_tokens(self, text_length: int) -> int:
        """Add the estimated tokens of a response served without a call."""
        tokens = estimate_tokens(text_length)
        if not tokens:
            return await self.total_tokens_saved()
        return await self._store.increment(TOKENS_SAVED_KEY, tokens)

    async def total_tokens_saved(self) -> int:
        return await self._read_counter(TOKENS_SAVED_KEY)

    async def compact(self) -> int:
        """
        Physically prune every tier log and drop expired hard blocks.

        Returns:
            Number of log entries removed
        """
        removed = 0
        for tier in ModelTier:
            async with self._locks[tier]:
                now = self._clock.now()
                key = LOG_KEY.format(tier=tier.value)
                try:
                    raw = await self._store.get(key)
                    before = len(raw) if isinstance(raw, list) else 0
                    log = await self._load_log(tier, now)
                    block = await self._load_block(tier)
                except StoreReadError as e:
                    logger.warning(f"Skipping compaction of {tier.value}: {e}")
                    continue
                removed += max(0, before - len(log))

                if block is not None and now - block >= self._retention:
                    await self._store.delete(BLOCK_KEY.format(tier=tier.value))
                    logger.info(f"Cleared expired hard block for {tier.value}")
        return removed
