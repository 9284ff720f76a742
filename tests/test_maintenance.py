"""Tests for background store maintenance."""

import pytest

from quotagate.cache import ResponseCache
from quotagate.clock import ManualClock
from quotagate.maintenance import PRUNE_JOB_ID, MaintenanceScheduler, StorePruner
from quotagate.quota.ledger import QuotaLedger
from quotagate.store.memory import InMemoryStore
from quotagate.tiers import ModelTier

DAY = 86400


class TestStorePruner:
    """Tests for StorePruner."""

    @pytest.mark.asyncio
    async def test_nothing_to_prune(self, ledger: QuotaLedger, cache: ResponseCache) -> None:
        """Test an empty store reports zero removals."""
        results = await StorePruner(ledger, cache).run_all()
        assert results == {"cache_entries_purged": 0, "ledgers_pruned": 0}

    @pytest.mark.asyncio
    async def test_prunes_expired_state(
        self,
        ledger: QuotaLedger,
        cache: ResponseCache,
        clock: ManualClock,
        store: InMemoryStore,
    ) -> None:
        """Test expired cache entries and request records are removed."""
        await cache.store("p", ModelTier.SECONDARY, "text")
        await ledger.record_success(ModelTier.SECONDARY, 8)
        clock.advance(DAY + 1)

        results = await StorePruner(ledger, cache).run_all()

        assert results["cache_entries_purged"] == 1
        assert results["ledgers_pruned"] == 1
        assert await store.scan("cache:") == []


class TestMaintenanceScheduler:
    """Tests for MaintenanceScheduler."""

    def test_not_running_initially(self, ledger: QuotaLedger, cache: ResponseCache) -> None:
        """Test a new scheduler is idle."""
        scheduler = MaintenanceScheduler(StorePruner(ledger, cache))
        assert scheduler.running is False
        assert scheduler.get_job_status() is None

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self, ledger: QuotaLedger, cache: ResponseCache) -> None:
        """Test the pruning job is scheduled while running."""
        scheduler = MaintenanceScheduler(StorePruner(ledger, cache), interval_minutes=30)

        scheduler.start()
        try:
            assert scheduler.running is True
            status = scheduler.get_job_status()
            assert status is not None
            assert status["id"] == PRUNE_JOB_ID
            assert status["next_run_time"] is not None

            # Starting twice is a no-op
            scheduler.start()
            assert scheduler.running is True
        finally:
            scheduler.shutdown()

        assert scheduler.running is False
        assert scheduler.get_job_status() is None
