"""Background pruning of expired cache entries and request logs."""

import logging
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from quotagate.cache import ResponseCache
from quotagate.quota.ledger import QuotaLedger

logger = logging.getLogger(__name__)

PRUNE_JOB_ID = "store_prune"


class StorePruner:
    """
    Physically removes state that is already logically expired.

    Reads already ignore expired entries, so this only keeps the
    durable store from growing without bound.
    """

    def __init__(self, ledger: QuotaLedger, cache: ResponseCache) -> None:
        self._ledger = ledger
        self._cache = cache

    async def run_all(self) -> dict[str, int]:
        """
        Run every pruning task.

        Returns:
            Dict with counts of removed items by category
        """
        results = {
            "cache_entries_purged": await self._cache.purge_expired(),
            "ledgers_pruned": await self._ledger.compact(),
        }
        logger.info(f"Store pruning complete: {results}")
        return results


class MaintenanceScheduler:
    """
    Runs StorePruner on an interval inside the application event loop.

    Jobs are kept in memory; the pruning job is re-added on every start.
    """

    def __init__(
        self,
        pruner: StorePruner,
        interval_minutes: int = 60,
        timezone: str = "UTC",
    ) -> None:
        """
        Initialize the maintenance scheduler.

        Args:
            pruner: Pruner to run
            interval_minutes: Minutes between runs
            timezone: Scheduler timezone
        """
        self._pruner = pruner
        self._interval_minutes = interval_minutes
        self._timezone = timezone
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def scheduler(self) -> AsyncIOScheduler:
        """Get or create the scheduler instance."""
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler(
                job_defaults={
                    "coalesce": True,  # Combine missed runs into one
                    "max_instances": 1,  # Prevent overlapping runs
                    "misfire_grace_time": 60 * 5,
                },
                timezone=self._timezone,
            )
        return self._scheduler

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self) -> None:
        """Register the pruning job and start the scheduler (needs a running loop)."""
        if self.running:
            logger.warning("Maintenance scheduler is already running")
            return

        self.scheduler.add_job(
            self._pruner.run_all,
            trigger=IntervalTrigger(minutes=self._interval_minutes),
            id=PRUNE_JOB_ID,
            name=PRUNE_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Maintenance scheduler started ({self._interval_minutes}m interval)")

    def shutdown(self, wait: bool = False) -> None:
        if self.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("Maintenance scheduler shutdown complete")
        self._scheduler = None

    def get_job_status(self) -> dict[str, Any] | None:
        """Status of the pruning job, or None when not scheduled."""
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(PRUNE_JOB_ID)
        if job is None:
            return None
        return {
            "id": job.id,
            "name": job.name,
            "next_run_time": job.next_run_time,
        }
