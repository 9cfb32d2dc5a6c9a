"""
Wires storage, cache, scheduler, fetcher and orchestrator from settings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from harvester.cache.hybrid_cache import HybridCache
from harvester.config import Settings, settings as default_settings
from harvester.connectors.base import CampaignSource
from harvester.connectors.campaign_fetcher import CampaignFetcher
from harvester.jobs.scheduler import JobScheduler
from harvester.services.orchestrator import FanOutConfig, ScrapeOrchestrator
from harvester.storage.base import BaseStorage
from harvester.storage.factory import build_storage

logger = logging.getLogger(__name__)


@dataclass
class Services:
    storage: Optional[BaseStorage]
    cache: HybridCache
    scheduler: JobScheduler
    orchestrator: ScrapeOrchestrator
    cache_check_period_seconds: float = 120.0
    _sweeper: Optional[asyncio.Task] = field(default=None, repr=False)

    async def start(self) -> None:
        """Open storage, rehydrate jobs and cache, start the expiry sweeper."""
        if self.storage:
            await self.storage.initialize()
        await self.scheduler.load_from_storage()
        await self.cache.load_from_storage()
        self._sweeper = asyncio.create_task(
            self.cache.run_sweeper(self.cache_check_period_seconds), name="cache-sweeper"
        )
        logger.info("✅ Services started")

    async def stop(self) -> None:
        if self._sweeper:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
        await self.orchestrator.shutdown()
        await self.scheduler.shutdown()
        if self.storage:
            await self.storage.close()
        logger.info("🛑 Services stopped")


def build_services(settings: Settings = None, source: CampaignSource = None) -> Services:
    settings = settings or default_settings
    storage = build_storage(settings)
    cache = HybridCache(settings.CACHE_TTL_SECONDS, storage=storage)
    scheduler = JobScheduler(storage=storage, max_concurrent_jobs=settings.MAX_CONCURRENT_JOBS)
    orchestrator = ScrapeOrchestrator(
        scheduler,
        source or CampaignFetcher(),
        cache,
        FanOutConfig.from_settings(settings),
    )
    return Services(
        storage=storage,
        cache=cache,
        scheduler=scheduler,
        orchestrator=orchestrator,
        cache_check_period_seconds=settings.CACHE_CHECK_PERIOD_SECONDS,
    )
