"""
Scrape orchestration: request dedup, single-job scrapes and per-subcategory
fan-out with aggregation.

Fan-out runs in two phases that only talk through the parent job's metadata:
a detached task discovers subcategories and creates the children, then
publishes ``child_job_ids`` (or ``spawn_error``) on the parent; the parent's
own work function polls for that list and aggregates once every child has
settled.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set

from harvester.cache.hybrid_cache import HybridCache
from harvester.config import Settings, settings as default_settings
from harvester.connectors.base import CampaignSource
from harvester.errors import AggregationTimeoutError, ChildJobMissingError, ChildJobsFailedError, ScraperError
from harvester.jobs.scheduler import JobScheduler, JobSpec
from harvester.models.campaign import CampaignResult
from harvester.models.job import Job
from harvester.schemas.enums import JobStatus, JobType, OverallStatus
from harvester.schemas.requests import ScrapeRequest
from harvester.storage.keys import StorageKeys

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FanOutConfig:
    child_job_limit: int = 50
    batch_size: int = 5
    batch_delay_seconds: float = 2.0
    poll_interval_seconds: float = 5.0
    aggregation_timeout_seconds: float = 600.0

    @classmethod
    def from_settings(cls, settings: Settings = None) -> "FanOutConfig":
        settings = settings or default_settings
        return cls(
            child_job_limit=settings.CHILD_JOB_LIMIT,
            batch_size=settings.CHILD_BATCH_SIZE,
            batch_delay_seconds=settings.CHILD_BATCH_DELAY_SECONDS,
            poll_interval_seconds=settings.AGGREGATION_POLL_SECONDS,
            aggregation_timeout_seconds=settings.AGGREGATION_TIMEOUT_SECONDS,
        )


@dataclass
class JobSummary:
    total: int = 0
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0


@dataclass
class CampaignJobsReport:
    campaign_id: str
    jobs: List[Job] = field(default_factory=list)
    overall_status: OverallStatus = OverallStatus.FAILED
    summary: JobSummary = field(default_factory=JobSummary)


@dataclass
class CleanupReport:
    campaign_id: str
    deleted_child_jobs: int = 0
    parent_job_id: Optional[str] = None


def summarize(jobs: List[Job]) -> JobSummary:
    summary = JobSummary(total=len(jobs))
    for job in jobs:
        setattr(summary, job.status.value, getattr(summary, job.status.value) + 1)
    return summary


def overall_status(summary: JobSummary) -> OverallStatus:
    if summary.total == 0:
        return OverallStatus.FAILED
    if summary.pending:
        return OverallStatus.PENDING
    if summary.running:
        return OverallStatus.RUNNING
    if summary.completed == summary.total:
        return OverallStatus.COMPLETED
    if summary.failed == summary.total:
        return OverallStatus.FAILED
    return OverallStatus.PARTIAL


def _as_campaign(result: Any) -> CampaignResult:
    # Results rehydrated from storage come back as plain dicts.
    return CampaignResult.model_validate(result)


class ScrapeOrchestrator:
    def __init__(
        self,
        scheduler: JobScheduler,
        source: CampaignSource,
        cache: HybridCache,
        config: FanOutConfig = None,
    ):
        self.scheduler = scheduler
        self.source = source
        self.cache = cache
        self.config = config or FanOutConfig.from_settings()
        self._background: Set[asyncio.Task] = set()

    # ========== ENTRY POINTS ==========

    async def submit_scrape(self, request: ScrapeRequest) -> Job:
        """Return the live job for this request, creating one if needed."""
        existing = await self.scheduler.find_by_correlation(*request.correlation_key)
        if existing:
            logger.info(f"♻️  Reusing job {existing.id} ({existing.status.value}) for {request.cache_key}")
            return existing

        if request.is_fan_out:
            return await self._start_fan_out(request)

        return await self.scheduler.submit(
            JobType.CAMPAIGN_SCRAPING.value,
            self._scrape_work(request),
            self._metadata(request),
        )

    async def get_job(self, job_id: str) -> Optional[Job]:
        return await self.scheduler.get(job_id)

    async def get_jobs_for_campaign(self, campaign_id: str) -> CampaignJobsReport:
        jobs = await self.scheduler.find_all_by_campaign(campaign_id)
        summary = summarize(jobs)
        return CampaignJobsReport(
            campaign_id=campaign_id,
            jobs=jobs,
            overall_status=overall_status(summary),
            summary=summary,
        )

    async def get_cached_campaign(
        self,
        campaign_id: str,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
    ) -> Optional[CampaignResult]:
        value = await self.cache.get(StorageKeys.campaign_key(campaign_id, category, subcategory))
        return _as_campaign(value) if value is not None else None

    async def cleanup_campaign_jobs(self, campaign_id: str) -> CleanupReport:
        """
        Delete a campaign's child jobs.

        The parent stays behind as the marker that the campaign was scraped.
        """
        jobs = await self.scheduler.find_all_by_campaign(campaign_id)
        parent = next((job for job in jobs if not job.metadata.parent_job_id), None)
        if parent is None:
            raise LookupError(f"No parent job found for campaign {campaign_id}")

        deleted = 0
        for job in jobs:
            if job.metadata.parent_job_id and await self.scheduler.delete_job(job.id):
                deleted += 1

        logger.info(f"🗑️  Deleted {deleted} child jobs for campaign {campaign_id}, kept parent {parent.id}")
        return CleanupReport(campaign_id=campaign_id, deleted_child_jobs=deleted, parent_job_id=parent.id)

    async def shutdown(self) -> None:
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    # ========== SINGLE SCRAPE ==========

    def _metadata(self, request: ScrapeRequest, **extra) -> Dict[str, Any]:
        return {
            "campaign_id": request.campaign_id,
            "category": request.category,
            "subcategory": request.subcategory,
            "max_load_more_clicks": request.max_load_more_clicks,
            **extra,
        }

    def _scrape_work(self, request: ScrapeRequest):
        async def work(job_id: str) -> CampaignResult:
            result = await self.source.fetch(request)
            await self.scheduler.update_progress(
                job_id, items_found=len(result.item_ids), message="Scrape completed"
            )
            await self.cache.set(request.cache_key, result)
            return result
        return work

    # ========== FAN-OUT ==========

    async def _start_fan_out(self, request: ScrapeRequest) -> Job:
        parent = await self.scheduler.submit(
            JobType.ORCHESTRATOR.value,
            self._aggregate,
            self._metadata(request),
            throttled=False,
        )
        task = asyncio.create_task(self._spawn_children(parent.id, request), name=f"spawn-{parent.id}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        logger.info(f"🌿 Fan-out started for {request.cache_key} (parent {parent.id})")
        return parent

    async def _spawn_children(self, parent_job_id: str, request: ScrapeRequest) -> None:
        try:
            # discovery opens a browser session, so it competes for a slot like any job
            async with self.scheduler.admission():
                labels = await self.source.discover_subcategories(request.campaign_id, request.category)
            if not labels:
                logger.info(f"No subcategories found for {request.cache_key}, scraping the category as a whole")
                labels = [""]

            limit = self.config.child_job_limit
            if len(labels) > limit:
                logger.warning(f"⚠️ {len(labels)} subcategories found, limiting to the first {limit}")
                labels = labels[:limit]

            child_ids: List[str] = []
            size = self.config.batch_size
            for start in range(0, len(labels), size):
                batch = labels[start:start + size]
                jobs = await self.scheduler.create_batch([self._child_spec(parent_job_id, request, label) for label in batch])
                child_ids.extend(job.id for job in jobs)
                logger.info(f"Created child jobs {start + 1}-{start + len(batch)} of {len(labels)} for {parent_job_id}")
                if start + size < len(labels):
                    await asyncio.sleep(self.config.batch_delay_seconds)

            await self.scheduler.update_metadata(parent_job_id, {"child_job_ids": child_ids})
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"❌ Failed to spawn child jobs for {parent_job_id}")
            await self.scheduler.update_metadata(parent_job_id, {"spawn_error": str(e) or e.__class__.__name__})

    def _child_spec(self, parent_job_id: str, request: ScrapeRequest, label: str) -> JobSpec:
        # An empty label is the whole-category fallback child.
        child_request = ScrapeRequest(
            campaign_id=request.campaign_id,
            category=request.category,
            subcategory=label or None,
            max_load_more_clicks=request.max_load_more_clicks,
        )
        return JobSpec(
            type=JobType.CAMPAIGN_SCRAPING.value,
            work_fn=self._scrape_work(child_request),
            metadata=self._metadata(child_request, subcategory=label, parent_job_id=parent_job_id),
        )

    # ========== AGGREGATION ==========

    async def _aggregate(self, parent_job_id: str) -> CampaignResult:
        """Parent work function: wait for every child to settle, then merge."""
        loop = asyncio.get_running_loop()
        timeout = self.config.aggregation_timeout_seconds
        deadline = loop.time() + timeout

        while True:
            parent = await self.scheduler.get(parent_job_id)
            if parent is None:
                raise ScraperError(f"Parent job {parent_job_id} no longer exists")
            if parent.metadata.spawn_error:
                raise ScraperError(f"Failed to create child jobs: {parent.metadata.spawn_error}")

            child_ids = parent.metadata.child_job_ids
            if child_ids is not None:
                children = [await self.scheduler.get(child_id) for child_id in child_ids]
                for child_id, child in zip(child_ids, children):
                    if child is None:
                        raise ChildJobMissingError(child_id)
                settled = sum(1 for child in children if child.is_terminal)
                await self.scheduler.update_progress(
                    parent_job_id, message=f"{settled}/{len(child_ids)} child jobs settled"
                )
                if settled == len(child_ids):
                    return await self._merge(parent, children)

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise AggregationTimeoutError(parent_job_id, timeout)
            await asyncio.sleep(min(self.config.poll_interval_seconds, remaining))

    async def _merge(self, parent: Job, children: List[Job]) -> CampaignResult:
        completed = [_as_campaign(child.result) for child in children if child.status == JobStatus.COMPLETED]
        if not completed:
            raise ChildJobsFailedError()

        item_ids = dict.fromkeys(item_id for result in completed for item_id in result.item_ids)
        aggregate = completed[0].model_copy(update={"item_ids": list(item_ids)})

        key = StorageKeys.campaign_key(parent.metadata.campaign_id, parent.metadata.category)
        await self.cache.set(key, aggregate)
        logger.info(
            f"✅ Aggregated {len(completed)}/{len(children)} child jobs for {key}: {len(item_ids)} unique items"
        )
        return aggregate
