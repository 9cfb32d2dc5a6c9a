"""
In-process job scheduler.

Jobs are created ``pending`` and persisted before anything runs. Execution is
an asyncio task per job that waits on an admission semaphore, so creation is
never blocked by the concurrency ceiling and jobs are admitted in creation
order. Work functions receive their own job id and their exceptions end up as
the job's ``error``; nothing is raised back to the submitter.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from harvester.config import settings
from harvester.models.job import Job, JobMetadata
from harvester.schemas.enums import JobStatus
from harvester.storage.base import BaseStorage
from harvester.storage.keys import StorageKeys
from harvester.utils.date_utils import get_now

logger = logging.getLogger(__name__)

WorkFn = Callable[[str], Awaitable[Any]]

CANCELLED_MESSAGE = "Job cancelled by user"
INTERRUPTED_MESSAGE = "Job interrupted by server restart"
SHUTDOWN_MESSAGE = "Job interrupted by scheduler shutdown"
NO_RESULT_MESSAGE = "Job produced no result"


@dataclass
class JobSpec:
    """One entry of a ``create_batch`` call."""
    type: str
    work_fn: WorkFn
    metadata: Dict[str, Any] = field(default_factory=dict)
    throttled: bool = True


@dataclass
class SchedulerStats:
    pending: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    total: int = 0


class JobScheduler:
    def __init__(self, storage: Optional[BaseStorage] = None, max_concurrent_jobs: int = None):
        self.storage = storage
        self.max_concurrent_jobs = max_concurrent_jobs or settings.MAX_CONCURRENT_JOBS
        self._semaphore = asyncio.Semaphore(self.max_concurrent_jobs)
        self._jobs: Dict[str, Job] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._interrupt_reasons: Dict[str, str] = {}

    # ========== CREATION ==========

    async def submit(
        self,
        type: str,
        work_fn: WorkFn,
        metadata: Dict[str, Any] = None,
        throttled: bool = True,
    ) -> Job:
        """
        Create a pending job and schedule it.

        ``throttled=False`` skips the admission semaphore; it is meant for
        coordinator jobs that only wait on other jobs.
        """
        job = self._register(type, metadata)
        await self._persist(job)
        self._schedule(job.id, work_fn, throttled)
        logger.info(f"📥 Job {job.id} created ({type})")
        return job

    async def create_batch(self, specs: List[JobSpec]) -> List[Job]:
        """Create and persist every job first, then schedule them in order."""
        jobs = [self._register(spec.type, spec.metadata) for spec in specs]
        await asyncio.gather(*(self._persist(job) for job in jobs))
        for job, spec in zip(jobs, specs):
            self._schedule(job.id, spec.work_fn, spec.throttled)
        logger.info(f"📥 Created batch of {len(jobs)} jobs")
        return jobs

    def _register(self, type: str, metadata: Optional[Dict[str, Any]]) -> Job:
        job = Job(type=type, metadata=JobMetadata.model_validate(metadata or {}))
        self._jobs[job.id] = job
        self._locks[job.id] = asyncio.Lock()
        return job

    def _schedule(self, job_id: str, work_fn: WorkFn, throttled: bool = True) -> None:
        task = asyncio.create_task(self._run(job_id, work_fn, throttled), name=f"job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(job_id, None))

    @contextlib.asynccontextmanager
    async def admission(self):
        """Hold one admission slot for browser work that runs outside a job."""
        async with self._semaphore:
            yield

    # ========== EXECUTION ==========

    async def _run(self, job_id: str, work_fn: WorkFn, throttled: bool = True) -> None:
        admission = self._semaphore if throttled else contextlib.nullcontext()
        try:
            async with admission:
                job = await self._transition(job_id, lambda j: j.mark_running() if j.is_pending else None)
                if job is None:
                    logger.info(f"⏭️  Job {job_id} is no longer pending, skipping")
                    return

                logger.info(f"🔄 Job {job_id} running ({job.type})")
                try:
                    result = await work_fn(job_id)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"❌ Job {job_id} failed: {e}")
                    await self._settle(job_id, error=str(e) or e.__class__.__name__)
                    return

                if result is None:
                    await self._settle(job_id, error=NO_RESULT_MESSAGE)
                    return
                await self._settle(job_id, result=result)
                logger.info(f"✅ Job {job_id} completed")
        except asyncio.CancelledError:
            reason = self._interrupt_reasons.pop(job_id, SHUTDOWN_MESSAGE)
            logger.warning(f"🛑 Job {job_id} cancelled: {reason}")
            await self._settle(job_id, error=reason)
            raise

    async def _settle(self, job_id: str, result: Any = None, error: str = None) -> Optional[Job]:
        def change(job: Job) -> Optional[Job]:
            if job.is_terminal:
                return None
            if error is not None:
                return job.with_error(error)
            return job.with_result(result)

        return await self._transition(job_id, change)

    async def _transition(self, job_id: str, change: Callable[[Job], Optional[Job]]) -> Optional[Job]:
        """Apply ``change`` under the job's lock; a ``None`` change is a no-op."""
        lock = self._locks.get(job_id)
        if lock is None:
            return None
        async with lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            updated = change(job)
            if updated is None:
                return None
            self._jobs[job_id] = updated
            await self._persist(updated)
        return updated

    async def _persist(self, job: Job) -> None:
        if not self.storage:
            return
        try:
            await self.storage.save(StorageKeys.job_key(job.id), job.to_storage())
        except Exception as e:
            logger.error(f"Failed to persist job {job.id}: {e}")

    # ========== QUERIES ==========

    async def get(self, job_id: str) -> Optional[Job]:
        return self._jobs.get(job_id)

    async def find_by_correlation(
        self,
        campaign_id: str,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
    ) -> Optional[Job]:
        """First job with the exact same key that has not failed."""
        for job in self._jobs.values():
            if job.metadata.matches(campaign_id, category, subcategory) and not job.has_failed:
                return job
        return None

    async def find_all_by_campaign(self, campaign_id: str) -> List[Job]:
        jobs = [job for job in self._jobs.values() if job.metadata.campaign_id == campaign_id]
        return sorted(jobs, key=lambda j: j.created_at)

    async def list_by_status(self, status: Optional[JobStatus] = None) -> List[Job]:
        if status is None:
            return list(self._jobs.values())
        return [job for job in self._jobs.values() if job.status == status]

    async def stats(self) -> SchedulerStats:
        stats = SchedulerStats(total=len(self._jobs))
        for job in self._jobs.values():
            setattr(stats, job.status.value, getattr(stats, job.status.value) + 1)
        return stats

    async def wait_for(self, job_id: str, timeout: float = None) -> Optional[Job]:
        """Wait until the job settles (or ``timeout`` elapses) and return it."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return self._jobs.get(job_id)

    # ========== MUTATIONS ==========

    async def update_metadata(self, job_id: str, patch: Dict[str, Any]) -> Optional[Job]:
        return await self._transition(job_id, lambda j: j.with_metadata(patch))

    async def update_progress(
        self,
        job_id: str,
        items_found: Optional[int] = None,
        message: Optional[str] = None,
    ) -> Optional[Job]:
        return await self._transition(job_id, lambda j: j.with_progress(items_found, message))

    async def cancel(self, job_id: str) -> bool:
        """
        Cancel a job.

        A pending job is failed immediately and will be skipped on admission.
        A running job gets its task cancelled; the work function stops at its
        next await, so browser work already in flight may still finish.
        """
        job = await self._transition(
            job_id, lambda j: j.with_error(CANCELLED_MESSAGE) if j.is_pending else None
        )
        if job is not None:
            logger.info(f"🛑 Pending job {job_id} cancelled")
            return True

        job = self._jobs.get(job_id)
        task = self._tasks.get(job_id)
        if job is None or not job.is_running or task is None or task.done():
            return False

        self._interrupt_reasons[job_id] = CANCELLED_MESSAGE
        task.cancel()
        logger.info(f"🛑 Cancellation requested for running job {job_id}")
        return True

    async def purge_completed_older_than(self, minutes: int = 60) -> int:
        """
        Forget settled jobs (completed or failed) older than ``minutes``.

        Children of a parent that is still open are kept; the parent reads
        them when it aggregates.
        """
        cutoff = get_now() - timedelta(minutes=minutes)
        expired = [
            job.id for job in self._jobs.values()
            if job.is_terminal and job.completed_at < cutoff and not self._has_open_parent(job)
        ]
        for job_id in expired:
            await self.delete_job(job_id)
        logger.info(f"🗑️  Purged {len(expired)} settled jobs older than {minutes} minutes")
        return len(expired)

    def _has_open_parent(self, job: Job) -> bool:
        parent = self._jobs.get(job.metadata.parent_job_id) if job.metadata.parent_job_id else None
        return parent is not None and not parent.is_terminal

    async def delete_job(self, job_id: str) -> bool:
        if job_id not in self._jobs:
            return False
        task = self._tasks.get(job_id)
        if task is not None and not task.done():
            task.cancel()
        self._jobs.pop(job_id, None)
        self._locks.pop(job_id, None)
        if self.storage:
            try:
                await self.storage.delete(StorageKeys.job_key(job_id))
            except Exception as e:
                logger.error(f"Failed to delete job {job_id} from storage: {e}")
        return True

    # ========== LIFECYCLE ==========

    async def load_from_storage(self) -> int:
        """
        Rehydrate jobs persisted by a previous process.

        Work functions do not survive a restart, so anything that was still
        pending or running is recorded as failed.
        """
        if not self.storage:
            return 0

        try:
            keys = await self.storage.list_keys(StorageKeys.JOB_PREFIX)
        except Exception as e:
            logger.error(f"Failed to load jobs from storage: {e}")
            return 0

        loaded = 0
        for key in keys:
            try:
                data = await self.storage.get(key)
                if not data:
                    continue
                job = Job.from_storage(data)
            except Exception as e:
                logger.error(f"Failed to load job {key}: {e}")
                continue

            self._jobs[job.id] = job
            self._locks[job.id] = asyncio.Lock()
            if not job.is_terminal:
                await self._transition(job.id, lambda j: j.with_error(INTERRUPTED_MESSAGE))
            loaded += 1

        logger.info(f"Loaded {loaded} jobs from storage")
        return loaded

    async def shutdown(self) -> None:
        """Cancel every in-flight task and wait for them to record their state."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Scheduler stopped ({len(tasks)} tasks cancelled)")
