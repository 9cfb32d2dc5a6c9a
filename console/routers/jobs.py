"""
Jobs Router - scheduler and cache introspection.
"""

import logging
from fastapi import APIRouter, Depends, HTTPException
from typing import List, Optional

from console.dependencies import get_services
from console.schemas import CacheStatsResponse, CancelResponse, JobResponse, JobSummaryResponse
from harvester.schemas.enums import JobStatus
from harvester.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["jobs"])


@router.get("/jobs", response_model=List[JobResponse])
async def list_jobs(status: Optional[JobStatus] = None, services: Services = Depends(get_services)):
    """List jobs, optionally filtered by status."""
    jobs = await services.scheduler.list_by_status(status)
    return [JobResponse.from_job(job) for job in jobs]


@router.get("/jobs/stats", response_model=JobSummaryResponse)
async def get_job_stats(services: Services = Depends(get_services)):
    return await services.scheduler.stats()


@router.post("/jobs/{job_id}/cancel", response_model=CancelResponse)
async def cancel_job(job_id: str, services: Services = Depends(get_services)):
    """Cancel a pending or running job."""
    if not await services.scheduler.get(job_id):
        raise HTTPException(status_code=404, detail="Job not found")
    cancelled = await services.scheduler.cancel(job_id)
    return CancelResponse(job_id=job_id, cancelled=cancelled)


@router.delete("/jobs")
async def purge_jobs(older_than_minutes: int = 60, services: Services = Depends(get_services)):
    """Forget settled jobs older than the given age."""
    deleted = await services.scheduler.purge_completed_older_than(older_than_minutes)
    return {"message": f"Deleted {deleted} jobs"}


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def get_cache_stats(services: Services = Depends(get_services)):
    return await services.cache.stats()
