"""
Campaigns Router - start scrapes, follow their jobs, read cached results.
"""

import logging
from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException, status
from typing import Optional

from console.dependencies import get_orchestrator
from console.schemas import CampaignJobsResponse, CleanupResponse, JobResponse
from harvester.models.campaign import CampaignResult
from harvester.schemas.requests import ScrapeRequest
from harvester.services.orchestrator import ScrapeOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


@router.post("/scrape", response_model=JobResponse, status_code=status.HTTP_202_ACCEPTED)
async def start_scrape(
    request_in: ScrapeRequest,
    orchestrator: ScrapeOrchestrator = Depends(get_orchestrator),
):
    """
    Start (or join) a scrape.
    Category without subcategory fans out per subcategory; the returned job is
    the parent that aggregates the children.
    """
    job = await orchestrator.submit_scrape(request_in)
    return JobResponse.from_job(job)


@router.get("/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str, orchestrator: ScrapeOrchestrator = Depends(get_orchestrator)):
    """Get job by ID."""
    job = await orchestrator.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return JobResponse.from_job(job)


@router.get("/{campaign_id}/jobs", response_model=CampaignJobsResponse)
async def get_campaign_jobs(campaign_id: str, orchestrator: ScrapeOrchestrator = Depends(get_orchestrator)):
    """All jobs of a campaign (parent and children) with an overall status."""
    report = await orchestrator.get_jobs_for_campaign(campaign_id)
    return CampaignJobsResponse(
        campaign_id=report.campaign_id,
        overall_status=report.overall_status,
        summary=asdict(report.summary),
        jobs=[JobResponse.from_job(job) for job in report.jobs],
    )


@router.delete("/{campaign_id}/jobs", response_model=CleanupResponse)
async def cleanup_campaign_jobs(campaign_id: str, orchestrator: ScrapeOrchestrator = Depends(get_orchestrator)):
    """Delete child jobs; the parent job is kept."""
    try:
        report = await orchestrator.cleanup_campaign_jobs(campaign_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return CleanupResponse(
        campaign_id=report.campaign_id,
        deleted_child_jobs=report.deleted_child_jobs,
        parent_job_id=report.parent_job_id,
    )


@router.get("/{campaign_id}", response_model=CampaignResult)
async def get_cached_campaign(
    campaign_id: str,
    category: Optional[str] = None,
    subcategory: Optional[str] = None,
    orchestrator: ScrapeOrchestrator = Depends(get_orchestrator),
):
    """Cached result of a finished scrape."""
    result = await orchestrator.get_cached_campaign(campaign_id, category, subcategory)
    if result is None:
        raise HTTPException(status_code=404, detail="Campaign not found in cache")
    return result
