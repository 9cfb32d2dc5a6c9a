from pydantic import BaseModel, ConfigDict
from typing import Any, Dict, List, Optional
from datetime import datetime

from harvester.schemas.enums import JobStatus, OverallStatus


class JobProgressResponse(BaseModel):
    items_found: Optional[int] = None
    message: Optional[str] = None
    last_update: datetime

    model_config = ConfigDict(from_attributes=True)


class JobResponse(BaseModel):
    id: str
    type: str
    status: JobStatus
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: Optional[JobProgressResponse] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = {}

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_job(cls, job) -> "JobResponse":
        data = job.model_dump()
        data["metadata"] = job.metadata.model_dump(exclude_none=True)
        return cls.model_validate(data)


class JobSummaryResponse(BaseModel):
    total: int
    pending: int
    running: int
    completed: int
    failed: int

    model_config = ConfigDict(from_attributes=True)


class CampaignJobsResponse(BaseModel):
    campaign_id: str
    overall_status: OverallStatus
    summary: JobSummaryResponse
    jobs: List[JobResponse]


class CleanupResponse(BaseModel):
    campaign_id: str
    deleted_child_jobs: int
    parent_job_id: Optional[str] = None
    parent_job_preserved: bool = True


class CancelResponse(BaseModel):
    job_id: str
    cancelled: bool


class CacheStatsResponse(BaseModel):
    hits: int
    misses: int
    keys: int

    model_config = ConfigDict(from_attributes=True)
