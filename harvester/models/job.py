"""
Job records owned by the scheduler.

A ``Job`` is immutable: every transition returns a new instance, and the
scheduler swaps the stored record under a per-job lock.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from harvester.schemas.enums import JobStatus
from harvester.utils.date_utils import get_now


def generate_uuid():
    """Generate UUID string for job IDs"""
    return str(uuid.uuid4())


class JobProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    items_found: Optional[int] = None
    message: Optional[str] = None
    last_update: datetime = Field(default_factory=get_now)


class JobMetadata(BaseModel):
    """Correlation fields; unknown keys are kept as-is."""

    model_config = ConfigDict(frozen=True, extra="allow")

    campaign_id: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    max_load_more_clicks: Optional[int] = None
    parent_job_id: Optional[str] = None
    child_job_ids: Optional[List[str]] = None
    spawn_error: Optional[str] = None

    def merged(self, patch: Dict[str, Any]) -> "JobMetadata":
        return JobMetadata.model_validate({**self.model_dump(), **patch})

    def matches(self, campaign_id: str, category: Optional[str], subcategory: Optional[str]) -> bool:
        return (
            self.campaign_id == campaign_id
            and self.category == category
            and self.subcategory == subcategory
        )


class Job(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=generate_uuid)
    type: str = Field(min_length=1)
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = Field(default_factory=get_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: Optional[JobProgress] = None
    result: Optional[Any] = None
    error: Optional[str] = None
    metadata: JobMetadata = Field(default_factory=JobMetadata)

    @model_validator(mode="after")
    def _check_invariants(self):
        if self.status == JobStatus.RUNNING and self.started_at is None:
            raise ValueError("running job must have started_at")
        if self.status.is_terminal and self.completed_at is None:
            raise ValueError(f"{self.status.value} job must have completed_at")
        if not self.status.is_terminal and self.completed_at is not None:
            raise ValueError(f"{self.status.value} job cannot have completed_at")
        if self.status == JobStatus.COMPLETED and (self.result is None or self.error is not None):
            raise ValueError("completed job must have a result and no error")
        if self.status == JobStatus.FAILED and not self.error:
            raise ValueError("failed job must have an error")
        if self.result is not None and self.status != JobStatus.COMPLETED:
            raise ValueError("only completed jobs carry a result")
        return self

    # ========== STATE ==========

    @property
    def is_pending(self) -> bool:
        return self.status == JobStatus.PENDING

    @property
    def is_running(self) -> bool:
        return self.status == JobStatus.RUNNING

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def has_failed(self) -> bool:
        return self.status == JobStatus.FAILED

    # ========== TRANSITIONS ==========

    def _ensure_open(self) -> None:
        if self.is_terminal:
            raise ValueError(f"Job {self.id} is already {self.status.value}")

    def _replace(self, **changes) -> "Job":
        return Job.model_validate({**dict(self), **changes})

    def mark_running(self) -> "Job":
        self._ensure_open()
        return self._replace(status=JobStatus.RUNNING, started_at=get_now())

    def with_result(self, result: Any) -> "Job":
        self._ensure_open()
        return self._replace(
            status=JobStatus.COMPLETED,
            result=result,
            error=None,
            completed_at=get_now(),
        )

    def with_error(self, error: str) -> "Job":
        self._ensure_open()
        return self._replace(
            status=JobStatus.FAILED,
            error=error or "Unknown error",
            completed_at=get_now(),
        )

    def with_progress(self, items_found: Optional[int] = None, message: Optional[str] = None) -> "Job":
        return self._replace(progress=JobProgress(items_found=items_found, message=message))

    def with_metadata(self, patch: Dict[str, Any]) -> "Job":
        return self._replace(metadata=self.metadata.merged(patch))

    # ========== PERSISTENCE ==========

    def to_storage(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_storage(cls, data: Dict[str, Any]) -> "Job":
        return cls.model_validate(data)
