"""Jobs models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from syndata.jobs.state_machine import JobStatus


class JobCreateRequest(BaseModel):
    job_type: str = Field(..., description="Job type (whitelisted)")
    job_config: Dict[str, Any] = Field(..., description="Generation parameters passed to the pipeline.")


class JobStage(BaseModel):
    name: str
    status: str = "pending"
    progress: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class JobResponse(BaseModel):
    id: str
    project_id: str
    user_id: str
    status: JobStatus
    job_type: str
    job_config: Dict[str, Any] = Field(default_factory=dict)
    pipeline_job_id: Optional[str] = None
    result_uri: Optional[str] = None
    error: Optional[str] = None
    progress: int = 0
    stages: List[JobStage] = Field(default_factory=list)
    retry_of: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class JobListResponse(BaseModel):
    jobs: List[JobResponse]
    total: int
    limit: int
    offset: int


class ResultFile(BaseModel):
    key: str
    size: int = 0
    url: str


class JobResultResponse(BaseModel):
    job_id: str
    result_uri: str
    download_url: Optional[str] = None
    files: List[ResultFile] = Field(default_factory=list)


class RateLimitWindow(BaseModel):
    used: int
    limit: int
    reset_seconds: Optional[int] = None


class JobRateLimitStatus(BaseModel):
    jobs_per_hour: RateLimitWindow
    concurrent_jobs: RateLimitWindow
