"""Jobs API endpoints."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from syndata.core.dependencies import get_current_user
from syndata.jobs.models import (
    JobCreateRequest,
    JobListResponse,
    JobRateLimitStatus,
    JobResponse,
    JobResultResponse,
)
from syndata.jobs.service import JobsService

router = APIRouter(prefix="/jobs", tags=["Jobs"])
project_jobs_router = APIRouter(prefix="/projects/{project_id}/jobs", tags=["Jobs"])

STATUS_PATTERN = "^(pending|queued|running|completed|failed|cancelled)$"


# ==================== Project-scoped ====================

@project_jobs_router.post("", response_model=JobResponse, status_code=201)
async def create_job(
    body: JobCreateRequest,
    project_id: str = Path(..., description="Project ID"),
    current_user: dict = Depends(get_current_user),
):
    """Create a pending job. Submit it separately to start generation."""
    return await JobsService.create_job(project_id, current_user, body.job_type, body.job_config)


@project_jobs_router.get("", response_model=JobListResponse)
async def list_project_jobs(
    project_id: str = Path(..., description="Project ID"),
    status: Optional[str] = Query(None, pattern=STATUS_PATTERN),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(get_current_user),
):
    page = await JobsService.list_project_jobs(
        project_id, current_user["id"], status=status, limit=limit, offset=offset
    )
    return JobListResponse(jobs=page.items, total=page.total, limit=page.limit, offset=page.offset)


# ==================== Job-scoped ====================

@router.get("", response_model=JobListResponse)
async def list_jobs(
    status: Optional[str] = Query(None, pattern=STATUS_PATTERN),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(get_current_user),
):
    """Jobs across all projects the caller belongs to."""
    page = await JobsService.list_accessible_jobs(current_user["id"], status=status, limit=limit, offset=offset)
    return JobListResponse(jobs=page.items, total=page.total, limit=page.limit, offset=page.offset)


@router.get("/rate-limits", response_model=JobRateLimitStatus)
async def get_rate_limits(current_user: dict = Depends(get_current_user)):
    return await JobsService.get_rate_limit_status(current_user["id"])


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: str = Path(..., description="Job ID"),
    current_user: dict = Depends(get_current_user),
):
    return await JobsService.get_for_member(job_id, current_user["id"], "viewer")


@router.post("/{job_id}/submit", response_model=JobResponse)
async def submit_job(
    job_id: str = Path(..., description="Job ID"),
    current_user: dict = Depends(get_current_user),
):
    return await JobsService.submit_job(job_id, current_user)


@router.post("/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(
    job_id: str = Path(..., description="Job ID"),
    current_user: dict = Depends(get_current_user),
):
    return await JobsService.cancel_job(job_id, current_user)


@router.post("/{job_id}/sync", response_model=JobResponse)
async def sync_job(
    job_id: str = Path(..., description="Job ID"),
    current_user: dict = Depends(get_current_user),
):
    """Pull the latest status from the pipeline."""
    return await JobsService.sync_job_status(job_id, current_user)


@router.post("/{job_id}/retry", response_model=JobResponse, status_code=201)
async def retry_job(
    job_id: str = Path(..., description="Job ID"),
    current_user: dict = Depends(get_current_user),
):
    """Create a new pending job from a failed or cancelled one."""
    return await JobsService.retry_job(job_id, current_user)


@router.get("/{job_id}/result", response_model=JobResultResponse)
async def get_job_result(
    job_id: str = Path(..., description="Job ID"),
    current_user: dict = Depends(get_current_user),
):
    return await JobsService.get_job_result(job_id, current_user["id"])
