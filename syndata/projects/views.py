"""Projects API endpoints."""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from syndata.core.dependencies import get_current_user
from syndata.projects.models import (
    MemberAdd,
    MemberUpdate,
    ProjectCreate,
    ProjectListResponse,
    ProjectMetrics,
    ProjectResponse,
    ProjectUpdate,
)
from syndata.projects.service import ProjectService

router = APIRouter(prefix="/projects", tags=["Projects"])


@router.post("", response_model=ProjectResponse, status_code=201)
async def create_project(
    body: ProjectCreate,
    current_user: dict = Depends(get_current_user),
):
    """Create a project; the caller becomes its owner."""
    return await ProjectService.create_project(current_user, body)


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    status: Optional[str] = Query(None, pattern="^(active|archived)$"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(get_current_user),
):
    """Projects the caller is a member of, newest first."""
    page = await ProjectService.list_projects(current_user["id"], status=status, limit=limit, offset=offset)
    return ProjectListResponse(projects=page.items, total=page.total, limit=page.limit, offset=page.offset)


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: str = Path(..., description="Project ID"),
    current_user: dict = Depends(get_current_user),
):
    return await ProjectService.get_for_member(project_id, current_user["id"], "viewer")


@router.patch("/{project_id}", response_model=ProjectResponse)
async def update_project(
    body: ProjectUpdate,
    project_id: str = Path(..., description="Project ID"),
    current_user: dict = Depends(get_current_user),
):
    return await ProjectService.update_project(project_id, current_user["id"], body)


@router.post("/{project_id}/archive", response_model=ProjectResponse)
async def archive_project(
    project_id: str = Path(..., description="Project ID"),
    current_user: dict = Depends(get_current_user),
):
    return await ProjectService.archive_project(project_id, current_user["id"])


@router.post("/{project_id}/restore", response_model=ProjectResponse)
async def restore_project(
    project_id: str = Path(..., description="Project ID"),
    current_user: dict = Depends(get_current_user),
):
    """Re-activate an archived project; counts against the customer's project limit."""
    return await ProjectService.restore_project(project_id, current_user["id"])


@router.delete("/{project_id}", response_model=ProjectResponse)
async def delete_project(
    project_id: str = Path(..., description="Project ID"),
    current_user: dict = Depends(get_current_user),
):
    """Projects are archived, never hard-deleted."""
    return await ProjectService.archive_project(project_id, current_user["id"])


@router.post("/{project_id}/members", response_model=ProjectResponse, status_code=201)
async def add_member(
    body: MemberAdd,
    project_id: str = Path(..., description="Project ID"),
    current_user: dict = Depends(get_current_user),
):
    return await ProjectService.add_member(project_id, current_user["id"], body.user_id, body.role)


@router.patch("/{project_id}/members/{member_id}", response_model=ProjectResponse)
async def update_member(
    body: MemberUpdate,
    project_id: str = Path(..., description="Project ID"),
    member_id: str = Path(..., description="User ID of the member"),
    current_user: dict = Depends(get_current_user),
):
    return await ProjectService.update_member_role(project_id, current_user["id"], member_id, body.role)


@router.delete("/{project_id}/members/{member_id}", response_model=ProjectResponse)
async def remove_member(
    project_id: str = Path(..., description="Project ID"),
    member_id: str = Path(..., description="User ID of the member"),
    current_user: dict = Depends(get_current_user),
):
    return await ProjectService.remove_member(project_id, current_user["id"], member_id)


@router.get("/{project_id}/metrics", response_model=ProjectMetrics)
async def get_project_metrics(
    project_id: str = Path(..., description="Project ID"),
    current_user: dict = Depends(get_current_user),
):
    return await ProjectService.get_metrics(project_id, current_user["id"])
