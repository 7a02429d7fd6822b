"""Project models."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

ProjectStatus = Literal["active", "archived"]
ProjectRole = Literal["owner", "admin", "member", "viewer"]
AssignableRole = Literal["admin", "member", "viewer"]


class ProjectSettings(BaseModel):
    data_retention_days: int = Field(default=30, ge=0, le=3650, description="0 keeps data forever")
    max_storage_gb: int = Field(default=10, ge=1, le=10_000)


class ProjectSettingsUpdate(BaseModel):
    data_retention_days: Optional[int] = Field(default=None, ge=0, le=3650)
    max_storage_gb: Optional[int] = Field(default=None, ge=1, le=10_000)


class ProjectStorage(BaseModel):
    bucket_name: Optional[str] = None
    region: Optional[str] = None
    used_storage_bytes: int = 0


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(default="", max_length=1000)
    settings: ProjectSettings = Field(default_factory=ProjectSettings)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    status: Optional[ProjectStatus] = None
    settings: Optional[ProjectSettingsUpdate] = None


class ProjectResponse(BaseModel):
    id: str
    name: str
    description: str = ""
    status: ProjectStatus
    customer_id: Optional[str] = None
    owner_id: str
    settings: ProjectSettings
    storage: ProjectStorage
    team_members: Dict[str, ProjectRole]
    created_at: datetime
    updated_at: datetime


class ProjectListResponse(BaseModel):
    projects: List[ProjectResponse]
    total: int
    limit: int
    offset: int


class MemberAdd(BaseModel):
    user_id: str
    role: AssignableRole = "member"


class MemberUpdate(BaseModel):
    role: AssignableRole


class ProjectMetrics(BaseModel):
    project_id: str
    total_jobs: int
    jobs_by_status: Dict[str, int]
    storage: ProjectStorage
    object_count: Optional[int] = None
