"""Pipeline-facing types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Union

from pydantic import BaseModel, Field

from syndata.jobs.state_machine import JobStatus


class PipelineError(Exception):
    """The pipeline rejected a request or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


@dataclass
class PipelineJobStatus:
    status: JobStatus
    progress: int = 0
    error: Optional[str] = None
    stages: List[dict] = field(default_factory=list)
    result_uri: Optional[str] = None
    raw_status: Optional[str] = None


class PipelineWebhookEvent(BaseModel):
    """Status push from the pipeline; mirrors the GET /api/v2/jobs/{id} body."""
    job_id: str
    status: str
    progress: int = Field(default=0, ge=0, le=100)
    error: Optional[Union[dict, str]] = None
    stages: List[dict] = Field(default_factory=list)
    result_uri: Optional[str] = None
