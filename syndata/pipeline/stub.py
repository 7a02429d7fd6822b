"""In-process pipeline stand-in for local development and tests."""

from __future__ import annotations

import logging
import uuid
from typing import Dict, Optional

from syndata.jobs.progress import STAGE_WEIGHTS
from syndata.jobs.state_machine import JobStatus
from syndata.pipeline.models import PipelineError, PipelineJobStatus

logger = logging.getLogger(__name__)


class StubPipelineClient:
    """
    Deterministic simulation: every status check moves a job one step along
    queued -> running -> completed. A job whose config sets
    `simulate_failure` fails instead of completing.
    """

    def __init__(self):
        self._jobs: Dict[str, dict] = {}

    async def submit(self, job: dict, bucket: Optional[str] = None) -> str:
        pipeline_job_id = f"stub-{uuid.uuid4()}"
        config = job.get("job_config") or {}
        self._jobs[pipeline_job_id] = {
            "status": JobStatus.QUEUED,
            "fail": bool(config.get("simulate_failure")),
            "result_uri": f"s3://{bucket}/jobs/{job['id']}/" if bucket else None,
        }
        logger.info(f"[stub] accepted job {job['id']} as {pipeline_job_id}")
        return pipeline_job_id

    def _stages(self, status: JobStatus) -> list:
        names = list(STAGE_WEIGHTS)
        if status == JobStatus.QUEUED:
            return [{"name": n, "status": "pending"} for n in names]
        if status == JobStatus.RUNNING:
            return [{"name": names[0], "status": "completed"}, {"name": names[1], "status": "running", "progress": 50}] + [
                {"name": n, "status": "pending"} for n in names[2:]
            ]
        if status == JobStatus.COMPLETED:
            return [{"name": n, "status": "completed"} for n in names]
        return []

    async def check_status(self, pipeline_job_id: str) -> PipelineJobStatus:
        state = self._jobs.get(pipeline_job_id)
        if state is None:
            raise PipelineError(f"Pipeline job {pipeline_job_id} not found", status_code=404)

        current = state["status"]
        if current == JobStatus.QUEUED:
            state["status"] = JobStatus.RUNNING
        elif current == JobStatus.RUNNING:
            state["status"] = JobStatus.FAILED if state["fail"] else JobStatus.COMPLETED

        status = state["status"]
        if status != current:
            logger.info(f"[stub] {pipeline_job_id}: {current.value} -> {status.value}")

        return PipelineJobStatus(
            status=status,
            progress={JobStatus.RUNNING: 12, JobStatus.COMPLETED: 100}.get(status, 0),
            error="Simulated pipeline failure" if status == JobStatus.FAILED else None,
            stages=self._stages(status),
            result_uri=state["result_uri"] if status == JobStatus.COMPLETED else None,
            raw_status=status.value,
        )

    async def cancel(self, pipeline_job_id: str) -> None:
        state = self._jobs.get(pipeline_job_id)
        if state is None:
            raise PipelineError(f"Pipeline job {pipeline_job_id} not found", status_code=404)
        if state["status"] not in (JobStatus.QUEUED, JobStatus.RUNNING):
            raise PipelineError(
                f"Pipeline job {pipeline_job_id} cannot be cancelled in status {state['status'].value}",
                status_code=400,
            )
        state["status"] = JobStatus.CANCELLED
        logger.info(f"[stub] cancelled {pipeline_job_id}")
