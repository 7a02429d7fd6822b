"""HTTP client for the data generation pipeline (v2 jobs API)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from syndata.core.config import get_settings
from syndata.core.retry import with_retry
from syndata.jobs.state_machine import JobStatus
from syndata.pipeline.models import PipelineError, PipelineJobStatus

logger = logging.getLogger(__name__)

STATUS_MAP: Dict[str, JobStatus] = {
    "pending": JobStatus.QUEUED,
    "accepted": JobStatus.QUEUED,
    "queued": JobStatus.QUEUED,
    "initialized": JobStatus.QUEUED,
    "running": JobStatus.RUNNING,
    # Paused jobs are still owned by the pipeline.
    "paused": JobStatus.RUNNING,
    "completed": JobStatus.COMPLETED,
    "failed": JobStatus.FAILED,
    "cancelled": JobStatus.CANCELLED,
}

JOB_TIMEOUT_SECONDS = 3600
RESUME_WINDOW_SECONDS = 300


def map_pipeline_status(raw: Optional[str]) -> JobStatus:
    status = STATUS_MAP.get((raw or "").strip().lower())
    if status is None:
        logger.warning(f"Unknown pipeline status '{raw}', treating as failed")
        return JobStatus.FAILED
    return status


def _error_message(error: Any) -> Optional[str]:
    if not error:
        return None
    if isinstance(error, dict):
        code = error.get("code")
        message = error.get("message") or "Pipeline reported an error"
        return f"{code}: {message}" if code else message
    return str(error)


def parse_status_body(body: Dict[str, Any]) -> PipelineJobStatus:
    raw = body.get("status")
    return PipelineJobStatus(
        status=map_pipeline_status(raw),
        progress=max(0, min(100, int(body.get("progress") or 0))),
        error=_error_message(body.get("error")),
        stages=list(body.get("stages") or []),
        result_uri=body.get("result_uri") or body.get("output_uri"),
        raw_status=raw,
    )


def build_submit_payload(job: dict, bucket: Optional[str]) -> Dict[str, Any]:
    config = dict(job.get("job_config") or {})
    return {
        "data_type": job["job_type"],
        "data_size": int(config.get("count") or config.get("data_size") or 1000),
        "input_format": config.get("input_format", "csv"),
        "output_format": config.get("output_format", "csv"),
        "input_bucket": config.get("input_bucket") or bucket or "",
        "input_path": config.get("input_path", ""),
        "output_bucket": bucket or "",
        "output_path": f"jobs/{job['id']}/",
        "is_async": True,
        "timeout": JOB_TIMEOUT_SECONDS,
        "resume_window": RESUME_WINDOW_SECONDS,
        "parameters": config,
        "project_id": job["project_id"],
    }


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, PipelineError):
        return exc.retryable and exc.status_code is not None
    return False


class PipelineClient:
    """Async client; one short-lived httpx.AsyncClient per call."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 30.0,
        max_retries: int = 3,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise ValueError("Pipeline base URL is required")
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, expected: int, json: Optional[dict] = None) -> Dict[str, Any]:
        async def call():
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self._headers(),
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json)
            if response.status_code != expected:
                raise PipelineError(
                    f"Pipeline API error ({response.status_code}): {response.text[:500]}",
                    status_code=response.status_code,
                )
            try:
                return response.json()
            except ValueError:
                return {}

        try:
            return await with_retry(
                call,
                max_retries=self.max_retries,
                is_retryable=_is_retryable,
                description=f"pipeline {method} {path}",
            )
        except httpx.HTTPError as e:
            raise PipelineError(f"Pipeline unreachable: {type(e).__name__}") from e

    async def submit(self, job: dict, bucket: Optional[str] = None) -> str:
        """Submit a job; returns the pipeline's job id."""
        logger.info(f"Submitting job {job['id']} ({job['job_type']}) to pipeline")
        body = await self._request("POST", "/api/v2/jobs", 202, json=build_submit_payload(job, bucket))
        if body.get("status") != "accepted" or not body.get("job_id"):
            raise PipelineError(f"Pipeline rejected job submission: {body.get('message') or 'no reason given'}")
        logger.info(f"Job {job['id']} accepted by pipeline as {body['job_id']}")
        return body["job_id"]

    async def check_status(self, pipeline_job_id: str) -> PipelineJobStatus:
        body = await self._request("GET", f"/api/v2/jobs/{quote(pipeline_job_id, safe='')}", 200)
        status = parse_status_body(body)
        logger.debug(f"Pipeline job {pipeline_job_id}: {status.raw_status} -> {status.status.value}")
        return status

    async def cancel(self, pipeline_job_id: str) -> None:
        logger.info(f"Requesting cancellation of pipeline job {pipeline_job_id}")
        body = await self._request("POST", f"/api/v2/jobs/{quote(pipeline_job_id, safe='')}/cancel", 200)
        if body and body.get("success") is False:
            raise PipelineError(f"Pipeline refused cancellation: {body.get('message') or 'no reason given'}")


_client = None


def get_pipeline_client():
    """Real client when PIPELINE_BASE_URL is set, otherwise the in-process stub."""
    global _client
    if _client is None:
        settings = get_settings()
        if settings.PIPELINE_BASE_URL:
            _client = PipelineClient(
                settings.PIPELINE_BASE_URL,
                token=settings.PIPELINE_API_TOKEN,
                timeout=settings.PIPELINE_TIMEOUT_SECONDS,
                max_retries=settings.PIPELINE_MAX_RETRIES,
            )
        else:
            from syndata.pipeline.stub import StubPipelineClient

            logger.warning("PIPELINE_BASE_URL not set; using the stub pipeline")
            _client = StubPipelineClient()
    return _client


def set_pipeline_client(client) -> None:
    """Override the process-wide client (tests, scripts)."""
    global _client
    _client = client
