"""Jobs service - lifecycle of data generation jobs."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from starlette.concurrency import run_in_threadpool

from syndata.core.config import get_settings
from syndata.core.database import Database
from syndata.core.documents import Page, paginate, parse_object_id, to_public, utcnow
from syndata.core.exceptions import (
    BadGatewayException,
    BadRequestException,
    ConflictException,
    NotFoundException,
    TooManyRequestsException,
)
from syndata.core.rate_limit import RateLimitService
from syndata.jobs.progress import calculate_progress, default_stages, merge_pipeline_stages
from syndata.jobs.state_machine import (
    ACTIVE_STATUSES,
    InvalidTransition,
    JobStatus,
    is_terminal,
    transition,
    transition_path,
)
from syndata.pipeline.client import get_pipeline_client
from syndata.pipeline.models import PipelineError, PipelineJobStatus
from syndata.projects.service import ProjectService
from syndata.storage.service import StorageError, StorageService, parse_s3_uri

settings = get_settings()
logger = logging.getLogger(__name__)

DISPATCH_TASK = "syndata.worker.tasks.dispatch_job"
HOUR = 3600


def _is_base64_like(value: Any) -> bool:
    # Large base64 strings tend to be long without whitespace.
    return isinstance(value, str) and len(value) > 8000 and " " not in value and "\n" not in value


def _validate_job_config(config: Any) -> Dict[str, Any]:
    if not isinstance(config, dict) or not config:
        raise BadRequestException("job_config must be a non-empty JSON object.")

    raw = json.dumps(config, separators=(",", ":"), ensure_ascii=False, default=str).encode("utf-8")
    if len(raw) > int(settings.JOBS_MAX_CONFIG_BYTES):
        raise BadRequestException("job_config too large.")

    def walk(obj: Any) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                if isinstance(k, str) and "base64" in k.lower():
                    raise BadRequestException("job_config must not include inline data; upload a dataset instead.")
                walk(v)
        elif isinstance(obj, list):
            for v in obj:
                walk(v)
        elif _is_base64_like(obj):
            raise BadRequestException("job_config must not include inline data; upload a dataset instead.")

    walk(config)
    return config


def _get_celery():
    try:
        from syndata.worker.celery_app import DEFAULT_QUEUE, celery_app

        return celery_app, DEFAULT_QUEUE
    except Exception as e:
        raise BadRequestException("Jobs are not available (Celery not configured).") from e


class JobsService:
    @staticmethod
    def _collection():
        return Database.get_collection("jobs")

    @classmethod
    async def _load(cls, job_id: str) -> dict:
        doc = await cls._collection().find_one({"_id": parse_object_id(job_id, "Job not found")})
        if not doc:
            raise NotFoundException("Job not found")
        return to_public(doc)

    @classmethod
    async def get_for_member(cls, job_id: str, user_id: str, minimum: str = "viewer") -> dict:
        """Load a job; access follows the caller's role on the owning project."""
        job = await cls._load(job_id)
        await ProjectService.get_for_member(job["project_id"], user_id, minimum)
        return job

    # ==================== Status changes ====================

    @classmethod
    async def _set_status(cls, job: dict, target: JobStatus, extra: Optional[dict] = None) -> Optional[dict]:
        """
        Compare-and-set a single legal transition. Returns the updated job,
        or None when the stored status no longer matches `job`.
        """
        current = JobStatus(job["status"])
        transition(current, target)

        now = utcnow()
        fields = {"status": target.value, "updated_at": now}
        if target == JobStatus.RUNNING and not job.get("started_at"):
            fields["started_at"] = now
        if is_terminal(target):
            fields["completed_at"] = now
        fields.update(extra or {})

        doc = await cls._collection().find_one_and_update(
            {"_id": ObjectId(job["id"]), "status": current.value},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None
        logger.info(f"Job {job['id']}: {current.value} -> {target.value}")
        return to_public(doc)

    @classmethod
    async def _transition(cls, job_id: str, target: JobStatus, extra: Optional[dict] = None, attempts: int = 3) -> dict:
        """Move a job to `target` from whatever it currently is, retrying lost races."""
        for _ in range(attempts):
            job = await cls._load(job_id)
            try:
                updated = await cls._set_status(job, target, extra)
            except InvalidTransition as e:
                raise ConflictException(str(e))
            if updated is not None:
                return updated
        raise ConflictException("Job status changed concurrently; try again")

    # ==================== Create / submit ====================

    @classmethod
    async def _enforce_limits(cls, user_id: str) -> None:
        active = await cls._collection().count_documents(
            {"user_id": user_id, "status": {"$in": [s.value for s in ACTIVE_STATUSES]}}
        )
        if active >= int(settings.JOBS_MAX_CONCURRENT):
            raise TooManyRequestsException(
                f"You already have {active} active jobs (limit {settings.JOBS_MAX_CONCURRENT})."
            )
        await RateLimitService.hit(
            f"user:{user_id}:jobs_created",
            limit=int(settings.JOBS_PER_HOUR),
            window_seconds=HOUR,
        )

    @classmethod
    async def create_job(
        cls,
        project_id: str,
        user: dict,
        job_type: str,
        job_config: Dict[str, Any],
        retry_of: Optional[str] = None,
    ) -> dict:
        await ProjectService.require_active(project_id, user["id"], "member")

        job_type = (job_type or "").strip()
        if job_type not in settings.JOB_TYPES:
            raise BadRequestException(f"Unsupported job type. Allowed: {', '.join(settings.JOB_TYPES)}")
        job_config = _validate_job_config(job_config)
        await cls._enforce_limits(user["id"])

        now = utcnow()
        oid = ObjectId()
        doc = {
            "_id": oid,
            "project_id": project_id,
            "user_id": user["id"],
            "status": JobStatus.PENDING.value,
            "job_type": job_type,
            "job_config": job_config,
            "pipeline_job_id": None,
            "result_uri": None,
            "error": None,
            "progress": 0,
            "stages": [],
            "retry_of": retry_of,
            "created_at": now,
            "updated_at": now,
            "started_at": None,
            "completed_at": None,
        }
        await cls._collection().insert_one(doc)
        logger.info(f"User {user['id']} created job {oid} ({job_type}) in project {project_id}")
        return to_public(doc)

    @classmethod
    async def submit_job(cls, job_id: str, user: dict) -> dict:
        job = await cls.get_for_member(job_id, user["id"], "member")
        await ProjectService.require_active(job["project_id"], user["id"], "member")
        if job["status"] != JobStatus.PENDING.value:
            raise ConflictException(f"Only pending jobs can be submitted (job is {job['status']}).")

        queued = await cls._set_status(job, JobStatus.QUEUED)
        if queued is None:
            raise ConflictException("Job status changed concurrently; try again")
        return await cls._dispatch(queued)

    @classmethod
    async def _dispatch(cls, job: dict) -> dict:
        if settings.JOBS_DISPATCH_MODE == "inline":
            dispatched = await cls.dispatch_to_pipeline(job["id"])
            if dispatched and dispatched["status"] == JobStatus.FAILED.value:
                raise BadRequestException("Failed to submit job to the pipeline.")
            return dispatched

        try:
            celery_app, default_queue = _get_celery()
            async_result = celery_app.send_task(DISPATCH_TASK, args=[job["id"]], queue=default_queue)
            await cls._collection().update_one(
                {"_id": ObjectId(job["id"])},
                {"$set": {"celery_task_id": async_result.id, "updated_at": utcnow()}},
            )
        except Exception as e:
            logger.error(f"Failed to enqueue job {job['id']}: {e}")
            await cls._set_status(job, JobStatus.FAILED, {"error": f"Failed to enqueue job: {type(e).__name__}"})
            raise BadRequestException("Failed to enqueue job. Check worker/broker configuration.")
        return job

    @classmethod
    async def dispatch_to_pipeline(cls, job_id: str) -> Optional[dict]:
        """Worker side: hand a queued job to the pipeline and record its id."""
        doc = await cls._collection().find_one({"_id": ObjectId(job_id)})
        if not doc:
            logger.warning(f"Dispatch skipped: job {job_id} not found")
            return None
        job = to_public(doc)
        if job["status"] != JobStatus.QUEUED.value or job.get("pipeline_job_id"):
            # Redelivered or cancelled meanwhile.
            return job

        project = await Database.get_collection("projects").find_one({"_id": ObjectId(job["project_id"])})
        bucket = ((project or {}).get("storage") or {}).get("bucket_name")

        try:
            pipeline_job_id = await get_pipeline_client().submit(job, bucket)
        except Exception as e:
            logger.error(f"Pipeline submission failed for job {job_id}: {e}")
            failed = await cls._set_status(job, JobStatus.FAILED, {"error": f"Pipeline submission failed: {e}"})
            return failed or await cls._load(job_id)

        doc = await cls._collection().find_one_and_update(
            {"_id": ObjectId(job_id), "status": JobStatus.QUEUED.value, "pipeline_job_id": None},
            {
                "$set": {
                    "pipeline_job_id": pipeline_job_id,
                    "stages": default_stages(),
                    "submitted_at": utcnow(),
                    "updated_at": utcnow(),
                }
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            # Cancelled while the submission was in flight; don't leave it running upstream.
            logger.warning(f"Job {job_id} changed during submission; cancelling pipeline job {pipeline_job_id}")
            try:
                await get_pipeline_client().cancel(pipeline_job_id)
            except PipelineError as e:
                logger.warning(f"Could not cancel orphaned pipeline job {pipeline_job_id}: {e}")
            return await cls._load(job_id)
        return to_public(doc)

    # ==================== Cancel / retry ====================

    @classmethod
    async def cancel_job(cls, job_id: str, user: dict) -> dict:
        job = await cls.get_for_member(job_id, user["id"], "member")
        if is_terminal(job["status"]):
            raise ConflictException(f"Job is already {job['status']}.")

        pipeline_job_id = job.get("pipeline_job_id")
        if pipeline_job_id:
            try:
                await get_pipeline_client().cancel(pipeline_job_id)
                message = "Cancelled by user via pipeline request"
            except PipelineError as e:
                logger.warning(f"Pipeline cancel failed for job {job_id}: {e}")
                message = f"Cancelled by user; pipeline cancellation failed: {e}"
        else:
            message = "Cancelled by user before submission"

        return await cls._transition(job_id, JobStatus.CANCELLED, {"error": message, "cancelled_by": user["id"]})

    @classmethod
    async def retry_job(cls, job_id: str, user: dict) -> dict:
        """Failed and cancelled jobs stay terminal; a retry is a fresh job."""
        job = await cls.get_for_member(job_id, user["id"], "member")
        if job["status"] not in (JobStatus.FAILED.value, JobStatus.CANCELLED.value):
            raise ConflictException("Only failed or cancelled jobs can be retried.")
        return await cls.create_job(
            job["project_id"], user, job["job_type"], job.get("job_config") or {}, retry_of=job["id"]
        )

    # ==================== Pipeline sync ====================

    @classmethod
    async def apply_pipeline_update(cls, job: dict, update: PipelineJobStatus) -> dict:
        """
        Fold a pipeline status report into the job. Locally terminal jobs are
        never changed; skipped intermediate states are walked in one update.
        """
        current = JobStatus(job["status"])
        if is_terminal(current):
            logger.debug(f"Ignoring pipeline update for terminal job {job['id']}")
            return job

        now = utcnow()
        if update.stages:
            stages = merge_pipeline_stages(job.get("stages") or default_stages(), update.stages)
            progress = calculate_progress(stages)
        else:
            stages = job.get("stages") or []
            progress = update.progress
        fields: Dict[str, Any] = {"stages": stages, "progress": progress, "updated_at": now}

        path = transition_path(current, update.status) if update.status != current else []
        if path is None:
            logger.warning(f"Job {job['id']}: pipeline reported {update.status.value} while {current.value}; keeping status")
            path = []

        if path:
            target = path[-1]
            fields["status"] = target.value
            if JobStatus.RUNNING in path and not job.get("started_at"):
                fields["started_at"] = now
            if is_terminal(target):
                fields["completed_at"] = now
            if target == JobStatus.FAILED:
                fields["error"] = update.error or "Pipeline reported failure"
            elif target == JobStatus.CANCELLED:
                fields["error"] = update.error or "Cancelled by pipeline"
            elif target == JobStatus.COMPLETED:
                fields["progress"] = 100
                fields["result_uri"] = update.result_uri or await cls._default_result_uri(job)

        doc = await cls._collection().find_one_and_update(
            {"_id": ObjectId(job["id"]), "status": current.value},
            {"$set": fields},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            logger.info(f"Job {job['id']} changed while applying pipeline update; skipped")
            return await cls._load(job["id"])
        if path:
            logger.info(f"Job {job['id']}: {current.value} -> {' -> '.join(s.value for s in path)} (pipeline)")
        return to_public(doc)

    @staticmethod
    async def _default_result_uri(job: dict) -> Optional[str]:
        project = await Database.get_collection("projects").find_one(
            {"_id": ObjectId(job["project_id"])}, {"storage": 1}
        )
        bucket = ((project or {}).get("storage") or {}).get("bucket_name")
        return f"s3://{bucket}/jobs/{job['id']}/" if bucket else None

    @classmethod
    async def sync_job(cls, job: dict) -> dict:
        """Poll the pipeline for one job. Raises PipelineError on upstream failure."""
        if is_terminal(job["status"]) or not job.get("pipeline_job_id"):
            return job
        update = await get_pipeline_client().check_status(job["pipeline_job_id"])
        return await cls.apply_pipeline_update(job, update)

    @classmethod
    async def sync_job_status(cls, job_id: str, user: dict) -> dict:
        job = await cls.get_for_member(job_id, user["id"], "viewer")
        try:
            return await cls.sync_job(job)
        except PipelineError as e:
            logger.warning(f"Status sync failed for job {job_id}: {e}")
            raise BadGatewayException("Could not reach the data generation pipeline")

    @classmethod
    async def sync_active_jobs(cls, batch_size: int = 200) -> Dict[str, int]:
        """Periodic sweep over jobs the pipeline currently owns."""
        cursor = cls._collection().find(
            {
                "status": {"$in": [JobStatus.QUEUED.value, JobStatus.RUNNING.value]},
                "pipeline_job_id": {"$ne": None},
            }
        ).sort("updated_at", 1).limit(batch_size)
        docs = await cursor.to_list(length=batch_size)

        stats = {"checked": 0, "changed": 0, "errors": 0}
        for doc in docs:
            job = to_public(doc)
            stats["checked"] += 1
            try:
                updated = await cls.sync_job(job)
            except PipelineError as e:
                stats["errors"] += 1
                logger.warning(f"Sync failed for job {job['id']}: {e}")
                continue
            if updated["status"] != job["status"]:
                stats["changed"] += 1
        return stats

    @classmethod
    async def handle_pipeline_event(cls, pipeline_job_id: str, update: PipelineJobStatus) -> dict:
        doc = await cls._collection().find_one({"pipeline_job_id": pipeline_job_id})
        if not doc:
            raise NotFoundException("Job not found")
        return await cls.apply_pipeline_update(to_public(doc), update)

    # ==================== Reads ====================

    @classmethod
    async def list_project_jobs(
        cls,
        project_id: str,
        user_id: str,
        *,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page:
        await ProjectService.get_for_member(project_id, user_id, "viewer")
        query: Dict[str, Any] = {"project_id": project_id}
        if status:
            query["status"] = status
        return await paginate(cls._collection(), query, limit=limit, offset=offset)

    @classmethod
    async def list_accessible_jobs(
        cls,
        user_id: str,
        *,
        status: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> Page:
        """Jobs across every project the user belongs to."""
        projects = await Database.get_collection("projects").find(
            {f"team_members.{user_id}": {"$exists": True}}, {"_id": 1}
        ).to_list(length=None)
        project_ids = [str(p["_id"]) for p in projects]
        if not project_ids:
            return Page(items=[], total=0, limit=limit or 20, offset=offset)

        query: Dict[str, Any] = {"project_id": {"$in": project_ids}}
        if status:
            query["status"] = status
        return await paginate(cls._collection(), query, limit=limit, offset=offset)

    @classmethod
    async def get_job_result(cls, job_id: str, user_id: str) -> dict:
        job = await cls.get_for_member(job_id, user_id, "viewer")
        if job["status"] != JobStatus.COMPLETED.value:
            raise BadRequestException("Job has not completed.")
        result_uri = job.get("result_uri")
        if not result_uri:
            raise NotFoundException("Job has no result")

        result = {"job_id": job_id, "result_uri": result_uri, "download_url": None, "files": []}
        if not result_uri.startswith("s3://"):
            result["download_url"] = result_uri
            return result

        bucket, key = parse_s3_uri(result_uri)
        storage = StorageService()
        try:
            if key and not key.endswith("/"):
                result["download_url"] = await run_in_threadpool(storage.generate_presigned_get_url, bucket, key)
            else:
                objects = await run_in_threadpool(storage.list_objects, bucket, key, 100)
                files: List[dict] = []
                for obj in objects:
                    url = await run_in_threadpool(storage.generate_presigned_get_url, bucket, obj["key"])
                    files.append({"key": obj["key"], "size": obj["size"], "url": url})
                result["files"] = files
        except StorageError as e:
            logger.error(f"Could not sign result for job {job_id}: {e}")
            raise BadGatewayException("Could not access job results")
        return result

    @classmethod
    async def get_rate_limit_status(cls, user_id: str) -> dict:
        hourly = await RateLimitService.peek(
            f"user:{user_id}:jobs_created",
            limit=int(settings.JOBS_PER_HOUR),
            window_seconds=HOUR,
        )
        active = await cls._collection().count_documents(
            {"user_id": user_id, "status": {"$in": [s.value for s in ACTIVE_STATUSES]}}
        )
        return {
            "jobs_per_hour": {"used": hourly.count, "limit": hourly.limit, "reset_seconds": hourly.reset_seconds},
            "concurrent_jobs": {"used": active, "limit": int(settings.JOBS_MAX_CONCURRENT)},
        }
