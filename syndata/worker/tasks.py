"""Celery tasks (sync wrappers around the async job services)."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from syndata.core.logging_config import configure_logging
from syndata.worker.celery_app import celery_app

configure_logging()
logger = logging.getLogger(__name__)


def _run_async(coro):
    """Run async function in sync Celery task."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


async def _with_database(fn, *args):
    """Motor clients are bound to a loop, so each task run gets its own connection."""
    from syndata.core.database import Database

    await Database.connect()
    try:
        return await fn(*args)
    finally:
        await Database.disconnect()


async def _dispatch(job_id: str) -> Dict[str, Any]:
    from syndata.jobs.service import JobsService

    job = await JobsService.dispatch_to_pipeline(job_id)
    if not job:
        return {"ok": False, "error": "job_not_found"}
    return {"ok": True, "status": job["status"], "pipeline_job_id": job.get("pipeline_job_id")}


async def _sync_all() -> Dict[str, int]:
    from syndata.jobs.service import JobsService

    return await JobsService.sync_active_jobs()


@celery_app.task(name="syndata.worker.tasks.dispatch_job", acks_late=True)
def dispatch_job(job_id: str) -> Dict[str, Any]:
    """
    Submit a queued job to the pipeline.

    Only the job id travels through the broker; the job is read from Mongo.
    Safe under redelivery: jobs that are no longer queued are left alone.
    """
    logger.info(f"Dispatching job {job_id}")
    try:
        return _run_async(_with_database(_dispatch, job_id))
    except Exception as e:
        logger.error(f"Dispatch of job {job_id} crashed: {e}")
        raise


@celery_app.task(name="syndata.worker.tasks.sync_active_jobs", acks_late=True)
def sync_active_jobs() -> Dict[str, int]:
    """Poll the pipeline for every queued or running job."""
    try:
        stats = _run_async(_with_database(_sync_all))
        logger.info(f"Active job sync complete: {stats}")
        return stats
    except Exception as e:
        logger.error(f"Active job sync failed: {e}")
        raise
