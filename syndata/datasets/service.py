"""Datasets stored in a project's bucket: listing, uploads, previews, chat."""

import csv
import io
import logging
import re
from typing import List

from starlette.concurrency import run_in_threadpool

from syndata.core.config import get_settings
from syndata.core.exceptions import BadGatewayException, BadRequestException, NotFoundException
from syndata.core.rate_limit import RateLimitService
from syndata.datasets.chat_service import CONTEXT_ROWS, DatasetChatService, build_context
from syndata.projects.service import ProjectService
from syndata.storage.service import StorageError, StorageService

settings = get_settings()
logger = logging.getLogger(__name__)

DATASET_PREFIXES = ("datasets/", "jobs/")
UPLOAD_URL_TTL = 900
CHAT_PER_MINUTE = 20


def _bucket_of(project: dict) -> str:
    bucket = (project.get("storage") or {}).get("bucket_name")
    if not bucket:
        raise BadRequestException("Project has no storage bucket")
    return bucket


def _safe_filename(filename: str) -> str:
    name = re.sub(r"[^A-Za-z0-9._-]+", "_", filename.strip().split("/")[-1]).strip("._")
    if not name:
        raise BadRequestException("Invalid filename")
    return name


def _check_key(key: str) -> str:
    if not key.startswith(DATASET_PREFIXES) or ".." in key:
        raise BadRequestException("Dataset key must be under datasets/ or jobs/")
    return key


def parse_csv_head(data: bytes, max_rows: int, truncated: bool):
    """Columns and up to `max_rows` rows from the start of a CSV file."""
    text = data.decode("utf-8", errors="replace")
    if truncated and "\n" in text:
        # The byte range may end mid-row.
        text = text[: text.rfind("\n")]
    reader = csv.reader(io.StringIO(text))
    columns = next(reader, [])
    rows: List[List[str]] = []
    for row in reader:
        if len(rows) >= max_rows:
            truncated = True
            break
        rows.append(row)
    return columns, rows, truncated


class DatasetService:
    @classmethod
    async def list_datasets(cls, project_id: str, user_id: str) -> dict:
        project = await ProjectService.get_for_member(project_id, user_id, "viewer")
        bucket = _bucket_of(project)
        storage = StorageService()
        try:
            items = []
            for prefix in DATASET_PREFIXES:
                items.extend(await run_in_threadpool(storage.list_objects, bucket, prefix, 500))
        except StorageError as e:
            logger.error(f"Listing datasets for project {project_id} failed: {e}")
            raise BadGatewayException("Could not list datasets")
        return {"project_id": project_id, "bucket_name": bucket, "datasets": items}

    @classmethod
    async def create_upload_url(cls, project_id: str, user_id: str, filename: str, content_type: str) -> dict:
        project = await ProjectService.require_active(project_id, user_id, "member")
        bucket = _bucket_of(project)
        key = f"datasets/{_safe_filename(filename)}"
        try:
            url = await run_in_threadpool(
                StorageService().generate_presigned_put_url, bucket, key, content_type, UPLOAD_URL_TTL
            )
        except StorageError as e:
            logger.error(f"Upload URL for {bucket}/{key} failed: {e}")
            raise BadGatewayException("Could not create an upload URL")
        return {"key": key, "upload_url": url, "expires_in": UPLOAD_URL_TTL}

    @classmethod
    async def preview(cls, project_id: str, user_id: str, key: str, rows: int = None) -> dict:
        project = await ProjectService.get_for_member(project_id, user_id, "viewer")
        bucket = _bucket_of(project)
        key = _check_key(key)
        max_rows = min(int(rows or settings.DATASET_PREVIEW_ROWS), settings.DATASET_PREVIEW_ROWS)
        max_bytes = int(settings.DATASET_PREVIEW_MAX_BYTES)

        try:
            data = await run_in_threadpool(StorageService().read_object_head, bucket, key, max_bytes)
        except StorageError as e:
            if "NoSuchKey" in str(e):
                raise NotFoundException("Dataset not found")
            logger.error(f"Reading {bucket}/{key} failed: {e}")
            raise BadGatewayException("Could not read dataset")

        columns, parsed, truncated = parse_csv_head(data, max_rows, len(data) >= max_bytes)
        return {"key": key, "columns": columns, "rows": parsed, "truncated": truncated}

    @classmethod
    async def chat(cls, project_id: str, user_id: str, dataset_key: str, message: str, history: List[dict]) -> dict:
        await RateLimitService.hit(f"user:{user_id}:dataset_chat", limit=CHAT_PER_MINUTE, window_seconds=60)
        preview = await cls.preview(project_id, user_id, dataset_key)
        if not preview["columns"]:
            raise BadRequestException("Dataset is empty")

        context = build_context(preview["columns"], preview["rows"])
        reply = await DatasetChatService().ask(context, message, history)
        return {
            "reply": reply,
            "dataset_key": preview["key"],
            "rows_in_context": min(len(preview["rows"]), CONTEXT_ROWS),
        }
