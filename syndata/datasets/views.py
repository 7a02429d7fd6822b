"""Dataset API endpoints (nested under projects)."""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from syndata.core.dependencies import get_current_user
from syndata.datasets.models import (
    DatasetChatRequest,
    DatasetChatResponse,
    DatasetListResponse,
    DatasetPreview,
    UploadUrlRequest,
    UploadUrlResponse,
)
from syndata.datasets.service import DatasetService

router = APIRouter(prefix="/projects/{project_id}/datasets", tags=["Datasets"])


@router.get("", response_model=DatasetListResponse)
async def list_datasets(
    project_id: str = Path(..., description="Project ID"),
    current_user: dict = Depends(get_current_user),
):
    """Uploaded datasets and generated job outputs in the project bucket."""
    return await DatasetService.list_datasets(project_id, current_user["id"])


@router.post("/upload-url", response_model=UploadUrlResponse)
async def create_upload_url(
    body: UploadUrlRequest,
    project_id: str = Path(..., description="Project ID"),
    current_user: dict = Depends(get_current_user),
):
    return await DatasetService.create_upload_url(project_id, current_user["id"], body.filename, body.content_type)


@router.get("/preview", response_model=DatasetPreview)
async def preview_dataset(
    project_id: str = Path(..., description="Project ID"),
    key: str = Query(..., description="Object key, e.g. datasets/customers.csv"),
    rows: Optional[int] = Query(None, ge=1, le=1000),
    current_user: dict = Depends(get_current_user),
):
    return await DatasetService.preview(project_id, current_user["id"], key, rows)


@router.post("/chat", response_model=DatasetChatResponse)
async def chat_with_dataset(
    body: DatasetChatRequest,
    project_id: str = Path(..., description="Project ID"),
    current_user: dict = Depends(get_current_user),
):
    """Ask a question about a dataset; the model sees its header and first rows."""
    return await DatasetService.chat(
        project_id,
        current_user["id"],
        body.dataset_key,
        body.message,
        [turn.model_dump() for turn in body.history],
    )
