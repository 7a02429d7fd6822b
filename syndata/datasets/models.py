"""Dataset models."""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class DatasetObject(BaseModel):
    key: str
    size: int
    last_modified: Optional[datetime] = None


class DatasetListResponse(BaseModel):
    project_id: str
    bucket_name: str
    datasets: List[DatasetObject]


class UploadUrlRequest(BaseModel):
    filename: str = Field(..., min_length=1, max_length=200)
    content_type: str = Field(default="text/csv", max_length=100)


class UploadUrlResponse(BaseModel):
    key: str
    upload_url: str
    expires_in: int


class DatasetPreview(BaseModel):
    key: str
    columns: List[str]
    rows: List[List[str]]
    truncated: bool = False


class ChatTurn(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=8000)


class DatasetChatRequest(BaseModel):
    dataset_key: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1, max_length=4000)
    history: List[ChatTurn] = Field(default_factory=list, max_length=20)


class DatasetChatResponse(BaseModel):
    reply: str
    dataset_key: str
    rows_in_context: int
