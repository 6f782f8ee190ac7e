from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, ConfigDict


class PhotoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    event_id: str
    moment_id: Optional[str] = None
    original_key: str
    watermarked_key: str
    thumbnail_key: str
    width: int
    height: int
    file_size: int
    mime_type: str
    archive_ref: Optional[str] = None
    download_count: int = 0
    share_count: int = 0
    created_at: Optional[datetime] = None


class ReprocessTargets(BaseModel):
    photo_ids: List[str]
    total: int


class ReprocessResult(BaseModel):
    message: str
    success_count: int
    fail_count: int
    total: int
    failures: dict[str, str] = {}


class IngestFolder(BaseModel):
    exists: bool
    path: str


class StorageStats(BaseModel):
    used_bytes: int
    total_bytes: int
    percentage: float
    photo_count: int
    quota_gb: int
