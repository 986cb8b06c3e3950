"""File request/response schemas."""
import uuid
from typing import Optional
from datetime import datetime
from app.schemas.base import CamelORMModel, ShareStateModel


class FileResponse(ShareStateModel):
    id: uuid.UUID
    file_name: str
    size: int
    mime_type: Optional[str] = None
    owner_id: str
    parent_folder_id: Optional[uuid.UUID] = None
    created_at: datetime


class FileSummary(CamelORMModel):
    id: uuid.UUID
    file_name: str
    size: int = 0
    created_at: datetime


class FileUrlResponse(CamelORMModel):
    message: str
    url: str
