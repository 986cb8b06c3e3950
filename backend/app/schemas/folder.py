"""Folder request/response schemas."""
import uuid
from typing import Optional
from datetime import datetime
from pydantic import Field
from app.schemas.base import CamelModel, CamelORMModel, ShareStateModel
from app.schemas.file import FileResponse, FileSummary


class FolderCreate(CamelModel):
    folder_name: str = Field(..., min_length=1, max_length=255)


class FolderResponse(ShareStateModel):
    id: uuid.UUID
    folder_name: str
    display_name: Optional[str] = None
    is_root: bool
    owner_id: str
    parent_folder_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime


class FolderDetailResponse(FolderResponse):
    """A folder with its direct children."""
    files: list[FileResponse] = []
    subfolders: list[FolderResponse] = []


class FolderTreeNode(ShareStateModel):
    """A folder with all descendants nested under ``subfolders``."""
    id: uuid.UUID
    folder_name: str
    display_name: Optional[str] = None
    is_root: bool = False
    parent_folder_id: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime
    files: list[FileSummary] = []
    subfolders: list["FolderTreeNode"] = []


class AncestorEntry(CamelORMModel):
    id: uuid.UUID
    name: str
    parent_id: Optional[uuid.UUID] = None


class AncestorsResponse(CamelORMModel):
    ancestors: Optional[list[AncestorEntry]] = None


class RootFolderResponse(CamelORMModel):
    root_folder_id: uuid.UUID


FolderTreeNode.model_rebuild()
