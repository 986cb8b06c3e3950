"""Folders API routes."""
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, File as FastAPIFile, HTTPException, Query, Request, UploadFile

from app.config import Settings
from app.dependencies import (
    get_current_principal,
    get_file_service,
    get_folder_service,
    get_settings,
    get_sharing_service,
)
from app.models.folder import Folder
from app.schemas.common import MessageResponse
from app.schemas.file import FileResponse
from app.schemas.folder import (
    AncestorEntry,
    AncestorsResponse,
    FolderCreate,
    FolderDetailResponse,
    FolderResponse,
    FolderTreeNode,
)
from app.schemas.share import ShareRequest, ShareResponse
from app.services.file_service import FileService
from app.services.folder_service import FolderService
from app.services.identity import Principal
from app.services.sharing_service import SharingService

router = APIRouter(prefix="/api/folders", tags=["folders"])


async def _owned_folder(folder_id, principal: Principal, folders: FolderService) -> Folder:
    folder = await folders.get_folder(folder_id)
    if not folder or folder.owner_id != principal.id:
        raise HTTPException(status_code=404, detail="Folder not found")
    return folder


async def _folder_payload(folder: Folder, recursive: Optional[str], folders: FolderService):
    if recursive == "all":
        tree = await folders.get_folder_recursively(folder.id)
        if tree is None:
            raise HTTPException(status_code=404, detail="Folder not found")
        return FolderTreeNode.model_validate(tree)
    return FolderDetailResponse.model_validate(folder)


async def _create_subfolder(
    parent: Folder, body: FolderCreate, principal: Principal, folders: FolderService
) -> FolderResponse:
    name = body.folder_name.strip()
    if not name or "/" in name:
        raise HTTPException(status_code=400, detail="Invalid folder name")
    if await folders.find_child_by_name(parent.id, name):
        raise HTTPException(status_code=409, detail=f"A folder named '{name}' already exists here")

    root = await folders.create_root_folder(principal)
    folder = await folders.create_subfolder(parent, name, root, principal.id)
    return FolderResponse.model_validate(folder)


@router.get("", response_model=None)
async def get_root_folder(
    recursive: Optional[str] = Query(None, description="'all' returns the whole tree"),
    principal: Principal = Depends(get_current_principal),
    folders: FolderService = Depends(get_folder_service),
):
    """Get the caller's root folder, creating it on first access."""
    root = await folders.create_root_folder(principal)
    return await _folder_payload(root, recursive, folders)


@router.post("", response_model=FolderResponse, status_code=201)
async def create_folder_in_root(
    body: FolderCreate,
    principal: Principal = Depends(get_current_principal),
    folders: FolderService = Depends(get_folder_service),
):
    """Create a folder directly under the caller's root folder."""
    root = await folders.create_root_folder(principal)
    return await _create_subfolder(root, body, principal, folders)


@router.get("/{folder_id}", response_model=None)
async def get_folder(
    folder_id: UUID,
    recursive: Optional[str] = Query(None, description="'all' returns the whole tree"),
    principal: Principal = Depends(get_current_principal),
    folders: FolderService = Depends(get_folder_service),
):
    """Get a folder with its files and subfolders."""
    folder = await _owned_folder(folder_id, principal, folders)
    return await _folder_payload(folder, recursive, folders)


@router.post("/{folder_id}", response_model=FolderResponse, status_code=201)
async def create_subfolder(
    folder_id: UUID,
    body: FolderCreate,
    principal: Principal = Depends(get_current_principal),
    folders: FolderService = Depends(get_folder_service),
):
    """Create a folder inside another folder."""
    parent = await _owned_folder(folder_id, principal, folders)
    return await _create_subfolder(parent, body, principal, folders)


@router.delete("/{folder_id}", response_model=MessageResponse)
async def delete_folder(
    folder_id: UUID,
    principal: Principal = Depends(get_current_principal),
    folders: FolderService = Depends(get_folder_service),
):
    """Delete a folder with everything inside it."""
    await _owned_folder(folder_id, principal, folders)
    await folders.delete_folder_recursively(folder_id)
    return {"message": "Folder deleted"}


@router.get("/{folder_id}/ancestors", response_model=AncestorsResponse)
async def get_ancestors(
    folder_id: str,
    principal: Principal = Depends(get_current_principal),
    folders: FolderService = Depends(get_folder_service),
):
    """Breadcrumb chain from the root folder down to this one. Use 'root' for the root."""
    target = None if folder_id == "root" else folder_id
    if target is not None:
        await _owned_folder(target, principal, folders)
    ancestors = await folders.get_ancestors(target, principal)
    if ancestors is None:
        raise HTTPException(status_code=404, detail="Folder not found")
    return AncestorsResponse(ancestors=[AncestorEntry.model_validate(a) for a in ancestors])


@router.post("/{folder_id}/files", response_model=FileResponse, status_code=201)
async def upload_file(
    folder_id: UUID,
    file: UploadFile = FastAPIFile(...),
    principal: Principal = Depends(get_current_principal),
    folders: FolderService = Depends(get_folder_service),
    files: FileService = Depends(get_file_service),
):
    """Upload a file into a folder."""
    folder = await _owned_folder(folder_id, principal, folders)
    contents = await file.read()
    record = await files.upload_file(
        folder,
        file.filename or "unnamed",
        contents,
        file.content_type,
        principal.id,
    )
    return FileResponse.model_validate(record)


@router.post("/{folder_id}/share", response_model=ShareResponse)
async def share_folder(
    folder_id: UUID,
    body: ShareRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    folders: FolderService = Depends(get_folder_service),
    sharing: SharingService = Depends(get_sharing_service),
    settings: Settings = Depends(get_settings),
):
    """Create a public share link for a folder, replacing any existing one."""
    await _owned_folder(folder_id, principal, folders)
    origin = request.headers.get("origin") or settings.DEFAULT_SHARE_ORIGIN
    link = await sharing.share_folder(folder_id, body.hours, origin)
    return ShareResponse(url=link.url, expires_at=link.expires_at)
