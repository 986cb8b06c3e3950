"""Public share-link routes. No principal required; the token is the credential."""
from typing import Optional
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException, Query

from app.dependencies import get_file_service, get_folder_service, get_sharing_service
from app.schemas.folder import FolderDetailResponse, FolderTreeNode
from app.schemas.share import SharedFileResponse
from app.services.file_service import FileService
from app.services.folder_service import FolderService
from app.services.sharing_service import SharingService, is_share_active

router = APIRouter(prefix="/api/shared", tags=["shared"])


@router.get("/folder/{token}", response_model=None)
async def get_shared_folder(
    token: str,
    recursive: Optional[str] = Query(None, description="'all' returns the whole tree"),
    folders: FolderService = Depends(get_folder_service),
    sharing: SharingService = Depends(get_sharing_service),
):
    """Read a shared folder through its share token."""
    shared = await sharing.get_folder_by_share_token(token)
    if not shared or not is_share_active(shared):
        raise HTTPException(status_code=403, detail="Link expired or invalid")

    if recursive == "all":
        tree = await folders.get_folder_recursively(shared.id)
        if tree is None:
            raise HTTPException(status_code=403, detail="Link expired or invalid")
        return FolderTreeNode.model_validate(tree)

    folder = await folders.get_folder(shared.id)
    if folder is None:
        raise HTTPException(status_code=403, detail="Link expired or invalid")
    return FolderDetailResponse.model_validate(folder)


@router.get("/file/{file_id}/{token}", response_model=SharedFileResponse)
async def get_shared_file(
    file_id: UUID,
    token: str,
    files: FileService = Depends(get_file_service),
    sharing: SharingService = Depends(get_sharing_service),
):
    """Get a download URL for a file inside a shared folder."""
    shared = await sharing.get_folder_by_share_token(token)
    if not shared:
        raise HTTPException(status_code=404, detail="Invalid share token")
    if not is_share_active(shared):
        raise HTTPException(status_code=403, detail="Share link has expired")

    file_rec = await files.get_file(file_id)
    if not file_rec:
        raise HTTPException(status_code=404, detail="File not found")

    link = await sharing.get_file_from_share_token(shared, file_rec)
    if link is None:
        raise HTTPException(status_code=403, detail="File not accessible through this share link")

    return SharedFileResponse(
        message="File access granted",
        url=link.url,
        file_name=file_rec.file_name,
        expires_at=link.expires_at,
    )
