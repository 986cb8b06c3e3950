"""Files API routes."""
from uuid import UUID
from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_current_principal, get_file_service, get_sharing_service
from app.models.file_record import FileRecord
from app.schemas.common import MessageResponse
from app.schemas.file import FileUrlResponse
from app.schemas.share import ShareRequest, ShareResponse
from app.services.file_service import FileService
from app.services.identity import Principal
from app.services.sharing_service import SharingService

router = APIRouter(prefix="/api/files", tags=["files"])


async def _owned_file(file_id: UUID, principal: Principal, files: FileService) -> FileRecord:
    file_rec = await files.get_file(file_id)
    if not file_rec or file_rec.owner_id != principal.id:
        raise HTTPException(status_code=404, detail="File not found")
    return file_rec


@router.get("/{file_id}", response_model=FileUrlResponse)
async def get_file_url(
    file_id: UUID,
    principal: Principal = Depends(get_current_principal),
    files: FileService = Depends(get_file_service),
):
    """Get a short-lived download URL for one of the caller's files."""
    await _owned_file(file_id, principal, files)
    return await files.get_file_url(file_id)


@router.delete("/{file_id}", response_model=MessageResponse)
async def delete_file(
    file_id: UUID,
    principal: Principal = Depends(get_current_principal),
    files: FileService = Depends(get_file_service),
):
    """Delete a file and its stored object."""
    await _owned_file(file_id, principal, files)
    return await files.delete_file(file_id)


@router.post("/{file_id}/share", response_model=ShareResponse)
async def share_file(
    file_id: UUID,
    body: ShareRequest,
    principal: Principal = Depends(get_current_principal),
    files: FileService = Depends(get_file_service),
    sharing: SharingService = Depends(get_sharing_service),
):
    """Create a presigned share link for a file. Re-sharing never shortens its expiry."""
    await _owned_file(file_id, principal, files)
    link = await sharing.share_file(file_id, body.hours)
    return ShareResponse(url=link.url, expires_at=link.expires_at)
