"""Current-user API routes."""
from fastapi import APIRouter, Depends

from app.dependencies import get_current_principal, get_folder_service
from app.schemas.folder import RootFolderResponse
from app.services.folder_service import FolderService
from app.services.identity import Principal

router = APIRouter(prefix="/api/user", tags=["user"])


@router.get("/root-folder", response_model=RootFolderResponse)
async def get_root_folder_id(
    principal: Principal = Depends(get_current_principal),
    folders: FolderService = Depends(get_folder_service),
):
    """Ensure the caller's root folder exists and return its id."""
    root = await folders.create_root_folder(principal)
    return RootFolderResponse(root_folder_id=principal.root_folder_id or root.id)
