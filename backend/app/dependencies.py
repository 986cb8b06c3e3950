"""FastAPI dependencies.

Collaborators (session factory, blob store, identity provider) are built
once in the application lifespan and stored on ``app.state``; services are
cheap wrappers constructed per request around them.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from app.config import Settings
from app.services.file_service import FileService
from app.services.file_storage import BlobStore
from app.services.folder_service import FolderService
from app.services.identity import IdentityProvider, Principal
from app.services.sharing_service import SharingService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_blob_store(request: Request) -> BlobStore:
    return request.app.state.blob_store


def get_identity(request: Request) -> IdentityProvider:
    return request.app.state.identity


async def get_db(request: Request):
    """Yields an async DB session."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_folder_service(request: Request) -> FolderService:
    state = request.app.state
    return FolderService(
        state.session_factory,
        state.blob_store,
        state.identity,
        max_depth=state.settings.MAX_FOLDER_DEPTH,
    )


def get_sharing_service(request: Request) -> SharingService:
    state = request.app.state
    return SharingService(
        state.session_factory,
        state.blob_store,
        max_presign_hours=state.settings.MAX_PRESIGN_HOURS,
        default_share_seconds=state.settings.DEFAULT_SHARE_SECONDS,
        max_depth=state.settings.MAX_FOLDER_DEPTH,
        max_share_hours=state.settings.MAX_SHARE_HOURS,
    )


def get_file_service(request: Request) -> FileService:
    state = request.app.state
    return FileService(
        state.session_factory,
        state.blob_store,
        url_ttl_seconds=state.settings.FILE_URL_TTL_SECONDS,
    )


async def get_current_principal(
    x_user_id: Optional[str] = Header(None),
    x_user_first_name: str = Header(""),
    x_user_last_name: str = Header(""),
    identity: IdentityProvider = Depends(get_identity),
) -> Principal:
    """Resolve the principal forwarded by the auth proxy."""
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return await identity.ensure_principal(x_user_id, x_user_first_name, x_user_last_name)
