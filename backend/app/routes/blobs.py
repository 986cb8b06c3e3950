"""Signed downloads for the local blob store.

S3 presigned URLs point at S3 directly; this route only serves objects when
FILE_STORAGE_TYPE is "local".
"""
import mimetypes
import re
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse

from app.dependencies import get_blob_store
from app.services.errors import BlobStoreError
from app.services.file_storage import BlobStore, LocalBlobStore

router = APIRouter(prefix="/api/blobs", tags=["blobs"])

# Uploaded objects are stored as "<file uuid>-<original name>"
_UPLOAD_PREFIX = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}-")


@router.get("/{key:path}")
async def download_blob(
    key: str,
    expires: int = Query(...),
    signature: str = Query(...),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Serve an object if the URL signature is valid and unexpired."""
    if not isinstance(blob_store, LocalBlobStore):
        raise HTTPException(status_code=404, detail="Not found")
    if not blob_store.verify(key, expires, signature):
        raise HTTPException(status_code=403, detail="Link expired or invalid")

    try:
        path = blob_store.resolve_path(key)
    except BlobStoreError:
        raise HTTPException(status_code=404, detail="Not found")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Not found")

    filename = _UPLOAD_PREFIX.sub("", path.name)
    return FileResponse(
        path=path,
        filename=filename,
        media_type=mimetypes.guess_type(filename)[0] or "application/octet-stream",
    )
