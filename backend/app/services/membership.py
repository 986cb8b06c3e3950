"""File membership: does a file live somewhere beneath a given folder?

Walks the parent chain upward from the file's folder, one read per level.
Folder trees are shallow in practice; a materialized path would avoid the
per-level reads if that ever stops being true.
"""
import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.file_record import FileRecord
from app.models.folder import Folder

logger = logging.getLogger(__name__)


async def file_in_folder(
    db: AsyncSession,
    folder_id: uuid.UUID,
    file_id: uuid.UUID,
    max_depth: int = 64,
) -> bool:
    """Return True if `file_id` sits in `folder_id` or any of its descendants."""
    ancestor = await db.get(Folder, folder_id)
    file_rec = await db.get(FileRecord, file_id)
    if ancestor is None or file_rec is None:
        return False

    current_id = file_rec.parent_folder_id
    seen: set[uuid.UUID] = set()
    while current_id is not None:
        if current_id == ancestor.id:
            return True
        if current_id in seen or len(seen) >= max_depth:
            logger.warning(f"Stopped membership walk for file {file_id} at folder {current_id}")
            return False
        seen.add(current_id)

        folder = await db.get(Folder, current_id)
        if folder is None:
            return False
        current_id = folder.parent_folder_id

    return False
