"""Share links for folders and files.

Folder shares hand out an opaque token embedded in a public URL; sharing a
folder again replaces the token and expiry. File shares are presigned blob
URLs; sharing a file again only ever pushes its recorded expiry later.

Expired folder shares are not cleared. A share is checked at read time with
is_share_active(), so ``shared`` can stay True on a share whose window has
passed.
"""
import logging
import math
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.file_record import FileRecord
from app.models.folder import Folder
from app.services.errors import (
    DatabaseError,
    InvalidShareDurationError,
    NotFoundError,
    ShareExpiredError,
    describe,
)
from app.services.file_storage import BlobStore
from app.services.folder_service import as_uuid
from app.services.membership import file_in_folder

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass
class ShareLink:
    url: str
    expires_at: datetime | None


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps from the store as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def is_share_active(folder: Folder, now: datetime | None = None) -> bool:
    """True while the folder share is on and inside its expiry window."""
    if not folder.shared or not folder.share_token:
        return False
    expires_at = as_utc(folder.expires_at)
    return expires_at is None or expires_at > (now or utcnow())


def ensure_share_active(folder: Folder) -> None:
    if not is_share_active(folder):
        raise ShareExpiredError(f"Share link for folder {folder.id} has expired")


def _validate_hours(hours, max_hours: float) -> None:
    if hours is None or not math.isfinite(hours) or hours <= 0:
        raise InvalidShareDurationError("Invalid expiration time: hours must be greater than 0")
    if hours > max_hours:
        raise InvalidShareDurationError(f"Invalid expiration time: hours must be at most {max_hours}")


def _expires_after(seconds: float) -> datetime:
    try:
        return utcnow() + timedelta(seconds=seconds)
    except OverflowError as e:
        raise InvalidShareDurationError("Invalid expiration time: out of range") from e


class SharingService:
    """Issues and validates folder share tokens and presigned file links."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        blob_store: BlobStore,
        max_presign_hours: int = 168,
        default_share_seconds: int = 3600,
        max_depth: int = 64,
        max_share_hours: int = 87600,
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.max_presign_hours = max_presign_hours
        self.default_share_seconds = default_share_seconds
        self.max_depth = max_depth
        self.max_share_hours = max_share_hours

    async def share_folder(self, folder_id, hours: float, origin: str) -> ShareLink:
        """Share a folder for `hours`, replacing any earlier token and expiry."""
        _validate_hours(hours, self.max_share_hours)
        expires_at = _expires_after(hours * 3600)
        token = secrets.token_urlsafe(32)
        folder_uuid = as_uuid(folder_id)
        try:
            async with self.session_factory() as db:
                folder = await db.get(Folder, folder_uuid) if folder_uuid else None
                if folder is None:
                    raise NotFoundError(f"Folder {folder_id} not found")
                folder.shared = True
                folder.share_token = token
                folder.expires_at = expires_at
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error sharing folder {folder_id}: {e}")
            raise DatabaseError(describe(f"share folder {folder_id}", e)) from e

        logger.info(f"Shared folder {folder_id} until {expires_at.isoformat()}")
        return ShareLink(url=f"{origin.rstrip('/')}/shared/folder/{token}", expires_at=expires_at)

    async def share_file(self, file_id, hours: float) -> ShareLink:
        """Presign the file for `hours`; the stored expiry only moves later.

        The presign call runs between two short sessions, not inside one.
        """
        _validate_hours(hours, self.max_share_hours)
        expires_in = int(hours * 3600)
        file_uuid = as_uuid(file_id)
        try:
            async with self.session_factory() as db:
                file_rec = await db.get(FileRecord, file_uuid) if file_uuid else None
                if file_rec is None:
                    raise NotFoundError(f"File {file_id} not found")
                blob_key = file_rec.blob_key
        except SQLAlchemyError as e:
            raise DatabaseError(describe(f"get file {file_id}", e)) from e
        if not blob_key:
            raise NotFoundError(f"File {file_id} has no stored object")

        url = await self.blob_store.presign_get(blob_key, expires_in)

        try:
            async with self.session_factory() as db:
                file_rec = await db.get(FileRecord, file_uuid)
                if file_rec is None:
                    raise NotFoundError(f"File {file_id} not found")
                expires_at = max(
                    _expires_after(expires_in),
                    as_utc(file_rec.expires_at) or EPOCH,
                )
                file_rec.shared = True
                file_rec.expires_at = expires_at
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error sharing file {file_id}: {e}")
            raise DatabaseError(describe(f"share file {file_id}", e)) from e

        return ShareLink(url=url, expires_at=expires_at)

    async def get_folder_by_share_token(self, token: str) -> Folder | None:
        try:
            async with self.session_factory() as db:
                result = await db.execute(select(Folder).where(Folder.share_token == token))
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise DatabaseError(describe("look up share token", e)) from e

    async def file_in_folder(self, folder_id, file_id) -> bool:
        folder_uuid, file_uuid = as_uuid(folder_id), as_uuid(file_id)
        if folder_uuid is None or file_uuid is None:
            return False
        try:
            async with self.session_factory() as db:
                return await file_in_folder(db, folder_uuid, file_uuid, self.max_depth)
        except SQLAlchemyError as e:
            raise DatabaseError(describe(f"check membership of file {file_id}", e)) from e

    def share_window_hours(self, folder: Folder, now: datetime | None = None) -> int:
        """Whole hours left on the folder share, at least 1, capped at max_presign_hours."""
        expires_at = as_utc(folder.expires_at)
        if expires_at is None:
            seconds = self.default_share_seconds
        else:
            seconds = max(1, math.floor((expires_at - (now or utcnow())).total_seconds()))
        return min(math.ceil(seconds / 3600), self.max_presign_hours)

    async def get_file_from_share_token(
        self, shared_root_folder: Folder, file: FileRecord
    ) -> ShareLink | None:
        """Presign `file` for an anonymous visitor of `shared_root_folder`'s share link.

        Returns None when the file is not inside the shared folder. The
        advertised expiry is the folder share's, not the presigned URL's.
        """
        ensure_share_active(shared_root_folder)
        if not await self.file_in_folder(shared_root_folder.id, file.id):
            return None

        hours = self.share_window_hours(shared_root_folder)
        link = await self.share_file(file.id, hours)
        return ShareLink(url=link.url, expires_at=shared_root_folder.expires_at)
