"""Owner-side file operations: upload, lookup, download URL and deletion."""
import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.file_record import FileRecord
from app.models.folder import Folder
from app.services.errors import DatabaseError, ExternalStoreError, NotFoundError, describe
from app.services.file_storage import BlobStore
from app.services.folder_service import as_uuid

logger = logging.getLogger(__name__)


class FileService:

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        blob_store: BlobStore,
        url_ttl_seconds: int = 4000,
    ):
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.url_ttl_seconds = url_ttl_seconds

    async def get_file(self, file_id) -> FileRecord | None:
        file_uuid = as_uuid(file_id)
        if file_uuid is None:
            return None
        try:
            async with self.session_factory() as db:
                return await db.get(FileRecord, file_uuid)
        except SQLAlchemyError as e:
            raise DatabaseError(describe(f"get file {file_id}", e)) from e

    async def get_file_url(self, file_id) -> dict:
        """Presigned download URL for the owner, valid for url_ttl_seconds."""
        file_rec = await self.get_file(file_id)
        if file_rec is None:
            raise NotFoundError("File not found")
        if not file_rec.blob_key:
            raise NotFoundError("File object key not found")
        url = await self.blob_store.presign_get(file_rec.blob_key, self.url_ttl_seconds)
        return {"message": "successful!", "url": url}

    async def upload_file(
        self,
        folder: Folder,
        file_name: str,
        content: bytes,
        content_type: str | None,
        owner_id: str,
    ) -> FileRecord:
        """Store `content` in the blob store and record it under `folder`."""
        file_id = uuid.uuid4()
        prefix = folder.blob_path or folder.folder_name
        blob_key = f"{prefix}/{file_id}-{file_name}"

        await self.blob_store.put(blob_key, content, content_type=content_type)
        try:
            async with self.session_factory() as db:
                record = FileRecord(
                    id=file_id,
                    file_name=file_name,
                    mime_type=content_type,
                    size=len(content),
                    owner_id=owner_id,
                    parent_folder_id=folder.id,
                    blob_key=blob_key,
                )
                db.add(record)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error recording upload {file_name!r}: {e}")
            try:
                await self.blob_store.delete(blob_key)
            except ExternalStoreError as cleanup_error:
                logger.error(f"Error removing orphaned object {blob_key}: {cleanup_error}")
            raise DatabaseError(describe(f"upload file {file_name}", e)) from e

        logger.info(f"Uploaded file {record.id} ({record.size} bytes) to folder {folder.id}")
        return record

    async def delete_file(self, file_id) -> dict:
        """Delete the file's object, then its row."""
        file_rec = await self.get_file(file_id)
        if file_rec is None:
            raise NotFoundError("File not found")

        if file_rec.blob_key:
            await self.blob_store.delete(file_rec.blob_key)
        try:
            async with self.session_factory() as db:
                record = await db.get(FileRecord, file_rec.id)
                if record is not None:
                    await db.delete(record)
                    await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error deleting file {file_id}: {e}")
            raise DatabaseError(describe(f"delete file {file_id}", e)) from e

        return {"message": "deletion successful!"}
