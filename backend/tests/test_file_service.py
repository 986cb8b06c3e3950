import uuid
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from app.services.errors import BlobStoreError, DatabaseError, NotFoundError


@pytest.mark.asyncio
async def test_upload_file(folders, files, blob_store, principal):
    root = await folders.create_root_folder(principal)
    reports = await folders.create_subfolder(root, "Reports", root, principal.id)

    record = await files.upload_file(reports, "q1.pdf", b"%PDF-1.7", "application/pdf", principal.id)

    assert record.parent_folder_id == reports.id
    assert record.owner_id == principal.id
    assert record.size == 8
    assert record.blob_key == f"root_user_jane/Reports/{record.id}-q1.pdf"
    assert blob_store.resolve_path(record.blob_key).read_bytes() == b"%PDF-1.7"

    reloaded = await folders.get_folder(reports.id)
    assert [f.id for f in reloaded.files] == [record.id]


@pytest.mark.asyncio
async def test_same_name_uploads_do_not_collide(folders, files, blob_store, principal):
    root = await folders.create_root_folder(principal)

    first = await files.upload_file(root, "notes.txt", b"one", "text/plain", principal.id)
    second = await files.upload_file(root, "notes.txt", b"two", "text/plain", principal.id)

    assert first.blob_key != second.blob_key
    assert blob_store.resolve_path(first.blob_key).read_bytes() == b"one"


@pytest.mark.asyncio
async def test_failed_upload_removes_blob(folders, files, blob_store, principal):
    root = await folders.create_root_folder(principal)
    error = OperationalError("INSERT INTO files", {}, Exception("disk I/O error"))

    with patch("sqlalchemy.ext.asyncio.AsyncSession.commit", side_effect=error):
        with pytest.raises(DatabaseError) as exc_info:
            await files.upload_file(root, "lost.txt", b"x", "text/plain", principal.id)

    assert str(exc_info.value).startswith("Failed to upload file lost.txt:")
    assert list(blob_store.resolve_path(root.blob_path).glob("*-lost.txt")) == []


@pytest.mark.asyncio
async def test_get_file_url(folders, files, principal):
    root = await folders.create_root_folder(principal)
    record = await files.upload_file(root, "a.txt", b"a", "text/plain", principal.id)

    result = await files.get_file_url(record.id)

    assert result["message"] == "successful!"
    assert "/api/blobs/" in result["url"]
    with pytest.raises(NotFoundError):
        await files.get_file_url(uuid.uuid4())


@pytest.mark.asyncio
async def test_delete_file(folders, files, blob_store, principal):
    root = await folders.create_root_folder(principal)
    record = await files.upload_file(root, "a.txt", b"a", "text/plain", principal.id)

    result = await files.delete_file(record.id)

    assert result == {"message": "deletion successful!"}
    assert await files.get_file(record.id) is None
    assert not blob_store.resolve_path(record.blob_key).exists()
    with pytest.raises(NotFoundError):
        await files.delete_file(record.id)


@pytest.mark.asyncio
async def test_delete_file_keeps_row_when_blob_delete_fails(folders, files, blob_store, principal):
    root = await folders.create_root_folder(principal)
    record = await files.upload_file(root, "a.txt", b"a", "text/plain", principal.id)

    with patch.object(blob_store, "delete", side_effect=BlobStoreError("Failed to delete object")):
        with pytest.raises(BlobStoreError):
            await files.delete_file(record.id)

    assert await files.get_file(record.id) is not None
