import time
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest
from botocore.exceptions import ClientError

from app.config import Settings
from app.services.errors import BlobStoreError
from app.services.file_storage import LocalBlobStore, S3BlobStore, build_blob_store


# --- Local backend ---

@pytest.mark.asyncio
async def test_local_put_writes_under_base_path(blob_store):
    await blob_store.put("root_u/docs/.folder-info.txt", "#Folder: root_u/docs", content_type="text/plain")
    await blob_store.put("root_u/docs/a.bin", b"\x00\x01")

    assert blob_store.resolve_path("root_u/docs/.folder-info.txt").read_bytes() == b"#Folder: root_u/docs"
    assert blob_store.resolve_path("root_u/docs/a.bin").read_bytes() == b"\x00\x01"


@pytest.mark.asyncio
async def test_local_delete_is_idempotent(blob_store):
    await blob_store.put("k/file.txt", b"x")

    await blob_store.delete("k/file.txt")
    await blob_store.delete("k/file.txt")

    assert not blob_store.resolve_path("k/file.txt").exists()


@pytest.mark.asyncio
async def test_local_rejects_keys_outside_base_path(blob_store):
    with pytest.raises(BlobStoreError):
        await blob_store.put("../escape.txt", b"x")
    with pytest.raises(BlobStoreError):
        blob_store.resolve_path("a/../../escape.txt")


@pytest.mark.asyncio
async def test_local_presigned_url_verifies(blob_store):
    url = await blob_store.presign_get("root_u/my file.pdf", 60)

    parts = urlsplit(url)
    query = parse_qs(parts.query)
    assert parts.path == "/api/blobs/root_u/my%20file.pdf"
    expires = int(query["expires"][0])
    signature = query["signature"][0]
    assert expires > time.time()
    assert blob_store.verify("root_u/my file.pdf", expires, signature)
    assert not blob_store.verify("root_u/other.pdf", expires, signature)
    assert not blob_store.verify("root_u/my file.pdf", expires + 1, signature)


def test_local_signature_expires(blob_store):
    expired = int(time.time()) - 1
    assert not blob_store.verify("k", expired, blob_store._sign("k", expired))


def test_signatures_depend_on_secret(tmp_path):
    a = LocalBlobStore(tmp_path, "http://testserver", "secret-a")
    b = LocalBlobStore(tmp_path, "http://testserver", "secret-b")
    assert a._sign("k", 100) != b._sign("k", 100)


# --- S3 backend ---

@pytest.mark.asyncio
async def test_s3_put_passes_metadata():
    client = MagicMock()
    store = S3BlobStore("bucket", "us-east-1", client=client)

    await store.put("root_u/.folder-info.txt", "body", content_type="text/plain",
                    metadata={"folder-id": 123})

    client.put_object.assert_called_once_with(
        Bucket="bucket",
        Key="root_u/.folder-info.txt",
        Body="body",
        ContentType="text/plain",
        Metadata={"folder-id": "123"},
    )


@pytest.mark.asyncio
async def test_s3_presign():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://bucket.s3.amazonaws.com/k?X-Amz-Signature=abc"
    store = S3BlobStore("bucket", "us-east-1", client=client)

    url = await store.presign_get("k", 3600)

    assert url.startswith("https://bucket.s3.amazonaws.com/k")
    client.generate_presigned_url.assert_called_once_with(
        "get_object", Params={"Bucket": "bucket", "Key": "k"}, ExpiresIn=3600
    )


@pytest.mark.asyncio
async def test_s3_errors_are_wrapped():
    client = MagicMock()
    client.delete_object.side_effect = ClientError(
        {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "DeleteObject"
    )
    store = S3BlobStore("bucket", "us-east-1", client=client)

    with pytest.raises(BlobStoreError) as exc_info:
        await store.delete("k")

    assert str(exc_info.value).startswith("Failed to delete object k:")


# --- Selection ---

def test_build_blob_store_selects_backend(tmp_path):
    local = build_blob_store(Settings(FILE_STORAGE_TYPE="local", FILE_STORAGE_PATH=str(tmp_path)))
    assert isinstance(local, LocalBlobStore)

    with pytest.raises(ValueError):
        build_blob_store(Settings(FILE_STORAGE_TYPE="s3", S3_BUCKET_NAME=""))
    with pytest.raises(ValueError):
        build_blob_store(Settings(FILE_STORAGE_TYPE="ftp"))
