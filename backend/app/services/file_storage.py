"""Blob storage abstraction. Local filesystem for dev, S3 for production.

Both backends expose the same async interface: put, delete and presign_get.
The local backend signs its own download URLs with HMAC so that links
expire independently of the server, the way S3 presigned URLs do.
"""
import asyncio
import hashlib
import hmac
import logging
import os
import time
from pathlib import Path
from urllib.parse import quote

import aiofiles
import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings
from app.services.errors import BlobStoreError, describe

logger = logging.getLogger(__name__)


class BlobStore:
    """Interface for object storage backends."""

    async def put(self, key: str, body: bytes | str, content_type: str | None = None,
                  metadata: dict | None = None) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def presign_get(self, key: str, expires_in: int) -> str:
        """Return a URL granting read access to `key` for `expires_in` seconds."""
        raise NotImplementedError


class LocalBlobStore(BlobStore):
    """Stores objects under a directory and serves them through /api/blobs."""

    def __init__(self, base_path: str | Path, public_base_url: str, signing_secret: str):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")
        self._secret = signing_secret.encode("utf-8")

    def resolve_path(self, key: str) -> Path:
        """Map an object key to a path, refusing keys that escape base_path."""
        root = self.base_path.resolve()
        path = (root / key).resolve()
        if root not in path.parents:
            raise BlobStoreError(f"Invalid object key: {key}")
        return path

    async def put(self, key, body, content_type=None, metadata=None):
        path = self.resolve_path(key)
        data = body.encode("utf-8") if isinstance(body, str) else body
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise BlobStoreError(describe(f"upload object {key}", e)) from e

    async def delete(self, key):
        path = self.resolve_path(key)
        try:
            if path.exists():
                os.remove(path)
        except OSError as e:
            raise BlobStoreError(describe(f"delete object {key}", e)) from e

    def _sign(self, key: str, expires: int) -> str:
        message = f"{key}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    async def presign_get(self, key, expires_in):
        expires = int(time.time()) + int(expires_in)
        signature = self._sign(key, expires)
        return (
            f"{self.public_base_url}/api/blobs/{quote(key)}"
            f"?expires={expires}&signature={signature}"
        )

    def verify(self, key: str, expires: int, signature: str) -> bool:
        """Check a signed URL: the signature matches and it has not expired."""
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._sign(key, expires), signature)


class S3BlobStore(BlobStore):
    """Amazon S3 backend. boto3 is blocking, so calls run in a worker thread."""

    def __init__(self, bucket: str, region: str, access_key_id: str = "",
                 secret_access_key: str = "", client=None):
        self.bucket = bucket
        self.client = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id or None,
            aws_secret_access_key=secret_access_key or None,
        )

    async def put(self, key, body, content_type=None, metadata=None):
        params = {"Bucket": self.bucket, "Key": key, "Body": body}
        if content_type:
            params["ContentType"] = content_type
        if metadata:
            params["Metadata"] = {k: str(v) for k, v in metadata.items()}
        try:
            await asyncio.to_thread(self.client.put_object, **params)
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(describe(f"upload object {key}", e)) from e

    async def delete(self, key):
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(describe(f"delete object {key}", e)) from e

    async def presign_get(self, key, expires_in):
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=int(expires_in),
            )
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(describe(f"presign object {key}", e)) from e


def build_blob_store(settings: Settings) -> BlobStore:
    """Create the blob store selected by FILE_STORAGE_TYPE."""
    logger.info(f"Using {settings.FILE_STORAGE_TYPE} blob storage")
    if settings.FILE_STORAGE_TYPE == "local":
        return LocalBlobStore(
            settings.FILE_STORAGE_PATH,
            settings.PUBLIC_BASE_URL,
            settings.BLOB_SIGNING_SECRET,
        )
    elif settings.FILE_STORAGE_TYPE == "s3":
        if not settings.S3_BUCKET_NAME:
            raise ValueError("S3_BUCKET_NAME must be set when FILE_STORAGE_TYPE is 's3'")
        return S3BlobStore(
            settings.S3_BUCKET_NAME,
            settings.AWS_REGION,
            settings.AWS_ACCESS_KEY_ID,
            settings.AWS_SECRET_ACCESS_KEY,
        )
    raise ValueError(f"Unknown storage type: {settings.FILE_STORAGE_TYPE}")
