"""
Object storage for uploaded content files.

Banners, brochures and news images are stored under keys shaped
`folder/{ms-timestamp}-{sanitized-name}`; the row keeps the key so the object
can be removed later. Local disk serves development and tests, S3 serves
production.
"""

import logging
import re
import time
from pathlib import Path
from typing import Dict, Any, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from welfare_admin.app.core.config import settings
from welfare_admin.app.core.exceptions import UpstreamServiceError, ValidationError

logger = logging.getLogger(__name__)

IMAGE_TYPES = {
    "image/jpeg": {".jpg", ".jpeg"},
    "image/png": {".png"},
    "image/webp": {".webp"},
}
DOCUMENT_TYPES = {"application/pdf": {".pdf"}, **IMAGE_TYPES}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(filename: str) -> str:
    name = Path(filename or "file").name
    name = _UNSAFE_CHARS.sub("-", name).strip("-.")
    return name[:120] or "file"


def build_key(folder: str, filename: str) -> str:
    return f"{folder.strip('/')}/{int(time.time() * 1000)}-{sanitize_filename(filename)}"


class Storage:
    """Base storage backend."""

    async def upload(self, folder: str, filename: str, content: bytes, content_type: Optional[str] = None) -> Dict[str, Any]:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError


class LocalStorage(Storage):

    def __init__(self, root, public_base_url: str = "/static"):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")

    def _path(self, key: str) -> Path:
        safe_key = key.lstrip("/").replace("\\", "/")
        path = (self.root / safe_key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValidationError("Invalid storage key")
        return path

    def _write(self, path: Path, content: bytes):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    async def upload(self, folder, filename, content, content_type=None):
        key = build_key(folder, filename)
        try:
            await run_in_threadpool(self._write, self._path(key), content)
        except OSError as e:
            logger.exception(f"Local upload failed for {key}")
            raise UpstreamServiceError("Storage", "File upload failed") from e
        return {"file_url": f"{self.public_base_url}/{key}", "key": key, "size": len(content)}

    async def delete(self, key):
        try:
            await run_in_threadpool(self._path(key).unlink, True)
        except OSError as e:
            logger.exception(f"Local delete failed for {key}")
            raise UpstreamServiceError("Storage", "File delete failed") from e


class S3Storage(Storage):

    def __init__(self, bucket: str, region: str, endpoint_url: Optional[str] = None,
                 access_key_id: Optional[str] = None, secret_access_key: Optional[str] = None):
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url or None,
            region_name=region or None,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def public_url(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def upload(self, folder, filename, content, content_type=None):
        key = build_key(folder, filename)
        extra = {"ContentType": content_type} if content_type else {}
        try:
            await run_in_threadpool(
                self._client.put_object, Bucket=self.bucket, Key=key, Body=content, **extra
            )
        except (BotoCoreError, ClientError) as e:
            logger.exception(f"S3 upload failed for {key}")
            raise UpstreamServiceError("Storage", "File upload failed") from e
        return {"file_url": self.public_url(key), "key": key, "size": len(content)}

    async def delete(self, key):
        try:
            await run_in_threadpool(self._client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.exception(f"S3 delete failed for {key}")
            raise UpstreamServiceError("Storage", "File delete failed") from e


def storage_from_settings() -> Storage:
    if settings.storage_backend.lower() == "s3":
        return S3Storage(
            bucket=settings.s3_bucket,
            region=settings.s3_region,
            endpoint_url=settings.s3_endpoint_url,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
        )
    return LocalStorage(settings.storage_local_root, settings.storage_public_base_url)


_storage: Optional[Storage] = None


def get_storage() -> Storage:
    """FastAPI dependency returning the configured backend."""
    global _storage
    if _storage is None:
        _storage = storage_from_settings()
    return _storage


async def read_upload(upload: UploadFile, allowed: Dict[str, set], label: str = "File") -> bytes:
    """Validate type, extension and size of an upload and return its bytes."""
    content_type = (upload.content_type or "").lower()
    suffix = Path(upload.filename or "").suffix.lower()
    if content_type not in allowed or suffix not in allowed[content_type]:
        allowed_ext = sorted({ext.lstrip(".") for exts in allowed.values() for ext in exts})
        raise ValidationError(
            f"{label} must be one of: {', '.join(allowed_ext)}",
            details={"content_type": content_type, "filename": upload.filename},
        )

    # One byte past the limit is enough to know it is too large
    content = await upload.read(settings.upload_max_bytes + 1)
    if not content:
        raise ValidationError(f"{label} is empty")
    if len(content) > settings.upload_max_bytes:
        raise ValidationError(
            f"{label} exceeds the maximum size of {settings.upload_max_bytes} bytes",
            details={"max_bytes": settings.upload_max_bytes},
        )
    return content


async def delete_quietly(storage: Storage, key: Optional[str]):
    """Remove a replaced object; the row is already saved so failure only leaves an orphan."""
    if not key:
        return
    try:
        await storage.delete(key)
    except UpstreamServiceError:
        logger.warning(f"Orphaned storage object left behind: {key}")
