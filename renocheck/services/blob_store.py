"""Blob storage for checklist attachments.

Files live under ``{base_dir}/{bucket}/{property_id}/{inspection_id}/{zone_id}/{name}``
and are served from ``{public_base_url}/{bucket}/...``. The bucket directory is
never created implicitly: a missing bucket is an infrastructure problem and is
reported as ``BucketNotFoundError`` so callers can degrade to inline payloads.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import logging
import mimetypes
from pathlib import Path

from ulid import ULID

from renocheck.config import StorageConfig
from renocheck.schemas.checklist import FileAttachment, is_remote_url

logger = logging.getLogger(__name__)

_INLINE_MIN_LENGTH = 100


class StorageError(Exception):
    """An attachment could not be stored."""


class BucketNotFoundError(StorageError):
    def __init__(self, bucket: str):
        super().__init__(f"Bucket not found: {bucket}")
        self.bucket = bucket


def is_inline_payload(payload: str) -> bool:
    """Data URLs, or long non-URL strings that can only be raw base64."""
    if payload.startswith("data:"):
        return True
    return not is_remote_url(payload) and len(payload) > _INLINE_MIN_LENGTH


def decode_inline_payload(payload: str, content_type: str | None = None) -> tuple[bytes, str]:
    """Return ``(data, mime type)`` for an inline payload."""
    mime = content_type or "application/octet-stream"
    raw = payload
    if payload.startswith("data:"):
        header, sep, raw = payload.partition(",")
        if not sep:
            raise StorageError("Malformed data URL")
        mime = header[len("data:"):].split(";", 1)[0] or mime
    try:
        return base64.b64decode(raw, validate=True), mime
    except (binascii.Error, ValueError) as exc:
        raise StorageError(f"Invalid base64 payload: {exc}") from exc


def _extension(mime: str, name: str = "") -> str:
    suffix = Path(name).suffix.lstrip(".")
    if suffix:
        return suffix.lower()
    guessed = mimetypes.guess_extension(mime) or ".bin"
    return guessed.lstrip(".")


class BlobStore:
    def __init__(self, base_dir: str | Path, bucket: str, public_base_url: str):
        self.base_dir = Path(base_dir)
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_config(cls, config: StorageConfig) -> BlobStore:
        return cls(config.base_dir, config.bucket, config.public_base_url)

    @property
    def bucket_dir(self) -> Path:
        return self.base_dir / self.bucket

    def create_bucket(self) -> Path:
        self.bucket_dir.mkdir(parents=True, exist_ok=True)
        return self.bucket_dir

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{self.bucket}/{path}"

    def _write_sync(self, data: bytes, path: str) -> None:
        if not self.bucket_dir.is_dir():
            raise BucketNotFoundError(self.bucket)
        target = self.bucket_dir / path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    async def upload(self, data: bytes, path: str) -> str:
        """Store bytes at ``path`` inside the bucket and return the public URL."""
        try:
            await asyncio.to_thread(self._write_sync, data, path)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc
        return self.public_url(path)

    async def upload_attachment(
        self, attachment: FileAttachment, property_id: str, inspection_id: str, zone_id: str,
    ) -> str:
        """Upload one inline attachment; already-uploaded payloads are returned as-is."""
        if attachment.is_uploaded:
            return attachment.payload
        data, mime = decode_inline_payload(attachment.payload, attachment.content_type)
        name = f"{ULID()}.{_extension(mime, attachment.name)}"
        path = f"{property_id}/{inspection_id}/{zone_id}/{name}"
        url = await self.upload(data, path)
        logger.debug("Uploaded %s (%d bytes) to %s", attachment.id, len(data), path)
        return url

