"""Unit tests for the attachment blob store."""

import base64

import pytest

from renocheck.schemas import FileAttachment
from renocheck.services.blob_store import (
    BucketNotFoundError,
    StorageError,
    decode_inline_payload,
    is_inline_payload,
)

PNG = base64.b64encode(b"\x89PNG fake image bytes").decode()


def test_inline_payload_detection():
    assert is_inline_payload(f"data:image/png;base64,{PNG}")
    assert is_inline_payload("A" * 101)
    assert not is_inline_payload("https://cdn.example.com/" + "a" * 200)
    assert not is_inline_payload("short")


def test_decode_data_url():
    data, mime = decode_inline_payload(f"data:image/png;base64,{PNG}")
    assert data == b"\x89PNG fake image bytes"
    assert mime == "image/png"


def test_decode_rejects_garbage():
    with pytest.raises(StorageError):
        decode_inline_payload("data:image/png;base64,@@not-base64@@")
    with pytest.raises(StorageError):
        decode_inline_payload("data:image/png;base64")


async def test_upload_attachment_writes_into_bucket(blob_store):
    att = FileAttachment(payload=f"data:image/png;base64,{PNG}")
    url = await blob_store.upload_attachment(att, "p1", "i1", "z1")

    assert url.startswith("http://test/storage/inspection-images/p1/i1/z1/")
    assert url.endswith(".png")
    stored = list((blob_store.bucket_dir / "p1" / "i1" / "z1").iterdir())
    assert len(stored) == 1
    assert stored[0].read_bytes() == b"\x89PNG fake image bytes"


async def test_uploaded_attachment_returned_unchanged(blob_store):
    att = FileAttachment(payload="https://cdn.example.com/a.jpg")
    assert await blob_store.upload_attachment(att, "p1", "i1", "z1") == att.payload


async def test_missing_bucket_raises(missing_bucket_store):
    att = FileAttachment(payload=f"data:image/png;base64,{PNG}")
    with pytest.raises(BucketNotFoundError):
        await missing_bucket_store.upload_attachment(att, "p1", "i1", "z1")
    assert not missing_bucket_store.bucket_dir.exists()
