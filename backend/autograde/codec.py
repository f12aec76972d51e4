"""Conversion between uploaded binary content and transport-safe AttachedFile records."""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import uuid
from dataclasses import dataclass
from pathlib import Path

import httpx
from fastapi import UploadFile

from autograde.schemas import AttachedFile
from autograde.settings import settings
from autograde.storage import object_key
from autograde.storage_provider import get_storage_provider

logger = logging.getLogger(__name__)

STORAGE_SCHEME = "storage://"
DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass
class EncodingError(Exception):
    message: str

    def __str__(self) -> str:
        return self.message


def new_file_id() -> str:
    return uuid.uuid4().hex


def guess_mime_type(name: str, declared: str | None = None) -> str:
    declared = (declared or "").strip().lower()
    if declared and declared != DEFAULT_MIME_TYPE:
        return declared
    guessed, _ = mimetypes.guess_type(name)
    return guessed or DEFAULT_MIME_TYPE


def strip_data_url_header(value: str) -> str:
    """Drop a ``data:<mime>;base64,`` prefix if present."""
    if value.startswith("data:") and "," in value:
        return value.split(",", 1)[1]
    return value


def encode_bytes(content: bytes, name: str, mime_type: str | None = None, file_id: str | None = None) -> AttachedFile:
    encoded = base64.b64encode(content).decode("ascii")
    return AttachedFile(
        id=file_id or new_file_id(),
        name=name,
        mime_type=guess_mime_type(name, mime_type),
        data=encoded,
    )


def encode_path(path: Path, mime_type: str | None = None) -> AttachedFile:
    try:
        content = path.read_bytes()
    except OSError as exc:
        raise EncodingError(f"Could not read {path.name}: {exc}") from exc
    return encode_bytes(content, path.name, mime_type)


async def encode_upload(upload: UploadFile) -> AttachedFile:
    filename = Path(upload.filename or "upload.bin").name
    try:
        content = await upload.read()
    except (OSError, ValueError) as exc:
        raise EncodingError(f"Could not read {filename}: {exc}") from exc
    if not content:
        raise EncodingError(f"{filename} is empty")
    return encode_bytes(content, filename, upload.content_type)


def decode(file: AttachedFile) -> bytes:
    if not file.data:
        raise EncodingError(f"{file.name} has no inline data")
    try:
        return base64.b64decode(strip_data_url_header(file.data), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise EncodingError(f"{file.name} is not valid base64: {exc}") from exc


def is_sendable(file: AttachedFile) -> bool:
    return bool(file.data)


async def _fetch_reference(url: str) -> bytes:
    if url.startswith(STORAGE_SCHEME):
        provider = get_storage_provider()
        if not hasattr(provider, "get_bytes"):
            raise RuntimeError("Configured storage provider does not support object reads")
        return await provider.get_bytes(url[len(STORAGE_SCHEME):])  # type: ignore[attr-defined]

    async with httpx.AsyncClient(timeout=settings.fetch_timeout_seconds, follow_redirects=True) as client:
        response = await client.get(url)
        response.raise_for_status()
        return response.content


async def resolve_content(file: AttachedFile) -> AttachedFile:
    """Return ``file`` with inline data, fetching its reference when needed.

    Fetch failures are logged and the original record is returned unchanged, so
    callers must check :func:`is_sendable` on the result.
    """
    if file.data:
        return file
    if not file.url:
        return file

    try:
        content = await _fetch_reference(file.url)
    except (httpx.HTTPError, OSError, ValueError, RuntimeError) as exc:
        logger.warning(
            "attached file could not be resolved",
            extra={"stage": "resolve_content", "file_id": file.id, "file_name": file.name, "error": str(exc)},
        )
        return file

    encoded = base64.b64encode(content).decode("ascii")
    return file.model_copy(update={"data": encoded})


async def offload(file: AttachedFile, prefix: str) -> AttachedFile:
    """Move inline content into the storage provider and keep only a reference."""
    content = decode(file)
    key = object_key(prefix, file.id, file.name)
    await get_storage_provider().put_bytes(key, content, file.mime_type)
    logger.info(
        "attached file offloaded",
        extra={"stage": "offload", "file_id": file.id, "key": key, "size_bytes": len(content)},
    )
    return AttachedFile(id=file.id, name=file.name, mime_type=file.mime_type, url=f"{STORAGE_SCHEME}{key}")
