"""Blob storage for message attachments and user avatars."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path, PurePosixPath
from typing import AsyncIterator, Final, Protocol
from urllib.parse import quote
from uuid import uuid4

from fastapi import HTTPException, UploadFile, status

from app.config import get_settings
from app.core.errors import InvalidRequestError, NotFoundError, TransientIOError

logger = logging.getLogger(__name__)

_CHUNK_SIZE: Final[int] = 1024 * 1024  # 1 MiB


class BlobStore(Protocol):
    """Operations the chat core needs from a file store.

    Paths are relative and namespaced by folder, e.g. ``attachments/<name>``.
    """

    def exists(self, path: str) -> bool:
        """Return whether a blob is stored under ``path``."""

    def delete(self, path: str) -> None:
        """Remove a blob; raises NotFoundError when it is already absent."""

    def url(self, path: str) -> str:
        """Public URL of the blob."""

    def resolve(self, path: str) -> Path:
        """Local filesystem path for serving the blob."""

    async def save(self, path: str, chunks: AsyncIterator[bytes]) -> int:
        """Persist the streamed content and return the number of bytes written."""


class LocalBlobStore:
    """Filesystem backed :class:`BlobStore` rooted at ``MEDIA_ROOT``."""

    def __init__(self, root: Path, base_url: str) -> None:
        self._root = root
        self._base_url = base_url.rstrip("/")

    @property
    def root(self) -> Path:
        self._root.mkdir(parents=True, exist_ok=True)
        return self._root

    def _absolute(self, path: str) -> Path:
        candidate = (self.root / PurePosixPath(path)).resolve()
        if not candidate.is_relative_to(self.root.resolve()):
            raise InvalidRequestError("Invalid file path")
        return candidate

    def exists(self, path: str) -> bool:
        return self._absolute(path).is_file()

    def delete(self, path: str) -> None:
        target = self._absolute(path)
        try:
            target.unlink()
        except FileNotFoundError as exc:
            raise NotFoundError(f"Blob '{path}' does not exist") from exc
        except OSError as exc:
            raise TransientIOError(f"Could not delete blob '{path}'") from exc
        logger.debug("Deleted blob", extra={"path": path})

    def url(self, path: str) -> str:
        return f"{self._base_url}/{quote(path)}"

    def resolve(self, path: str) -> Path:
        target = self._absolute(path)
        if not target.is_file():
            raise NotFoundError("File not found")
        return target

    async def save(self, path: str, chunks: AsyncIterator[bytes]) -> int:
        target = self._absolute(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        total = 0
        try:
            with target.open("wb") as buffer:
                async for chunk in chunks:
                    total += len(chunk)
                    buffer.write(chunk)
        except Exception:
            if target.exists():
                target.unlink()
            raise
        return total


@lru_cache(maxsize=1)
def get_blob_store() -> BlobStore:
    """Return the configured blob store."""

    settings = get_settings()
    return LocalBlobStore(settings.media_root, settings.media_base_url)


@dataclass(slots=True)
class StoredFile:
    """Represents an uploaded attachment persisted by the blob store."""

    stored_name: str
    original_name: str
    content_type: str | None
    file_size: int


def attachment_path(stored_name: str) -> str:
    return f"{get_settings().attachments_folder}/{stored_name}"


def avatar_path(avatar_name: str) -> str:
    return f"{get_settings().avatar_folder}/{avatar_name}"


async def _read_limited(upload: UploadFile, limit: int) -> AsyncIterator[bytes]:
    total = 0
    while True:
        chunk = await upload.read(_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise HTTPException(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                detail="Attachment exceeds allowed size",
            )
        yield chunk


async def store_attachment(upload: UploadFile, store: BlobStore | None = None) -> StoredFile:
    """Validate and persist an uploaded attachment under a random name."""

    settings = get_settings()
    store = store or get_blob_store()

    original_name = upload.filename or "attachment"
    extension = Path(original_name).suffix.lstrip(".").lower()
    allowed = {*settings.allowed_images, *settings.allowed_files}
    if extension not in allowed:
        await upload.close()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File extension not allowed",
        )

    stored_name = f"{uuid4()}.{extension}"
    try:
        size = await store.save(
            attachment_path(stored_name), _read_limited(upload, settings.max_upload_size)
        )
    finally:
        await upload.close()

    return StoredFile(
        stored_name=stored_name,
        original_name=original_name,
        content_type=upload.content_type,
        file_size=size,
    )


def build_avatar_url(avatar: str, email: str, store: BlobStore | None = None) -> str:
    """Public avatar URL, falling back to Gravatar for the default avatar."""

    settings = get_settings()
    if avatar == settings.default_avatar and settings.gravatar_enabled:
        digest = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
        return (
            f"https://www.gravatar.com/avatar/{digest}"
            f"?s={settings.gravatar_image_size}&d={settings.gravatar_imageset}"
        )
    store = store or get_blob_store()
    return store.url(avatar_path(avatar))


def build_attachment_url(stored_name: str, store: BlobStore | None = None) -> str:
    store = store or get_blob_store()
    return store.url(attachment_path(stored_name))
