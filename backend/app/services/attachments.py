"""Structured attachment metadata stored alongside messages."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Iterable

from app.config import get_settings
from app.models.enums import AttachmentType

logger = logging.getLogger(__name__)


def classify_attachment(stored_name: str, allowed_images: Iterable[str] | None = None) -> AttachmentType:
    """Image when the extension is in the image allow-list, file otherwise.

    The comparison is case-sensitive; uploads are stored with lowercase
    extensions.
    """

    if allowed_images is None:
        allowed_images = get_settings().allowed_images
    extension = PurePosixPath(stored_name).suffix.lstrip(".")
    return AttachmentType.IMAGE if extension in set(allowed_images) else AttachmentType.FILE


@dataclass(frozen=True, slots=True)
class AttachmentDescriptor:
    stored_name: str
    original_name: str
    classification: AttachmentType

    @classmethod
    def build(
        cls,
        stored_name: str,
        original_name: str,
        allowed_images: Iterable[str] | None = None,
    ) -> "AttachmentDescriptor":
        return cls(
            stored_name=stored_name,
            original_name=original_name,
            classification=classify_attachment(stored_name, allowed_images),
        )

    @property
    def is_image(self) -> bool:
        return self.classification is AttachmentType.IMAGE

    def to_json(self) -> str:
        return json.dumps({"new_name": self.stored_name, "old_name": self.original_name})


def _is_plain_name(name: str) -> bool:
    return name not in {".", ".."} and "/" not in name and "\\" not in name


def parse_attachment(
    raw: str | None, allowed_images: Iterable[str] | None = None
) -> AttachmentDescriptor | None:
    """Decode the stored attachment JSON; malformed values count as no attachment."""

    if not raw:
        return None
    try:
        data = json.loads(raw)
        stored_name = data["new_name"]
        original_name = data.get("old_name") or stored_name
    except (json.JSONDecodeError, KeyError, TypeError, AttributeError):
        logger.warning("Ignoring malformed attachment metadata", extra={"raw": raw[:200]})
        return None
    if not isinstance(stored_name, str) or not stored_name or not _is_plain_name(stored_name):
        logger.warning("Ignoring attachment metadata without a usable stored name", extra={"raw": raw[:200]})
        return None
    return AttachmentDescriptor.build(stored_name, str(original_name), allowed_images)
