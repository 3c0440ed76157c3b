from __future__ import annotations

from enum import Enum


class AttachmentType(str, Enum):
    """Classification of a message attachment derived from its extension."""

    IMAGE = "image"
    FILE = "file"
