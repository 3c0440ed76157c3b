"""Database models package."""

from .base import Base
from .chat import Channel, ChannelMember, Favorite, Message, User, canonical_pair_key
from .enums import AttachmentType

__all__ = [
    "Base",
    "User",
    "Channel",
    "ChannelMember",
    "Message",
    "Favorite",
    "AttachmentType",
    "canonical_pair_key",
]
