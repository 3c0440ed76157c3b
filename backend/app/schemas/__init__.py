"""Pydantic schemas for API payloads."""

from .auth import LoginRequest, Token, UserCreate, UserRead
from .chat import (
    AttachmentView,
    ChannelRead,
    ContactItem,
    CurrentUserRead,
    DeleteResult,
    FavoriteRequest,
    FavoriteResult,
    MessagePageRead,
    MessageView,
    OpenChannelRequest,
    PublicUser,
    SeenRequest,
    SeenResult,
    SharedPhoto,
    SubscriptionAuthRequest,
    SubscriptionGrantRead,
    UnseenCount,
)

__all__ = [
    "LoginRequest",
    "Token",
    "UserCreate",
    "UserRead",
    "AttachmentView",
    "ChannelRead",
    "ContactItem",
    "CurrentUserRead",
    "DeleteResult",
    "FavoriteRequest",
    "FavoriteResult",
    "MessagePageRead",
    "MessageView",
    "OpenChannelRequest",
    "PublicUser",
    "SeenRequest",
    "SeenResult",
    "SharedPhoto",
    "SubscriptionAuthRequest",
    "SubscriptionGrantRead",
    "UnseenCount",
]
