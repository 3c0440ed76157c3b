"""Schemas for direct chat payloads and view models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, constr

from app.models.enums import AttachmentType


class AttachmentView(BaseModel):
    """Attachment part of a rendered message; all fields empty when absent."""

    file: str | None = None
    title: str | None = Field(default=None, description="HTML-escaped original file name")
    type: AttachmentType | None = None


class MessageView(BaseModel):
    """Rendered message as seen by a specific viewer."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    from_id: int
    to_channel_id: str
    message: str | None = None
    attachment: AttachmentView = Field(default_factory=AttachmentView)
    time_ago: str = Field(alias="timeAgo")
    created_at: str = Field(description="ISO-8601 creation timestamp")
    is_sender: bool = Field(alias="isSender")
    seen: bool = False


class MessagePageRead(BaseModel):
    """Page of channel history, newest first."""

    items: list[MessageView]
    total: int
    page: int
    per_page: int
    last_page: int


class PublicUser(BaseModel):
    """Minimal public-facing user information."""

    id: int
    name: str
    email: str
    avatar_url: str


class OpenChannelRequest(BaseModel):
    user_id: int = Field(..., description="Counterpart of the conversation")


class SharedPhoto(BaseModel):
    file: str
    url: str


class ChannelRead(BaseModel):
    """Conversation details for the current user."""

    channel_id: str
    user: PublicUser | None = None
    favorite: bool = False
    shared_photos: list[SharedPhoto] = Field(default_factory=list)


class ContactItem(BaseModel):
    """Entry of the conversation list."""

    channel_id: str
    user: PublicUser | None = None
    last_message: MessageView | None = None
    unseen_counter: int = Field(0, ge=0)
    favorite: bool = False


class SeenRequest(BaseModel):
    user_id: int = Field(..., description="Peer whose messages were read")


class SeenResult(BaseModel):
    updated: int = Field(..., ge=0)


class UnseenCount(BaseModel):
    user_id: int
    unseen: int = Field(..., ge=0)


class FavoriteRequest(BaseModel):
    channel_id: str
    star: bool = Field(..., description="True to star the channel, false to unstar it")


class FavoriteResult(BaseModel):
    channel_id: str
    favorite: bool
    changed: bool


class DeleteResult(BaseModel):
    deleted: bool


class SubscriptionAuthRequest(BaseModel):
    """Subscription handshake payload sent by a realtime client."""

    channel_name: constr(strip_whitespace=True, min_length=1, max_length=200)
    socket_id: constr(strip_whitespace=True, min_length=1, max_length=100)


class SubscriptionGrantRead(BaseModel):
    auth: str
    channel_data: str


class CurrentUserRead(PublicUser):
    private_channel: str
