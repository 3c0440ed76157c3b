"""Chat domain services."""

from .attachments import AttachmentDescriptor, classify_attachment, parse_attachment
from .channels import (
    find_channel,
    get_counterpart,
    get_or_create_channel,
    list_channel_member_ids,
    require_membership,
)
from .contacts import build_contact_item, list_contacts, serialize_public_user
from .favorites import is_favorite, list_favorites, set_favorite
from .messages import (
    count_unseen,
    create_message,
    delete_conversation,
    delete_message,
    fetch_messages,
    get_last_message,
    iter_shared_photos,
    mark_seen,
    render_message,
)

__all__ = [
    "AttachmentDescriptor",
    "classify_attachment",
    "parse_attachment",
    "find_channel",
    "get_counterpart",
    "get_or_create_channel",
    "list_channel_member_ids",
    "require_membership",
    "build_contact_item",
    "list_contacts",
    "serialize_public_user",
    "is_favorite",
    "list_favorites",
    "set_favorite",
    "count_unseen",
    "create_message",
    "delete_conversation",
    "delete_message",
    "fetch_messages",
    "get_last_message",
    "iter_shared_photos",
    "mark_seen",
    "render_message",
]
