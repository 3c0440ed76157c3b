"""Data assembly for the conversation list."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.core.storage import build_avatar_url
from app.models import ChannelMember, Message, User
from app.schemas.chat import ContactItem, PublicUser
from app.services.channels import get_counterpart
from app.services.favorites import is_favorite
from app.services.messages import count_unseen, get_last_message, render_message


def serialize_public_user(user: User) -> PublicUser:
    return PublicUser(
        id=user.id,
        name=user.name,
        email=user.email,
        avatar_url=build_avatar_url(user.avatar, user.email),
    )


def build_contact_item(
    db: Session, channel_id: str, viewer_id: int, *, now: datetime | None = None
) -> ContactItem:
    """Counterpart, last message and unseen counter of one conversation."""

    counterpart = get_counterpart(db, channel_id, viewer_id)
    last_message = get_last_message(db, channel_id)
    unseen = count_unseen(db, counterpart.id, viewer_id) if counterpart is not None else 0
    return ContactItem(
        channel_id=channel_id,
        user=serialize_public_user(counterpart) if counterpart is not None else None,
        last_message=render_message(last_message, viewer_id, now=now) if last_message else None,
        unseen_counter=unseen,
        favorite=is_favorite(db, viewer_id, channel_id),
    )


def list_contacts(db: Session, viewer_id: int) -> list[ContactItem]:
    """Conversations of a user that have messages, most recently active first."""

    last_activity = func.max(Message.created_at).label("last_activity")
    stmt = (
        select(ChannelMember.channel_id, last_activity)
        .join(Message, Message.to_channel_id == ChannelMember.channel_id)
        .where(ChannelMember.user_id == viewer_id)
        .group_by(ChannelMember.channel_id)
        .order_by(last_activity.desc())
    )
    now = datetime.now(timezone.utc)
    return [
        build_contact_item(db, channel_id, viewer_id, now=now)
        for channel_id, _ in db.execute(stmt).all()
    ]
