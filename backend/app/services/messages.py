"""Message persistence, seen tracking and deletion for direct channels."""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, Iterator

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import ChatError, ForbiddenError, InvalidRequestError, NotFoundError, TransientIOError
from app.core.storage import BlobStore, attachment_path
from app.models import Message
from app.monitoring.metrics import chat_messages_created_total, chat_messages_deleted_total
from app.schemas.chat import AttachmentView, MessageView
from app.services.attachments import AttachmentDescriptor, parse_attachment
from app.services.channels import find_channel, require_membership

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def time_ago(moment: datetime, now: datetime | None = None) -> str:
    """Human readable relative time, e.g. ``"5 minutes ago"``."""

    now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    seconds = int((now - _as_utc(moment)).total_seconds())
    if seconds < 0:
        seconds = 0
    if seconds < 60:
        return "just now" if seconds < 10 else f"{seconds} seconds ago"
    for unit, size in (
        ("year", 365 * 24 * 3600),
        ("month", 30 * 24 * 3600),
        ("week", 7 * 24 * 3600),
        ("day", 24 * 3600),
        ("hour", 3600),
        ("minute", 60),
    ):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'' if count == 1 else 's'} ago"
    return "just now"  # pragma: no cover - unreachable


def create_message(
    db: Session,
    *,
    sender_id: int,
    channel_id: str,
    body: str | None,
    attachment: AttachmentDescriptor | None = None,
) -> Message:
    """Persist a new unseen message from a channel member."""

    require_membership(db, channel_id, sender_id)
    text = body.strip() if body else None
    if not text and attachment is None:
        raise InvalidRequestError("Message must have a body or an attachment")

    message = Message(
        from_id=sender_id,
        to_channel_id=channel_id,
        body=text or None,
        attachment=attachment.to_json() if attachment is not None else None,
        seen=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(message)
    db.commit()
    db.refresh(message)
    chat_messages_created_total.labels("attachment" if attachment else "text").inc()
    logger.debug("Stored message", extra={"message_id": message.id, "channel_id": channel_id})
    return message


def _unseen_predicate(peer_id: int, channel_id: str):
    return (
        Message.from_id == peer_id,
        Message.to_channel_id == channel_id,
        Message.seen.is_(False),
    )


def mark_seen(db: Session, peer_id: int, viewer_id: int) -> int:
    """Mark every unseen message the peer sent to the viewer as seen.

    Runs as one conditional UPDATE so a message inserted concurrently is
    either included or stays unseen; returns the number of rows changed.
    """

    channel_id = find_channel(db, peer_id, viewer_id)
    if channel_id is None:
        return 0
    stmt = (
        update(Message)
        .where(*_unseen_predicate(peer_id, channel_id))
        .values(seen=True)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount or 0


def count_unseen(db: Session, peer_id: int, viewer_id: int) -> int:
    channel_id = find_channel(db, peer_id, viewer_id)
    if channel_id is None:
        return 0
    stmt = select(func.count(Message.id)).where(*_unseen_predicate(peer_id, channel_id))
    return db.execute(stmt).scalar_one()


def _newest_first(stmt):
    return stmt.order_by(Message.created_at.desc(), Message.id.desc())


def get_last_message(db: Session, channel_id: str) -> Message | None:
    stmt = _newest_first(select(Message).where(Message.to_channel_id == channel_id)).limit(1)
    return db.execute(stmt).scalar_one_or_none()


@dataclass(slots=True)
class MessagePage:
    items: list[Message]
    total: int
    page: int
    per_page: int

    @property
    def last_page(self) -> int:
        return max(1, -(-self.total // self.per_page))


def fetch_messages(db: Session, channel_id: str, *, page: int = 1, per_page: int = 30) -> MessagePage:
    """Page through a channel's history, newest first."""

    page = max(page, 1)
    total = db.execute(
        select(func.count(Message.id)).where(Message.to_channel_id == channel_id)
    ).scalar_one()
    stmt = (
        _newest_first(select(Message).where(Message.to_channel_id == channel_id))
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    items = list(db.execute(stmt).scalars())
    return MessagePage(items=items, total=total, page=page, per_page=per_page)


def iter_shared_photos(
    db: Session, channel_id: str, allowed_images: Iterable[str] | None = None
) -> Iterator[AttachmentDescriptor]:
    """Yield image attachments of a channel, newest first."""

    stmt = _newest_first(
        select(Message.attachment).where(
            Message.to_channel_id == channel_id,
            Message.attachment.is_not(None),
        )
    )
    for raw in db.execute(stmt).scalars():
        descriptor = parse_attachment(raw, allowed_images)
        if descriptor is not None and descriptor.is_image:
            yield descriptor


def _remove_attachment_blob(blob_store: BlobStore, message: Message) -> None:
    descriptor = parse_attachment(message.attachment)
    if descriptor is None:
        return
    path = attachment_path(descriptor.stored_name)
    try:
        blob_store.delete(path)
    except NotFoundError:
        logger.debug("Attachment already removed", extra={"path": path, "message_id": message.id})


def delete_message(db: Session, blob_store: BlobStore, message_id: int, requester_id: int) -> bool:
    """Delete a message sent by ``requester_id`` together with its attachment."""

    message = db.get(Message, message_id)
    if message is None:
        raise NotFoundError("Message not found")
    if message.from_id != requester_id:
        raise ForbiddenError("Only the sender can delete a message")

    # Blob first: a failure here leaves the row in place so the call can be retried.
    try:
        _remove_attachment_blob(blob_store, message)
    except ChatError:
        raise
    except Exception as exc:
        logger.warning("Blob store failed to delete attachment", exc_info=True, extra={"message_id": message_id})
        raise TransientIOError("Could not delete attachment") from exc
    try:
        db.delete(message)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransientIOError("Could not delete message") from exc
    chat_messages_deleted_total.labels("single").inc()
    return True


def delete_conversation(db: Session, blob_store: BlobStore, channel_id: str) -> bool:
    """Delete all messages of a channel, cleaning up attachments best-effort."""

    stmt = select(Message).where(Message.to_channel_id == channel_id).order_by(Message.id)
    messages = list(db.execute(stmt).scalars())
    for message in messages:
        try:
            _remove_attachment_blob(blob_store, message)
        except Exception:
            logger.warning(
                "Failed to delete attachment while clearing conversation",
                exc_info=True,
                extra={"message_id": message.id, "channel_id": channel_id},
            )
    try:
        db.execute(
            delete(Message)
            .where(Message.id.in_([message.id for message in messages]))
            .execution_options(synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to delete conversation messages", extra={"channel_id": channel_id})
        raise TransientIOError("Could not delete conversation") from exc
    if messages:
        chat_messages_deleted_total.labels("conversation").inc(len(messages))
    return True


def render_message(
    message: Message,
    viewer_id: int,
    *,
    allowed_images: Iterable[str] | None = None,
    now: datetime | None = None,
) -> MessageView:
    """Assemble the view model of a message as seen by ``viewer_id``."""

    descriptor = parse_attachment(message.attachment, allowed_images)
    if descriptor is not None:
        attachment = AttachmentView(
            file=descriptor.stored_name,
            title=html.escape(descriptor.original_name.strip(), quote=True),
            type=descriptor.classification,
        )
    else:
        attachment = AttachmentView()
    created_at = _as_utc(message.created_at)
    return MessageView(
        id=message.id,
        from_id=message.from_id,
        to_channel_id=message.to_channel_id,
        message=message.body,
        attachment=attachment,
        time_ago=time_ago(created_at, now),
        created_at=created_at.isoformat(),
        is_sender=message.from_id == viewer_id,
        seen=message.seen,
    )
