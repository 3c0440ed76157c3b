"""Direct chat endpoints: conversations, messages, favorites and subscriptions."""

from __future__ import annotations

import logging
from typing import Any, Callable

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.api.deps import get_current_user, get_optional_identity
from app.config import get_settings
from app.core.errors import InvalidRequestError, NotFoundError
from app.core.identity import Identity
from app.core.storage import BlobStore, attachment_path, build_attachment_url, get_blob_store, store_attachment
from app.database import get_db
from app.models import Message, User
from app.schemas import (
    ChannelRead,
    ContactItem,
    CurrentUserRead,
    DeleteResult,
    FavoriteRequest,
    FavoriteResult,
    MessagePageRead,
    MessageView,
    OpenChannelRequest,
    SeenRequest,
    SeenResult,
    SharedPhoto,
    SubscriptionAuthRequest,
    SubscriptionGrantRead,
    UnseenCount,
)
from app.services import (
    AttachmentDescriptor,
    build_contact_item,
    count_unseen,
    create_message,
    delete_conversation,
    delete_message,
    fetch_messages,
    find_channel,
    get_counterpart,
    get_or_create_channel,
    is_favorite,
    iter_shared_photos,
    list_channel_member_ids,
    list_contacts,
    list_favorites,
    mark_seen,
    render_message,
    require_membership,
    serialize_public_user,
    set_favorite,
)
from parley.realtime.auth import SubscriptionAuthorizer
from parley.realtime.managers import PubSubGateway, get_authorizer, get_gateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])
settings = get_settings()


async def _notify_members(
    gateway: PubSubGateway,
    authorizer: SubscriptionAuthorizer,
    member_ids: list[int],
    sender_id: int,
    event: str,
    data: dict[str, Any] | Callable[[int], dict[str, Any]],
) -> None:
    """Publish ``event`` to every member but the sender; ``data`` may be built per member."""

    for member_id in member_ids:
        if member_id == sender_id:
            continue
        payload = data(member_id) if callable(data) else data
        await gateway.publish(authorizer.channel_for(member_id), event, payload)


def _discard_upload(store: BlobStore, stored_name: str) -> None:
    try:
        store.delete(attachment_path(stored_name))
    except NotFoundError:
        pass
    except Exception:
        logger.warning("Failed to remove orphaned upload", exc_info=True, extra={"file": stored_name})


def _shared_photos(db: Session, channel_id: str, store: BlobStore) -> list[SharedPhoto]:
    return [
        SharedPhoto(file=descriptor.stored_name, url=build_attachment_url(descriptor.stored_name, store))
        for descriptor in iter_shared_photos(db, channel_id)
    ]


@router.get("/me", response_model=CurrentUserRead)
async def read_current_user(
    current_user: User = Depends(get_current_user),
    authorizer: SubscriptionAuthorizer = Depends(get_authorizer),
) -> CurrentUserRead:
    public = serialize_public_user(current_user)
    return CurrentUserRead(**public.model_dump(), private_channel=authorizer.channel_for(current_user.id))


@router.post("/channels", response_model=ChannelRead)
async def open_channel(
    payload: OpenChannelRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ChannelRead:
    """Open (or create) the direct conversation with another user."""

    counterpart = db.get(User, payload.user_id)
    if counterpart is None:
        raise NotFoundError("User not found")
    channel_id = get_or_create_channel(db, current_user.id, counterpart.id)
    return ChannelRead(
        channel_id=channel_id,
        user=serialize_public_user(counterpart),
        favorite=is_favorite(db, current_user.id, channel_id),
    )


@router.get("/contacts", response_model=list[ContactItem])
async def read_contacts(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[ContactItem]:
    return list_contacts(db, current_user.id)


@router.get("/channels/{channel_id}", response_model=ChannelRead)
async def read_channel(
    channel_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    store: BlobStore = Depends(get_blob_store),
) -> ChannelRead:
    require_membership(db, channel_id, current_user.id)
    counterpart = get_counterpart(db, channel_id, current_user.id)
    return ChannelRead(
        channel_id=channel_id,
        user=serialize_public_user(counterpart) if counterpart is not None else None,
        favorite=is_favorite(db, current_user.id, channel_id),
        shared_photos=_shared_photos(db, channel_id, store),
    )


@router.get("/channels/{channel_id}/messages", response_model=MessagePageRead)
async def read_messages(
    channel_id: str,
    page: int = Query(1, ge=1),
    per_page: int | None = Query(None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> MessagePageRead:
    require_membership(db, channel_id, current_user.id)
    limit = min(per_page or settings.chat_history_default_limit, settings.chat_history_max_limit)
    result = fetch_messages(db, channel_id, page=page, per_page=limit)
    return MessagePageRead(
        items=[render_message(message, current_user.id) for message in result.items],
        total=result.total,
        page=result.page,
        per_page=result.per_page,
        last_page=result.last_page,
    )


@router.get("/channels/{channel_id}/shared", response_model=list[SharedPhoto])
async def read_shared_photos(
    channel_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    store: BlobStore = Depends(get_blob_store),
) -> list[SharedPhoto]:
    require_membership(db, channel_id, current_user.id)
    return _shared_photos(db, channel_id, store)


@router.post("/messages", response_model=MessageView, status_code=status.HTTP_201_CREATED)
async def send_message(
    channel_id: str = Form(...),
    message: str | None = Form(None),
    file: UploadFile | None = File(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    store: BlobStore = Depends(get_blob_store),
    gateway: PubSubGateway = Depends(get_gateway),
    authorizer: SubscriptionAuthorizer = Depends(get_authorizer),
) -> MessageView:
    """Store a message with an optional attachment and notify the other member."""

    if message is not None and len(message) > settings.chat_message_max_length:
        raise InvalidRequestError("Message is too long")
    member_ids = require_membership(db, channel_id, current_user.id)

    descriptor: AttachmentDescriptor | None = None
    if file is not None and file.filename:
        stored = await store_attachment(file, store)
        descriptor = AttachmentDescriptor.build(stored.stored_name, stored.original_name)

    try:
        created = create_message(
            db,
            sender_id=current_user.id,
            channel_id=channel_id,
            body=message,
            attachment=descriptor,
        )
    except Exception:
        db.rollback()
        if descriptor is not None:
            _discard_upload(store, descriptor.stored_name)
        raise

    await _notify_members(
        gateway,
        authorizer,
        member_ids,
        current_user.id,
        "messaging",
        lambda member_id: {
            "from_id": current_user.id,
            "to_channel_id": channel_id,
            "message": render_message(created, member_id).model_dump(mode="json", by_alias=True),
        },
    )
    return render_message(created, current_user.id)


@router.delete("/messages/{message_id}", response_model=DeleteResult)
async def remove_message(
    message_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    store: BlobStore = Depends(get_blob_store),
    gateway: PubSubGateway = Depends(get_gateway),
    authorizer: SubscriptionAuthorizer = Depends(get_authorizer),
) -> DeleteResult:
    target = db.get(Message, message_id)
    channel_id = target.to_channel_id if target is not None else None
    member_ids = list_channel_member_ids(db, channel_id) if channel_id is not None else []
    deleted = delete_message(db, store, message_id, current_user.id)
    if channel_id is not None:
        await _notify_members(
            gateway,
            authorizer,
            member_ids,
            current_user.id,
            "message-deleted",
            {"id": message_id, "to_channel_id": channel_id},
        )
    return DeleteResult(deleted=deleted)


@router.delete("/channels/{channel_id}/messages", response_model=DeleteResult)
async def remove_conversation(
    channel_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    store: BlobStore = Depends(get_blob_store),
) -> DeleteResult:
    require_membership(db, channel_id, current_user.id)
    deleted = delete_conversation(db, store, channel_id)
    logger.info("Conversation cleared", extra={"channel_id": channel_id, "user_id": current_user.id})
    return DeleteResult(deleted=deleted)


@router.post("/seen", response_model=SeenResult)
async def mark_messages_seen(
    payload: SeenRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    gateway: PubSubGateway = Depends(get_gateway),
    authorizer: SubscriptionAuthorizer = Depends(get_authorizer),
) -> SeenResult:
    updated = mark_seen(db, payload.user_id, current_user.id)
    if updated:
        await gateway.publish(
            authorizer.channel_for(payload.user_id),
            "seen",
            {"viewer_id": current_user.id, "channel_id": find_channel(db, payload.user_id, current_user.id)},
        )
    return SeenResult(updated=updated)


@router.get("/unseen/{user_id}", response_model=UnseenCount)
async def read_unseen_count(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> UnseenCount:
    return UnseenCount(user_id=user_id, unseen=count_unseen(db, user_id, current_user.id))


@router.get("/favorites", response_model=list[ContactItem])
async def read_favorites(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[ContactItem]:
    return [build_contact_item(db, channel_id, current_user.id) for channel_id in list_favorites(db, current_user.id)]


@router.post("/favorites", response_model=FavoriteResult)
async def toggle_favorite(
    payload: FavoriteRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> FavoriteResult:
    require_membership(db, payload.channel_id, current_user.id)
    changed = set_favorite(db, current_user.id, payload.channel_id, payload.star)
    return FavoriteResult(channel_id=payload.channel_id, favorite=payload.star, changed=changed)


@router.get("/attachments/{file_name}")
async def download_attachment(
    file_name: str,
    current_user: User = Depends(get_current_user),
    store: BlobStore = Depends(get_blob_store),
) -> FileResponse:
    path = store.resolve(attachment_path(file_name))
    return FileResponse(path, filename=file_name)


@router.post("/auth", response_model=SubscriptionGrantRead)
async def authorize_subscription(
    payload: SubscriptionAuthRequest,
    identity: Identity = Depends(get_optional_identity),
    authorizer: SubscriptionAuthorizer = Depends(get_authorizer),
) -> SubscriptionGrantRead:
    """Sign a subscription to the caller's own private channel."""

    grant = authorizer.authorize(
        identity,
        authorizer.owner_of(payload.channel_name),
        payload.channel_name,
        payload.socket_id,
    )
    return SubscriptionGrantRead(**grant.as_dict())
