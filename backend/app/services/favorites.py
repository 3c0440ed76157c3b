"""Per-user starred channels."""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models import Favorite


def is_favorite(db: Session, user_id: int, channel_id: str) -> bool:
    stmt = select(Favorite.id).where(
        Favorite.user_id == user_id,
        Favorite.favorite_id == channel_id,
    )
    return db.execute(stmt.limit(1)).first() is not None


def set_favorite(db: Session, user_id: int, channel_id: str, starred: bool) -> bool:
    """Star or unstar a channel; returns whether anything changed."""

    if not starred:
        result = db.execute(
            delete(Favorite)
            .where(Favorite.user_id == user_id, Favorite.favorite_id == channel_id)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return bool(result.rowcount)

    if is_favorite(db, user_id, channel_id):
        return False
    db.add(Favorite(user_id=user_id, favorite_id=channel_id))
    try:
        db.commit()
    except IntegrityError:
        # Another request starred the channel between the check and the insert.
        db.rollback()
        return False
    return True


def list_favorites(db: Session, user_id: int) -> list[str]:
    stmt = (
        select(Favorite.favorite_id)
        .where(Favorite.user_id == user_id)
        .order_by(Favorite.created_at.desc(), Favorite.id.desc())
    )
    return list(db.execute(stmt).scalars())
