"""Explicit identity context passed into chat operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from app.models import User


@dataclass(frozen=True, slots=True)
class Identity:
    """The actor a request runs on behalf of."""

    id: int | None
    name: str | None = None
    email: str | None = None

    @property
    def authenticated(self) -> bool:
        return self.id is not None

    @classmethod
    def from_user(cls, user: "User") -> "Identity":
        return cls(id=user.id, name=user.name, email=user.email)


ANONYMOUS = Identity(id=None)
