"""FastAPI dependencies for the API layer."""

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from app.core.errors import UnauthenticatedError
from app.core.identity import ANONYMOUS, Identity
from app.core.security import read_token_subject
from app.database import get_db
from app.models import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: Session = Depends(get_db),
) -> User:
    """Retrieve the current user from the JWT token."""

    return get_user_from_token(token, db)


def get_user_from_token(token: str, db: Session) -> User:
    """Resolve a user from a JWT token or raise UnauthenticatedError."""

    user = db.get(User, read_token_subject(token))
    if user is None:
        raise UnauthenticatedError("Could not validate credentials")
    return user


def get_optional_identity(
    token: str | None = Depends(optional_oauth2_scheme),
    db: Session = Depends(get_db),
) -> Identity:
    """Identity of the caller, or an anonymous one when no valid token is sent."""

    if not token:
        return ANONYMOUS
    try:
        return Identity.from_user(get_user_from_token(token, db))
    except UnauthenticatedError:
        return ANONYMOUS
