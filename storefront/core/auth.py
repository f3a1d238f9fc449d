# storefront/core/auth.py
import uuid
from typing import Any

from fastapi import Depends, Header
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from storefront.core.config import get_settings
from storefront.core.errors import AdminRequired, AuthenticationFailed, IdentityRequired
from storefront.core.identity import CartIdentity, SessionIdentity, UserIdentity
from storefront.database import get_session
from storefront.models.user import User

settings = get_settings()

# A missing header is not an error here: cart routes also serve guests
bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> dict[str, Any]:
    """Verify signature and expiry of a bearer token and return its claims."""
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            options={"verify_aud": False},
        )
    except JWTError:
        raise AuthenticationFailed("Invalid or expired token")


def _claims_to_identity(payload: dict[str, Any]) -> tuple[uuid.UUID, str]:
    sub = payload.get("sub")
    email = payload.get("email")
    if not sub or not email:
        raise AuthenticationFailed("Token missing sub/email")
    try:
        return uuid.UUID(sub), email
    except ValueError:
        raise AuthenticationFailed("Invalid sub in token")


def _provision_user(session: Session, user_id: uuid.UUID, email: str) -> User:
    user = User(
        id=user_id,
        email=email,
        name=email.split("@", 1)[0][:50],
        role="user",
    )
    session.add(user)
    try:
        session.commit()
    except IntegrityError:
        # Email already belongs to another subject
        session.rollback()
        raise AuthenticationFailed("Token subject does not match the account for this email")
    session.refresh(user)
    return user


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    session: Session = Depends(get_session),
) -> User | None:
    """
    Resolve the bearer token to a User row, or None when no token was sent.

    First-time subjects get a row with role "user"; admins are promoted by hand.
    """
    if credentials is None:
        return None

    user_id, email = _claims_to_identity(decode_access_token(credentials.credentials))

    user = session.exec(select(User).where(User.id == user_id)).first()
    if user is None:
        user = _provision_user(session, user_id, email)
    return user


def require_auth(user: User | None = Depends(get_current_user)) -> User:
    if user is None:
        raise AuthenticationFailed()
    return user


def require_admin(user: User = Depends(require_auth)) -> User:
    if user.role != "admin":
        raise AdminRequired()
    return user


def get_cart_identity(
    user: User | None = Depends(get_current_user),
    x_session_id: str | None = Header(default=None, max_length=128),
) -> CartIdentity:
    """
    Pick the identity that owns the caller's cart.

    An authenticated user always wins over a guest session header; the
    guest cart is only folded in through POST /cart/merge.

    Raises:
        IdentityRequired: neither a token nor X-Session-Id was sent.
    """
    if user is not None:
        return UserIdentity(user_id=user.id)
    if x_session_id and x_session_id.strip():
        return SessionIdentity(session_id=x_session_id.strip())
    raise IdentityRequired()
