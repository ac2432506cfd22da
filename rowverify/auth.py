# rowverify/auth.py
"""
Identity helpers.
Authentication itself happens upstream: the gateway forwards the caller's
identity in X-User-Id (and optionally a display name in X-User-Name).
Admin capability is the users.is_admin flag.
"""

from typing import Optional
from fastapi import Header
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from rowverify.errors import PermissionDenied, StoreUnavailable, Unauthenticated
from rowverify.models.user import User


def get_current_identity(x_user_id: Optional[str] = Header(default=None)) -> str:
    """FastAPI dependency — the authenticated caller id."""
    if not x_user_id or not x_user_id.strip():
        raise Unauthenticated("Must be logged in")
    return x_user_id.strip()


def require_identity(user_id: Optional[str]) -> str:
    if not user_id:
        raise Unauthenticated("Must be logged in")
    return user_id


def require_admin(db: Session, user_id: Optional[str]) -> User:
    user_id = require_identity(user_id)
    try:
        user = db.get(User, user_id)
    except SQLAlchemyError as e:
        raise StoreUnavailable("User store unavailable") from e
    if user is None or not user.is_admin:
        raise PermissionDenied("Admin access required")
    return user
