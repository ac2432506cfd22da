# rowverify/services/aggregate_service.py
"""
Shared aggregate bookkeeping for users.total_meters / users.upload_count.
Used by submission_service (provisional credit) and review_service (reconciliation).

Every change is a single UPDATE with the arithmetic done by the database, so
concurrent submissions and reviews for the same user never overwrite each other.
Callers own the transaction: nothing here commits.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from rowverify.models.user import User
from rowverify.utils.logger import get_logger

logger = get_logger(__name__)


def _clamped(column, delta):
    new_value = column + delta
    return case((new_value < 0, 0), else_=new_value)


def apply_aggregate_delta(db: Session, user_id: str, meters_delta: float = 0, count_delta: int = 0) -> int:
    """Add deltas to a user's totals (floored at zero). Returns rows touched."""
    values = {}
    if meters_delta:
        values[User.total_meters] = _clamped(User.total_meters, meters_delta)
    if count_delta:
        values[User.upload_count] = _clamped(User.upload_count, count_delta)
    if not values:
        return 0

    touched = (
        db.query(User)
        .filter(User.id == user_id)
        .update(values, synchronize_session=False)
    )
    if not touched:
        logger.warning(f"[AGGREGATE] No user row for {user_id} — delta {meters_delta:+}m/{count_delta:+} dropped")
    else:
        logger.info(f"[AGGREGATE] {user_id}: {meters_delta:+}m, {count_delta:+} uploads")
    return touched


def ensure_user(db: Session, user_id: str, name: Optional[str] = None) -> User:
    """Fetch the user row, creating an empty one on first contact."""
    user = db.get(User, user_id)
    if user is not None:
        if name and not user.name:
            user.name = name
        return user

    user = User(id=user_id, name=name, is_admin=0, total_meters=0, upload_count=0,
                created_at=datetime.utcnow())
    db.add(user)
    try:
        db.flush()
    except IntegrityError:
        # another request created it first
        db.rollback()
        user = db.get(User, user_id)
    return user
