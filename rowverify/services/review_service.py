# rowverify/services/review_service.py
"""
Admin review of contested entries.

  - list_pending_reviews:   newest pending_review entries with the submitter's name,
                            optionally with rejections flagged for audit
  - resolve_review:         approve (optionally with corrected meters) or reject
  - get_verification_stats: entry counts per status

Reconciling the provisional credit from submission time:
  approve → totals += (final - claimed)   only when an adjustment was made
  reject  → totals -= claimed, uploads -= 1
The status flip is a conditional UPDATE on status = 'pending_review' and commits
together with the aggregate delta, so each entry is reconciled exactly once.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from rowverify.auth import require_admin
from rowverify.errors import InvalidArgument, NotFound, StoreUnavailable
from rowverify.models.entry import Entry
from rowverify.models.user import User
from rowverify.services.aggregate_service import apply_aggregate_delta
from rowverify.services.fusion_service import PENDING_REVIEW, REJECTED, VERIFIED
from rowverify.utils.logger import get_logger

logger = get_logger(__name__)

PENDING_LIST_LIMIT = 50
ACTIONS = ("approve", "reject")


@dataclass
class EntrySummary:
    id: str
    user_id: str
    user_name: str
    meters: float
    date: datetime
    image_hash: str
    status: str = PENDING_REVIEW
    confidence: Optional[float] = None
    extracted_meters: Optional[float] = None
    suggested_meters: Optional[float] = None
    display_type: Optional[str] = None
    reason: Optional[str] = None
    reasoning: Optional[str] = None
    flags: list[str] = field(default_factory=list)


@dataclass
class ResolutionOutcome:
    success: bool
    action: str             # approved | rejected
    entry_id: str
    final_meters: float
    meters_delta: float
    adjusted: bool


def list_pending_reviews(db: Session, admin_id: Optional[str],
                         include_flagged: bool = False) -> list[EntrySummary]:
    """
    Newest pending_review entries. With include_flagged, rejections that fusion
    marked requires_review (implausible display) are listed too, read-only.
    """
    require_admin(db, admin_id)
    condition = Entry.verification_status == PENDING_REVIEW
    if include_flagged:
        condition = or_(condition, and_(Entry.verification_status == REJECTED, Entry.requires_review == 1))
    try:
        rows = (
            db.query(Entry, User.name)
            .outerjoin(User, User.id == Entry.user_id)
            .filter(condition)
            .order_by(Entry.date.desc())
            .limit(PENDING_LIST_LIMIT)
            .all()
        )
    except SQLAlchemyError as e:
        raise StoreUnavailable("Entry store unavailable") from e

    return [
        EntrySummary(
            id=entry.id,
            user_id=entry.user_id,
            user_name=name or "Unknown",
            meters=entry.meters,
            date=entry.date,
            image_hash=entry.image_hash,
            status=entry.verification_status,
            confidence=entry.confidence,
            extracted_meters=entry.extracted_meters,
            suggested_meters=entry.suggested_meters,
            display_type=entry.display_type,
            reason=entry.reason,
            reasoning=entry.reasoning,
            flags=list(entry.flags or []),
        )
        for entry, name in rows
    ]


def _validate_adjustment(adjusted_meters) -> Optional[float]:
    if adjusted_meters is None:
        return None
    try:
        value = float(adjusted_meters)
    except (TypeError, ValueError):
        raise InvalidArgument("Adjusted meters must be a number")
    if not math.isfinite(value) or value <= 0:
        raise InvalidArgument("Adjusted meters must be positive")
    return value


def resolve_review(db: Session, admin_id: Optional[str], entry_id: str, action: str,
                   adjusted_meters=None, note: Optional[str] = None) -> ResolutionOutcome:
    admin = require_admin(db, admin_id)
    if not entry_id or action not in ACTIONS:
        raise InvalidArgument("Invalid arguments")
    adjusted = _validate_adjustment(adjusted_meters)

    try:
        entry = db.get(Entry, entry_id)
    except SQLAlchemyError as e:
        raise StoreUnavailable("Entry store unavailable") from e
    if entry is None:
        raise NotFound("Entry not found")
    if entry.verification_status != PENDING_REVIEW:
        raise InvalidArgument(f"Entry is already {entry.verification_status}")

    claimed = entry.meters
    user_id = entry.user_id
    review_fields = {
        Entry.reviewed_by: admin.id,
        Entry.reviewed_at: datetime.utcnow(),
        Entry.review_note: note or None,
        Entry.requires_review: 0,
    }

    if action == "approve":
        final = adjusted if adjusted is not None else claimed
        delta = final - claimed
        values = {**review_fields, Entry.verification_status: VERIFIED, Entry.meters: final,
                  Entry.meters_adjusted: 1 if delta else 0}
    else:
        final = claimed
        delta = -claimed
        values = {**review_fields, Entry.verification_status: REJECTED}

    try:
        touched = (
            db.query(Entry)
            .filter(Entry.id == entry_id, Entry.verification_status == PENDING_REVIEW)
            .update(values, synchronize_session=False)
        )
        if touched != 1:
            db.rollback()
            raise InvalidArgument("Entry was resolved by another reviewer")

        if action == "approve":
            if delta:
                apply_aggregate_delta(db, user_id, meters_delta=delta)
        else:
            apply_aggregate_delta(db, user_id, meters_delta=delta, count_delta=-1)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[REVIEW] Could not resolve {entry_id}: {e}")
        raise StoreUnavailable("Could not save review") from e

    verb = "approved" if action == "approve" else "rejected"
    logger.info(f"[REVIEW] {admin.id} {verb} {entry_id} (user={user_id} claim={claimed}m final={final}m delta={delta:+}m)")
    return ResolutionOutcome(
        success=True,
        action=verb,
        entry_id=entry_id,
        final_meters=final,
        meters_delta=delta,
        adjusted=action == "approve" and delta != 0,
    )


def get_verification_stats(db: Session, admin_id: Optional[str]) -> dict:
    require_admin(db, admin_id)
    try:
        rows = (
            db.query(Entry.verification_status, func.count(Entry.id))
            .group_by(Entry.verification_status)
            .all()
        )
    except SQLAlchemyError as e:
        raise StoreUnavailable("Entry store unavailable") from e

    counts = {status: count for status, count in rows}
    return {
        "verified": counts.get(VERIFIED, 0),
        "pending": counts.get(PENDING_REVIEW, 0),
        "rejected": counts.get(REJECTED, 0),
    }
