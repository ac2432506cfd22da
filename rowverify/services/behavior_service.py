# rowverify/services/behavior_service.py
"""
Behavioral pattern analysis over a user's recent history.

Three fixed heuristics, all evaluated on every call:
  - daily volume:  10+ entries already logged today
  - plausibility:  single claim above 50,000 m
  - deviation:     claim more than 200% above the recent average (needs 5+ entries)

The result only feeds fusion_service; it never rejects an entry by itself.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from rowverify.errors import StoreUnavailable
from rowverify.models.entry import Entry
from rowverify.utils.logger import get_logger

logger = get_logger(__name__)

HISTORY_LIMIT = 50
DAILY_ENTRY_LIMIT = 10
MAX_SESSION_METERS = 50_000
MIN_HISTORY_FOR_AVERAGE = 5
MAX_INCREASE_PERCENT = 200


@dataclass
class BehavioralResult:
    passed: bool
    flags: list[str] = field(default_factory=list)


def fetch_recent_entries(db: Session, user_id: str, limit: int = HISTORY_LIMIT) -> list:
    """Most recent entries for one user, newest first by client date."""
    try:
        return (
            db.query(Entry)
            .filter(Entry.user_id == user_id)
            .order_by(Entry.date.desc())
            .limit(limit)
            .all()
        )
    except SQLAlchemyError as e:
        logger.error(f"[BEHAVIOR] History query failed for {user_id}: {e}")
        raise StoreUnavailable("Behavioral history unavailable") from e


def evaluate_history(recent: list, claimed_meters: float, now: Optional[datetime] = None) -> BehavioralResult:
    """Score a claim against an already-fetched history. Pure."""
    now = now or datetime.now()
    flags = []

    today = now.date()
    today_count = sum(1 for e in recent if e.date is not None and e.date.date() == today)
    if today_count >= DAILY_ENTRY_LIMIT:
        flags.append(f"High daily volume: {today_count} entries already logged today")

    if claimed_meters > MAX_SESSION_METERS:
        flags.append(f"Unusually large session: {claimed_meters:,.0f}m exceeds {MAX_SESSION_METERS:,}m")

    if len(recent) >= MIN_HISTORY_FOR_AVERAGE:
        average = sum((e.meters or 0) for e in recent) / len(recent)
        # zero average has no meaningful ratio
        if average > 0:
            increase = (claimed_meters - average) / average * 100
            if increase > MAX_INCREASE_PERCENT:
                flags.append(
                    f"Claim is {increase:.0f}% above recent average of {average:,.0f}m"
                )

    return BehavioralResult(passed=not flags, flags=flags)


def analyze_behavior(db: Session, user_id: str, claimed_meters: float,
                     now: Optional[datetime] = None) -> BehavioralResult:
    recent = fetch_recent_entries(db, user_id)
    result = evaluate_history(recent, claimed_meters, now)
    if not result.passed:
        logger.info(f"[BEHAVIOR] {user_id} flagged: {result.flags}")
    return result
