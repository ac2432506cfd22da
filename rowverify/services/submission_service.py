# rowverify/services/submission_service.py
"""
New submission pipeline.

How it works:
  - hash the image
  - start the vision oracle call, then run the duplicate lookup and the
    behavioral history query (one after the other, on a worker thread, same
    session) while the oracle is in flight
  - join all three and hand them to fusion_service
  - persist the entry and, unless it was rejected, credit the user's totals
    in the same commit (provisional credit; review_service reconciles later)

Duplicates are answered without writing anything, so retries of the same
bytes can never be counted twice.
"""

import asyncio
import contextlib
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from rowverify.auth import require_identity
from rowverify.errors import InternalError, InvalidArgument, StoreUnavailable
from rowverify.models.entry import Entry
from rowverify.services.aggregate_service import apply_aggregate_delta, ensure_user
from rowverify.services.behavior_service import analyze_behavior
from rowverify.services.duplicate_service import is_duplicate_image
from rowverify.services.fusion_service import REJECTED, fuse_verdict, merge_flags
from rowverify.services.hasher import compute_image_hash
from rowverify.services.vision_client import verify_with_vision
from rowverify.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class VerificationOutcome:
    status: str
    reason: str
    requires_review: bool
    image_hash: str
    confidence: float = 0
    extracted_meters: Optional[float] = None
    display_type: Optional[str] = None
    flags: list[str] = field(default_factory=list)
    suggested_meters: Optional[float] = None
    reasoning: Optional[str] = None
    entry_id: Optional[str] = None


@dataclass
class ExtractionOutcome:
    status: str                 # extracted | duplicate | pending_review
    image_hash: str
    extracted_meters: Optional[float] = None
    confidence: float = 0
    display_type: Optional[str] = None
    is_rowing_display: Optional[bool] = None
    reason: Optional[str] = None
    reasoning: Optional[str] = None


def validate_image(image_bytes: Optional[bytes]) -> bytes:
    if not image_bytes:
        raise InvalidArgument("Missing image data")
    return image_bytes


def validate_claim(claimed_meters) -> float:
    if claimed_meters is None or isinstance(claimed_meters, bool):
        raise InvalidArgument("Missing claimed meters")
    try:
        meters = float(claimed_meters)
    except (TypeError, ValueError):
        raise InvalidArgument("Claimed meters must be a number")
    if not math.isfinite(meters) or meters <= 0:
        raise InvalidArgument("Claimed meters must be positive")
    return meters


async def _join_oracle(oracle_task: asyncio.Task, checks):
    """Run the store checks on a worker thread while the oracle task is in flight, then join it."""
    try:
        results = await asyncio.to_thread(checks)
    except BaseException:
        oracle_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await oracle_task
        raise
    return results, await oracle_task


async def submit_entry(db: Session, user_id: Optional[str], image_bytes: Optional[bytes], claimed_meters,
                       date: Optional[datetime] = None, user_name: Optional[str] = None,
                       client: Optional[httpx.AsyncClient] = None) -> VerificationOutcome:
    user_id = require_identity(user_id)
    image_bytes = validate_image(image_bytes)
    claimed_meters = validate_claim(claimed_meters)

    image_hash = compute_image_hash(image_bytes)
    logger.info(f"[SUBMIT] user={user_id} claim={claimed_meters}m hash={image_hash[:12]} ({len(image_bytes)} bytes)")

    oracle_task = asyncio.create_task(verify_with_vision(image_bytes, claimed_meters, client=client))
    (is_duplicate, behavior), vision = await _join_oracle(
        oracle_task,
        lambda: (is_duplicate_image(db, image_hash), analyze_behavior(db, user_id, claimed_meters)),
    )

    try:
        verdict = fuse_verdict(is_duplicate, behavior, vision, claimed_meters)
    except Exception as e:
        logger.error(f"[SUBMIT] Fusion failed for {user_id}: {e}", exc_info=True)
        raise InternalError("Verification failed") from e

    outcome = VerificationOutcome(
        status=verdict.status,
        reason=verdict.reason,
        requires_review=verdict.requires_review,
        image_hash=image_hash,
        confidence=vision.confidence,
        extracted_meters=vision.extracted_value,
        display_type=vision.display_type,
        flags=merge_flags(behavior, vision),
        suggested_meters=verdict.suggested_meters,
        reasoning=vision.reasoning,
    )
    logger.info(f"[SUBMIT] user={user_id} → {outcome.status} ({outcome.reason}) flags={outcome.flags}")

    if is_duplicate:
        return outcome

    outcome.entry_id = _persist_entry(db, user_id, user_name, claimed_meters, date, outcome)
    return outcome


def _persist_entry(db: Session, user_id: str, user_name: Optional[str], claimed_meters: float,
                   date: Optional[datetime], outcome: VerificationOutcome) -> str:
    entry_id = str(uuid.uuid4())
    try:
        ensure_user(db, user_id, user_name)
        db.add(Entry(
            id=entry_id,
            user_id=user_id,
            meters=claimed_meters,
            original_meters=claimed_meters,
            meters_adjusted=0,
            date=date or datetime.now(),
            image_hash=outcome.image_hash,
            verification_status=outcome.status,
            requires_review=1 if outcome.requires_review else 0,
            reason=outcome.reason,
            confidence=outcome.confidence,
            extracted_meters=outcome.extracted_meters,
            suggested_meters=outcome.suggested_meters,
            display_type=outcome.display_type,
            reasoning=outcome.reasoning,
            flags=list(outcome.flags),
            created_at=datetime.utcnow(),
        ))
        if outcome.status != REJECTED:
            apply_aggregate_delta(db, user_id, meters_delta=claimed_meters, count_delta=1)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[SUBMIT] Could not store entry for {user_id}: {e}")
        raise StoreUnavailable("Could not save entry") from e
    return entry_id


async def extract_meters(db: Session, user_id: Optional[str], image_bytes: Optional[bytes],
                         client: Optional[httpx.AsyncClient] = None) -> ExtractionOutcome:
    """Read the distance off a photo without submitting anything."""
    require_identity(user_id)
    image_bytes = validate_image(image_bytes)
    image_hash = compute_image_hash(image_bytes)

    oracle_task = asyncio.create_task(verify_with_vision(image_bytes, None, client=client))
    is_duplicate, vision = await _join_oracle(oracle_task, lambda: is_duplicate_image(db, image_hash))

    if is_duplicate:
        return ExtractionOutcome(status="duplicate", image_hash=image_hash,
                                 reason="This image has already been used")
    if not vision.success:
        return ExtractionOutcome(status="pending_review", image_hash=image_hash,
                                 reason=vision.error or "AI verification failed")
    return ExtractionOutcome(
        status="extracted",
        image_hash=image_hash,
        extracted_meters=vision.extracted_value,
        confidence=vision.confidence,
        display_type=vision.display_type,
        is_rowing_display=vision.is_plausible_display,
        reasoning=vision.reasoning,
    )
