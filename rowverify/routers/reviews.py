# rowverify/routers/reviews.py
"""Admin review endpoints — pending queue, approve/reject, status counts."""

from dataclasses import asdict
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from rowverify.auth import get_current_identity
from rowverify.database import get_db
from rowverify.schemas.review import EntrySummaryOut, ResolutionOut, ReviewDecision, VerificationStatsOut
from rowverify.services.review_service import get_verification_stats, list_pending_reviews, resolve_review

router = APIRouter()


@router.get("/reviews/pending", response_model=list[EntrySummaryOut], summary="Entries awaiting review")
def get_pending_reviews(include_flagged: bool = False, user_id: str = Depends(get_current_identity),
                        db: Session = Depends(get_db)):
    """Up to 50 newest pending_review entries. include_flagged=true adds rejections flagged for audit."""
    return [asdict(s) for s in list_pending_reviews(db, user_id, include_flagged=include_flagged)]


@router.post("/reviews/{entry_id}", response_model=ResolutionOut, summary="Approve or reject an entry")
def review_entry(entry_id: str, body: ReviewDecision,
                 user_id: str = Depends(get_current_identity), db: Session = Depends(get_db)):
    outcome = resolve_review(db, user_id, entry_id, body.action,
                             adjusted_meters=body.adjusted_meters, note=body.review_note)
    return asdict(outcome)


@router.get("/reviews/stats", response_model=VerificationStatsOut, summary="Entry counts by status")
def verification_stats(user_id: str = Depends(get_current_identity), db: Session = Depends(get_db)):
    return get_verification_stats(db, user_id)
