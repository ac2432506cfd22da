# rowverify/schemas/review.py
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class EntrySummaryOut(BaseModel):
    id: str
    user_id: str
    user_name: str
    meters: float
    date: datetime
    image_hash: str
    status: str
    confidence: Optional[float]
    extracted_meters: Optional[float]
    suggested_meters: Optional[float]
    display_type: Optional[str]
    reason: Optional[str]
    reasoning: Optional[str]
    flags: list[str]

    class Config:
        from_attributes = True


class ReviewDecision(BaseModel):
    action: str                         # approve | reject
    adjusted_meters: Optional[float] = None
    review_note: Optional[str] = None


class ResolutionOut(BaseModel):
    success: bool
    action: str                         # approved | rejected
    entry_id: str
    final_meters: float
    meters_delta: float
    adjusted: bool

    class Config:
        from_attributes = True


class VerificationStatsOut(BaseModel):
    verified: int
    pending: int
    rejected: int
