# rowverify/schemas/entry.py
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class EntrySubmit(BaseModel):
    image_base64: str
    claimed_meters: float
    date: Optional[datetime] = None     # client clock; server time when omitted


class ExtractRequest(BaseModel):
    image_base64: str


class VerificationOutcomeOut(BaseModel):
    status: str                  # verified | pending_review | rejected
    reason: str
    requires_review: bool
    image_hash: str
    confidence: float
    extracted_meters: Optional[float]
    display_type: Optional[str]
    flags: list[str]
    suggested_meters: Optional[float]
    reasoning: Optional[str]
    entry_id: Optional[str]

    class Config:
        from_attributes = True


class ExtractionOutcomeOut(BaseModel):
    status: str                  # extracted | duplicate | pending_review
    image_hash: str
    extracted_meters: Optional[float]
    confidence: float
    display_type: Optional[str]
    is_rowing_display: Optional[bool]
    reason: Optional[str]
    reasoning: Optional[str]

    class Config:
        from_attributes = True
