# rowverify/routers/entries.py
"""
Submission endpoints.
POST /entries         — submit a photo + claimed meters, returns the verification verdict.
POST /entries/extract — read the meters off a photo without submitting.
"""

import base64
import binascii
from dataclasses import asdict
from typing import Optional
from fastapi import APIRouter, Depends, Header
from sqlalchemy.orm import Session
from rowverify.auth import get_current_identity
from rowverify.database import get_db
from rowverify.errors import InvalidArgument
from rowverify.schemas.entry import EntrySubmit, ExtractRequest, ExtractionOutcomeOut, VerificationOutcomeOut
from rowverify.services.submission_service import extract_meters, submit_entry

router = APIRouter()


def decode_image(image_base64: str) -> bytes:
    """Accepts raw base64 or a data: URL."""
    if image_base64.startswith("data:") and "," in image_base64:
        image_base64 = image_base64.split(",", 1)[1]
    try:
        return base64.b64decode(image_base64, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidArgument("Image data is not valid base64")


@router.post("/entries", response_model=VerificationOutcomeOut, summary="Submit and verify a rowing entry")
async def create_entry(
    body: EntrySubmit,
    user_id: str = Depends(get_current_identity),
    x_user_name: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
):
    """
    Runs duplicate, behavioral and vision checks and returns the fused verdict.
    Non-duplicate entries are stored; non-rejected ones count toward the user's total right away.
    """
    outcome = await submit_entry(db, user_id, decode_image(body.image_base64), body.claimed_meters,
                                 date=body.date, user_name=x_user_name)
    return asdict(outcome)


@router.post("/entries/extract", response_model=ExtractionOutcomeOut, summary="Extract meters from a photo")
async def extract_entry_meters(
    body: ExtractRequest,
    user_id: str = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    """Nothing is stored. Duplicates are still reported so the client can stop early."""
    outcome = await extract_meters(db, user_id, decode_image(body.image_base64))
    return asdict(outcome)
