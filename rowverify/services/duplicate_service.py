# rowverify/services/duplicate_service.py
"""
Duplicate image detection.
A fingerprint is global: any earlier entry from any user with the same hash counts.
"""

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from rowverify.errors import StoreUnavailable
from rowverify.models.entry import Entry
from rowverify.utils.logger import get_logger

logger = get_logger(__name__)


def is_duplicate_image(db: Session, image_hash: str) -> bool:
    try:
        match = (
            db.query(Entry.id)
            .filter(Entry.image_hash == image_hash)
            .limit(1)
            .first()
        )
    except SQLAlchemyError as e:
        logger.error(f"[DUPLICATE] Lookup failed for {image_hash[:12]}: {e}")
        raise StoreUnavailable("Duplicate check unavailable") from e

    if match is not None:
        logger.warning(f"[DUPLICATE] Hash {image_hash[:12]} already used by entry {match[0]}")
        return True
    return False
