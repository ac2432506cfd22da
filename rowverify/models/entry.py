# rowverify/models/entry.py
"""
Entries table — one submitted rowing session.
Written by submission_service, resolved by review_service.
image_hash is indexed because every submission runs a global duplicate lookup on it.
"""

from sqlalchemy import Column, Integer, String, DateTime, Float, Text, JSON
from rowverify.database import Base


class Entry(Base):
    __tablename__ = "entries"

    id = Column(String(36), primary_key=True)                 # uuid4
    user_id = Column(String(128), nullable=False, index=True)
    meters = Column(Float, nullable=False)
    original_meters = Column(Float, nullable=False)           # claim as submitted
    meters_adjusted = Column(Integer, default=0, nullable=False)
    date = Column(DateTime, nullable=False, index=True)       # client-reported
    image_hash = Column(String(64), nullable=False, index=True)

    verification_status = Column(String(20), nullable=False, index=True)  # verified | pending_review | rejected
    requires_review = Column(Integer, default=0, nullable=False)
    reason = Column(Text)
    confidence = Column(Float, default=0)
    extracted_meters = Column(Float)
    suggested_meters = Column(Float)
    display_type = Column(String(100))
    reasoning = Column(Text)
    flags = Column(JSON, default=list)

    reviewed_by = Column(String(128))
    reviewed_at = Column(DateTime)
    review_note = Column(Text)
    created_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<Entry {self.id} user={self.user_id} meters={self.meters} status={self.verification_status}>"
