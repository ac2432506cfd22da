# rowverify/models/user.py
"""
Users table — one row per identity, holding the running aggregate.
total_meters / upload_count are only ever changed through aggregate_service
as SQL-side deltas, never by assigning a value read into memory.
"""

from sqlalchemy import Column, Integer, String, DateTime, Float
from rowverify.database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)           # identity from the auth layer
    name = Column(String(200))
    is_admin = Column(Integer, default=0, nullable=False)
    total_meters = Column(Float, default=0, nullable=False)
    upload_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime)

    def __repr__(self):
        return f"<User {self.id} total={self.total_meters} uploads={self.upload_count}>"
