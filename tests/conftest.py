"""Shared fixtures. Env is set before any rowverify import so Settings picks it up."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["ANTHROPIC_API_KEY"] = "test-key"
os.environ.pop("API_KEY", None)

import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from rowverify.database import create_tables
from rowverify.models.entry import Entry
from rowverify.models.user import User


@pytest.fixture
def db():
    """Real SQLite session, one fresh in-memory database per test."""
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    create_tables(bind=engine)
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()
    engine.dispose()


def add_user(db, user_id, name=None, is_admin=False, total_meters=0, upload_count=0):
    user = User(id=user_id, name=name, is_admin=1 if is_admin else 0,
                total_meters=total_meters, upload_count=upload_count, created_at=datetime.utcnow())
    db.add(user)
    db.commit()
    return user


def add_entry(db, entry_id, user_id, meters, status="pending_review", date=None, image_hash=None):
    entry = Entry(id=entry_id, user_id=user_id, meters=meters, original_meters=meters,
                  meters_adjusted=0, date=date or datetime.now(),
                  image_hash=image_hash or entry_id.ljust(64, "0"),
                  verification_status=status, requires_review=1 if status == "pending_review" else 0,
                  reason="test", confidence=50, flags=[], created_at=datetime.utcnow())
    db.add(entry)
    db.commit()
    return entry
