"""Tests for admin review resolution and aggregate reconciliation."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from unittest.mock import patch
from datetime import datetime, timedelta
from sqlalchemy.exc import OperationalError
from rowverify.errors import InvalidArgument, NotFound, PermissionDenied, StoreUnavailable, Unauthenticated
from rowverify.models.entry import Entry
from rowverify.models.user import User
from rowverify.services.review_service import get_verification_stats, list_pending_reviews, resolve_review
from conftest import add_entry, add_user


@pytest.fixture
def seeded(db):
    """Admin plus a rower whose 1300m pending entry was provisionally credited."""
    add_user(db, "coach", name="Coach", is_admin=True)
    add_user(db, "rower", name="Rower", total_meters=1300, upload_count=1)
    add_entry(db, "entry-1", "rower", 1300)
    return db


def totals(db, user_id="rower"):
    user = db.get(User, user_id)
    db.refresh(user)
    return user.total_meters, user.upload_count


class TestResolveReview:
    def test_approve_without_adjustment_keeps_total(self, seeded):
        outcome = resolve_review(seeded, "coach", "entry-1", "approve")
        assert outcome.action == "approved"
        assert outcome.adjusted is False
        assert totals(seeded) == (1300, 1)
        entry = seeded.get(Entry, "entry-1")
        assert entry.verification_status == "verified"
        assert entry.reviewed_by == "coach"
        assert entry.meters_adjusted == 0

    def test_approve_with_adjustment_applies_delta(self, seeded):
        outcome = resolve_review(seeded, "coach", "entry-1", "approve", adjusted_meters=1800, note="photo was cropped")
        assert outcome.meters_delta == 500
        assert outcome.adjusted is True
        assert totals(seeded) == (1800, 1)
        entry = seeded.get(Entry, "entry-1")
        assert entry.meters == 1800
        assert entry.original_meters == 1300
        assert entry.meters_adjusted == 1
        assert entry.review_note == "photo was cropped"

    def test_approve_with_lower_adjustment(self, seeded):
        resolve_review(seeded, "coach", "entry-1", "approve", adjusted_meters=1000)
        assert totals(seeded) == (1000, 1)

    def test_reject_reverses_provisional_credit(self, seeded):
        outcome = resolve_review(seeded, "coach", "entry-1", "reject", note="not a rower")
        assert outcome.action == "rejected"
        assert totals(seeded) == (0, 0)
        assert seeded.get(Entry, "entry-1").verification_status == "rejected"

    def test_second_resolution_refused_and_totals_untouched(self, seeded):
        resolve_review(seeded, "coach", "entry-1", "reject")
        with pytest.raises(InvalidArgument):
            resolve_review(seeded, "coach", "entry-1", "reject")
        with pytest.raises(InvalidArgument):
            resolve_review(seeded, "coach", "entry-1", "approve", adjusted_meters=5000)
        assert totals(seeded) == (0, 0)

    def test_aggregate_failure_leaves_no_partial_state(self, seeded):
        with patch("rowverify.services.review_service.apply_aggregate_delta",
                   side_effect=OperationalError("UPDATE", {}, Exception("lock timeout"))):
            with pytest.raises(StoreUnavailable):
                resolve_review(seeded, "coach", "entry-1", "reject")
        assert seeded.get(Entry, "entry-1").verification_status == "pending_review"
        assert totals(seeded) == (1300, 1)

    def test_unknown_entry(self, seeded):
        with pytest.raises(NotFound):
            resolve_review(seeded, "coach", "missing", "approve")

    def test_bad_action(self, seeded):
        with pytest.raises(InvalidArgument):
            resolve_review(seeded, "coach", "entry-1", "delete")

    @pytest.mark.parametrize("bad", [0, -100, "lots"])
    def test_bad_adjustment(self, seeded, bad):
        with pytest.raises(InvalidArgument):
            resolve_review(seeded, "coach", "entry-1", "approve", adjusted_meters=bad)

    def test_non_admin_denied(self, seeded):
        with pytest.raises(PermissionDenied):
            resolve_review(seeded, "rower", "entry-1", "approve")
        assert seeded.get(Entry, "entry-1").verification_status == "pending_review"

    def test_anonymous_denied(self, seeded):
        with pytest.raises(Unauthenticated):
            resolve_review(seeded, None, "entry-1", "approve")


class TestPendingAndStats:
    def test_pending_list_newest_first_with_names(self, seeded):
        add_entry(seeded, "entry-2", "ghost", 2000, date=datetime.now() + timedelta(minutes=5))
        add_entry(seeded, "entry-3", "rower", 900, status="verified")

        pending = list_pending_reviews(seeded, "coach")

        assert [p.id for p in pending] == ["entry-2", "entry-1"]
        assert pending[0].user_name == "Unknown"
        assert pending[1].user_name == "Rower"

    def test_pending_list_capped_at_50(self, seeded):
        for i in range(55):
            add_entry(seeded, f"bulk-{i}", "rower", 1000)
        assert len(list_pending_reviews(seeded, "coach")) == 50

    def test_flagged_rejections_listed_on_request(self, seeded):
        add_entry(seeded, "entry-2", "rower", 2000, status="rejected")
        flagged = seeded.get(Entry, "entry-2")
        flagged.requires_review = 1
        add_entry(seeded, "entry-3", "rower", 3000, status="rejected")
        seeded.commit()

        assert [p.id for p in list_pending_reviews(seeded, "coach")] == ["entry-1"]

        listed = {p.id: p.status for p in list_pending_reviews(seeded, "coach", include_flagged=True)}
        assert listed == {"entry-1": "pending_review", "entry-2": "rejected"}

    def test_reviewer_rejection_clears_audit_flag(self, seeded):
        resolve_review(seeded, "coach", "entry-1", "reject")
        assert list_pending_reviews(seeded, "coach", include_flagged=True) == []

    def test_pending_list_admin_only(self, seeded):
        with pytest.raises(PermissionDenied):
            list_pending_reviews(seeded, "rower")

    def test_stats_by_status(self, seeded):
        add_entry(seeded, "entry-2", "rower", 2000, status="verified")
        add_entry(seeded, "entry-3", "rower", 2000, status="verified")
        add_entry(seeded, "entry-4", "rower", 2000, status="rejected")
        assert get_verification_stats(seeded, "coach") == {"verified": 2, "pending": 1, "rejected": 1}

    def test_stats_admin_only(self, seeded):
        with pytest.raises(PermissionDenied):
            get_verification_stats(seeded, "rower")
