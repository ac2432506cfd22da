"""Unit tests for the decision fusion rule ladder."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from rowverify.services.behavior_service import BehavioralResult
from rowverify.services.fusion_service import (
    PENDING_REVIEW, REJECTED, VERIFIED, fuse_verdict, merge_flags,
)
from rowverify.services.vision_client import VisionResult, failed_result

PASSING = BehavioralResult(passed=True, flags=[])
FLAGGED = BehavioralResult(passed=False, flags=["Unusually large session: 60,000m exceeds 50,000m"])


def vision(confidence=90, extracted=5000, matches=True, display=True, concerns=None):
    return VisionResult(success=True, is_plausible_display=display, display_type="Concept2 PM5",
                        extracted_value=extracted, matches_claimed=matches,
                        confidence=confidence, concerns=concerns or [])


class TestRulePrecedence:
    @pytest.mark.parametrize("oracle", [vision(), failed_result("timeout"), vision(display=False),
                                        vision(extracted=1000, matches=False)])
    @pytest.mark.parametrize("behavior", [PASSING, FLAGGED])
    def test_duplicate_always_rejected_without_review(self, oracle, behavior):
        verdict = fuse_verdict(True, behavior, oracle, 5000)
        assert verdict.status == REJECTED
        assert verdict.requires_review is False
        assert "Duplicate" in verdict.reason

    def test_oracle_failure_goes_to_review(self):
        verdict = fuse_verdict(False, PASSING, failed_result("API error: 500"), 5000)
        assert verdict.status == PENDING_REVIEW
        assert verdict.requires_review is True
        assert verdict.reason == "AI verification failed"

    def test_not_a_display_rejected_with_review(self):
        verdict = fuse_verdict(False, PASSING, vision(display=False, confidence=95), 5000)
        assert verdict.status == REJECTED
        assert verdict.requires_review is True

    def test_unknown_display_flag_falls_through(self):
        verdict = fuse_verdict(False, PASSING, vision(display=None, confidence=90), 5000)
        assert verdict.status == VERIFIED


class TestReadingMismatch:
    def test_claim_30_percent_over_reading_escalates(self):
        verdict = fuse_verdict(False, PASSING, vision(extracted=1000, matches=False, confidence=95), 1300)
        assert verdict.status == PENDING_REVIEW
        assert verdict.suggested_meters == 1000
        assert "1,000m" in verdict.reason and "300m" in verdict.reason

    def test_mismatch_beats_high_confidence(self):
        verdict = fuse_verdict(False, PASSING, vision(extracted=4000, matches=False, confidence=99), 5000)
        assert verdict.status == PENDING_REVIEW

    def test_gap_within_tolerance_uses_confidence(self):
        # 1080 vs 1000 is 8%
        verdict = fuse_verdict(False, PASSING, vision(extracted=1000, matches=False, confidence=90), 1080)
        assert verdict.status == VERIFIED
        assert verdict.suggested_meters is None

    def test_gap_exactly_ten_percent_not_escalated(self):
        verdict = fuse_verdict(False, PASSING, vision(extracted=1000, matches=False, confidence=90), 1100)
        assert verdict.status == VERIFIED

    def test_oracle_saying_match_is_trusted(self):
        verdict = fuse_verdict(False, PASSING, vision(extracted=1000, matches=True, confidence=90), 1300)
        assert verdict.status == VERIFIED

    def test_no_reading_skips_mismatch(self):
        verdict = fuse_verdict(False, PASSING, vision(extracted=None, matches=False, confidence=70), 1300)
        assert verdict.status == VERIFIED


class TestConfidenceLadder:
    def test_85_with_passing_behavior_verified(self):
        assert fuse_verdict(False, PASSING, vision(confidence=85), 5000).status == VERIFIED

    def test_high_confidence_verifies_despite_flags(self):
        verdict = fuse_verdict(False, FLAGGED, vision(confidence=85), 5000)
        assert verdict.status == VERIFIED
        assert verdict.flags == FLAGGED.flags

    def test_84_with_failing_behavior_pending(self):
        verdict = fuse_verdict(False, FLAGGED, vision(confidence=84), 5000)
        assert verdict.status == PENDING_REVIEW
        assert verdict.requires_review is True

    def test_60_with_passing_behavior_verified(self):
        assert fuse_verdict(False, PASSING, vision(confidence=60), 5000).status == VERIFIED

    def test_59_pending_even_if_behavior_passed(self):
        verdict = fuse_verdict(False, PASSING, vision(confidence=59), 5000)
        assert verdict.status == PENDING_REVIEW
        assert verdict.requires_review is True


class TestMergeFlags:
    def test_behavior_flags_then_concerns(self):
        merged = merge_flags(FLAGGED, vision(concerns=["glare on screen"]))
        assert merged == FLAGGED.flags + ["glare on screen"]

    def test_failed_oracle_concern_included(self):
        assert merge_flags(PASSING, failed_result("timeout")) == ["AI verification failed"]

    def test_repeats_dropped(self):
        behavior = BehavioralResult(passed=False, flags=["x"])
        assert merge_flags(behavior, vision(concerns=["x", "y"])) == ["x", "y"]
