# rowverify/services/fusion_service.py
"""
Decision fusion — duplicate check + behavioral analysis + vision oracle → one verdict.

First matching rule wins:
  1. duplicate image                          → rejected        (no review)
  2. oracle call failed                       → pending_review
  3. oracle says not a rowing display         → rejected        (flagged for audit)
  4. oracle reading disagrees by more than 10% → pending_review  (suggested_meters = reading)
  5. confidence ladder: >=85 verified, 60-84 verified only if behavior passed, <60 pending_review

Rule 4 is checked before confidence, so a confident but mismatched reading
still goes to a human.
"""

from dataclasses import dataclass, field
from typing import Callable, Optional
from rowverify.services.behavior_service import BehavioralResult
from rowverify.services.vision_client import VisionResult

VERIFIED = "verified"
PENDING_REVIEW = "pending_review"
REJECTED = "rejected"

CONFIDENCE_HIGH = 85
CONFIDENCE_MEDIUM = 60
METER_TOLERANCE = 0.10    # fraction of the extracted reading


@dataclass
class FusionVerdict:
    status: str
    reason: str
    requires_review: bool
    flags: list[str] = field(default_factory=list)
    suggested_meters: Optional[float] = None


@dataclass
class FusionInput:
    is_duplicate: bool
    behavior: BehavioralResult
    vision: VisionResult
    claimed_meters: float


def _fmt(meters: float) -> str:
    return f"{meters:,.0f}m"


def _duplicate(inp: FusionInput) -> Optional[FusionVerdict]:
    if inp.is_duplicate:
        return FusionVerdict(REJECTED, "Duplicate image detected", False, list(inp.behavior.flags))
    return None


def _oracle_failed(inp: FusionInput) -> Optional[FusionVerdict]:
    if not inp.vision.success:
        return FusionVerdict(PENDING_REVIEW, "AI verification failed", True, list(inp.behavior.flags))
    return None


def _not_a_display(inp: FusionInput) -> Optional[FusionVerdict]:
    if inp.vision.is_plausible_display is False:
        return FusionVerdict(REJECTED, "Image does not appear to be a rowing machine display",
                             True, list(inp.behavior.flags))
    return None


def _reading_mismatch(inp: FusionInput) -> Optional[FusionVerdict]:
    extracted = inp.vision.extracted_value
    if extracted is None or inp.vision.matches_claimed is not False:
        return None
    gap = abs(inp.claimed_meters - extracted)
    if gap <= abs(extracted) * METER_TOLERANCE:
        return None
    return FusionVerdict(
        PENDING_REVIEW,
        f"Claimed {_fmt(inp.claimed_meters)} but display shows {_fmt(extracted)} ({_fmt(gap)} difference)",
        True,
        list(inp.behavior.flags),
        suggested_meters=extracted,
    )


def _confidence_ladder(inp: FusionInput) -> FusionVerdict:
    confidence = inp.vision.confidence
    flags = list(inp.behavior.flags)
    if confidence >= CONFIDENCE_HIGH:
        return FusionVerdict(VERIFIED, f"High confidence verification ({confidence:.0f}%)", False, flags)
    if confidence >= CONFIDENCE_MEDIUM:
        if inp.behavior.passed:
            return FusionVerdict(VERIFIED, f"Medium confidence verification ({confidence:.0f}%)", False, flags)
        return FusionVerdict(PENDING_REVIEW,
                             f"Medium confidence ({confidence:.0f}%) with behavioral flags", True, flags)
    return FusionVerdict(PENDING_REVIEW, f"Low confidence ({confidence:.0f}%)", True, flags)


RULES: tuple[Callable[[FusionInput], Optional[FusionVerdict]], ...] = (
    _duplicate,
    _oracle_failed,
    _not_a_display,
    _reading_mismatch,
)


def fuse_verdict(is_duplicate: bool, behavior: BehavioralResult, vision: VisionResult,
                 claimed_meters: float) -> FusionVerdict:
    inp = FusionInput(is_duplicate, behavior, vision, claimed_meters)
    for rule in RULES:
        verdict = rule(inp)
        if verdict is not None:
            return verdict
    return _confidence_ladder(inp)


def merge_flags(behavior: BehavioralResult, vision: VisionResult) -> list[str]:
    """Behavioral flags then oracle concerns, without repeats."""
    merged = []
    for flag in list(behavior.flags) + list(vision.concerns):
        if flag not in merged:
            merged.append(flag)
    return merged
