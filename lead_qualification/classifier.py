"""
Tier classification from a total score.
"""

from enum import Enum

from .question_schema import ScoreThresholds


class LeadTier(str, Enum):
    """Lead tiers, best first."""
    HOT = "HOT"                    # total >= hot - immediate follow-up
    WARM = "WARM"                  # total >= warm - standard follow-up
    COLD = "COLD"                  # total >= cold - nurture campaign
    DISQUALIFIED = "DISQUALIFIED"  # below every cut point


def effective_thresholds(thresholds: ScoreThresholds) -> ScoreThresholds:
    """
    Interpret thresholds permissively.

    Each lower cut point is clamped so it never exceeds the one above it,
    which turns any admin-entered triple into a usable ladder.
    """
    warm = min(thresholds.warm, thresholds.hot)
    cold = min(thresholds.cold, warm)
    return ScoreThresholds(hot=thresholds.hot, warm=warm, cold=cold)


def classify(total: int, thresholds: ScoreThresholds) -> LeadTier:
    """Map a total score onto a tier. Never raises."""
    t = effective_thresholds(thresholds)
    if total >= t.hot:
        return LeadTier.HOT
    if total >= t.warm:
        return LeadTier.WARM
    if total >= t.cold:
        return LeadTier.COLD
    return LeadTier.DISQUALIFIED
