"""
Lead summary for the admin dashboard.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

from .classifier import LeadTier
from .models import DEFAULT_ABANDONMENT_WINDOW, CompletionState, LeadRecord


@dataclass
class LeadSummary:
    total: int = 0
    by_tier: Dict[str, int] = field(default_factory=dict)
    by_status: Dict[str, int] = field(default_factory=dict)
    by_source: Dict[str, int] = field(default_factory=dict)
    by_completion: Dict[str, int] = field(default_factory=dict)
    created_last_day: int = 0
    created_last_7_days: int = 0
    completion_rate: float = 0.0
    average_completed_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "by_tier": self.by_tier,
            "by_status": self.by_status,
            "by_source": self.by_source,
            "by_completion": self.by_completion,
            "created_last_day": self.created_last_day,
            "created_last_7_days": self.created_last_7_days,
            "completion_rate": round(self.completion_rate, 4),
            "average_completed_score": round(self.average_completed_score, 2),
        }


def summarize_leads(
    leads: Iterable[LeadRecord],
    now: Optional[datetime] = None,
    window: timedelta = DEFAULT_ABANDONMENT_WINDOW,
) -> LeadSummary:
    """Aggregate counts; completion states are derived as of `now`."""
    now = now or datetime.utcnow()
    leads = list(leads)

    tiers: Counter = Counter({tier.value: 0 for tier in LeadTier})
    completion: Counter = Counter({state.value: 0 for state in CompletionState})
    statuses: Counter = Counter()
    sources: Counter = Counter()
    completed_scores = []
    last_day = last_week = 0

    for lead in leads:
        if lead.classification:
            tiers[lead.classification.value] += 1
        statuses[lead.status] += 1
        sources[lead.source] += 1

        state = lead.completion_state(now, window)
        completion[state.value] += 1
        if state == CompletionState.COMPLETE:
            completed_scores.append(lead.score_total)

        if lead.created_at:
            age = now - lead.created_at
            if age <= timedelta(days=1):
                last_day += 1
            if age <= timedelta(days=7):
                last_week += 1

    total = len(leads)
    return LeadSummary(
        total=total,
        by_tier=dict(tiers),
        by_status=dict(statuses),
        by_source=dict(sources),
        by_completion=dict(completion),
        created_last_day=last_day,
        created_last_7_days=last_week,
        completion_rate=(len(completed_scores) / total) if total else 0.0,
        average_completed_score=(
            sum(completed_scores) / len(completed_scores) if completed_scores else 0.0
        ),
    )
