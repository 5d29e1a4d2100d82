"""
--------------------------------------------------------------------------------
AUTHOR:      AuditPulse Contributors
PURPOSE:     The Score Aggregator: weighted audit score and per-tier counts.
--------------------------------------------------------------------------------
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from .config import CONFIG, DEFAULT_POLICY, ScoringPolicy
from .models import AuditIssue, empty_issue_count

MAX_SCORE = 100


@dataclass(frozen=True)
class Aggregate:
    audit_score: int
    issue_count: Mapping[str, int]


def aggregate(issues: Iterable[AuditIssue], policy: Optional[ScoringPolicy] = None) -> Aggregate:
    """
    Score = 100 minus the summed per-tier penalties, floored at 0.
    Depends only on the multiset of severities, so input order never matters.
    """
    policy = policy or DEFAULT_POLICY
    counts = empty_issue_count()
    for issue in issues:
        counts[issue.severity.value] += 1

    # Deduction Logic: weights are strictly decreasing from critical to unknown
    deduction = sum(policy.weights[tier] * counts[tier.value] for tier in policy.weights)
    score = max(0, MAX_SCORE - deduction)
    return Aggregate(audit_score=score, issue_count=MappingProxyType(counts))


def score_band(score: int) -> str:
    """Dashboard band: 'good' (green), 'fair' (yellow) or 'poor' (red)."""
    if score >= CONFIG.SCORE_BAND_GOOD:
        return "good"
    if score >= CONFIG.SCORE_BAND_FAIR:
        return "fair"
    return "poor"
