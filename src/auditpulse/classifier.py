"""
--------------------------------------------------------------------------------
AUTHOR:      AuditPulse Contributors
PURPOSE:     The Severity Classifier: maps every draft finding onto exactly one
             of the five severity tiers.
--------------------------------------------------------------------------------
"""
import re
from functools import lru_cache
from typing import Optional, Tuple

from .config import DEFAULT_POLICY, ScoringPolicy
from .models import AuditIssue, DraftIssue, Severity, UNKNOWN_SOURCE, UNTITLED

# Upstream spellings accepted as an explicit tier
SEVERITY_ALIASES = {
    "crit": Severity.CRITICAL,
    "med": Severity.MEDIUM,
    "moderate": Severity.MEDIUM,
    "info": Severity.LOW,
    "informational": Severity.LOW,
    "note": Severity.LOW,
}


def parse_severity(value: Optional[str]) -> Optional[Severity]:
    """
    Validate an upstream severity string.
    Accepts 'High', ' CRITICAL ', '[medium]', 'Severity: low', '🔴 HIGH'.
    Returns None for anything that is not a recognised tier.
    """
    if value is None:
        return None
    text = re.sub(r'^\s*severity\s*[:=]\s*', '', str(value), flags=re.IGNORECASE)
    token = re.sub(r'[^a-z]', '', text.lower())
    if not token:
        return None
    try:
        return Severity(token)
    except ValueError:
        return SEVERITY_ALIASES.get(token)


@lru_cache(maxsize=64)
def _keyword_pattern(words: Tuple[str, ...]) -> Optional["re.Pattern"]:
    if not words:
        return None
    alternatives = "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))
    return re.compile(rf'(?<!\w)(?:{alternatives})(?!\w)', re.IGNORECASE)


def match_tier(text: str, policy: ScoringPolicy = DEFAULT_POLICY) -> Optional[Severity]:
    """First tier (critical → low) whose keyword set matches `text`, else None."""
    for tier, words in policy.keyword_table():
        pattern = _keyword_pattern(words)
        if pattern is not None and pattern.search(text):
            return tier
    return None


def classify_text(text: str, policy: ScoringPolicy = DEFAULT_POLICY) -> Severity:
    return match_tier(text, policy) or Severity.UNKNOWN


def classify(draft: DraftIssue, policy: Optional[ScoringPolicy] = None) -> AuditIssue:
    """Assign the final tier. Total: every draft gets exactly one Severity."""
    policy = policy or DEFAULT_POLICY
    severity = parse_severity(draft.severity)
    if severity is None:
        severity = classify_text(f"{draft.title}\n{draft.description}", policy)

    return AuditIssue(
        id=draft.id,
        title=draft.title or UNTITLED,
        description=draft.description or "",
        severity=severity,
        source=draft.source or UNKNOWN_SOURCE,
        line=draft.line,
        recommendation=draft.recommendation,
    )
