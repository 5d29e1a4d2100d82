"""
--------------------------------------------------------------------------------
AUTHOR:      AuditPulse Contributors
PURPOSE:     Standardized Data Models for AuditPulse audit results.
--------------------------------------------------------------------------------
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional, Tuple

UNTITLED = "Untitled Issue"
UNKNOWN_SOURCE = "Unknown source"


class Severity(str, Enum):
    """The five severity tiers, declared in rank order (worst first)."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    UNKNOWN = "unknown"

    @classmethod
    def ordered(cls) -> Iterator["Severity"]:
        return iter(cls)

    @property
    def rank(self) -> int:
        return list(Severity).index(self)

    def __str__(self) -> str:
        return self.value


def empty_issue_count() -> Dict[str, int]:
    """Zero-filled counter with every tier present, in rank order."""
    return {tier.value: 0 for tier in Severity.ordered()}


@dataclass
class DraftIssue:
    """
    An extracted finding before classification.
    `severity` is still the raw upstream string (or None).
    """
    id: str
    title: str = UNTITLED
    description: str = ""
    severity: Optional[str] = None
    source: str = UNKNOWN_SOURCE
    line: Optional[int] = None
    recommendation: Optional[str] = None


@dataclass(frozen=True)
class AuditIssue:
    """
    Standardized object for all classified findings.
    Ensures consistent reporting across the dashboard and the export file.
    """
    id: str
    title: str
    description: str
    severity: Severity
    source: str = UNKNOWN_SOURCE
    line: Optional[int] = None
    recommendation: Optional[str] = None

    def __post_init__(self):
        # Severity is a closed variant; arbitrary strings never get this far
        if not isinstance(self.severity, Severity):
            raise TypeError(f"severity must be a Severity, got {self.severity!r}")
        if not self.title.strip():
            object.__setattr__(self, "title", UNTITLED)
        if not self.source.strip():
            object.__setattr__(self, "source", UNKNOWN_SOURCE)

    def is_critical(self) -> bool:
        """Returns True for the blocking tiers (critical/high)."""
        return self.severity in (Severity.CRITICAL, Severity.HIGH)

    def to_dict(self) -> dict:
        """Export results to JSON."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "source": self.source,
            "line": self.line,
            "recommendation": self.recommendation,
        }

    def __str__(self):
        location = f"{self.source}:{self.line}" if self.line else self.source
        return f"[{self.severity.value.upper()}] {location}: {self.title}"


@dataclass(frozen=True)
class AuditReport:
    """One complete, internally-consistent snapshot of an ingested report."""
    raw_text: str = ""
    issues: Tuple[AuditIssue, ...] = ()
    audit_score: int = 100
    contract_hash: Optional[str] = None
    issue_count: Mapping[str, int] = field(
        default_factory=lambda: MappingProxyType(empty_issue_count())
    )
    ingested_at: Optional[datetime] = None

    @property
    def has_report(self) -> bool:
        return bool(self.raw_text)

    def raw_preview(self, limit: int = 1000) -> str:
        """First `limit` characters of the raw report for fallback display."""
        if len(self.raw_text) <= limit:
            return self.raw_text
        return self.raw_text[:limit] + "..."

    @property
    def status_message(self) -> Optional[str]:
        if self.issues:
            return None
        if self.has_report:
            return ("The audit completed but no structured issues were found. "
                    "Check the raw audit report preview.")
        return "No audit report available. Please run an audit first."
