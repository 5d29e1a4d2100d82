"""
--------------------------------------------------------------------------------
AUTHOR:      AuditPulse Contributors
PURPOSE:     AuditPulse: smart-contract audit report parsing, classification
             and scoring.
--------------------------------------------------------------------------------
"""
from .config import CONFIG
from .errors import AuditPulseError, IngestInProgressError, MalformedInputError, PolicyError
from .models import AuditIssue, AuditReport, Severity
from .serializer import serialize
from .store import ReportStore

__version__ = CONFIG.VERSION

__all__ = [
    "AuditIssue", "AuditPulseError", "AuditReport", "IngestInProgressError",
    "MalformedInputError", "PolicyError", "ReportStore", "Severity", "serialize",
]
