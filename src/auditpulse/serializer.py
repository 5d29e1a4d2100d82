"""
--------------------------------------------------------------------------------
AUTHOR:      AuditPulse Contributors
PURPOSE:     The Report Serializer: renders a store snapshot as the portable
             export document.
--------------------------------------------------------------------------------
"""
import re
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .config import CONFIG
from .models import AuditReport


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def serialize(
    state: AuditReport,
    clock: Optional[Callable[[], datetime]] = None,
    version: str = CONFIG.VERSION,
    tool: str = CONFIG.TOOL_NAME,
) -> Dict[str, Any]:
    """Export document for `state`. Pure given the clock."""
    generated_at = (clock or _now)()
    return {
        "auditScore": state.audit_score,
        "contractHash": state.contract_hash,
        "issueCount": dict(state.issue_count),
        "issues": [issue.to_dict() for issue in state.issues],
        "auditReport": state.raw_text,
        "metadata": {
            "generatedAt": _iso(generated_at),
            "version": version,
            "auditTool": tool,
        },
    }


def _file_safe(value: Optional[str]) -> str:
    # Only one path component: separators and other odd characters become "_"
    return re.sub(r'[^\w.-]', '_', value.strip()) if value and value.strip() else "unknown"


def export_filename(state: AuditReport, clock: Optional[Callable[[], datetime]] = None) -> str:
    """audit-report-<contractHash|unknown>-<epoch-ms>.json"""
    moment = (clock or _now)()
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return CONFIG.EXPORT_PATTERN.format(
        contract_hash=_file_safe(state.contract_hash),
        epoch_ms=int(moment.timestamp() * 1000),
    )


def dumps(document: Dict[str, Any]) -> str:
    return json.dumps(document, indent=2, ensure_ascii=False)
