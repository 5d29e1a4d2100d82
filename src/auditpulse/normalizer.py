"""
--------------------------------------------------------------------------------
AUTHOR:      AuditPulse Contributors
PURPOSE:     The Ingest Normalizer: turns a raw engine report (JSON or free
             text) into issue records or paragraph blocks.
--------------------------------------------------------------------------------
"""
import re
import json
import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from .errors import MalformedInputError

logger = logging.getLogger(__name__)

ISSUE_ARRAY_KEYS = ("issues", "findings", "vulnerabilities")
REPORT_TEXT_KEYS = ("auditReport", "report", "output", "text")
CONTRACT_HASH_KEYS = ("contractHash", "contract_hash", "contractAddress", "contract_address")
SCORE_KEYS = ("score", "auditScore")

FIELD_ALIASES = {
    "id": ("id", "issueId", "issue_id"),
    "title": ("title", "name", "type", "check"),
    "description": ("description", "details", "message", "msg"),
    "severity": ("severity", "impact", "level"),
    "source": ("source", "file", "contract", "location", "filename"),
    "line": ("line", "lineNumber", "line_number", "lineno"),
    "recommendation": ("recommendation", "fix", "mitigation", "remediation"),
}

# --- Block boundary markers (shared with the extractor) ---
MARKDOWN_HEADING = re.compile(r'^\s{0,3}#{1,6}\s+\S')
LABEL_HEADING = re.compile(r'^\s*(?:\[[CHMLI]-\d{1,3}\]|[CHMLI]-\d{1,3}\b)', re.IGNORECASE)
FINDING_HEADING = re.compile(
    r'^\s*(?:\d+[.)]\s*)?(?:finding|issue|vulnerability|bug)\s*(?:#?\d+\b\s*[:.)\-]?|[:.)\-])',
    re.IGNORECASE,
)
HORIZONTAL_RULE = re.compile(r'^\s*(?:-{3,}|={3,}|\*{3,}|_{3,})\s*$')
TEXT_CONTRACT_HASH = re.compile(
    r'^\s*contract(?:[ \t]+(?:hash|address))?[ \t]*[:=][ \t]*(0x[0-9a-fA-F]{6,}|[0-9a-fA-F]{16,})\b',
    re.IGNORECASE | re.MULTILINE,
)


def is_heading(line: str) -> bool:
    """True when a line opens a new finding/section."""
    return bool(
        MARKDOWN_HEADING.match(line)
        or LABEL_HEADING.match(line)
        or FINDING_HEADING.match(line)
    )


@dataclass(frozen=True)
class IssueRecord:
    """One structurally validated entry of an upstream `issues` array."""
    index: int
    id: Optional[str] = None
    title: Optional[str] = None
    description: str = ""
    severity: Optional[str] = None
    source: Optional[str] = None
    line: Optional[int] = None
    recommendation: Optional[str] = None


@dataclass(frozen=True)
class TextBlock:
    """A paragraph-like chunk of a free-text report."""
    index: int
    offset: int
    report_line: int
    text: str
    heading: bool = False
    section: int = 0

    @property
    def lines(self) -> List[str]:
        return self.text.splitlines()


@dataclass(frozen=True)
class NormalizedInput:
    kind: str                                  # "structured" | "text"
    raw_text: str
    records: Tuple[IssueRecord, ...] = ()
    blocks: Tuple[TextBlock, ...] = ()
    contract_hash: Optional[str] = None
    reported_score: Optional[int] = None

    @property
    def is_structured(self) -> bool:
        return self.kind == "structured"


# ═══════════════════════════════════════════════════════════════
# JSON REPAIR
# ═══════════════════════════════════════════════════════════════
def sanitize_json_string(json_str: str) -> str:
    """
    Repair the usual damage seen in engine/LLM JSON output.

    Removes control characters and a UTF-8 BOM, unwraps ```json fences,
    trims prose around the outermost object/array and drops trailing commas.
    """
    if not json_str:
        return "{}"

    json_str = json_str.lstrip('\ufeff')
    # Keep \t \n \r, they are legal whitespace between tokens
    json_str = re.sub(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]', '', json_str)

    fence = re.search(r'```(?:json)?\s*([\[{][\s\S]*?[\]}])\s*```', json_str)
    if fence:
        json_str = fence.group(1)
    else:
        starts = [i for i in (json_str.find('{'), json_str.find('[')) if i >= 0]
        if starts:
            start = min(starts)
            closer = '}' if json_str[start] == '{' else ']'
            end = json_str.rfind(closer)
            if end > start:
                json_str = json_str[start:end + 1]

    json_str = re.sub(r',\s*([}\]])', r'\1', json_str)
    return json_str.strip()


def _looks_like_json(text: str) -> bool:
    stripped = text.lstrip('\ufeff').lstrip()
    return stripped[:1] in ('{', '[') or '```json' in text


def _has_issue_shape(payload: Any) -> bool:
    if isinstance(payload, list):
        return any(isinstance(entry, Mapping) for entry in payload)
    if isinstance(payload, Mapping):
        return any(k in payload for k in ISSUE_ARRAY_KEYS + REPORT_TEXT_KEYS)
    return False


def _decode_json(text: str) -> Optional[Any]:
    """Best-effort JSON decode. Returns None when the text is not JSON."""
    try:
        payload = json.loads(text)
        if isinstance(payload, (Mapping, list)):
            return payload
    except json.JSONDecodeError:
        pass

    repaired = sanitize_json_string(text)
    try:
        payload = json.loads(repaired)
    except json.JSONDecodeError as e:
        logger.debug(f"Report is not JSON after repair ({e.msg}); treating as free text")
        return None

    # A repaired fragment only counts if it actually looks like a report
    if _has_issue_shape(payload):
        logger.info("Recovered malformed JSON report after repair")
        return payload
    return None


# ═══════════════════════════════════════════════════════════════
# FIELD COERCION
# ═══════════════════════════════════════════════════════════════
def _text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (Mapping, list)):
        value = json.dumps(value, ensure_ascii=False, default=str)
    value = str(value).strip()
    return value or None


def _positive_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float):
        value = int(value) if value.is_integer() else None
    elif isinstance(value, str):
        match = re.search(r'[+-]?\d+', value)
        value = int(match.group(0)) if match else None
    if isinstance(value, int) and value > 0:
        return value
    return None


def _first(entry: Mapping, keys: Sequence[str]) -> Any:
    for key in keys:
        value = entry.get(key)
        if value is not None and value != "":
            return value
    return None


def _coerce_record(index: int, entry: Mapping) -> IssueRecord:
    return IssueRecord(
        index=index,
        id=_text(_first(entry, FIELD_ALIASES["id"])),
        title=_text(_first(entry, FIELD_ALIASES["title"])),
        description=_text(_first(entry, FIELD_ALIASES["description"])) or "",
        severity=_text(_first(entry, FIELD_ALIASES["severity"])),
        source=_text(_first(entry, FIELD_ALIASES["source"])),
        line=_positive_int(_first(entry, FIELD_ALIASES["line"])),
        recommendation=_text(_first(entry, FIELD_ALIASES["recommendation"])),
    )


# ═══════════════════════════════════════════════════════════════
# BLOCK SPLITTING
# ═══════════════════════════════════════════════════════════════
def split_blocks(text: str) -> Tuple[TextBlock, ...]:
    """Split free text at blank lines, horizontal rules and heading markers."""
    blocks: List[TextBlock] = []
    current: List[str] = []
    start_offset = start_line = 0
    current_heading = False
    section = 0

    def flush():
        nonlocal current
        if current:
            blocks.append(TextBlock(
                index=len(blocks), offset=start_offset, report_line=start_line,
                text="\n".join(current), heading=current_heading, section=section,
            ))
        current = []

    offset = 0
    for lineno, raw_line in enumerate(text.splitlines(keepends=True), 1):
        line = raw_line.rstrip('\r\n')
        if not line.strip() or HORIZONTAL_RULE.match(line):
            flush()
        elif is_heading(line):
            flush()
            section += 1
            current, current_heading = [line.rstrip()], True
            start_offset, start_line = offset, lineno
        else:
            if not current:
                current_heading = False
                start_offset, start_line = offset, lineno
            current.append(line.rstrip())
        offset += len(raw_line)
    flush()
    return tuple(blocks)


def _normalize_text(text: str, raw_text: str, contract_hash: Optional[str] = None) -> NormalizedInput:
    if contract_hash is None:
        match = TEXT_CONTRACT_HASH.search(text)
        contract_hash = match.group(1) if match else None
    return NormalizedInput(
        kind="text", raw_text=raw_text, blocks=split_blocks(text),
        contract_hash=contract_hash,
    )


def _normalize_structured(payload: Union[Mapping, list], raw_text: str) -> NormalizedInput:
    if isinstance(payload, list):
        entries, meta = payload, {}
    else:
        meta = payload
        entries = None
        for key in ISSUE_ARRAY_KEYS:
            if key in payload:
                if isinstance(payload[key], list):
                    entries = payload[key]
                    break
                logger.warning(f"Ignoring '{key}': expected an array, got {type(payload[key]).__name__}")

    contract_hash = _text(_first(meta, CONTRACT_HASH_KEYS))
    reported_score = _positive_int(_first(meta, SCORE_KEYS))
    if reported_score is None and _first(meta, SCORE_KEYS) == 0:
        reported_score = 0

    if entries is None:
        report_text = _text(_first(meta, REPORT_TEXT_KEYS))
        if report_text:
            return _normalize_text(report_text, raw_text, contract_hash)
        logger.info("Structured report carries no issue array")
        entries = []

    records = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            logger.warning(f"Rejected issue entry #{index}: expected an object, got {type(entry).__name__}")
            continue
        records.append(_coerce_record(index, entry))

    return NormalizedInput(
        kind="structured", raw_text=raw_text, records=tuple(records),
        contract_hash=contract_hash, reported_score=reported_score,
    )


def normalize(raw: Union[str, Mapping, list]) -> NormalizedInput:
    """
    Detect the payload shape and normalize it.

    Raises MalformedInputError only for empty input or an unsupported type;
    messy text is always returned best-effort.
    """
    if isinstance(raw, str):
        if not raw.strip():
            raise MalformedInputError("the report is empty")
        if _looks_like_json(raw):
            payload = _decode_json(raw)
            if payload is not None:
                if not payload:
                    raise MalformedInputError("the JSON report is empty")
                return _normalize_structured(payload, raw)
        return _normalize_text(raw, raw)

    if isinstance(raw, (Mapping, list, tuple)):
        if not raw:
            raise MalformedInputError("the JSON report is empty")
        payload = list(raw) if isinstance(raw, tuple) else raw
        try:
            raw_text = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
        except (TypeError, ValueError) as e:
            raise MalformedInputError(f"the report object is not JSON-serializable ({e})") from e
        return _normalize_structured(payload, raw_text)

    raise MalformedInputError(f"expected text or a JSON object, got {type(raw).__name__}")
