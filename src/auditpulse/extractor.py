"""
--------------------------------------------------------------------------------
AUTHOR:      AuditPulse Contributors
PURPOSE:     The Issue Extractor: pulls candidate findings out of normalized
             records and text blocks. Lenient on purpose, the classifier is
             the precision gate.
--------------------------------------------------------------------------------
"""
import re
import hashlib
import logging
from typing import Iterable, List, Optional, Sequence

from .classifier import match_tier, parse_severity
from .config import CONFIG, DEFAULT_POLICY, ScoringPolicy
from .models import DraftIssue, Severity, UNKNOWN_SOURCE, UNTITLED
from .normalizer import FINDING_HEADING, IssueRecord, NormalizedInput, TextBlock

logger = logging.getLogger(__name__)

SOURCE_EXTENSIONS = ("sol", "vy", "rs", "move", "cairo", "fe", "yul", "ts", "js", "py", "go")

SOURCE_REF = re.compile(
    r'(?<![\w/.-])((?:[\w.-]+/)*[\w-]+\.(?:' + "|".join(SOURCE_EXTENSIONS) + r'))(?!\w)(?::(\d+))?',
    re.IGNORECASE,
)
LINE_WORD = re.compile(r'(?<!\w)lines?\s*[:#]?\s*(\d+)', re.IGNORECASE)
# File.sol:17 or File.sol:17:5; bare 12:30:45 timestamps are not locations
COLON_LINE = re.compile(r'\.(?:' + "|".join(SOURCE_EXTENSIONS) + r'):(\d+)\b', re.IGNORECASE)
TIER_WORD = re.compile(r'(?<!\w)(?:critical|high|medium|low)(?!\w)', re.IGNORECASE)

# --- Title decoration ---
MD_PREFIX = re.compile(r'^\s{0,3}#{1,6}\s*')
BULLET_PREFIX = re.compile(r'^\s*(?:[-*+]\s+|\d+[.)]\s+)')
BOLD = re.compile(r'\*\*|__')
ID_LABEL = re.compile(
    r'^\s*(?:\[(?P<a>[CHMLI])-\d{1,3}\]|(?P<b>[CHMLI])-\d{1,3}\b)\s*[:.\-–]?\s*',
    re.IGNORECASE,
)
FINDING_PREFIX = re.compile(
    r'^\s*(?:finding|issue|vulnerability|bug)\s*(?:#?\d+\b\s*[:.)\-–]?|[:.)\-–])\s*',
    re.IGNORECASE,
)
_LABEL_WORDS = r'critical|high|medium|low|unknown|informational|info'
SEVERITY_LABEL = re.compile(
    rf'^\s*(?:[\[(]\s*(?P<a>{_LABEL_WORDS})\s*[\])]|(?P<b>{_LABEL_WORDS})(?:\s+(?:severity|risk))?\s*[:\-–])\s*',
    re.IGNORECASE,
)

# --- Field lines inside a block ---
SEVERITY_LINE = re.compile(
    r'^\s*[-*]?\s*(?:\*\*)?(?:severity|risk)(?:\s+level)?(?:\*\*)?\s*[:=]\s*(.+?)\s*$',
    re.IGNORECASE,
)
SOURCE_LINE = re.compile(
    r'^\s*[-*]?\s*(?:\*\*)?(?:file|source|contract|location)s?(?:\*\*)?\s*[:=]\s*(.+?)\s*$',
    re.IGNORECASE,
)
RECOMMENDATION_LINE = re.compile(
    r'^\s*[-*]?\s*(?:\*\*)?(?:recommendations?|recommended fix|mitigation|fix|remediation)(?:\*\*)?\s*[:\-]\s*(.*)$',
    re.IGNORECASE,
)
DESCRIPTION_PREFIX = re.compile(r'^\s*(?:\*\*)?description(?:\*\*)?\s*:\s*', re.IGNORECASE)
HEX_ADDRESS = re.compile(r'^0x[0-9a-fA-F]+$')

ID_LETTER_TIERS = {
    "C": Severity.CRITICAL, "H": Severity.HIGH, "M": Severity.MEDIUM,
    "L": Severity.LOW, "I": Severity.LOW,
}


def synthesize_id(title: Optional[str], source: Optional[str], line: Optional[int], index: int) -> str:
    """Stable id from (title, source, line); falls back to the block index."""
    if title is None and source is None and line is None:
        return f"issue-{index}"
    key = f"{title or ''}|{source or ''}|{line or ''}"
    return "issue-" + hashlib.sha1(key.encode("utf-8")).hexdigest()[:12]


def _dedupe_ids(drafts: List[DraftIssue]) -> List[DraftIssue]:
    used = set()
    for draft in drafts:
        if draft.id in used:
            n = 2
            while f"{draft.id}-{n}" in used:
                n += 1
            draft.id = f"{draft.id}-{n}"
        used.add(draft.id)
    return drafts


def _truncate(title: str, limit: int) -> str:
    if len(title) <= limit:
        return title
    return title[:limit - 3].rstrip() + "..."


def _strip_decoration(line: str) -> str:
    line = MD_PREFIX.sub('', line)
    line = BULLET_PREFIX.sub('', line)
    return BOLD.sub('', line).strip()


def _split_title(first_line: str):
    """Returns (title, explicit severity or None) for a block's first line."""
    title = _strip_decoration(first_line)
    severity = None

    match = ID_LABEL.match(title)
    if match:
        severity = ID_LETTER_TIERS[(match.group('a') or match.group('b')).upper()].value
        title = title[match.end():]

    match = FINDING_PREFIX.match(title)
    if match and title[match.end():].strip():
        title = title[match.end():]

    match = SEVERITY_LABEL.match(title)
    if match:
        label = match.group('a') or match.group('b')
        if title[match.end():].strip():
            title = title[match.end():]
        severity = severity or label

    return title.strip(" :-–\t") or first_line.strip(), severity


def _opens_finding(first_line: str) -> bool:
    """True when a paragraph starts with its own label (severity, [H-01], Finding N:)."""
    line = _strip_decoration(first_line)
    return bool(ID_LABEL.match(line) or FINDING_HEADING.match(line) or SEVERITY_LABEL.match(line))


def qualifies(block: TextBlock, policy: ScoringPolicy = DEFAULT_POLICY) -> bool:
    """
    The discard threshold for free text. A block is issue-like when it has a
    severity word or keyword, a finding heading/label, or a source-file reference.
    """
    text = block.text
    if _opens_finding(block.lines[0]):
        return True
    if TIER_WORD.search(text) or match_tier(text, policy) is not None:
        return True
    return bool(SOURCE_REF.search(text))


def _find_line(text: str, fallback: Optional[int] = None) -> Optional[int]:
    for pattern in (LINE_WORD, COLON_LINE):
        match = pattern.search(text)
        if match:
            value = int(match.group(1))
            return value if value > 0 else None
    return fallback if fallback and fallback > 0 else None


def _draft_from_blocks(group: Sequence[TextBlock]) -> DraftIssue:
    lines = []
    for i, block in enumerate(group):
        if i:
            lines.append("")
        lines.extend(block.lines)

    title, severity = _split_title(lines[0])
    source = None
    source_line = None
    description: List[str] = []
    recommendation: List[str] = []
    in_recommendation = False

    for line in lines[1:]:
        if in_recommendation:
            recommendation.append(line.strip())
            continue

        match = SEVERITY_LINE.match(line)
        if match and parse_severity(match.group(1)) is not None:
            severity = severity or match.group(1)
            continue

        match = SOURCE_LINE.match(line)
        if match and source is None and not HEX_ADDRESS.match(match.group(1).strip('` ')):
            value = match.group(1).strip('` ')
            ref = SOURCE_REF.search(value)
            source = ref.group(1) if ref else value
            if ref and ref.group(2):
                source_line = int(ref.group(2))
            continue

        match = RECOMMENDATION_LINE.match(line)
        if match:
            in_recommendation = True
            if match.group(1).strip():
                recommendation.append(match.group(1).strip())
            continue

        description.append(DESCRIPTION_PREFIX.sub('', line.rstrip()))

    full_text = "\n".join(lines)
    if source is None:
        ref = SOURCE_REF.search(full_text)
        if ref:
            source = ref.group(1)
            if ref.group(2):
                source_line = int(ref.group(2))
    line_no = _find_line(full_text, source_line)

    title = _truncate(title, CONFIG.TITLE_MAX_LENGTH)
    return DraftIssue(
        id=synthesize_id(title, source, line_no, group[0].index),
        title=title,
        description="\n".join(description).strip(),
        severity=severity,
        source=source or UNKNOWN_SOURCE,
        line=line_no,
        recommendation="\n".join(recommendation).strip() or None,
    )


def _is_field_paragraph(block: TextBlock) -> bool:
    """Paragraph that starts with a field of the finding above (Recommendation:, File:, ...)."""
    first = block.lines[0]
    return any(p.match(first) for p in (RECOMMENDATION_LINE, DESCRIPTION_PREFIX, SEVERITY_LINE, SOURCE_LINE))


def _joins(group: List[TextBlock], block: TextBlock, issue_like: bool) -> bool:
    head = group[0]
    if not head.heading or block.heading or head.section != block.section:
        return False
    if group[-1].index != block.index - 1 or _opens_finding(block.lines[0]):
        return False
    if not issue_like or _is_field_paragraph(block):
        return True
    # Under a labelled finding ([H-01], Finding 1:) the body stays with it;
    # under a plain section heading each issue-like paragraph stands alone
    return _opens_finding(head.lines[0])


def _group_blocks(blocks: Iterable[TextBlock], policy: ScoringPolicy) -> List[List[TextBlock]]:
    """
    Qualifying blocks open a finding. Paragraphs that directly follow a
    heading finding in the same section join it (see `_joins`). A bare
    section heading such as "## High Severity" is dropped once findings of
    its own follow it.
    """
    groups: List[List[TextBlock]] = []
    for block in blocks:
        issue_like = qualifies(block, policy)
        if groups and _joins(groups[-1], block, issue_like):
            groups[-1].append(block)
            continue
        if not issue_like:
            logger.debug(f"Discarded block #{block.index} (line {block.report_line}): no issue markers")
            continue
        last = groups[-1] if groups else None
        if (last is not None and len(last) == 1 and last[0].heading
                and len(last[0].lines) == 1 and not _opens_finding(last[0].lines[0])
                and last[0].section == block.section):
            logger.debug(f"Block #{last[0].index} is a section heading, not a finding")
            groups.pop()
        groups.append([block])
    return groups


def _draft_from_record(record: IssueRecord) -> DraftIssue:
    return DraftIssue(
        id=record.id or synthesize_id(record.title, record.source, record.line, record.index),
        title=record.title or UNTITLED,
        description=record.description,
        severity=record.severity,
        source=record.source or UNKNOWN_SOURCE,
        line=record.line,
        recommendation=record.recommendation,
    )


def extract(normalized: NormalizedInput, policy: Optional[ScoringPolicy] = None) -> List[DraftIssue]:
    """Turn normalized input into draft issues. Never raises."""
    policy = policy or DEFAULT_POLICY
    try:
        if normalized.is_structured:
            drafts = [_draft_from_record(r) for r in normalized.records]
        else:
            drafts = [_draft_from_blocks(g) for g in _group_blocks(normalized.blocks, policy)]
        return _dedupe_ids(drafts)
    except Exception:
        logger.exception("Issue extraction failed; continuing with no issues")
        return []
