import json

import pytest

from auditpulse.errors import MalformedInputError
from auditpulse.normalizer import normalize, sanitize_json_string, split_blocks


@pytest.mark.parametrize("raw", ["", "   \n\t ", {}, []])
def test_empty_input_is_malformed(raw):
    """Scenario: nothing to ingest must fail loudly, not produce an empty report."""
    with pytest.raises(MalformedInputError):
        normalize(raw)


@pytest.mark.parametrize("raw", [None, 42, 3.5, b"bytes report"])
def test_unsupported_types_are_malformed(raw):
    with pytest.raises(MalformedInputError) as exc:
        normalize(raw)
    assert "Run an audit first" in str(exc.value)


def test_json_string_is_structured():
    raw = json.dumps({
        "issues": [
            {"id": "A-1", "title": "Reentrancy", "severity": "critical", "line": "42"},
            {"title": "Bad line", "line": -3},
        ],
        "contractHash": "0xfeed",
        "score": 73,
    })
    norm = normalize(raw)

    assert norm.is_structured
    assert norm.raw_text == raw
    assert norm.contract_hash == "0xfeed"
    assert norm.reported_score == 73
    first, second = norm.records
    assert (first.id, first.title, first.severity, first.line) == ("A-1", "Reentrancy", "critical", 42)
    assert second.line is None
    assert second.description == ""
    assert second.source is None


def test_non_object_entries_are_rejected_not_fatal():
    """Verify that junk entries are dropped while valid ones survive."""
    norm = normalize({"issues": ["just a string", 7, {"title": "Kept"}, None]})
    assert [r.title for r in norm.records] == ["Kept"]
    assert norm.records[0].index == 2


def test_object_payload_keeps_json_dump_as_raw_text():
    payload = {"issues": [{"title": "Unused var", "severity": "low"}]}
    norm = normalize(payload)
    assert json.loads(norm.raw_text) == payload


def test_top_level_array_and_field_aliases():
    norm = normalize([{
        "name": "Oracle manipulation",
        "details": "Spot price used",
        "file": "contracts/Pool.sol",
        "lineNumber": 7,
        "mitigation": "Use a TWAP",
        "impact": "High",
    }])
    record = norm.records[0]
    assert record.title == "Oracle manipulation"
    assert record.description == "Spot price used"
    assert record.source == "contracts/Pool.sol"
    assert record.line == 7
    assert record.recommendation == "Use a TWAP"
    assert record.severity == "High"


def test_findings_alias_for_issue_array():
    norm = normalize({"findings": [{"title": "Gas"}]})
    assert len(norm.records) == 1


def test_object_with_report_text_is_normalized_as_text():
    norm = normalize({"auditReport": "Critical: Reentrancy in Vault.sol", "contractHash": "0xabc123"})
    assert norm.kind == "text"
    assert norm.contract_hash == "0xabc123"
    assert norm.blocks[0].text == "Critical: Reentrancy in Vault.sol"


def test_object_without_issues_yields_no_records():
    norm = normalize({"status": "done"})
    assert norm.is_structured
    assert norm.records == ()


def test_malformed_json_is_repaired():
    """Scenario: engine wraps JSON in a code fence and leaves trailing commas."""
    raw = 'Here you go:\n```json\n{"issues": [{"title": "Overflow", "severity": "high",},],}\n```'
    norm = normalize(raw)
    assert norm.is_structured
    assert norm.records[0].title == "Overflow"
    assert norm.raw_text == raw


def test_bracketed_text_is_not_mistaken_for_json():
    norm = normalize("[H-01] Reentrancy in Vault.sol")
    assert norm.kind == "text"
    assert len(norm.blocks) == 1


def test_unrecoverable_json_falls_back_to_text():
    norm = normalize('{"issues": [ this is not json')
    assert norm.kind == "text"


def test_sanitize_strips_control_characters_and_prose():
    cleaned = sanitize_json_string('noise \x01{"a": [1, 2,]}\x02 trailing')
    assert json.loads(cleaned) == {"a": [1, 2]}


def test_text_blocks_carry_offsets_headings_and_sections():
    text = (
        "Intro paragraph.\n"
        "\n"
        "## [H-01] Reentrancy\n"
        "Severity: High\n"
        "\n"
        "Body text.\n"
        "---\n"
        "Tail"
    )
    blocks = split_blocks(text)

    assert [b.text for b in blocks] == [
        "Intro paragraph.",
        "## [H-01] Reentrancy\nSeverity: High",
        "Body text.",
        "Tail",
    ]
    assert [b.report_line for b in blocks] == [1, 3, 6, 8]
    assert [b.heading for b in blocks] == [False, True, False, False]
    assert [b.section for b in blocks] == [0, 1, 1, 1]
    assert text[blocks[1].offset:].startswith("## [H-01]")
    assert text[blocks[2].offset:].startswith("Body text.")


def test_heading_marker_splits_without_blank_line():
    blocks = split_blocks("Finding 1: first\nmore detail\nFinding 2: second")
    assert [b.text for b in blocks] == ["Finding 1: first\nmore detail", "Finding 2: second"]
    assert all(b.heading for b in blocks)


def test_contract_hash_from_text():
    norm = normalize("Contract: 0xABCDEF123456\n\nHigh: something")
    assert norm.contract_hash == "0xABCDEF123456"


@pytest.mark.parametrize("value,expected", [("-5", None), ("0", None), ("+7", 7), ("12", 12), ("line 9", 9)])
def test_string_line_numbers_keep_their_sign(value, expected):
    norm = normalize({"issues": [{"title": "x", "line": value}]})
    assert norm.records[0].line == expected


def test_unserializable_objects_are_malformed():
    payload = {"issues": [{"title": "loop"}]}
    payload["self"] = payload
    with pytest.raises(MalformedInputError):
        normalize(payload)
    with pytest.raises(MalformedInputError):
        normalize({("tuple", "key"): 1, "issues": []})
