import json
from datetime import datetime, timezone

import pytest

from auditpulse.serializer import dumps, export_filename, serialize
from auditpulse.store import ReportStore

FIXED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def clock():
    return FIXED


def populated_store(**kwargs):
    store = ReportStore(clock=clock)
    store.ingest({"issues": [
        {"id": "C-1", "title": "Reentrancy", "severity": "critical", "source": "Vault.sol", "line": 42},
        {"title": "Unused var", "severity": "low", "recommendation": "Remove it"},
        {"title": "Possible overflow in mint"},
    ]}, **kwargs)
    return store


def test_document_shape():
    state = populated_store(contract_hash="0xabc").get_state()
    doc = serialize(state, clock=clock)

    assert set(doc) == {"auditScore", "contractHash", "issueCount", "issues", "auditReport", "metadata"}
    assert doc["auditScore"] == state.audit_score
    assert doc["contractHash"] == "0xabc"
    assert doc["issueCount"] == {"critical": 1, "high": 1, "medium": 0, "low": 1, "unknown": 0}
    assert doc["auditReport"] == state.raw_text
    assert doc["metadata"] == {
        "generatedAt": "2024-05-01T12:00:00.000Z",
        "version": "1.0.0",
        "auditTool": "Smart Contract Auditor",
    }
    assert doc["issues"][0] == {
        "id": "C-1",
        "title": "Reentrancy",
        "description": "",
        "severity": "critical",
        "source": "Vault.sol",
        "line": 42,
        "recommendation": None,
    }


def test_empty_state_exports_null_hash():
    doc = serialize(ReportStore().get_state(), clock=clock)
    assert doc["contractHash"] is None
    assert doc["issues"] == []
    assert doc["auditScore"] == 100


def test_filename_uses_hash_and_epoch_ms():
    state = populated_store(contract_hash="0xabc").get_state()
    assert export_filename(state, clock=clock) == "audit-report-0xabc-1714564800000.json"


def test_filename_without_hash():
    state = populated_store().get_state()
    assert export_filename(state, clock=clock) == "audit-report-unknown-1714564800000.json"


def test_serialization_is_deterministic_and_pure():
    state = populated_store().get_state()
    before = repr(state)

    assert dumps(serialize(state, clock=clock)) == dumps(serialize(state, clock=clock))
    assert repr(state) == before


def test_export_can_be_reingested():
    """Verify an exported document is itself a valid structured report."""
    original = populated_store().get_state()
    text = dumps(serialize(original, clock=clock))
    json.loads(text)

    restored = ReportStore(clock=clock)
    assert restored.ingest(text)
    state = restored.get_state()

    assert [i.id for i in state.issues] == [i.id for i in original.issues]
    assert [i.severity for i in state.issues] == [i.severity for i in original.issues]
    assert state.audit_score == original.audit_score


@pytest.mark.parametrize("contract_hash,expected", [
    ("../escaped", "audit-report-.._escaped-1714564800000.json"),
    ("a/b\\c d", "audit-report-a_b_c_d-1714564800000.json"),
    ("   ", "audit-report-unknown-1714564800000.json"),
])
def test_filename_is_a_single_path_component(contract_hash, expected):
    state = populated_store(contract_hash=contract_hash).get_state()
    assert export_filename(state, clock=clock) == expected
