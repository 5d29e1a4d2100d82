import json
import os
import subprocess
import sys

import pytest

SCENARIO_A = {"issues": [
    {"title": "Reentrancy", "severity": "critical"},
    {"title": "Unused var", "severity": "low"},
]}


# Helper to run AuditPulse commands
def run_auditpulse(*args, cwd):
    env = os.environ.copy()
    project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

    # Source tree first, then the current interpreter's path so rich & co. resolve
    python_paths = [os.path.join(project_root, "src")]
    python_paths.extend(sys.path)
    env["PYTHONPATH"] = os.pathsep.join([p for p in python_paths if p])

    env["COLUMNS"] = "200"
    env.pop("AUDITPULSE_CONFIG", None)

    return subprocess.run(
        [sys.executable, "-m", "auditpulse.main", *args],
        capture_output=True,
        text=True,
        env=env,
        cwd=str(cwd),
    )


@pytest.fixture
def report_file(tmp_path):
    path = tmp_path / "report.json"
    path.write_text(json.dumps(SCENARIO_A), encoding="utf-8")
    return path


def test_scan_renders_dashboard(tmp_path, report_file):
    result = run_auditpulse("scan", str(report_file), cwd=tmp_path)
    assert result.returncode == 0
    assert "CRITICAL" in result.stdout.upper()
    assert "73%" in result.stdout


def test_scan_rejects_empty_report(tmp_path):
    empty = tmp_path / "empty.txt"
    empty.write_text("", encoding="utf-8")
    result = run_auditpulse("scan", str(empty), cwd=tmp_path)
    assert result.returncode == 1
    assert "Unexpected audit report format" in result.stdout


def test_scan_missing_file(tmp_path):
    result = run_auditpulse("scan", str(tmp_path / "nope.json"), cwd=tmp_path)
    assert result.returncode == 1
    assert "Cannot read report" in result.stdout


def test_fail_on_threshold(tmp_path, report_file):
    """Scenario: CI gate trips when a finding reaches the chosen tier."""
    result = run_auditpulse("scan", str(report_file), "--fail-on", "high", cwd=tmp_path)
    assert result.returncode == 3


def test_plain_text_report_shows_fallback(tmp_path):
    path = tmp_path / "report.txt"
    path.write_text("The contract compiles cleanly.\n\nNo problems were detected by the analyzer.", encoding="utf-8")
    result = run_auditpulse("scan", str(path), "--fail-on", "low", cwd=tmp_path)
    assert result.returncode == 0
    assert "100%" in result.stdout


def test_export_writes_document(tmp_path, report_file):
    out_dir = tmp_path / "exports"
    result = run_auditpulse("export", str(report_file), "-o", str(out_dir), cwd=tmp_path)
    assert result.returncode == 0

    files = list(out_dir.glob("audit-report-unknown-*.json"))
    assert len(files) == 1
    doc = json.loads(files[0].read_text(encoding="utf-8"))
    assert doc["auditScore"] == 73
    assert doc["metadata"]["auditTool"] == "Smart Contract Auditor"


def test_export_uses_contract_hash(tmp_path, report_file):
    run_auditpulse("export", str(report_file), "--contract-hash", "0xabc", cwd=tmp_path)
    assert len(list(tmp_path.glob("audit-report-0xabc-*.json"))) == 1


def test_policy_table(tmp_path):
    result = run_auditpulse("policy", cwd=tmp_path)
    assert result.returncode == 0
    assert "CRITICAL" in result.stdout.upper()
    assert "Penalty" in result.stdout


def test_local_policy_file_changes_score(tmp_path, report_file):
    (tmp_path / ".auditpulse.yaml").write_text("weights:\n  critical: 50\n", encoding="utf-8")
    result = run_auditpulse("scan", str(report_file), cwd=tmp_path)
    assert "48%" in result.stdout


def test_broken_policy_file_fails(tmp_path, report_file):
    (tmp_path / ".auditpulse.yaml").write_text("weights:\n  low: 99\n", encoding="utf-8")
    result = run_auditpulse("scan", str(report_file), cwd=tmp_path)
    assert result.returncode == 1


def test_version_flag(tmp_path):
    result = run_auditpulse("-v", cwd=tmp_path)
    assert result.returncode == 0
    assert "AuditPulse v1.0.0" in result.stdout


def test_unknown_command_is_usage_error(tmp_path):
    result = run_auditpulse("heal", cwd=tmp_path)
    assert result.returncode == 2


def test_scan_shows_bracketed_titles_verbatim(tmp_path):
    path = tmp_path / "report.json"
    path.write_text(json.dumps({"issues": [
        {"title": "Missing check [/] in withdraw", "severity": "high"},
        {"title": "Call to [deprecated] helper", "severity": "low", "source": "[lib]/Old.sol"},
    ]}), encoding="utf-8")
    result = run_auditpulse("scan", str(path), cwd=tmp_path)
    assert result.returncode == 0
    assert "Missing check [/] in withdraw" in result.stdout
    assert "[deprecated]" in result.stdout


def test_export_stays_inside_output_dir(tmp_path):
    path = tmp_path / "report.json"
    path.write_text(json.dumps({"contractHash": "../escaped", **SCENARIO_A}), encoding="utf-8")
    out_dir = tmp_path / "out"
    result = run_auditpulse("export", str(path), "-o", str(out_dir), cwd=tmp_path)
    assert result.returncode == 0
    assert len(list(out_dir.glob("audit-report-*.json"))) == 1
    assert not list(tmp_path.glob("audit-report-*.json"))
