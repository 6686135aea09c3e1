"""Tests for the main.py command-line interface.

main._build_service is patched to return the conftest service, so commands
run against the seeded shared-memory store with the pinned clock. Output is
captured with capsys; stdout is not a TTY there, so no ANSI codes appear.
"""

import json
from unittest.mock import patch

import pytest

import main
from core.analyzer import RawFinding
from core.formatter import strip_ansi


@pytest.fixture
def run(service, capsys):
    """Run the CLI with argv and return (exit_code, stdout)."""

    def _run(*argv: str):
        with patch("main._build_service", return_value=service):
            code = main.main(["--no-color", *argv])
        return code, strip_ansi(capsys.readouterr().out)

    return _run


def test_no_command_prints_help(capsys) -> None:
    assert main.main([]) == 0
    assert "appsec-portal" in capsys.readouterr().out


def test_list_with_query(run) -> None:
    code, out = run("list", "--query", "paywallet")
    assert code == 0
    assert "REQ-2026-002" in out
    assert "REQ-2026-001" not in out


def test_list_json(run) -> None:
    code, out = run("list", "--mode", "expedited", "--json")
    assert code == 0
    assert [t["id"] for t in json.loads(out)] == ["REQ-2026-001", "REQ-2026-004", "REQ-2026-007"]


def test_show_runs_sweep(run) -> None:
    code, out = run("show", "REQ-2026-007")
    assert code == 0
    assert "SQL Injection in Tracking" in out
    assert "[SYSTEM ALERT]" in out


def test_show_unknown_ticket(run) -> None:
    code, out = run("show", "REQ-2026-999")
    assert code == 1
    assert "No ticket REQ-2026-999" in out


def test_sweep(run) -> None:
    code, out = run("sweep")
    assert code == 0
    assert "5 reminder(s) posted" in out


def test_stats_json(run) -> None:
    code, out = run("stats", "--year", "2026", "--json")
    assert code == 0
    data = json.loads(out)
    assert data["total"] == 10
    assert data["remediation_rate"] == 36


def test_stats_terminal(run) -> None:
    code, out = run("stats", "--period", "weekly")
    assert code == 0
    assert "WEEKLY STATUS REPORT" in out


def test_ingest_report_file(run, analyzer, tmp_path) -> None:
    analyzer.findings = [RawFinding(title="Open Redirect", severity="Medium")]
    report = tmp_path / "final.pdf"
    report.write_bytes(b"%PDF-1.4")
    code, out = run("ingest", "REQ-2026-008", str(report))
    assert code == 0
    assert "1 finding(s) extracted" in out
    assert "Completed" in out


def test_ingest_missing_file(run, tmp_path) -> None:
    code, out = run("retest", "REQ-2026-002", str(tmp_path / "missing.pdf"))
    assert code == 1
    assert "is not a readable file" in out
