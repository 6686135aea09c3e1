"""
tests/test_api_routes.py -- Integration tests for the ticket, finding and report routes.

These tests exercise the full stack: FastAPI routing -> portal dependency
injection -> TicketService -> core state machines -> response model
serialization. The module shares one TestClient and one seeded store, so each
test works on its own seed ticket to stay order-independent.

Coverage:
  - Auth: 401 without token, 403 for the wrong portal, manager read-only
  - Tickets: list/search/filter, create, detail (with SLA sweep), update, messages
  - Findings: workflow transitions (409 on invalid), vendor comments, uploads
  - Reports: stats, workload, executive summary, board, calendar

Fixtures used (from conftest.py):
  - api_client: (client, service, analyzer) -- TestClient on the real app
  - headers: headers(portal, member_id=None) -> Authorization header dict
"""

from __future__ import annotations

import pytest

from core.analyzer import RawFinding, RetestVerdict

PDF = ("report.pdf", b"%PDF-1.4 test report", "application/pdf")


@pytest.fixture
def client(api_client):
    client, _service, analyzer = api_client
    analyzer.reset()
    return client


@pytest.fixture
def fake(api_client):
    return api_client[2]


class TestAuthPolicy:
    """Every ticket route requires a session; portals are enforced per route."""

    def test_list_requires_token(self, client) -> None:
        resp = client.get("/api/v1/tickets")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_bad_token_is_rejected(self, client) -> None:
        resp = client.get("/api/v1/tickets", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_vendor_cannot_update_ticket(self, client, headers) -> None:
        resp = client.patch("/api/v1/tickets/REQ-2026-003", json={"status": "Rejected"}, headers=headers("vendor"))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_manager_is_read_only(self, client, headers) -> None:
        assert client.get("/api/v1/tickets", headers=headers("manager")).status_code == 200
        resp = client.post(
            "/api/v1/tickets/REQ-2026-005/messages", json={"text": "hello"}, headers=headers("manager")
        )
        assert resp.status_code == 403


class TestTicketRoutes:
    def test_search(self, client, headers) -> None:
        resp = client.get("/api/v1/tickets", params={"q": "paywallet"}, headers=headers("security", "1"))
        assert resp.status_code == 200
        rows = resp.json()
        assert [r["id"] for r in rows] == ["REQ-2026-002"]
        assert rows[0]["finding_counts"]["critical"] == 1

    def test_my_queue_uses_session_member(self, client, headers) -> None:
        resp = client.get("/api/v1/tickets", params={"mode": "my"}, headers=headers("security", "1"))
        assert {r["id"] for r in resp.json()} == {"REQ-2026-001", "REQ-2026-008"}

    def test_unknown_mode_is_422(self, client, headers) -> None:
        resp = client.get("/api/v1/tickets", params={"mode": "archived"}, headers=headers("manager"))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_vendor_creates_ticket(self, client, headers, fake) -> None:
        body = {
            "app_name": "Checkout Revamp",
            "region": "Latin America",
            "type": "Web",
            "details": {
                "confidentialityRating": "3",
                "integrityRating": "2",
                "availabilityRating": "2",
                "calculatedTier": "Low",
                "businessOwner": "owner@checkout.example.com",
            },
            "ready_date": "2026-11-20",
        }
        resp = client.post("/api/v1/tickets", json=body, headers=headers("vendor"))
        assert resp.status_code == 201, resp.text
        data = resp.json()
        assert data["id"].startswith("REQ-2026-")
        assert data["status"] == "Pending"
        assert data["tier"] == "High"
        assert data["details"]["calculatedTier"] == "High"
        assert data["vendor_email"] == "owner@checkout.example.com"
        assert data["ai_risk_analysis"] == "Fake risk summary for Checkout Revamp."

    def test_create_rejects_bad_cia_rating(self, client, headers) -> None:
        body = {"app_name": "Bad", "region": "EMEA", "type": "API", "details": {"integrityRating": "5"}}
        resp = client.post("/api/v1/tickets", json=body, headers=headers("vendor"))
        assert resp.status_code == 422

    def test_security_cannot_create_ticket(self, client, headers) -> None:
        body = {"app_name": "X", "region": "EMEA", "type": "API"}
        assert client.post("/api/v1/tickets", json=body, headers=headers("security", "1")).status_code == 403

    def test_detail_runs_sla_sweep(self, client, headers) -> None:
        resp = client.get("/api/v1/tickets/REQ-2026-002", headers=headers("vendor"))
        assert resp.status_code == 200
        data = resp.json()
        alerts = [m for m in data["messages"] if m["text"].startswith("[SYSTEM ALERT]")]
        assert len(alerts) == 1
        assert alerts[0]["is_system"] is True
        vuln = data["vulnerabilities"][0]
        assert vuln["sla_reminder_sent"] is True
        assert vuln["sla"]["state"] == "overdue"

    def test_detail_not_found(self, client, headers) -> None:
        resp = client.get("/api/v1/tickets/REQ-2026-999", headers=headers("vendor"))
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"

    def test_security_updates_ticket(self, client, headers) -> None:
        resp = client.patch(
            "/api/v1/tickets/REQ-2026-003",
            json={"status": "In Progress", "assigned_to": "4", "scheduled_date": "2026-10-25"},
            headers=headers("security", "1"),
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["status"] == "In Progress"
        assert data["assigned_to"] == "4"
        assert data["scheduled_date"] == "2026-10-25"
        assert "within 5 business days" in data["messages"][-1]["text"]
        assert data["unread_for"] == "vendor"

    def test_update_unknown_member_is_422(self, client, headers) -> None:
        resp = client.patch(
            "/api/v1/tickets/REQ-2026-005", json={"assigned_to": "99"}, headers=headers("security", "1")
        )
        assert resp.status_code == 422

    def test_update_bad_date_is_422(self, client, headers) -> None:
        resp = client.patch(
            "/api/v1/tickets/REQ-2026-005", json={"scheduled_date": "25/10/2026"}, headers=headers("security", "1")
        )
        assert resp.status_code == 422

    def test_post_message(self, client, headers) -> None:
        resp = client.post(
            "/api/v1/tickets/REQ-2026-009/messages", json={"text": "Build 42 deployed."}, headers=headers("vendor")
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["messages"][-1]["sender"] == "vendor"
        assert data["unread_for"] == "security"

        blank = client.post("/api/v1/tickets/REQ-2026-009/messages", json={"text": "  "}, headers=headers("vendor"))
        assert len(blank.json()["messages"]) == len(data["messages"])

    def test_discussion_summary(self, client, headers) -> None:
        resp = client.get("/api/v1/tickets/REQ-2026-010/discussion/summary", headers=headers("manager"))
        assert resp.status_code == 200
        assert resp.json()["summary"] == "No messages to summarize."

    def test_board_and_calendar(self, client, headers) -> None:
        board = client.get("/api/v1/tickets/board", headers=headers("manager")).json()
        assert list(board["lanes"]) == ["Pending", "In Progress", "Scheduled", "Completed"]
        assert "REQ-2026-007" in {r["id"] for r in board["lanes"]["Pending"]}

        cal = client.get("/api/v1/tickets/calendar", params={"day": "2026-07-22"}, headers=headers("manager"))
        assert [r["id"] for r in cal.json()] == ["REQ-2026-007"]


class TestFindingRoutes:
    def test_finding_workflow(self, client, headers) -> None:
        url = "/api/v1/tickets/REQ-2026-007/vulnerabilities/v26-8/status"

        resp = client.patch(url, json={"status": "Ready for Retest"}, headers=headers("vendor"))
        assert resp.status_code == 200, resp.text
        assert resp.json()["notification"]["kind"] == "retest"

        resp = client.patch(url, json={"status": "Remediated"}, headers=headers("vendor"))
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "invalid_transition"

        resp = client.patch(url, json={"status": "Remediated"}, headers=headers("security", "2"))
        assert resp.status_code == 200
        data = resp.json()
        assert data["notification"]["title"] == "Finding Remediated"
        assert data["ticket"]["vulnerabilities"][0]["status"] == "Remediated"

    def test_unknown_finding_is_404(self, client, headers) -> None:
        resp = client.patch(
            "/api/v1/tickets/REQ-2026-007/vulnerabilities/nope/status",
            json={"status": "Ready for Retest"},
            headers=headers("vendor"),
        )
        assert resp.status_code == 404
        assert "Finding" in resp.json()["error"]["message"]

    def test_vendor_fix_comment(self, client, headers) -> None:
        url = "/api/v1/tickets/REQ-2026-006/vulnerabilities/v26-7/comments"
        resp = client.post(url, json={"text": "Headers added in nginx."}, headers=headers("vendor"))
        assert resp.status_code == 200
        comments = resp.json()["vulnerabilities"][0]["vendor_fix_comments"]
        assert comments[-1]["text"] == "Headers added in nginx."

        assert client.post(url, json={"text": "x"}, headers=headers("security", "1")).status_code == 403

    def test_final_report_upload(self, client, headers, fake) -> None:
        fake.findings = [
            RawFinding(title="Prompt Leakage", severity="High"),
            RawFinding(title="Verbose Errors", severity="Low"),
        ]
        resp = client.post(
            "/api/v1/tickets/REQ-2026-004/report", files={"file": PDF}, headers=headers("security", "3")
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["count"] == 2
        assert data["analysis_error"] is None
        ticket = data["ticket"]
        assert ticket["status"] == "Completed"
        assert ticket["final_report"]["file_name"] == "report.pdf"
        assert ticket["messages"][-1]["text"].startswith("[SYSTEM NOTICE] Hi Team")
        assert ticket["finding_counts"]["open"] == 3  # seed v26-5 plus two new

    def test_upload_analysis_error_is_reported(self, client, headers, fake) -> None:
        fake.error = "quota exceeded"
        resp = client.post(
            "/api/v1/tickets/REQ-2026-010/report", files={"file": PDF}, headers=headers("security", "3")
        )
        assert resp.status_code == 200
        assert resp.json()["analysis_error"] == "quota exceeded"
        assert resp.json()["count"] == 0

    def test_retest_upload(self, client, headers, fake) -> None:
        fake.verdicts = [RetestVerdict(title="improper authorization", status="Remediated", comment="Checks added")]
        resp = client.post(
            "/api/v1/tickets/REQ-2026-003/retest",
            files={"file": ("retest.png", b"\x89PNG", "image/png")},
            headers=headers("security", "1"),
        )
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["count"] == 1
        vuln = data["ticket"]["vulnerabilities"][0]
        assert vuln["status"] == "Remediated"
        assert vuln["vendor_fix_comments"][-1]["text"] == "[SYSTEM RETEST]: Checks added"

    def test_upload_rejects_bad_files(self, client, headers) -> None:
        url = "/api/v1/tickets/REQ-2026-001/report"
        resp = client.post(url, files={"file": ("notes.txt", b"hi", "text/plain")}, headers=headers("security", "1"))
        assert resp.status_code == 415
        resp = client.post(url, files={"file": ("empty.pdf", b"", "application/pdf")}, headers=headers("security", "1"))
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "empty_file"

    def test_vendor_cannot_upload(self, client, headers) -> None:
        resp = client.post("/api/v1/tickets/REQ-2026-001/report", files={"file": PDF}, headers=headers("vendor"))
        assert resp.status_code == 403


class TestReportRoutes:
    def test_year_stats(self, client, headers) -> None:
        resp = client.get("/api/v1/reports/stats", params={"year": 2026}, headers=headers("manager"))
        assert resp.status_code == 200
        data = resp.json()
        assert data["period"] == "year"
        assert data["window_start"] == "2026-01-01"
        assert data["window_end"] == "2026-12-31"
        assert data["total"] >= 10
        assert set(data["open_by_region"]) == {"Global", "EMEA", "North America", "APAC", "Latin America"}

    def test_weekly_stats_window(self, client, headers) -> None:
        data = client.get("/api/v1/reports/stats", params={"period": "weekly"}, headers=headers("manager")).json()
        assert data["window_start"] == "2026-10-12"
        assert data["window_end"] is None

    def test_workload(self, client, headers) -> None:
        rows = client.get("/api/v1/reports/workload", headers=headers("manager")).json()
        assert [r["member_id"] for r in rows] == ["1", "2", "3", "4", "5"]

    def test_executive_summary(self, client, headers) -> None:
        resp = client.get("/api/v1/reports/executive-summary", params={"year": 2025}, headers=headers("manager"))
        assert resp.json()["summary"] == "Fake executive summary: 0 request(s)."
