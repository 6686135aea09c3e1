"""Unit tests for core/sla.py -- remediation deadlines and SLA reminders.

Covers:
- Severity -> deadline mapping (Critical=7, High=14, Medium=60, Low/Info=90)
- classify_sla() states and labels, including untracked findings
- sweep_sla_reminders(): one reminder per qualifying Open finding, idempotent,
  Ready for Retest findings skipped, input ticket never mutated
"""

from datetime import date

import pytest

from core.models import SYSTEM_ALERT_PREFIX, Ticket, Vulnerability
from core.sla import classify_sla, compute_due_date, days_until, sweep_sla_reminders

TODAY = date(2026, 10, 19)
NOW = "2026-10-19T09:00:00+00:00"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _vuln(vid: str, due: str, status: str = "Open", sent: bool = False) -> Vulnerability:
    return Vulnerability(
        id=vid,
        title=f"Finding {vid}",
        severity="High",
        status=status,
        due_date=due,
        sla_reminder_sent=sent,
    )


def _ticket(*vulns: Vulnerability) -> Ticket:
    return Ticket(
        id="REQ-2026-100",
        app_name="SLA Test App",
        region="Global",
        type="Web",
        tier="High",
        vulnerabilities=list(vulns),
    )


# ---------------------------------------------------------------------------
# Deadlines
# ---------------------------------------------------------------------------


class TestComputeDueDate:
    @pytest.mark.parametrize(
        "severity, expected",
        [
            ("Critical", date(2026, 10, 26)),
            ("High", date(2026, 11, 2)),
            ("Medium", date(2026, 12, 18)),
            ("Low", date(2027, 1, 17)),
            ("Info", date(2027, 1, 17)),
        ],
    )
    def test_severity_windows(self, severity: str, expected: date) -> None:
        assert compute_due_date(severity, TODAY) == expected

    def test_unknown_severity_uses_longest_window(self) -> None:
        assert compute_due_date("Whatever", TODAY) == date(2027, 1, 17)


class TestClassifySla:
    def test_remediated_is_not_tracked(self) -> None:
        assert classify_sla("2026-01-01", "Remediated", TODAY) is None

    def test_missing_or_bad_due_date_is_not_tracked(self) -> None:
        assert classify_sla(None, "Open", TODAY) is None
        assert classify_sla("not-a-date", "Open", TODAY) is None

    def test_overdue(self) -> None:
        sla = classify_sla("2026-10-16", "Open", TODAY)
        assert sla.state == "overdue"
        assert sla.days == -3
        assert sla.label == "Overdue by 3d"
        assert sla.is_overdue

    def test_due_today(self) -> None:
        sla = classify_sla("2026-10-19", "Ready for Retest", TODAY)
        assert sla.state == "due_today"
        assert sla.label == "Due Today"

    def test_due_soon_within_three_days(self) -> None:
        assert classify_sla("2026-10-22", "Open", TODAY).state == "due_soon"
        assert classify_sla("2026-10-23", "Open", TODAY).state == "tracked"

    def test_days_until_accepts_timestamps(self) -> None:
        assert days_until("2026-10-21T00:00:00Z", TODAY) == 2


# ---------------------------------------------------------------------------
# Reminder sweep
# ---------------------------------------------------------------------------


class TestSweepSlaReminders:
    def test_reminds_overdue_and_near_deadline_findings(self) -> None:
        ticket = _ticket(
            _vuln("a", "2026-10-21"),  # due in 2 days -> reminder
            _vuln("b", "2026-10-22"),  # due in 3 days -> no reminder
            _vuln("c", "2026-10-01"),  # overdue -> reminder
        )
        updated, emitted = sweep_sla_reminders(ticket, TODAY, NOW)

        assert emitted == 2
        assert [v.sla_reminder_sent for v in updated.vulnerabilities] == [True, False, True]
        texts = [m.text for m in updated.messages]
        assert len(texts) == 2
        assert all(t.startswith(SYSTEM_ALERT_PREFIX) for t in texts)
        assert "DUE IN 2 DAYS" in texts[0]
        assert "OVERDUE" in texts[1]
        assert all(m.sender == "security" and m.timestamp == NOW for m in updated.messages)

    def test_due_today_wording(self) -> None:
        updated, _ = sweep_sla_reminders(_ticket(_vuln("a", "2026-10-19")), TODAY, NOW)
        assert "DUE TODAY" in updated.messages[0].text
        assert "(Deadline: 2026-10-19)" in updated.messages[0].text

    def test_sweep_is_idempotent(self) -> None:
        once, emitted = sweep_sla_reminders(_ticket(_vuln("a", "2026-10-01")), TODAY, NOW)
        assert emitted == 1
        twice, emitted_again = sweep_sla_reminders(once, TODAY, NOW)
        assert emitted_again == 0
        assert twice is once
        assert len(twice.messages) == 1

    def test_skips_non_open_and_already_reminded(self) -> None:
        ticket = _ticket(
            _vuln("a", "2026-10-01", status="Ready for Retest"),
            _vuln("b", "2026-10-01", status="Remediated"),
            _vuln("c", "2026-10-01", sent=True),
        )
        updated, emitted = sweep_sla_reminders(ticket, TODAY, NOW)
        assert emitted == 0
        assert updated is ticket

    def test_input_ticket_not_mutated(self) -> None:
        ticket = _ticket(_vuln("a", "2026-10-01"))
        sweep_sla_reminders(ticket, TODAY, NOW)
        assert ticket.messages == []
        assert ticket.vulnerabilities[0].sla_reminder_sent is False
