"""
core/sla.py -- Remediation deadlines and SLA reminders.

Three pieces:
  compute_due_date()     -- severity -> calendar deadline, called once per
                            finding at creation time.
  classify_sla()         -- display state for a finding relative to today.
  sweep_sla_reminders()  -- recompute-on-access reminder pass. Every Open
                            finding due within two days (or already overdue)
                            gets exactly one [SYSTEM ALERT] message; the
                            sla_reminder_sent flag makes the sweep idempotent.

All functions are pure. "today" is injected so tests and the CLI can pin it.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Optional

from core.models import SYSTEM_ALERT_PREFIX, ChatMessage, Ticket, Vulnerability

logger = logging.getLogger("appsec.sla")

# Days to remediate per severity. Low and Info share the longest window.
_SLA_DAYS: dict[str, int] = {
    "Critical": 7,
    "High": 14,
    "Medium": 60,
    "Low": 90,
    "Info": 90,
}
_DEFAULT_SLA_DAYS = 90

# A finding is "due soon" within this many days of its deadline.
_DUE_SOON_DAYS = 3
# Reminders fire when the deadline is this close, or already past.
_REMINDER_DAYS = 2


@dataclass(frozen=True)
class SlaStatus:
    """Display state for an open finding.

    state is one of "overdue", "due_today", "due_soon", "tracked".
    days is the signed distance to the deadline (negative when overdue).
    """

    state: str
    days: int
    label: str

    @property
    def is_overdue(self) -> bool:
        return self.state == "overdue"

    @property
    def is_urgent(self) -> bool:
        return self.state != "tracked"


def compute_due_date(severity: str, created: date) -> date:
    """Return the remediation deadline for a finding created on `created`."""
    return created + timedelta(days=_SLA_DAYS.get(severity, _DEFAULT_SLA_DAYS))


def days_until(due_date: str, today: date) -> Optional[int]:
    """Whole calendar days from today to due_date. None if unparsable."""
    try:
        due = date.fromisoformat(due_date[:10])
    except (TypeError, ValueError):
        return None
    return (due - today).days


def classify_sla(due_date: Optional[str], status: str, today: date) -> Optional[SlaStatus]:
    """Classify a finding's deadline. Remediated or undated findings are not tracked."""
    if status == "Remediated" or not due_date:
        return None
    diff = days_until(due_date, today)
    if diff is None:
        return None
    if diff < 0:
        return SlaStatus(state="overdue", days=diff, label=f"Overdue by {abs(diff)}d")
    if diff == 0:
        return SlaStatus(state="due_today", days=0, label="Due Today")
    if diff <= _DUE_SOON_DAYS:
        return SlaStatus(state="due_soon", days=diff, label=f"Due in {diff}d")
    return SlaStatus(state="tracked", days=diff, label=f"Due in {diff}d")


def _urgency_text(diff: int) -> str:
    if diff < 0:
        return "OVERDUE"
    if diff == 0:
        return "DUE TODAY"
    return f"DUE IN {diff} DAYS"


def _reminder_message(vuln: Vulnerability, diff: int, now: str) -> ChatMessage:
    return ChatMessage(
        id=f"sla-alert-{vuln.id}-{uuid.uuid4().hex[:8]}",
        sender="security",
        text=(
            f'{SYSTEM_ALERT_PREFIX} Finding "{vuln.title}" is {_urgency_text(diff)} '
            f"(Deadline: {vuln.due_date}). Please provide a remediation update in this thread immediately."
        ),
        timestamp=now,
    )


def sweep_sla_reminders(ticket: Ticket, today: date, now: str) -> tuple[Ticket, int]:
    """Emit one reminder per qualifying Open finding and flag it as reminded.

    Returns (ticket, emitted). When nothing qualifies the input ticket is
    returned as-is and emitted is 0. All messages and flag updates land in a
    single new Ticket value.

    Only Open findings are swept. Ready for Retest findings are waiting on the
    security team, not the vendor.
    """
    vulns: list[Vulnerability] = []
    new_messages: list[ChatMessage] = []

    for vuln in ticket.vulnerabilities:
        if vuln.status == "Open" and vuln.due_date and not vuln.sla_reminder_sent:
            diff = days_until(vuln.due_date, today)
            if diff is not None and diff <= _REMINDER_DAYS:
                new_messages.append(_reminder_message(vuln, diff, now))
                vuln = replace(vuln, sla_reminder_sent=True)
        vulns.append(vuln)

    if not new_messages:
        return ticket, 0

    logger.info("SLA sweep on %s emitted %d reminder(s)", ticket.id, len(new_messages))
    return replace(ticket, vulnerabilities=vulns, messages=[*ticket.messages, *new_messages]), len(new_messages)
