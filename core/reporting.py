"""
core/reporting.py -- Read-side aggregates over the ticket collection.

Nothing here mutates a ticket. Windows select tickets by ready_date:

  trailing_week(today)  -- ready_date on or after today - 7 days, open-ended
  calendar_year(year)   -- ready_date within the calendar year

Tickets with a missing or unparsable ready_date fall outside every window.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Optional

from core.models import SEVERITIES, TeamMember, Ticket

# Region order used by the open-findings breakdown.
REPORT_REGIONS = ("Global", "EMEA", "North America", "APAC", "Latin America")
BOARD_LANES = ("Pending", "In Progress", "Scheduled", "Completed")
FILTER_MODES = ("all", "my", "expedited", "retest")

_OPEN_STATUSES = ("Open", "Ready for Retest")


@dataclass(frozen=True)
class ReportWindow:
    """Inclusive date window. end=None means open-ended."""

    start: date
    end: Optional[date] = None

    def contains(self, day: date) -> bool:
        if day < self.start:
            return False
        return self.end is None or day <= self.end


def trailing_week(today: date) -> ReportWindow:
    return ReportWindow(start=today - timedelta(days=7))


def calendar_year(year: int) -> ReportWindow:
    return ReportWindow(start=date(year, 1, 1), end=date(year, 12, 31))


def _parse_day(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


@dataclass
class ReportStats:
    total: int = 0
    completed: int = 0
    in_progress: int = 0
    scheduled: int = 0
    rejected: int = 0
    expedited: int = 0
    total_findings: int = 0
    findings_closed: int = 0
    findings_open: int = 0
    remediation_rate: int = 0
    open_by_severity: dict[str, int] = field(default_factory=lambda: {s: 0 for s in SEVERITIES})
    open_by_region: dict[str, int] = field(default_factory=lambda: {r: 0 for r in REPORT_REGIONS})

    def as_dict(self) -> dict:
        return {
            "total": self.total,
            "completed": self.completed,
            "in_progress": self.in_progress,
            "scheduled": self.scheduled,
            "rejected": self.rejected,
            "expedited": self.expedited,
            "total_findings": self.total_findings,
            "findings_closed": self.findings_closed,
            "findings_open": self.findings_open,
            "remediation_rate": self.remediation_rate,
            "open_by_severity": dict(self.open_by_severity),
            "open_by_region": dict(self.open_by_region),
        }


def compute_stats(tickets: Iterable[Ticket], window: ReportWindow) -> ReportStats:
    """Aggregate ticket and finding counts for tickets whose ready_date falls in window."""
    stats = ReportStats()
    for ticket in tickets:
        ready = _parse_day(ticket.ready_date)
        if ready is None or not window.contains(ready):
            continue

        stats.total += 1
        if ticket.status == "Completed":
            stats.completed += 1
        elif ticket.status == "In Progress":
            stats.in_progress += 1
        elif ticket.status == "Scheduled":
            stats.scheduled += 1
        elif ticket.status == "Rejected":
            stats.rejected += 1
        if ticket.is_expedited:
            stats.expedited += 1

        for vuln in ticket.vulnerabilities:
            stats.total_findings += 1
            if vuln.status == "Remediated":
                stats.findings_closed += 1
            elif vuln.status in _OPEN_STATUSES:
                stats.findings_open += 1
                if vuln.severity in stats.open_by_severity:
                    stats.open_by_severity[vuln.severity] += 1
                if ticket.region in stats.open_by_region:
                    stats.open_by_region[ticket.region] += 1

    if stats.total_findings:
        # Halves round up
        stats.remediation_rate = int(stats.findings_closed * 100 / stats.total_findings + 0.5)
    return stats


def finding_counts(ticket: Ticket) -> dict[str, int]:
    """Per-ticket finding badge counts: open / in_retest / fixed plus each severity."""
    counts = {"open": 0, "in_retest": 0, "fixed": 0}
    counts.update({s.lower(): 0 for s in SEVERITIES})
    for vuln in ticket.vulnerabilities:
        if vuln.status == "Open":
            counts["open"] += 1
        elif vuln.status == "Ready for Retest":
            counts["in_retest"] += 1
        elif vuln.status == "Remediated":
            counts["fixed"] += 1
        key = vuln.severity.lower()
        if key in counts:
            counts[key] += 1
    return counts


def filter_tickets(tickets: Iterable[Ticket], mode: str = "all", member_id: Optional[str] = None) -> list[Ticket]:
    """Security queue filters.

    "my" without a member_id behaves like "all". Raises ValueError for an
    unknown mode.
    """
    if mode not in FILTER_MODES:
        raise ValueError(f"Unknown filter mode: {mode!r}")
    tickets = list(tickets)
    if mode == "my" and member_id:
        return [t for t in tickets if t.assigned_to == member_id]
    if mode == "expedited":
        return [t for t in tickets if t.is_expedited]
    if mode == "retest":
        return [t for t in tickets if any(v.status == "Ready for Retest" for v in t.vulnerabilities)]
    return tickets


def search_tickets(tickets: Iterable[Ticket], query: str) -> list[Ticket]:
    """Case-insensitive substring match on app name or request ID."""
    needle = query.strip().lower()
    if not needle:
        return list(tickets)
    return [t for t in tickets if needle in t.app_name.lower() or needle in t.id.lower()]


def status_board(tickets: Iterable[Ticket]) -> dict[str, list[Ticket]]:
    board: dict[str, list[Ticket]] = {lane: [] for lane in BOARD_LANES}
    for ticket in tickets:
        if ticket.status in board:
            board[ticket.status].append(ticket)
    return board


def team_workload(tickets: Iterable[Ticket], team: Iterable[TeamMember]) -> list[dict]:
    """Assigned and In Progress ticket counts per team member, in roster order."""
    tickets = list(tickets)
    rows = []
    for member in team:
        assigned = [t for t in tickets if t.assigned_to == member.id]
        rows.append(
            {
                "member_id": member.id,
                "name": member.name,
                "total_assigned": len(assigned),
                "in_progress": sum(1 for t in assigned if t.status == "In Progress"),
            }
        )
    return rows


def requests_on(tickets: Iterable[Ticket], day: date) -> list[Ticket]:
    """Tickets whose ready_date is the given day (request calendar)."""
    return [t for t in tickets if _parse_day(t.ready_date) == day]
