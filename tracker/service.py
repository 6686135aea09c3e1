"""
tracker/service.py -- TicketService: the single writer over the ticket collection.

Every HTTP route and CLI command goes through this class. It owns the
in-memory collection loaded from PortalStore, applies the pure core
operations, and writes the full collection back after each mutation.

Concurrency model:
  - One threading.Lock guards the collection. Each mutation is
    read-ticket -> core function -> whole-ticket replace -> save, all under
    the lock, so no reader ever sees a half-applied update.
  - Report ingestion calls the analysis service OUTSIDE the lock. While the
    call runs the ticket id sits in a busy set; a second ingestion for the
    same ticket raises TicketBusyError. When the call returns the merge
    re-reads the latest ticket under the lock, so messages posted during the
    analysis are not lost.
  - Analysis calls are never cancelled.

Layer rule: tracker/ imports core/ only.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import replace
from datetime import date
from typing import Callable, Iterator, Optional

from core.analyzer import AnalysisService
from core.config import now_iso, today
from core.ingestion import (
    IngestionResult,
    add_fix_comment,
    extract_findings_safely,
    extract_verdicts_safely,
    merge_findings,
    merge_retest_verdicts,
)
from core.lifecycle import (
    create_ticket,
    derive_security_answers,
    post_message,
    transition_vulnerability,
    update_assessment,
)
from core.models import Notification, ReportFile, Submission, TeamMember, Ticket
from core.reporting import (
    ReportStats,
    ReportWindow,
    compute_stats,
    filter_tickets,
    requests_on,
    search_tickets,
    status_board,
    team_workload,
)
from core.sla import sweep_sla_reminders
from tracker.store import PortalStore

logger = logging.getLogger("appsec.service")


class TicketBusyError(Exception):
    """Another report ingestion is already running for this ticket."""

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"An analysis is already running for {ticket_id}")
        self.ticket_id = ticket_id


class TicketService:
    def __init__(
        self,
        store: PortalStore,
        analyzer: AnalysisService,
        clock: Callable[[], date] = today,
        timestamp: Callable[[], str] = now_iso,
    ) -> None:
        self.store = store
        self.analyzer = analyzer
        self._today = clock
        self._now = timestamp
        self._lock = threading.Lock()
        self._busy: set[str] = set()
        self._tickets: list[Ticket] = store.load_tickets()
        self._team: list[TeamMember] = store.load_team()
        logger.info("Loaded %d ticket(s) and %d team member(s)", len(self._tickets), len(self._team))

    # ------------------------------------------------------------------
    # Internals -- callers must hold self._lock
    # ------------------------------------------------------------------

    def _index(self, ticket_id: str) -> int:
        for i, ticket in enumerate(self._tickets):
            if ticket.id == ticket_id:
                return i
        raise KeyError(ticket_id)

    def _commit(self, index: int, ticket: Ticket) -> None:
        self._tickets[index] = ticket
        self.store.save_tickets(self._tickets)

    def _mutate(self, ticket_id: str, fn: Callable[[Ticket], Ticket]) -> Ticket:
        """Apply fn to the current ticket and persist the result if it changed."""
        with self._lock:
            index = self._index(ticket_id)
            current = self._tickets[index]
            updated = fn(current)
            if updated is not current:
                self._commit(index, updated)
            return updated

    @contextmanager
    def _analysis_slot(self, ticket_id: str) -> Iterator[None]:
        with self._lock:
            self._index(ticket_id)
            if ticket_id in self._busy:
                raise TicketBusyError(ticket_id)
            self._busy.add(ticket_id)
        try:
            yield
        finally:
            with self._lock:
                self._busy.discard(ticket_id)

    def is_busy(self, ticket_id: str) -> bool:
        with self._lock:
            return ticket_id in self._busy

    def today(self) -> date:
        return self._today()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_tickets(self, mode: str = "all", member_id: Optional[str] = None, query: str = "") -> list[Ticket]:
        with self._lock:
            tickets = list(self._tickets)
        return search_tickets(filter_tickets(tickets, mode, member_id), query)

    def get_ticket(self, ticket_id: str) -> Ticket:
        """Return the ticket without running the SLA sweep. Raises KeyError."""
        with self._lock:
            return self._tickets[self._index(ticket_id)]

    def view_ticket(self, ticket_id: str) -> Ticket:
        """Return the ticket after running the SLA reminder sweep on it."""
        return self._mutate(ticket_id, lambda t: sweep_sla_reminders(t, self._today(), self._now())[0])

    def sweep_all(self) -> int:
        """Run the SLA sweep over every ticket. Returns the number of reminders emitted."""
        total = 0
        with self._lock:
            day, now = self._today(), self._now()
            for i, ticket in enumerate(self._tickets):
                updated, emitted = sweep_sla_reminders(ticket, day, now)
                if emitted:
                    self._tickets[i] = updated
                    total += emitted
            if total:
                self.store.save_tickets(self._tickets)
        logger.info("SLA sweep emitted %d reminder(s)", total)
        return total

    def board(self) -> dict[str, list[Ticket]]:
        with self._lock:
            return status_board(list(self._tickets))

    def calendar(self, day: date) -> list[Ticket]:
        with self._lock:
            return requests_on(list(self._tickets), day)

    def stats(self, window: ReportWindow) -> ReportStats:
        with self._lock:
            return compute_stats(list(self._tickets), window)

    def workload(self) -> list[dict]:
        with self._lock:
            return team_workload(list(self._tickets), list(self._team))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(self, submission: Submission, analyze: bool = True) -> Ticket:
        """Create a Pending ticket and place it at the front of the collection.

        The advisory risk analysis runs before the lock is taken and never
        blocks creation: the analyzer returns a fallback text on failure.
        """
        risk_summary: Optional[str] = None
        if analyze:
            test_url = submission.test_url or submission.details.get("testUrlProvided", "")
            answers = derive_security_answers(submission.details)
            risk_summary = self.analyzer.analyze_risk(submission.app_name, submission.type, test_url, answers).summary

        with self._lock:
            ticket = replace(
                create_ticket(submission, self._tickets, self._today().year),
                ai_risk_analysis=risk_summary,
            )
            self._tickets.insert(0, ticket)
            self.store.save_tickets(self._tickets)
        return ticket

    def update(
        self,
        ticket_id: str,
        status: Optional[str] = None,
        scheduled_date: Optional[str] = None,
        assigned_to: Optional[str] = None,
    ) -> Ticket:
        with self._lock:
            team = list(self._team)
        return self._mutate(
            ticket_id,
            lambda t: update_assessment(
                t, team, self._now(), status=status, scheduled_date=scheduled_date, assigned_to=assigned_to
            ),
        )

    def post_message(self, ticket_id: str, sender: str, text: str) -> Ticket:
        return self._mutate(ticket_id, lambda t: post_message(t, sender, text, self._now()))

    def transition_vulnerability(
        self, ticket_id: str, vuln_id: str, new_status: str, actor: str
    ) -> tuple[Ticket, Optional[Notification]]:
        notifications: list[Optional[Notification]] = []

        def apply(ticket: Ticket) -> Ticket:
            updated, note = transition_vulnerability(ticket, vuln_id, new_status, actor)
            notifications.append(note)
            return updated

        updated = self._mutate(ticket_id, apply)
        note = notifications[0]
        if note is not None:
            logger.info("Notification [%s] %s: %s", note.kind, note.title, note.text)
        return updated, note

    def add_fix_comment(self, ticket_id: str, vuln_id: str, text: str) -> Ticket:
        return self._mutate(ticket_id, lambda t: add_fix_comment(t, vuln_id, text, self._now()))

    # ------------------------------------------------------------------
    # Report ingestion
    # ------------------------------------------------------------------

    def _report_file(self, file_name: str) -> ReportFile:
        return ReportFile(file_name=file_name, upload_date=self._today().isoformat())

    def ingest_final_report(self, ticket_id: str, content: bytes, mime_type: str, file_name: str) -> IngestionResult:
        """Extract findings from a final report and merge them into the ticket.

        Raises KeyError for an unknown ticket and TicketBusyError if another
        ingestion for the same ticket is in flight.
        """
        with self._analysis_slot(ticket_id):
            raw, error = extract_findings_safely(self.analyzer, content, mime_type)
            report = self._report_file(file_name)
            with self._lock:
                team = list(self._team)
            updated = self._mutate(
                ticket_id, lambda t: merge_findings(t, raw, report, team, self._today(), self._now())
            )
        return IngestionResult(ticket=updated, count=len(raw), analysis_error=error)

    def ingest_retest_report(self, ticket_id: str, content: bytes, mime_type: str, file_name: str) -> IngestionResult:
        with self._analysis_slot(ticket_id):
            verdicts, error = extract_verdicts_safely(self.analyzer, content, mime_type)
            report = self._report_file(file_name)
            matched: list[int] = []

            def apply(ticket: Ticket) -> Ticket:
                updated, count = merge_retest_verdicts(ticket, verdicts, report, self._now())
                matched.append(count)
                return updated

            updated = self._mutate(ticket_id, apply)
        return IngestionResult(ticket=updated, count=matched[0], analysis_error=error)

    # ------------------------------------------------------------------
    # Advisory AI
    # ------------------------------------------------------------------

    def summarize_discussion(self, ticket_id: str) -> str:
        ticket = self.get_ticket(ticket_id)
        return self.analyzer.summarize_discussion(list(ticket.messages))

    def executive_summary(self, window: ReportWindow) -> str:
        return self.analyzer.executive_summary(self.stats(window).as_dict())

    # ------------------------------------------------------------------
    # Team roster
    # ------------------------------------------------------------------

    def team(self) -> list[TeamMember]:
        with self._lock:
            return list(self._team)

    def add_member(self, name: str) -> TeamMember:
        name = name.strip()
        if not name:
            raise ValueError("Team member name must not be blank")
        with self._lock:
            member = TeamMember(id=str(time.time_ns() // 1_000_000), name=name)
            while any(m.id == member.id for m in self._team):
                member = TeamMember(id=str(int(member.id) + 1), name=name)
            self._team.append(member)
            self.store.save_team(self._team)
        logger.info("Added team member %s (%s)", member.name, member.id)
        return member

    def remove_member(self, member_id: str) -> None:
        """Remove a member from the roster. Raises KeyError if unknown.

        Tickets keep their assigned_to id; the workload view simply stops
        listing the member.
        """
        with self._lock:
            remaining = [m for m in self._team if m.id != member_id]
            if len(remaining) == len(self._team):
                raise KeyError(member_id)
            self._team = remaining
            self.store.save_team(self._team)
        logger.info("Removed team member %s", member_id)
