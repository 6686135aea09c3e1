"""
core/lifecycle.py -- Ticket lifecycle controller.

Owns the request-ID allocator, ticket creation, the ticket status state
machine, the discussion thread and the vulnerability status state machine.

Ticket status is a free choice among TICKET_STATUSES: the security team may
move a ticket from any state to any other. Exactly one transition has a side
effect -- entering "In Progress" from a different state posts the SLA
commitment notice to the vendor. Everything else is a plain field update.

Vulnerability status is a strict table keyed by (from, to) with the actor
allowed to perform it. Anything outside the table is rejected.

All functions return new Ticket values; inputs are never mutated.
"""

import logging
import uuid
from dataclasses import replace
from typing import Any, Iterable, Optional

from core.models import (
    SENDERS,
    SYSTEM_NOTICE_PREFIX,
    TICKET_STATUSES,
    ChatMessage,
    Notification,
    Submission,
    TeamMember,
    Ticket,
)
from core.tiering import TIER_FIELD, refresh_calculated_tier

logger = logging.getLogger("appsec.lifecycle")


class InvalidTransitionError(ValueError):
    """A vulnerability status change that the workflow table does not allow."""


# ---------------------------------------------------------------------------
# Request-ID allocator
# ---------------------------------------------------------------------------


def generate_request_id(tickets: Iterable[Ticket], year: int) -> str:
    """Return the next REQ-<year>-<seq> ID for the given year.

    seq is the highest existing sequence for this year's prefix plus one,
    zero-padded to five digits. IDs from other years and malformed IDs
    (wrong segment count, non-numeric sequence) are ignored.
    """
    prefix = f"REQ-{year}-"
    max_seq = 0
    for ticket in tickets:
        if not ticket.id.startswith(prefix):
            continue
        parts = ticket.id.split("-")
        if len(parts) != 3 or not parts[2].isdigit():
            continue
        max_seq = max(max_seq, int(parts[2]))
    return f"{prefix}{max_seq + 1:05d}"


# ---------------------------------------------------------------------------
# Ticket creation
# ---------------------------------------------------------------------------


def derive_security_answers(details: dict[str, Any]) -> dict[str, bool]:
    """Collapse the questionnaire into the five headline risk answers."""
    return {
        "handlesPII": bool(details.get("piiCollectionDetails")),
        "internetFacing": details.get("isExternalSite") != "Internal Site for Enterprise Use",
        "storesPaymentData": bool(details.get("hasEcommerce")),
        "thirdPartyIntegrations": bool(details.get("apiProtocol")),
        "requiresUserAuth": bool(details.get("isProtectedByAuth")),
    }


def create_ticket(submission: Submission, tickets: Iterable[Ticket], year: int) -> Ticket:
    """Build a new Pending ticket from a vendor submission.

    The tier is always recomputed from the CIA ratings so a client cannot
    submit a tier that disagrees with its own answers.
    """
    details, _ = refresh_calculated_tier(dict(submission.details))
    ticket = Ticket(
        id=generate_request_id(tickets, year),
        app_name=submission.app_name,
        region=submission.region,
        type=submission.type,
        tier=details[TIER_FIELD],
        status="Pending",
        vendor_email=submission.vendor_email or details.get("businessOwner") or None,
        test_url=submission.test_url or details.get("testUrlProvided", ""),
        ready_date=submission.ready_date or details.get("goLiveDate", ""),
        is_expedited=submission.is_expedited,
        security_answers=derive_security_answers(details),
        details=details,
        artifacts=list(submission.artifacts),
    )
    logger.info("Created %s (%s, tier=%s)", ticket.id, ticket.app_name, ticket.tier)
    return ticket


# ---------------------------------------------------------------------------
# Ticket status state machine
# ---------------------------------------------------------------------------

# Business days the security team commits to once testing starts.
_ASSESSMENT_SLA_DAYS: dict[str, int] = {"High": 7, "Medium": 5}
_DEFAULT_ASSESSMENT_SLA_DAYS = 3


def assessment_sla_days(tier: str) -> int:
    return _ASSESSMENT_SLA_DAYS.get(tier, _DEFAULT_ASSESSMENT_SLA_DAYS)


def transition_status(ticket: Ticket, new_status: str, now: str) -> Ticket:
    """Move a ticket to new_status.

    Entering "In Progress" from any other state appends one SLA notice
    addressed to the vendor. A no-op transition changes nothing.
    Raises ValueError for an unknown status.
    """
    if new_status not in TICKET_STATUSES:
        raise ValueError(f"Unknown ticket status: {new_status!r}")
    if new_status == ticket.status:
        return ticket

    logger.info("%s: %s -> %s", ticket.id, ticket.status, new_status)
    if new_status != "In Progress":
        return replace(ticket, status=new_status)

    days = assessment_sla_days(ticket.tier)
    notice = ChatMessage(
        id=f"sla-notification-{uuid.uuid4().hex[:12]}",
        sender="security",
        text=(
            f"{SYSTEM_NOTICE_PREFIX} Hi Team, Since this is a {ticket.tier} tier application, "
            f"you will get assessment result within {days} business days."
        ),
        timestamp=now,
    )
    return replace(ticket, status=new_status, messages=[*ticket.messages, notice], unread_for="vendor")


def update_assessment(
    ticket: Ticket,
    team: Iterable[TeamMember],
    now: str,
    status: Optional[str] = None,
    scheduled_date: Optional[str] = None,
    assigned_to: Optional[str] = None,
) -> Ticket:
    """Apply the security team's schedule / assignment / status edit in one step.

    None leaves a field unchanged; an empty string clears scheduled_date or
    assigned_to. Raises ValueError for an unknown team member or status.
    """
    if assigned_to:
        if assigned_to not in {member.id for member in team}:
            raise ValueError(f"Unknown team member: {assigned_to!r}")

    updated = ticket
    if scheduled_date is not None:
        updated = replace(updated, scheduled_date=scheduled_date or None)
    if assigned_to is not None:
        updated = replace(updated, assigned_to=assigned_to or None)
    if status is not None:
        updated = transition_status(updated, status, now)
    return updated


# ---------------------------------------------------------------------------
# Discussion
# ---------------------------------------------------------------------------


def post_message(ticket: Ticket, sender: str, text: str, now: str) -> Ticket:
    """Append a user message and flag the other party as having unread activity.

    Whitespace-only text is rejected as a no-op: the ticket is returned unchanged.
    """
    if sender not in SENDERS:
        raise ValueError(f"Unknown sender: {sender!r}")
    if not text.strip():
        return ticket
    message = ChatMessage(id=f"msg-{uuid.uuid4().hex[:12]}", sender=sender, text=text, timestamp=now)
    other = "security" if sender == "vendor" else "vendor"
    return replace(ticket, messages=[*ticket.messages, message], unread_for=other)


# ---------------------------------------------------------------------------
# Vulnerability status state machine
# ---------------------------------------------------------------------------

# (from, to) -> actor allowed to perform the transition
_VULN_TRANSITIONS: dict[tuple[str, str], str] = {
    ("Open", "Ready for Retest"): "vendor",
    ("Ready for Retest", "Remediated"): "security",
    ("Ready for Retest", "Open"): "security",
    ("Open", "Remediated"): "security",
    ("Remediated", "Open"): "security",
}


def allowed_vuln_transitions(status: str, actor: str) -> list[str]:
    """Target statuses the actor may move a finding to from status."""
    return [to for (frm, to), who in _VULN_TRANSITIONS.items() if frm == status and who == actor]


def transition_vulnerability(
    ticket: Ticket, vuln_id: str, new_status: str, actor: str
) -> tuple[Ticket, Optional[Notification]]:
    """Change one finding's status according to the workflow table.

    Raises KeyError if vuln_id is not on the ticket, InvalidTransitionError if
    the (from, to, actor) triple is not in the table. Moving to Ready for
    Retest or Remediated returns an informational Notification.
    """
    vuln = ticket.find_vulnerability(vuln_id)
    if vuln is None:
        raise KeyError(vuln_id)

    allowed_actor = _VULN_TRANSITIONS.get((vuln.status, new_status))
    if allowed_actor is None:
        raise InvalidTransitionError(f"{vuln.status} -> {new_status} is not a valid finding transition")
    if allowed_actor != actor:
        raise InvalidTransitionError(f"{vuln.status} -> {new_status} can only be performed by {allowed_actor}")

    vulns = [replace(v, status=new_status) if v.id == vuln_id else v for v in ticket.vulnerabilities]
    logger.info("%s/%s: %s -> %s by %s", ticket.id, vuln_id, vuln.status, new_status, actor)

    notification: Optional[Notification] = None
    if new_status == "Ready for Retest":
        notification = Notification(
            kind="retest",
            title="Ready for Retest",
            text=f'"{vuln.title}" has been queued for security verification.',
        )
    elif new_status == "Remediated":
        notification = Notification(
            kind="msg",
            title="Finding Remediated",
            text="The security finding has been officially closed.",
        )
    return replace(ticket, vulnerabilities=vulns), notification
