"""
core/ingestion.py -- Merge extracted findings and retest verdicts into tickets.

Ingestion is split into two halves so the slow external call never runs while
the caller holds its writer lock:

  1. extraction  -- AnalysisService.extract_findings / extract_retest_verdicts
  2. merge       -- merge_findings / merge_retest_verdicts, pure and atomic

ingest_final_report() and ingest_retest_report() chain the two for callers
that do not need the split (CLI, tests). They degrade AnalysisError to an
empty extraction and report the error text on the result instead of raising.

Audit history is append-only: findings are only added, vendor fix comments
and retest reports are only appended, and each merge posts at most one
system message.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, Optional

from core.analyzer import AnalysisError, AnalysisService, RawFinding, RetestVerdict
from core.models import (
    RETEST_COMMENT_PREFIX,
    SYSTEM_NOTICE_PREFIX,
    ChatMessage,
    ReportFile,
    TeamMember,
    Ticket,
    Vulnerability,
    VulnerabilityComment,
)
from core.sla import compute_due_date

logger = logging.getLogger("appsec.ingestion")

DEFAULT_ANALYST = "Security Analyst"
RETEST_INBOX = "appsecassessment@test.com"


@dataclass
class IngestionResult:
    """Outcome of one ingestion.

    count is the number of findings added (final report) or findings whose
    verdict matched (retest). analysis_error is set when extraction failed
    and the merge ran on an empty list.
    """

    ticket: Ticket
    count: int
    analysis_error: Optional[str] = None


# ---------------------------------------------------------------------------
# Final report
# ---------------------------------------------------------------------------


def _new_vulnerability(raw: RawFinding, today: date) -> Vulnerability:
    return Vulnerability(
        id=f"v-{uuid.uuid4().hex[:12]}",
        title=raw.title,
        severity=raw.severity,
        status="Open",
        impact=raw.impact,
        observation=raw.observation,
        remediation=raw.remediation,
        affected_url=raw.affected_url,
        due_date=compute_due_date(raw.severity, today).isoformat(),
    )


def _section(label: str, vulns: list[Vulnerability], dash: str = "-") -> str:
    lines = [f"{label} {dash} {len(vulns):02d}"]
    if vulns:
        lines.extend(f"- {v.title}" for v in vulns)
    else:
        lines.append("None identified.")
    return "\n".join(lines)


def _analyst_name(ticket: Ticket, team: Iterable[TeamMember]) -> str:
    if ticket.assigned_to:
        for member in team:
            if member.id == ticket.assigned_to:
                return member.name
    return DEFAULT_ANALYST


def build_completion_summary(app_name: str, vulns: list[Vulnerability], analyst: str) -> str:
    """Render the assessment-complete message posted to the vendor.

    Findings are grouped by severity; Info findings are listed under Low.
    """
    critical = [v for v in vulns if v.severity == "Critical"]
    high = [v for v in vulns if v.severity == "High"]
    medium = [v for v in vulns if v.severity == "Medium"]
    low = [v for v in vulns if v.severity in ("Low", "Info")]

    # The Medium and Low headings use an en dash in the vendor-facing template.
    return "\n\n".join(
        [
            f"Hi Team,\nWe've completed the web application security assessment on {app_name}.",
            "Vulnerability Summary: -\n" + _section("Critical", critical),
            _section("High", high),
            _section("Medium", medium, dash="–"),
            _section("Low", low, dash="–"),
            "Documentation has been attached to this assessment request. Please note that high-risk "
            "vulnerabilities must be remediated, and the site must pass a retest conducted by the "
            "assessment team before it is allowed to go live. The team will have 60 days after the "
            "go-live date to address medium-risk issues and pass our retesting. Low risk "
            "vulnerabilities are optional based on the project team's decision.",
            "To request a retest: After vulnerabilities have been remediated, please send an email to "
            f"our group inbox ({RETEST_INBOX}), and include any additional information we may need "
            "(Change of URL, credentials, etc.).",
            f"Regards,\n{analyst}",
        ]
    )


def merge_findings(
    ticket: Ticket,
    raw_findings: list[RawFinding],
    report: ReportFile,
    team: Iterable[TeamMember],
    today: date,
    now: str,
) -> Ticket:
    """Append new findings, attach the final report and mark the ticket Completed.

    The completion summary describes only the findings added by this call.
    """
    new_vulns = [_new_vulnerability(raw, today) for raw in raw_findings]
    summary = ChatMessage(
        id=f"completion-{uuid.uuid4().hex[:12]}",
        sender="security",
        text=f"{SYSTEM_NOTICE_PREFIX} "
        + build_completion_summary(ticket.app_name, new_vulns, _analyst_name(ticket, team)),
        timestamp=now,
    )
    logger.info("%s: merged %d finding(s) from %s", ticket.id, len(new_vulns), report.file_name)
    return replace(
        ticket,
        status="Completed",
        final_report=report,
        vulnerabilities=[*ticket.vulnerabilities, *new_vulns],
        messages=[*ticket.messages, summary],
        unread_for="vendor",
    )


# ---------------------------------------------------------------------------
# Retest report
# ---------------------------------------------------------------------------


def match_verdict(vuln: Vulnerability, verdicts: list[RetestVerdict]) -> Optional[RetestVerdict]:
    """Return the first verdict whose title overlaps the finding's title.

    Overlap is a case-insensitive substring test in either direction.
    Verdicts with blank titles never match.
    """
    vuln_title = vuln.title.lower()
    for verdict in verdicts:
        verdict_title = verdict.title.strip().lower()
        if not verdict_title:
            continue
        if verdict_title in vuln_title or vuln_title in verdict_title:
            return verdict
    return None


def merge_retest_verdicts(
    ticket: Ticket,
    verdicts: list[RetestVerdict],
    report: ReportFile,
    now: str,
) -> tuple[Ticket, int]:
    """Apply retest verdicts to existing findings and record the retest report.

    Returns (ticket, matched). Unmatched findings are left untouched.
    """
    matched = 0
    vulns: list[Vulnerability] = []
    for vuln in ticket.vulnerabilities:
        verdict = match_verdict(vuln, verdicts)
        if verdict is None:
            vulns.append(vuln)
            continue
        matched += 1
        comments = list(vuln.vendor_fix_comments)
        if verdict.comment:
            comments.append(VulnerabilityComment(text=f"{RETEST_COMMENT_PREFIX} {verdict.comment}", timestamp=now))
        status = "Remediated" if verdict.status == "Remediated" else "Open"
        vulns.append(replace(vuln, status=status, vendor_fix_comments=comments))

    logger.info("%s: retest %s matched %d of %d finding(s)", ticket.id, report.file_name, matched, len(vulns))
    updated = replace(ticket, vulnerabilities=vulns, retest_reports=[*ticket.retest_reports, report])
    return updated, matched


# ---------------------------------------------------------------------------
# Vendor fix comments
# ---------------------------------------------------------------------------


def add_fix_comment(ticket: Ticket, vuln_id: str, text: str, now: str) -> Ticket:
    """Append a vendor remediation note. Blank text is a no-op.

    Raises KeyError if vuln_id is not on the ticket.
    """
    if ticket.find_vulnerability(vuln_id) is None:
        raise KeyError(vuln_id)
    text = text.strip()
    if not text:
        return ticket
    comment = VulnerabilityComment(text=text, timestamp=now)
    vulns = [
        replace(v, vendor_fix_comments=[*v.vendor_fix_comments, comment]) if v.id == vuln_id else v
        for v in ticket.vulnerabilities
    ]
    return replace(ticket, vulnerabilities=vulns)


# ---------------------------------------------------------------------------
# Convenience wrappers
# ---------------------------------------------------------------------------


def extract_findings_safely(
    analyzer: AnalysisService, content: bytes, mime_type: str
) -> tuple[list[RawFinding], Optional[str]]:
    try:
        return analyzer.extract_findings(content, mime_type), None
    except AnalysisError as e:
        logger.warning("Finding extraction failed: %s", e)
        return [], str(e)


def extract_verdicts_safely(
    analyzer: AnalysisService, content: bytes, mime_type: str
) -> tuple[list[RetestVerdict], Optional[str]]:
    try:
        return analyzer.extract_retest_verdicts(content, mime_type), None
    except AnalysisError as e:
        logger.warning("Retest extraction failed: %s", e)
        return [], str(e)


def ingest_final_report(
    ticket: Ticket,
    analyzer: AnalysisService,
    content: bytes,
    mime_type: str,
    report: ReportFile,
    team: Iterable[TeamMember],
    today: date,
    now: str,
) -> IngestionResult:
    raw, error = extract_findings_safely(analyzer, content, mime_type)
    updated = merge_findings(ticket, raw, report, team, today, now)
    return IngestionResult(ticket=updated, count=len(raw), analysis_error=error)


def ingest_retest_report(
    ticket: Ticket,
    analyzer: AnalysisService,
    content: bytes,
    mime_type: str,
    report: ReportFile,
    now: str,
) -> IngestionResult:
    verdicts, error = extract_verdicts_safely(analyzer, content, mime_type)
    updated, matched = merge_retest_verdicts(ticket, verdicts, report, now)
    return IngestionResult(ticket=updated, count=matched, analysis_error=error)
