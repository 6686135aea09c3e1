"""
core/models.py -- Domain dataclasses for the AppSec Portal.

These are pure data containers with zero logic beyond tiny predicates. All
business rules (tiering, SLA deadlines, status transitions, ingestion merges)
live in the sibling core modules. Operations never mutate a Ticket in place:
they build a new value with dataclasses.replace() so a half-applied update is
never observable.

Dates are ISO 8601 strings: "YYYY-MM-DD" for calendar dates (due_date,
ready_date, scheduled_date, upload_date) and full UTC timestamps for
message and comment timestamps.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

# Canonical request ID format. A domain rule -- not an API contract.
REQUEST_ID_PATTERN = r"^REQ-\d{4}-\d+$"

TICKET_STATUSES = ("Pending", "In Review", "Scheduled", "In Progress", "Completed", "Rejected")
VULN_STATUSES = ("Open", "Ready for Retest", "Remediated")
SEVERITIES = ("Critical", "High", "Medium", "Low", "Info")
TIERS = ("High", "Medium", "Low")
ASSESSMENT_TYPES = ("Web", "Mobile", "Chat-Bot", "API", "AI Application")
REGIONS = ("APAC", "EMEA", "Global", "Latin America", "North America")
SENDERS = ("vendor", "security")

# Marker prefixes that distinguish system-generated text from user text.
SYSTEM_ALERT_PREFIX = "[SYSTEM ALERT]"
SYSTEM_NOTICE_PREFIX = "[SYSTEM NOTICE]"
RETEST_COMMENT_PREFIX = "[SYSTEM RETEST]:"


@dataclass
class TeamMember:
    id: str
    name: str


@dataclass
class ChatMessage:
    """One entry in a ticket's discussion thread. Append-only."""

    id: str
    sender: str  # "vendor" | "security"
    text: str
    timestamp: str  # ISO 8601

    @property
    def is_system(self) -> bool:
        return is_system_message(self.text)


@dataclass
class ReportFile:
    """Metadata for an uploaded final or retest report."""

    file_name: str
    upload_date: str  # YYYY-MM-DD
    file_url: Optional[str] = None


@dataclass
class SubmissionFile:
    """An artifact attached to a submission (APK, IPA, Postman JSON, ...)."""

    name: str
    url: str
    upload_date: str
    size: Optional[str] = None
    type: Optional[str] = None


@dataclass
class VulnerabilityComment:
    """Immutable remediation note. Never edited or removed once saved."""

    text: str
    timestamp: str


@dataclass
class Vulnerability:
    """A single finding within a ticket.

    due_date is fixed at creation from severity and never recomputed.
    sla_reminder_sent flips to True exactly once, when the SLA sweep emits
    the reminder message for this finding.
    """

    id: str
    title: str
    severity: str  # Critical | High | Medium | Low | Info
    status: str = "Open"  # Open | Ready for Retest | Remediated
    impact: str = ""
    observation: str = ""
    remediation: str = ""
    affected_url: Optional[str] = None
    due_date: Optional[str] = None  # YYYY-MM-DD
    sla_reminder_sent: bool = False
    vendor_fix_comments: list[VulnerabilityComment] = field(default_factory=list)


@dataclass
class Ticket:
    """One vendor application's security-assessment request.

    details is the submission questionnaire. The kernel only reads the three
    CIA rating keys and calculatedTier; everything else is carried verbatim.
    """

    id: str
    app_name: str
    region: str
    type: str
    tier: str
    status: str = "Pending"
    vendor_email: Optional[str] = None
    test_url: str = ""
    ready_date: str = ""  # YYYY-MM-DD
    is_expedited: bool = False
    security_answers: dict[str, bool] = field(default_factory=dict)
    details: dict[str, Any] = field(default_factory=dict)
    artifacts: list[SubmissionFile] = field(default_factory=list)
    ai_risk_analysis: Optional[str] = None
    scheduled_date: Optional[str] = None
    assigned_to: Optional[str] = None
    messages: list[ChatMessage] = field(default_factory=list)
    unread_for: Optional[str] = None  # "vendor" | "security" | None
    vulnerabilities: list[Vulnerability] = field(default_factory=list)
    final_report: Optional[ReportFile] = None
    retest_reports: list[ReportFile] = field(default_factory=list)

    def find_vulnerability(self, vuln_id: str) -> Optional[Vulnerability]:
        for vuln in self.vulnerabilities:
            if vuln.id == vuln_id:
                return vuln
        return None


@dataclass
class Submission:
    """A vendor's new assessment request, before an ID is allocated.

    vendor_email, test_url and ready_date fall back to the questionnaire's
    businessOwner, testUrlProvided and goLiveDate answers when left empty.
    """

    app_name: str
    region: str
    type: str
    details: dict[str, Any] = field(default_factory=dict)
    is_expedited: bool = False
    vendor_email: Optional[str] = None
    test_url: str = ""
    ready_date: str = ""
    artifacts: list[SubmissionFile] = field(default_factory=list)


@dataclass
class Notification:
    """Informational event produced by an operation. Never persisted.

    kind mirrors the UI toast categories: "msg", "retest", "alert".
    """

    kind: str
    title: str
    text: str


def is_system_message(text: str) -> bool:
    """Return True if text carries one of the system marker prefixes."""
    return text.startswith((SYSTEM_ALERT_PREFIX, SYSTEM_NOTICE_PREFIX))
