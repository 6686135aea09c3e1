"""
API request and response models for the AppSec Portal REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in core/models.py, which
own the internal domain representation. Route handlers map between the two
through the from_* factory classmethods colocated with each response model.

Separation of concerns: core/ models = domain truth; api/ models = API contract.
"""

from datetime import date
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from core.models import (
    ChatMessage,
    Notification,
    ReportFile,
    SubmissionFile,
    TeamMember,
    Ticket,
    Vulnerability,
)
from core.reporting import ReportStats, ReportWindow, finding_counts
from core.sla import classify_sla
from core.tiering import CIA_FIELDS

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Calendar date, or empty to leave unset / clear.
ISO_DATE_OR_EMPTY = r"^(\d{4}-\d{2}-\d{2})?$"


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class PortalEnum(str, Enum):
    vendor = "vendor"
    security = "security"
    manager = "manager"


class TicketStatusEnum(str, Enum):
    pending = "Pending"
    in_review = "In Review"
    scheduled = "Scheduled"
    in_progress = "In Progress"
    completed = "Completed"
    rejected = "Rejected"


class VulnStatusEnum(str, Enum):
    open = "Open"
    ready_for_retest = "Ready for Retest"
    remediated = "Remediated"


class RegionEnum(str, Enum):
    apac = "APAC"
    emea = "EMEA"
    global_ = "Global"
    latin_america = "Latin America"
    north_america = "North America"


class AssessmentTypeEnum(str, Enum):
    web = "Web"
    mobile = "Mobile"
    chat_bot = "Chat-Bot"
    api = "API"
    ai_application = "AI Application"


class FilterModeEnum(str, Enum):
    all = "all"
    my = "my"
    expedited = "expedited"
    retest = "retest"


class PeriodEnum(str, Enum):
    weekly = "weekly"
    year = "year"


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    analysis_enabled: bool = False


# ---------------------------------------------------------------------------
# Auth and team
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login (mock gate, no password)."""

    model_config = ConfigDict(str_strip_whitespace=True)

    portal: PortalEnum
    member_id: Optional[str] = Field(default=None, max_length=64)


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    portal: str
    member_id: Optional[str] = None


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    portal: str
    member_id: Optional[str] = None
    member_name: Optional[str] = None


class TeamMemberCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=100)


class TeamMemberResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str

    @classmethod
    def from_member(cls, member: TeamMember) -> "TeamMemberResponse":
        return cls(id=member.id, name=member.name)


class WorkloadRow(BaseModel):
    """One row of GET /api/v1/reports/workload."""

    model_config = ConfigDict(frozen=True)

    member_id: str
    name: str
    total_assigned: int
    in_progress: int


# ---------------------------------------------------------------------------
# Ticket requests
# ---------------------------------------------------------------------------


class SubmissionFileIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    url: str = Field(max_length=2048)
    upload_date: str = Field(default="", pattern=ISO_DATE_OR_EMPTY)
    size: Optional[str] = Field(default=None, max_length=32)
    type: Optional[str] = Field(default=None, max_length=100)

    def to_domain(self) -> SubmissionFile:
        return SubmissionFile(name=self.name, url=self.url, upload_date=self.upload_date, size=self.size, type=self.type)


class TicketCreate(BaseModel):
    """Request body for POST /api/v1/tickets.

    details is the free-form questionnaire. Only the three CIA ratings are
    validated here; the tier is always recomputed server-side from them.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    app_name: str = Field(min_length=1, max_length=200)
    region: RegionEnum
    type: AssessmentTypeEnum
    is_expedited: bool = False
    vendor_email: Optional[str] = Field(default=None, max_length=255)
    test_url: str = Field(default="", max_length=2048)
    ready_date: str = Field(default="", pattern=ISO_DATE_OR_EMPTY)
    details: dict[str, Any] = Field(default_factory=dict)
    artifacts: list[SubmissionFileIn] = Field(default_factory=list, max_length=20)

    @field_validator("details")
    @classmethod
    def validate_cia_ratings(cls, details: dict[str, Any]) -> dict[str, Any]:
        """Reject CIA ratings outside 1-3 so the tier calculator never sees them."""
        for key in CIA_FIELDS:
            if key in details and str(details[key]) not in ("1", "2", "3"):
                raise ValueError(f"{key} must be 1, 2 or 3")
        return details


class TicketUpdate(BaseModel):
    """Request body for PATCH /api/v1/tickets/{id}.

    Omitted fields are left unchanged; an empty string clears scheduled_date
    or assigned_to.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    status: Optional[TicketStatusEnum] = None
    scheduled_date: Optional[str] = Field(default=None, pattern=ISO_DATE_OR_EMPTY)
    assigned_to: Optional[str] = Field(default=None, max_length=64)


class MessageCreate(BaseModel):
    text: str = Field(max_length=10_000)


class VulnStatusUpdate(BaseModel):
    status: VulnStatusEnum


class CommentCreate(BaseModel):
    text: str = Field(max_length=5_000)


# ---------------------------------------------------------------------------
# Ticket responses
# ---------------------------------------------------------------------------


class ChatMessageOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    sender: str
    text: str
    timestamp: str
    is_system: bool

    @classmethod
    def from_message(cls, message: ChatMessage) -> "ChatMessageOut":
        return cls(
            id=message.id,
            sender=message.sender,
            text=message.text,
            timestamp=message.timestamp,
            is_system=message.is_system,
        )


class ReportFileOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_name: str
    upload_date: str
    file_url: Optional[str] = None

    @classmethod
    def from_report(cls, report: ReportFile) -> "ReportFileOut":
        return cls(file_name=report.file_name, upload_date=report.upload_date, file_url=report.file_url)


class SlaOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    state: str
    days: int
    label: str


class CommentOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    timestamp: str


class VulnerabilityOut(BaseModel):
    """One finding, with its SLA display state computed for today."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    severity: str
    status: str
    impact: str
    observation: str
    remediation: str
    affected_url: Optional[str]
    due_date: Optional[str]
    sla_reminder_sent: bool
    sla: Optional[SlaOut] = None
    vendor_fix_comments: list[CommentOut] = Field(default_factory=list)

    @classmethod
    def from_vuln(cls, vuln: Vulnerability, today: date) -> "VulnerabilityOut":
        sla = classify_sla(vuln.due_date, vuln.status, today)
        return cls(
            id=vuln.id,
            title=vuln.title,
            severity=vuln.severity,
            status=vuln.status,
            impact=vuln.impact,
            observation=vuln.observation,
            remediation=vuln.remediation,
            affected_url=vuln.affected_url,
            due_date=vuln.due_date,
            sla_reminder_sent=vuln.sla_reminder_sent,
            sla=SlaOut(state=sla.state, days=sla.days, label=sla.label) if sla else None,
            vendor_fix_comments=[CommentOut(text=c.text, timestamp=c.timestamp) for c in vuln.vendor_fix_comments],
        )


class TicketSummaryRow(BaseModel):
    """One row in the ticket list, board and calendar -- no thread or findings detail."""

    model_config = ConfigDict(frozen=True)

    id: str
    app_name: str
    region: str
    type: str
    tier: str
    status: str
    is_expedited: bool
    ready_date: str
    scheduled_date: Optional[str]
    assigned_to: Optional[str]
    unread_for: Optional[str]
    finding_counts: dict[str, int]

    @classmethod
    def from_ticket(cls, ticket: Ticket) -> "TicketSummaryRow":
        return cls(
            id=ticket.id,
            app_name=ticket.app_name,
            region=ticket.region,
            type=ticket.type,
            tier=ticket.tier,
            status=ticket.status,
            is_expedited=ticket.is_expedited,
            ready_date=ticket.ready_date,
            scheduled_date=ticket.scheduled_date,
            assigned_to=ticket.assigned_to,
            unread_for=ticket.unread_for,
            finding_counts=finding_counts(ticket),
        )


class TicketResponse(BaseModel):
    """Full ticket detail."""

    model_config = ConfigDict(frozen=True)

    id: str
    app_name: str
    vendor_email: Optional[str]
    region: str
    type: str
    tier: str
    status: str
    test_url: str
    ready_date: str
    is_expedited: bool
    scheduled_date: Optional[str]
    assigned_to: Optional[str]
    unread_for: Optional[str]
    security_answers: dict[str, bool]
    details: dict[str, Any]
    artifacts: list[dict[str, Any]]
    ai_risk_analysis: Optional[str]
    messages: list[ChatMessageOut]
    vulnerabilities: list[VulnerabilityOut]
    final_report: Optional[ReportFileOut]
    retest_reports: list[ReportFileOut]
    finding_counts: dict[str, int]

    @classmethod
    def from_ticket(cls, ticket: Ticket, today: date) -> "TicketResponse":
        return cls(
            id=ticket.id,
            app_name=ticket.app_name,
            vendor_email=ticket.vendor_email,
            region=ticket.region,
            type=ticket.type,
            tier=ticket.tier,
            status=ticket.status,
            test_url=ticket.test_url,
            ready_date=ticket.ready_date,
            is_expedited=ticket.is_expedited,
            scheduled_date=ticket.scheduled_date,
            assigned_to=ticket.assigned_to,
            unread_for=ticket.unread_for,
            security_answers=dict(ticket.security_answers),
            details=dict(ticket.details),
            artifacts=[
                {"name": a.name, "url": a.url, "upload_date": a.upload_date, "size": a.size, "type": a.type}
                for a in ticket.artifacts
            ],
            ai_risk_analysis=ticket.ai_risk_analysis,
            messages=[ChatMessageOut.from_message(m) for m in ticket.messages],
            vulnerabilities=[VulnerabilityOut.from_vuln(v, today) for v in ticket.vulnerabilities],
            final_report=ReportFileOut.from_report(ticket.final_report) if ticket.final_report else None,
            retest_reports=[ReportFileOut.from_report(r) for r in ticket.retest_reports],
            finding_counts=finding_counts(ticket),
        )


class NotificationOut(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: str
    title: str
    text: str

    @classmethod
    def from_notification(cls, note: Notification) -> "NotificationOut":
        return cls(kind=note.kind, title=note.title, text=note.text)


class VulnTransitionResponse(BaseModel):
    """Response for PATCH .../vulnerabilities/{vuln_id}/status."""

    model_config = ConfigDict(frozen=True)

    ticket: TicketResponse
    notification: Optional[NotificationOut] = None


class IngestionResponse(BaseModel):
    """Response for POST .../report and POST .../retest.

    analysis_error is set when extraction failed; the report is still recorded.
    """

    model_config = ConfigDict(frozen=True)

    ticket: TicketResponse
    count: int
    analysis_error: Optional[str] = None


class BoardResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    lanes: dict[str, list[TicketSummaryRow]]


class SummaryResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: str


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


class StatsResponse(BaseModel):
    """Response for GET /api/v1/reports/stats."""

    model_config = ConfigDict(frozen=True)

    period: str
    window_start: str
    window_end: Optional[str]
    total: int
    completed: int
    in_progress: int
    scheduled: int
    rejected: int
    expedited: int
    total_findings: int
    findings_closed: int
    findings_open: int
    remediation_rate: int
    open_by_severity: dict[str, int]
    open_by_region: dict[str, int]

    @classmethod
    def from_stats(cls, period: str, window: ReportWindow, stats: ReportStats) -> "StatsResponse":
        return cls(
            period=period,
            window_start=window.start.isoformat(),
            window_end=window.end.isoformat() if window.end else None,
            **stats.as_dict(),
        )
