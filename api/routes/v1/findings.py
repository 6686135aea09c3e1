"""
api/routes/v1/findings.py -- Report ingestion and finding remediation routes.

Routes:
  POST  /tickets/{ticket_id}/report                              -- final report upload (security)
  POST  /tickets/{ticket_id}/retest                              -- retest report upload (security)
  PATCH /tickets/{ticket_id}/vulnerabilities/{vuln_id}/status    -- finding workflow transition
  POST  /tickets/{ticket_id}/vulnerabilities/{vuln_id}/comments  -- vendor fix note

File uploads:
  multipart/form-data, PDF or image only, capped at MAX_UPLOAD_BYTES and
  rate limited. The analysis call is slow and blocking, so the service call
  is handed to the threadpool to keep the event loop free.

Errors:
  TicketBusyError and InvalidTransitionError propagate to the handlers in
  api/main.py (409). An analysis failure is not an HTTP error: the report is
  still recorded and the response carries analysis_error.
"""

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile
from starlette.concurrency import run_in_threadpool

from api.dependencies import get_service, not_found
from api.limiter import limiter
from api.models import (
    CommentCreate,
    ErrorDetail,
    IngestionResponse,
    NotificationOut,
    TicketResponse,
    VulnStatusUpdate,
    VulnTransitionResponse,
)
from auth.dependencies import get_current_session, require_security, require_vendor, require_writer
from auth.models import PortalSession
from core.config import get_settings

router = APIRouter(dependencies=[Depends(get_current_session)])

_settings = get_settings()


async def _read_report(file: UploadFile) -> tuple[bytes, str]:
    """Read an uploaded report with a size guard. Returns (content, mime_type)."""
    mime_type = file.content_type or "application/octet-stream"
    if mime_type != "application/pdf" and not mime_type.startswith("image/"):
        raise HTTPException(
            status_code=415,
            detail=ErrorDetail(code="unsupported_format", message="Report must be a PDF or an image.").model_dump(),
        )
    raw = await file.read(_settings.max_upload_bytes + 1)
    if len(raw) > _settings.max_upload_bytes:
        raise HTTPException(
            status_code=413,
            detail=ErrorDetail(
                code="file_too_large",
                message=f"Upload must be {_settings.max_upload_bytes // (1024 * 1024)} MB or smaller.",
            ).model_dump(),
        )
    if not raw:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="empty_file", message="Uploaded file is empty.").model_dump(),
        )
    return raw, mime_type


@limiter.limit(_settings.upload_rate_limit)
@router.post("/tickets/{ticket_id}/report", response_model=IngestionResponse, dependencies=[Depends(require_security)])
async def upload_final_report(request: Request, ticket_id: str, file: UploadFile) -> IngestionResponse:
    """Extract findings from the final report, mark the ticket Completed and post the summary."""
    service = get_service(request)
    content, mime_type = await _read_report(file)
    try:
        result = await run_in_threadpool(
            service.ingest_final_report, ticket_id, content, mime_type, file.filename or "report"
        )
    except KeyError:
        raise not_found("Ticket", ticket_id)
    return IngestionResponse(
        ticket=TicketResponse.from_ticket(result.ticket, service.today()),
        count=result.count,
        analysis_error=result.analysis_error,
    )


@limiter.limit(_settings.upload_rate_limit)
@router.post("/tickets/{ticket_id}/retest", response_model=IngestionResponse, dependencies=[Depends(require_security)])
async def upload_retest_report(request: Request, ticket_id: str, file: UploadFile) -> IngestionResponse:
    """Apply retest verdicts to matching findings and record the retest report."""
    service = get_service(request)
    content, mime_type = await _read_report(file)
    try:
        result = await run_in_threadpool(
            service.ingest_retest_report, ticket_id, content, mime_type, file.filename or "retest"
        )
    except KeyError:
        raise not_found("Ticket", ticket_id)
    return IngestionResponse(
        ticket=TicketResponse.from_ticket(result.ticket, service.today()),
        count=result.count,
        analysis_error=result.analysis_error,
    )


@router.patch(
    "/tickets/{ticket_id}/vulnerabilities/{vuln_id}/status",
    response_model=VulnTransitionResponse,
)
def transition_vulnerability(
    request: Request,
    ticket_id: str,
    vuln_id: str,
    body: VulnStatusUpdate,
    session: PortalSession = Depends(require_writer),
) -> VulnTransitionResponse:
    """Move a finding through the remediation workflow as the session's portal."""
    service = get_service(request)
    try:
        ticket, note = service.transition_vulnerability(ticket_id, vuln_id, body.status.value, session.portal)
    except KeyError as e:
        missing = e.args[0] if e.args else ticket_id
        raise not_found("Finding" if missing == vuln_id else "Ticket", missing)
    return VulnTransitionResponse(
        ticket=TicketResponse.from_ticket(ticket, service.today()),
        notification=NotificationOut.from_notification(note) if note else None,
    )


@router.post(
    "/tickets/{ticket_id}/vulnerabilities/{vuln_id}/comments",
    response_model=TicketResponse,
    dependencies=[Depends(require_vendor)],
)
def add_comment(request: Request, ticket_id: str, vuln_id: str, body: CommentCreate) -> TicketResponse:
    """Append a vendor remediation note. Blank text changes nothing."""
    service = get_service(request)
    try:
        ticket = service.add_fix_comment(ticket_id, vuln_id, body.text)
    except KeyError as e:
        missing = e.args[0] if e.args else ticket_id
        raise not_found("Finding" if missing == vuln_id else "Ticket", missing)
    return TicketResponse.from_ticket(ticket, service.today())
