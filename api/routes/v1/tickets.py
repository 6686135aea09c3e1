"""
api/routes/v1/tickets.py -- Ticket lifecycle routes.

Routes (in registration order to avoid FastAPI path capture conflicts):
  GET   /tickets                              -- list with filter + search
  POST  /tickets                              -- vendor submission
  GET   /tickets/board                        -- status board lanes
  GET   /tickets/calendar?day=YYYY-MM-DD      -- requests ready on a day
  GET   /tickets/{ticket_id}                  -- detail; runs the SLA reminder sweep
  PATCH /tickets/{ticket_id}                  -- schedule / assign / status (security)
  POST  /tickets/{ticket_id}/messages         -- discussion post (vendor or security)
  GET   /tickets/{ticket_id}/discussion/summary -- AI summary of the thread

Auth policy: every route requires a session. The manager portal is read-only;
mutation routes depend on require_writer or require_security.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import get_service, not_found, unprocessable
from api.models import (
    BoardResponse,
    FilterModeEnum,
    MessageCreate,
    SummaryResponse,
    TicketCreate,
    TicketResponse,
    TicketSummaryRow,
    TicketUpdate,
)
from auth.dependencies import get_current_session, require_security, require_vendor, require_writer
from auth.models import PortalSession
from core.models import Submission

router = APIRouter(dependencies=[Depends(get_current_session)])


@router.get("/tickets", response_model=list[TicketSummaryRow])
def list_tickets(
    request: Request,
    mode: FilterModeEnum = FilterModeEnum.all,
    q: str = Query(default="", max_length=200),
    session: PortalSession = Depends(get_current_session),
) -> list[TicketSummaryRow]:
    """List tickets, newest submission first.

    mode=my uses the session's team member; it behaves like mode=all for
    sessions without one.
    """
    tickets = get_service(request).list_tickets(mode=mode.value, member_id=session.member_id, query=q)
    return [TicketSummaryRow.from_ticket(t) for t in tickets]


@router.post("/tickets", response_model=TicketResponse, status_code=201, dependencies=[Depends(require_vendor)])
def create_ticket(request: Request, body: TicketCreate) -> TicketResponse:
    service = get_service(request)
    submission = Submission(
        app_name=body.app_name,
        region=body.region.value,
        type=body.type.value,
        details=body.details,
        is_expedited=body.is_expedited,
        vendor_email=body.vendor_email,
        test_url=body.test_url,
        ready_date=body.ready_date,
        artifacts=[a.to_domain() for a in body.artifacts],
    )
    ticket = service.create(submission)
    return TicketResponse.from_ticket(ticket, service.today())


@router.get("/tickets/board", response_model=BoardResponse)
def board(request: Request) -> BoardResponse:
    lanes = get_service(request).board()
    return BoardResponse(lanes={lane: [TicketSummaryRow.from_ticket(t) for t in ts] for lane, ts in lanes.items()})


@router.get("/tickets/calendar", response_model=list[TicketSummaryRow])
def calendar(request: Request, day: Optional[date] = None) -> list[TicketSummaryRow]:
    """Tickets whose ready date is `day` (defaults to today)."""
    service = get_service(request)
    return [TicketSummaryRow.from_ticket(t) for t in service.calendar(day or service.today())]


@router.get("/tickets/{ticket_id}", response_model=TicketResponse)
def get_ticket(request: Request, ticket_id: str) -> TicketResponse:
    """Return ticket detail. Viewing a ticket runs the SLA reminder sweep first."""
    service = get_service(request)
    try:
        ticket = service.view_ticket(ticket_id)
    except KeyError:
        raise not_found("Ticket", ticket_id)
    return TicketResponse.from_ticket(ticket, service.today())


@router.patch("/tickets/{ticket_id}", response_model=TicketResponse, dependencies=[Depends(require_security)])
def update_ticket(request: Request, ticket_id: str, body: TicketUpdate) -> TicketResponse:
    """Save the security team's schedule, assignment and status edits in one step."""
    service = get_service(request)
    try:
        ticket = service.update(
            ticket_id,
            status=body.status.value if body.status else None,
            scheduled_date=body.scheduled_date,
            assigned_to=body.assigned_to,
        )
    except KeyError:
        raise not_found("Ticket", ticket_id)
    except ValueError as e:
        raise unprocessable(str(e))
    return TicketResponse.from_ticket(ticket, service.today())


@router.post("/tickets/{ticket_id}/messages", response_model=TicketResponse)
def post_message(
    request: Request,
    ticket_id: str,
    body: MessageCreate,
    session: PortalSession = Depends(require_writer),
) -> TicketResponse:
    """Post to the discussion thread as the session's portal. Blank text changes nothing."""
    service = get_service(request)
    try:
        ticket = service.post_message(ticket_id, session.portal, body.text)
    except KeyError:
        raise not_found("Ticket", ticket_id)
    return TicketResponse.from_ticket(ticket, service.today())


@router.get("/tickets/{ticket_id}/discussion/summary", response_model=SummaryResponse)
def discussion_summary(request: Request, ticket_id: str) -> SummaryResponse:
    try:
        summary = get_service(request).summarize_discussion(ticket_id)
    except KeyError:
        raise not_found("Ticket", ticket_id)
    return SummaryResponse(summary=summary)
