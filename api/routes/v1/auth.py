"""
api/routes/v1/auth.py -- Portal login (mock gate) and session introspection.

Routes:
  POST /api/v1/auth/login  -- pick a portal (and a team member for security); returns a JWT
  GET  /api/v1/auth/me     -- current session info (requires auth)

The gate performs no password check. It only guarantees that a security
session names a member of the current team roster, so "my queue" filters
and assignment have a real member id to work with.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.dependencies import get_service, unprocessable
from api.limiter import limiter
from api.models import LoginRequest, LoginResponse, MeResponse, PortalEnum
from auth.dependencies import get_current_session
from auth.models import PortalSession
from auth.tokens import create_session_token

router = APIRouter()


@limiter.limit("10/minute")
@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Open a portal session.

    The security portal requires member_id to reference a current team
    member; the vendor and manager portals ignore it.
    """
    member_id = None
    if body.portal == PortalEnum.security:
        if not body.member_id:
            raise unprocessable("member_id is required for the security portal.")
        team = get_service(request).team()
        if body.member_id not in {m.id for m in team}:
            raise unprocessable(f"Unknown team member: {body.member_id}")
        member_id = body.member_id

    session = PortalSession(portal=body.portal.value, member_id=member_id)
    token = create_session_token(session)
    response = JSONResponse(
        content=LoginResponse(access_token=token, portal=session.portal, member_id=member_id).model_dump()
    )
    response.headers["Cache-Control"] = "no-store"
    return response


@router.get("/auth/me", response_model=MeResponse)
def me(request: Request, session: PortalSession = Depends(get_current_session)) -> MeResponse:
    member_name = None
    if session.member_id:
        for member in get_service(request).team():
            if member.id == session.member_id:
                member_name = member.name
                break
    return MeResponse(portal=session.portal, member_id=session.member_id, member_name=member_name)
