"""
api/routes/v1/team.py -- Security team roster.

Routes:
  GET    /api/v1/team        -- list members (any session; the login screen needs it)
  POST   /api/v1/team        -- add a member (security)
  DELETE /api/v1/team/{id}   -- remove a member (security)

Removing a member does not touch tickets assigned to them.
"""

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_service, not_found
from api.models import TeamMemberCreate, TeamMemberResponse
from auth.dependencies import require_security

router = APIRouter()


@router.get("/team", response_model=list[TeamMemberResponse])
def list_team(request: Request) -> list[TeamMemberResponse]:
    """Public: the login page lists the roster before any session exists."""
    return [TeamMemberResponse.from_member(m) for m in get_service(request).team()]


@router.post("/team", response_model=TeamMemberResponse, status_code=201, dependencies=[Depends(require_security)])
def add_member(request: Request, body: TeamMemberCreate) -> TeamMemberResponse:
    member = get_service(request).add_member(body.name)
    return TeamMemberResponse.from_member(member)


@router.delete("/team/{member_id}", status_code=204, dependencies=[Depends(require_security)])
def remove_member(request: Request, member_id: str) -> None:
    try:
        get_service(request).remove_member(member_id)
    except KeyError:
        raise not_found("Team member", member_id)
