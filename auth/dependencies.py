"""
auth/dependencies.py -- FastAPI Depends() helpers for the portal gate.

The session comes from an Authorization: Bearer <token> header issued by
POST /api/v1/auth/login.

get_current_session() raises HTTP 401 if the request carries no valid token.
require_security() / require_vendor() raise HTTP 403 for the wrong portal.
require_writer() rejects the read-only manager portal.

Layer rule: no imports from api/ or tracker/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import PortalSession
from auth.tokens import decode_session_token


def try_get_current_session(request: Request) -> PortalSession | None:
    """Return the session for a valid bearer token, None otherwise. Never raises."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return decode_session_token(auth_header[7:])


def get_current_session(request: Request) -> PortalSession:
    """Require a session. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(session: PortalSession = Depends(get_current_session)): ...
    """
    session = try_get_current_session(request)
    if session is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return session


def _require_portal(request: Request, portal: str) -> PortalSession:
    session = get_current_session(request)
    if session.portal != portal:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": f"{portal.capitalize()} portal access required."},
        )
    return session


def require_security(request: Request) -> PortalSession:
    return _require_portal(request, "security")


def require_vendor(request: Request) -> PortalSession:
    return _require_portal(request, "vendor")


def require_writer(request: Request) -> PortalSession:
    """Require a vendor or security session. The manager portal is read-only."""
    session = get_current_session(request)
    if not session.can_write:
        raise HTTPException(
            status_code=403,
            detail={"code": "forbidden", "message": "The manager portal is read-only."},
        )
    return session
