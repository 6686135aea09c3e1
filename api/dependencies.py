"""
api/dependencies.py -- Shared route helpers: service lookup and error builders.

Route handlers raise HTTPException with detail=ErrorDetail(...).model_dump()
so the exception handler in api/main.py can return it inside the standard
error envelope unchanged.
"""

from fastapi import HTTPException, Request

from api.models import ErrorDetail
from tracker.service import TicketService


def get_service(request: Request) -> TicketService:
    """Return the TicketService wired into app.state by the lifespan."""
    return request.app.state.service


def not_found(what: str, ident: str) -> HTTPException:
    return HTTPException(
        status_code=404,
        detail=ErrorDetail(code="not_found", message=f"{what} {ident} not found.").model_dump(),
    )


def unprocessable(message: str) -> HTTPException:
    return HTTPException(
        status_code=422,
        detail=ErrorDetail(code="validation_error", message=message).model_dump(),
    )
