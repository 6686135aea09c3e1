"""
api/routes/v1/reports.py -- Read-only reporting aggregates.

Routes:
  GET /reports/stats?period=weekly|year&year=YYYY  -- WSR / MSR metrics
  GET /reports/workload                            -- per-member assignment counts
  GET /reports/executive-summary?year=YYYY          -- AI-written summary of the year's metrics

Every session may read reports; these are the manager portal's main views.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import get_service
from api.models import PeriodEnum, StatsResponse, SummaryResponse, WorkloadRow
from auth.dependencies import get_current_session
from core.reporting import ReportWindow, calendar_year, trailing_week

router = APIRouter(dependencies=[Depends(get_current_session)])


def _window(period: PeriodEnum, year: Optional[int], request: Request) -> ReportWindow:
    today = get_service(request).today()
    if period == PeriodEnum.weekly:
        return trailing_week(today)
    return calendar_year(year or today.year)


@router.get("/reports/stats", response_model=StatsResponse)
def stats(
    request: Request,
    period: PeriodEnum = PeriodEnum.year,
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
) -> StatsResponse:
    """Ticket and finding metrics for the trailing week or a calendar year.

    year is ignored for period=weekly and defaults to the current year.
    """
    window = _window(period, year, request)
    return StatsResponse.from_stats(period.value, window, get_service(request).stats(window))


@router.get("/reports/workload", response_model=list[WorkloadRow])
def workload(request: Request) -> list[WorkloadRow]:
    return [WorkloadRow(**row) for row in get_service(request).workload()]


@router.get("/reports/executive-summary", response_model=SummaryResponse)
def executive_summary(
    request: Request,
    year: Optional[int] = Query(default=None, ge=2000, le=2100),
) -> SummaryResponse:
    window = _window(PeriodEnum.year, year, request)
    return SummaryResponse(summary=get_service(request).executive_summary(window))
