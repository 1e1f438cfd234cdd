"""
Reservation Boss API - Attendance Reports (admin)
==================================================
"""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import Optional

from api.deps import get_db, get_report_service, require_admin

from services import ReportService
from schemas import WeeklyReportDTO

router = APIRouter(dependencies=[Depends(require_admin)])


@router.get(
    "/weekly",
    response_model=WeeklyReportDTO,
    summary="Weekly Attendance Report",
    description="Distinct reserved days per user (defaults to the visible week)."
)
def weekly_report(
    start: Optional[str] = Query(default=None, description="First day (YYYY-MM-DD)"),
    end: Optional[str] = Query(default=None, description="Last day (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
    service: ReportService = Depends(get_report_service),
):
    return service.weekly_report(db, start, end)


@router.get(
    "/monthly-csv",
    summary="Monthly Attendance CSV",
    description="Days per user and week of the month, as a CSV attachment.",
    response_class=Response,
)
def monthly_csv(
    year: int = Query(..., ge=1, le=9999, description="Year"),
    month: int = Query(..., ge=1, le=12, description="Month (1-12)"),
    db: Session = Depends(get_db),
    service: ReportService = Depends(get_report_service),
):
    content = service.monthly_csv(db, year, month)
    filename = ReportService.monthly_csv_filename(year, month)
    return Response(
        content=content,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )
