"""
Reservation Boss API - Weekly Summary Endpoint
===============================================

Compact {date: {spot: email | null}} grid used by the booking board.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional

from api.deps import get_db, get_reservation_service

from services import ReservationService
from schemas import WeekSummary

router = APIRouter()


@router.get(
    "/week",
    response_model=WeekSummary,
    summary="Weekly Grid Summary",
    description="Occupancy grid between start and end (defaults to the visible week). Cached."
)
def get_week_summary(
    start: Optional[str] = Query(default=None, description="First day (YYYY-MM-DD)"),
    end: Optional[str] = Query(default=None, description="Last day (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    return service.week_summary(db, start, end)
