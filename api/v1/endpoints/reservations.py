"""
Reservation Boss API - Reservation Endpoints
=============================================

HYBRID MONOLITH: Imports from root services.py and schemas.py
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional

# Import from API deps
from api.deps import get_db, get_reservation_service, require_admin

# IMPORT FROM ROOT - Single Source of Truth
from services import ReservationService
from schemas import MessageResponse, ReservationDTO, ReserveRequest, ReserveResponse, ReservationDetails

router = APIRouter()
reserve_router = APIRouter()


# ==========================================
# PUBLIC ENDPOINTS
# ==========================================

@reserve_router.post(
    "",
    response_model=ReserveResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Reserve Parking Spot",
    description="Reserve one spot for one day of the visible week."
)
def reserve(
    data: ReserveRequest,
    db: Session = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    """Business-rule failures are rendered as 400 {error} by the app handlers."""
    reservation = service.reserve(db, data.email, data.date, data.spot)
    return ReserveResponse(
        message=f"Reservation successful for {reservation.spot} on {reservation.date.isoformat()}",
        reservation_id=reservation.id,
        reservation_details=ReservationDetails(
            email=reservation.email,
            date=reservation.date,
            spot=reservation.spot
        )
    )


@router.get(
    "/week",
    response_model=List[ReservationDTO],
    summary="Reservations For a Week",
    description="Reservations between start and end (defaults to the visible week). Cached."
)
def get_week_reservations(
    start: Optional[str] = Query(default=None, description="First day (YYYY-MM-DD)"),
    end: Optional[str] = Query(default=None, description="Last day (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    return service.week_reservations(db, start, end)


# ==========================================
# ADMIN ENDPOINTS
# ==========================================

@router.get(
    "",
    response_model=List[ReservationDTO],
    summary="List Reservations",
    description="Latest 500 reservations, newest date first.",
    dependencies=[Depends(require_admin)]
)
def list_reservations(
    db: Session = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    return service.list_all(db)


@router.delete(
    "",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    summary="Clear All Reservations",
    dependencies=[Depends(require_admin)]
)
def clear_reservations(
    db: Session = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    deleted = service.clear_all(db)
    if not deleted:
        return MessageResponse(message="No reservations to delete.", deleted_count=0)
    return MessageResponse(message="All reservations have been successfully deleted.", deleted_count=deleted)


@router.delete(
    "/{reservation_id}",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    summary="Release Reservation",
    dependencies=[Depends(require_admin)]
)
def release_reservation(
    reservation_id: str,
    db: Session = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    service.release(db, reservation_id)
    return MessageResponse(message="Reservation released successfully.")
