"""
Reservation Boss API - Client Configuration
============================================
"""

from fastapi import APIRouter, Depends

from api.deps import get_reservation_service

from services import ReservationService
from schemas import ConfigDTO, VisibleDateDTO

router = APIRouter()


@router.get(
    "",
    response_model=ConfigDTO,
    summary="Get App Configuration",
    description="Bookable spots and the dates of the visible week."
)
def get_config(service: ReservationService = Depends(get_reservation_service)):
    week = service.visible_week()
    return ConfigDTO(
        parking_spots=service.settings.parking_spots,
        visible_week_dates=[VisibleDateDTO(**d) for d in week.labelled_dates()]
    )
