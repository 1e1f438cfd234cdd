"""
Reservation Boss API - Admin Maintenance
=========================================
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.deps import get_db, get_reservation_service, require_admin

from services import ReservationService
from schemas import MessageResponse

router = APIRouter(dependencies=[Depends(require_admin)])


@router.post(
    "/cleanup",
    response_model=MessageResponse,
    response_model_exclude_none=True,
    summary="Delete Old Reservations",
    description="Deletes every reservation before the first day of the visible week."
)
def cleanup(
    db: Session = Depends(get_db),
    service: ReservationService = Depends(get_reservation_service),
):
    deleted, cutoff = service.cleanup_stale(db)
    if not deleted:
        return MessageResponse(message="No old reservations found to delete.", deleted_count=0)
    return MessageResponse(
        message=f"Successfully deleted {deleted} old reservations (older than {cutoff.isoformat()}).",
        deleted_count=deleted
    )
