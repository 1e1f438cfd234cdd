"""
Reservation Boss API - Self-Service Cancellation
=================================================

Two steps: request a code (sent by email only), then verify it to delete
the reservation.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from api.deps import get_cancellation_service, get_db

from services import CancellationService
from schemas import CancellationCodeRequest, SuccessResponse, VerifyCancellationRequest

router = APIRouter()


@router.post(
    "/request-code",
    response_model=SuccessResponse,
    summary="Request Cancellation Code",
    description="Emails a 6-digit code to the reservation owner."
)
def request_code(
    data: CancellationCodeRequest,
    db: Session = Depends(get_db),
    service: CancellationService = Depends(get_cancellation_service),
):
    service.request_code(db, data.reservation_id, data.email)
    minutes = service.settings.cancellation_code_ttl_minutes
    return SuccessResponse(
        message=f"Cancellation code sent to your email. It will expire in {minutes} minutes."
    )


@router.post(
    "/verify-and-cancel",
    response_model=SuccessResponse,
    summary="Verify Code and Cancel",
    description="Cancels the reservation when the code matches and has not expired."
)
def verify_and_cancel(
    data: VerifyCancellationRequest,
    db: Session = Depends(get_db),
    service: CancellationService = Depends(get_cancellation_service),
):
    service.verify_and_cancel(db, data.reservation_id, data.code)
    return SuccessResponse(message="Reservation cancelled successfully")
