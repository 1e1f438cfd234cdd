"""
Reservation Boss - Validation Schemas (Pydantic)
=================================================

Data Transfer Objects shared by the services and the API layer.

- Request bodies accept missing fields (None) so the services can answer
  with their own business messages instead of generic validation errors
- Response bodies serialize with camelCase aliases (reservationId, createdAt)
"""

import re
from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from errors import BookingValidationError

EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ==========================================
# SHARED VALIDATORS
# ==========================================

def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_email_domain(email: Optional[str], allowed_domain: str) -> str:
    """
    Validates the email format and domain restriction.

    Returns:
        The normalized (trimmed, lower-cased) email.
    """
    if not email or not isinstance(email, str):
        raise BookingValidationError("Email is required")

    normalized = normalize_email(email)

    if not normalized.endswith(allowed_domain.lower()):
        raise BookingValidationError(f"Only {allowed_domain} emails are accepted.")

    if not EMAIL_REGEX.match(normalized):
        raise BookingValidationError("Invalid email format")

    return normalized


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ==========================================
# RESERVATION SCHEMAS
# ==========================================

class ReserveRequest(BaseModel):
    """Body of POST /reserve."""
    email: Optional[str] = Field(default=None, description="Corporate email")
    date: Optional[str] = Field(default=None, description="Day to reserve (YYYY-MM-DD)")
    spot: Optional[str] = Field(default=None, description="Parking spot")


class ReservationDTO(CamelModel):
    id: str
    email: str
    date: date
    spot: str
    created_at: datetime


class ReservationDetails(CamelModel):
    email: str
    date: date
    spot: str


class ReserveResponse(CamelModel):
    message: str
    reservation_id: str
    reservation_details: ReservationDetails


class MessageResponse(BaseModel):
    message: str
    deleted_count: Optional[int] = Field(default=None, serialization_alias="deletedCount")


# ==========================================
# CANCELLATION SCHEMAS
# ==========================================

class CancellationCodeRequest(CamelModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    reservation_id: Optional[str] = None
    email: Optional[str] = None


class VerifyCancellationRequest(CamelModel):
    # Codes typed in a numeric field arrive as JSON numbers
    model_config = ConfigDict(coerce_numbers_to_str=True)

    reservation_id: Optional[str] = None
    code: Optional[str] = None


class SuccessResponse(BaseModel):
    success: bool = True
    message: str


# ==========================================
# CONFIG / CALENDAR SCHEMAS
# ==========================================

class VisibleDateDTO(BaseModel):
    date: str
    day: str


class ConfigDTO(CamelModel):
    parking_spots: List[str]
    visible_week_dates: List[VisibleDateDTO]


# {date: {spot: email | None}}
WeekSummary = Dict[str, Dict[str, Optional[str]]]


# ==========================================
# REPORT SCHEMAS
# ==========================================

class ReportReservation(BaseModel):
    date: date
    spot: str


class UserWeekStats(CamelModel):
    email: str
    days_count: int
    reservations: List[ReportReservation]


class WeeklyReportDTO(CamelModel):
    week_start: date
    week_end: date
    report: List[UserWeekStats]
