"""
Reservation Boss - Centralized Configuration
=============================================

Single source for every tunable of the application. Values come from the
environment (optionally a `.env` file loaded with python-dotenv) and are
validated by a Pydantic model.

Usage:
    from config import get_settings
    settings = get_settings()
    settings.parking_spots
"""

import os
from functools import lru_cache
from typing import List, Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()

# ==========================================
# DEFAULTS
# ==========================================

PARKING_SPOTS = [
    "Parqueadero 57",
    "Parqueadero 61",
    "Parqueadero 343",
    "Parqueadero 344",
    "Parqueadero 345",
    "Parqueadero 346",
    "Parqueadero 347",
    "Parqueadero 348",
    "Parqueadero 349",
    "Parqueadero 350",
]

ALLOWED_ORIGINS = [
    "https://reservationboss.io",
    "https://www.reservationboss.io",
    "http://localhost:3000",
]

ALLOWED_DOMAIN = "@northhighland.com"
MAX_WEEKLY_RESERVATIONS = 3
TIMEZONE = "America/Guayaquil"

# Friday hour (local) from which the next week becomes the visible one
WEEK_CUTOVER_HOUR = 19


def _split_list(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    items = [item.strip() for item in value.split(",")]
    return [item for item in items if item]


class Settings(BaseModel):
    """Application settings."""

    environment: str = Field(default="development")
    database_url: str = Field(default="sqlite:///reservation_boss.db")

    parking_spots: List[str] = Field(default_factory=lambda: list(PARKING_SPOTS), min_length=1)
    allowed_domain: str = Field(default=ALLOWED_DOMAIN)
    max_weekly_reservations: int = Field(default=MAX_WEEKLY_RESERVATIONS, ge=1)
    timezone: str = Field(default=TIMEZONE)
    week_cutover_hour: int = Field(default=WEEK_CUTOVER_HOUR, ge=0, le=24)

    same_day_cancel_cutoff_hour: int = Field(default=8, ge=0, le=24)
    cancellation_code_ttl_minutes: int = Field(default=10, ge=1)
    cancellation_max_attempts: int = Field(default=0, ge=0, description="0 disables the limit")

    cache_ttl_seconds: float = Field(default=60, ge=0)
    allowed_origins: List[str] = Field(default_factory=lambda: list(ALLOWED_ORIGINS))

    # Mail relay
    smtp_host: str = ""
    smtp_port: int = 465
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_from: str = ""
    smtp_from_name: str = "Reservation Boss"

    # Admin token verification
    auth_verify_url: Optional[str] = None
    admin_api_tokens: List[str] = Field(default_factory=list)

    @field_validator("allowed_domain")
    @classmethod
    def normalize_domain(cls, v: str) -> str:
        v = v.strip().lower()
        return v if v.startswith("@") else f"@{v}"

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        ZoneInfo(v)
        return v

    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    @classmethod
    def from_env(cls) -> "Settings":
        """Builds settings from environment variables, ignoring unset ones."""
        env = {
            "environment": os.getenv("ENVIRONMENT"),
            "database_url": os.getenv("DATABASE_URL"),
            "parking_spots": _split_list(os.getenv("PARKING_SPOTS")),
            "allowed_domain": os.getenv("ALLOWED_EMAIL_DOMAIN"),
            "max_weekly_reservations": os.getenv("MAX_WEEKLY_RESERVATIONS"),
            "timezone": os.getenv("TIMEZONE"),
            "week_cutover_hour": os.getenv("WEEK_CUTOVER_HOUR"),
            "same_day_cancel_cutoff_hour": os.getenv("SAME_DAY_CANCEL_CUTOFF_HOUR"),
            "cancellation_code_ttl_minutes": os.getenv("CANCELLATION_CODE_TTL_MINUTES"),
            "cancellation_max_attempts": os.getenv("CANCELLATION_MAX_ATTEMPTS"),
            "cache_ttl_seconds": os.getenv("CACHE_TTL_SECONDS"),
            "allowed_origins": _split_list(os.getenv("ALLOWED_ORIGINS")),
            "smtp_host": os.getenv("SMTP_HOST"),
            "smtp_port": os.getenv("SMTP_PORT"),
            "smtp_user": os.getenv("SMTP_USER"),
            "smtp_password": os.getenv("SMTP_PASSWORD"),
            "smtp_from": os.getenv("SMTP_FROM"),
            "smtp_from_name": os.getenv("SMTP_FROM_NAME"),
            "auth_verify_url": os.getenv("AUTH_VERIFY_URL"),
            "admin_api_tokens": _split_list(os.getenv("ADMIN_API_TOKENS")),
        }
        return cls(**{key: value for key, value in env.items() if value is not None})


@lru_cache
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings.from_env()
