"""
Reservation Boss API - Main Application
========================================

HYBRID MONOLITH ARCHITECTURE:
- FastAPI layer in /api/ folder
- Imports services from root services.py (Single Source of Truth)
- Imports schemas from root schemas.py

Run with: python -m uvicorn api.main:app --reload --port 8000
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# Import routers
from api.deps import get_mailer
from api.v1.endpoints import admin, app_config, cancellation, reports, reservations, summary

from config import get_settings
from database import init_db
from errors import BookingError
from logging_config import get_logger

logger = get_logger(__name__)

SERVICE_NAME = "Reservation Boss API"


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"{SERVICE_NAME} started")
    yield
    get_mailer().shutdown(wait=True)
    logger.info(f"{SERVICE_NAME} stopped")


# ==========================================
# APP CONFIGURATION
# ==========================================

settings = get_settings()

app = FastAPI(
    title=SERVICE_NAME,
    version="1.0.0",
    description="""
## Reservation Boss - Office Parking Reservations

Weekly parking spot booking for the office.

### Rules
- Only the visible week (Monday-Friday) can be booked
- One spot per person per day, one person per spot per day
- At most 3 reservations per person per week

### Endpoints
- **Config**: Spots and visible week dates
- **Reserve**: Book a spot
- **Reservations / Summary**: Weekly views (cached)
- **Cancellation**: Email-code self-service cancellation
- **Admin / Reports**: Maintenance and attendance reports (bearer token)
""",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# ==========================================
# MIDDLEWARE
# ==========================================

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=86400,
)


# ==========================================
# ERROR HANDLERS
# ==========================================

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{field}: {first.get('msg')}" if field else first.get("msg")
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)


# ==========================================
# ROUTERS
# ==========================================

API_PREFIX = "/api/v1"

app.include_router(app_config.router, prefix=f"{API_PREFIX}/config", tags=["Config"])
app.include_router(reservations.reserve_router, prefix=f"{API_PREFIX}/reserve", tags=["Reservations"])
app.include_router(reservations.router, prefix=f"{API_PREFIX}/reservations", tags=["Reservations"])
app.include_router(summary.router, prefix=f"{API_PREFIX}/summary", tags=["Reservations"])
app.include_router(cancellation.router, prefix=f"{API_PREFIX}/cancellation", tags=["Cancellation"])
app.include_router(admin.router, prefix=f"{API_PREFIX}/admin", tags=["Admin"])
app.include_router(reports.router, prefix=f"{API_PREFIX}/reports", tags=["Reports"])


# ==========================================
# HEALTH ENDPOINTS
# ==========================================

@app.get("/", tags=["Health"])
def root():
    """Liveness endpoint."""
    return {
        "status": "ok",
        "api": SERVICE_NAME,
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health", tags=["Health"])
def health_check():
    """Health check."""
    return {
        "status": "OK",
        "service": SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
