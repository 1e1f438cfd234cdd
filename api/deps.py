"""
Reservation Boss API - Dependency Injection
============================================

Everything an endpoint needs is provided here so tests can swap it through
`app.dependency_overrides`:
- Database session (closed after the request)
- Settings, read cache, mailer and clock
- Services wired with the above
- Admin bearer-token check against the identity provider
"""

import hmac
from functools import lru_cache
from typing import Dict, Generator, List, Optional

import requests
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

# Import from ROOT - Single Source of Truth
from cache import TTLCache
from config import Settings, get_settings
from database import SessionLocal
from errors import AuthError, InvalidTokenError
from logging_config import get_logger
from mailer import Mailer
from services import CancellationService, Clock, ReportService, ReservationService, utc_now

logger = get_logger(__name__)


def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency for FastAPI.

    The @with_db decorator in services.py detects this injected session
    and uses it instead of creating its own.

    Each request gets its own Session. FastAPI may run the setup and the
    endpoint on different worker threads, so the thread-scoped registry
    (kept for scripts) is bypassed here.
    """
    db = SessionLocal.session_factory()
    try:
        yield db
    finally:
        db.close()


# ==========================================
# SHARED COMPONENTS
# ==========================================

@lru_cache
def get_cache() -> TTLCache:
    """Process-wide read cache."""
    return TTLCache(ttl_seconds=get_settings().cache_ttl_seconds)


@lru_cache
def get_mailer() -> Mailer:
    return Mailer(get_settings())


def get_clock() -> Clock:
    return utc_now


def get_reservation_service(
    settings: Settings = Depends(get_settings),
    cache: TTLCache = Depends(get_cache),
    mailer: Mailer = Depends(get_mailer),
    clock: Clock = Depends(get_clock),
) -> ReservationService:
    return ReservationService(settings, cache=cache, mailer=mailer, clock=clock)


def get_cancellation_service(
    settings: Settings = Depends(get_settings),
    cache: TTLCache = Depends(get_cache),
    mailer: Mailer = Depends(get_mailer),
    clock: Clock = Depends(get_clock),
) -> CancellationService:
    return CancellationService(settings, cache=cache, mailer=mailer, clock=clock)


def get_report_service(
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> ReportService:
    return ReportService(settings, clock=clock)


# ==========================================
# ADMIN AUTHENTICATION
# ==========================================

class TokenVerifier:
    """Turns an opaque bearer token into an identity, or raises InvalidTokenError."""

    def verify(self, token: str) -> Dict:
        raise NotImplementedError


class StaticTokenVerifier(TokenVerifier):
    """Shared admin tokens configured through ADMIN_API_TOKENS."""

    def __init__(self, tokens: List[str]):
        self.tokens = list(tokens)

    def verify(self, token: str) -> Dict:
        for candidate in self.tokens:
            if hmac.compare_digest(candidate.encode(), token.encode()):
                return {"uid": "admin-token"}
        raise InvalidTokenError("Unauthorized: Invalid token")


class HttpTokenVerifier(TokenVerifier):
    """Asks the identity provider; a 200 with a JSON identity means valid."""

    def __init__(self, verify_url: str, timeout: float = 5.0):
        self.verify_url = verify_url
        self.timeout = timeout

    def verify(self, token: str) -> Dict:
        try:
            response = requests.get(
                self.verify_url,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Token verification request failed: {e}")
            raise InvalidTokenError("Unauthorized: Invalid token") from e

        if response.status_code != 200:
            raise InvalidTokenError("Unauthorized: Invalid token")
        try:
            return response.json()
        except ValueError as e:
            raise InvalidTokenError("Unauthorized: Invalid token") from e


class ChainedTokenVerifier(TokenVerifier):
    """First verifier accepting the token wins."""

    def __init__(self, verifiers: List[TokenVerifier]):
        self.verifiers = verifiers

    def verify(self, token: str) -> Dict:
        for verifier in self.verifiers:
            try:
                return verifier.verify(token)
            except InvalidTokenError:
                continue
        raise InvalidTokenError("Unauthorized: Invalid token")


def build_token_verifier(settings: Settings) -> TokenVerifier:
    verifiers: List[TokenVerifier] = []
    if settings.admin_api_tokens:
        verifiers.append(StaticTokenVerifier(settings.admin_api_tokens))
    if settings.auth_verify_url:
        verifiers.append(HttpTokenVerifier(settings.auth_verify_url))
    if not verifiers:
        logger.warning("No admin token source configured; privileged endpoints will reject every request")
    return ChainedTokenVerifier(verifiers)


def get_token_verifier(settings: Settings = Depends(get_settings)) -> TokenVerifier:
    return build_token_verifier(settings)


bearer_scheme = HTTPBearer(auto_error=False)


def require_admin(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier: TokenVerifier = Depends(get_token_verifier),
) -> Dict:
    """Privileged endpoints: 401 without a bearer token, 403 with an invalid one."""
    if credentials is None or not credentials.credentials:
        raise AuthError("Unauthorized: No token provided")
    return verifier.verify(credentials.credentials)
