"""Shared test doubles and builders."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from database import Reservation

GYE = ZoneInfo("America/Guayaquil")
ADMIN_TOKEN = "test-admin-token"


def local_time(year, month, day, hour=0, minute=0, second=0) -> datetime:
    """Guayaquil wall-clock time as a UTC instant."""
    return datetime(year, month, day, hour, minute, second, tzinfo=GYE).astimezone(timezone.utc)


class FixedClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class RecordingMailer:
    """Stands in for Mailer; optionally fails like a broken relay."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent = []

    def send_reservation_confirmation(self, email, spot, date):
        if self.fail:
            raise ConnectionError("SMTP relay unreachable")
        self.sent.append(("confirmation", {"email": email, "spot": spot, "date": date}))

    def send_cancellation_code(self, email, code, spot, date):
        if self.fail:
            raise ConnectionError("SMTP relay unreachable")
        self.sent.append(("cancellation_code", {"email": email, "code": code, "spot": spot, "date": date}))

    def last_code(self) -> str:
        codes = [payload["code"] for kind, payload in self.sent if kind == "cancellation_code"]
        return codes[-1]

    def shutdown(self, wait=True):
        pass


def add_reservation(db, email, day, spot, reservation_id=None):
    """Inserts a reservation directly, bypassing the visible-week rules."""
    reservation = Reservation(
        id=reservation_id or f"{email}-{day}-{spot}",
        email=email,
        date=date.fromisoformat(day) if isinstance(day, str) else day,
        spot=spot,
        created_at=datetime.now(timezone.utc),
    )
    db.add(reservation)
    db.commit()
    return reservation
