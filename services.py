import csv
import io
import secrets
import uuid
from calendar import monthrange
from datetime import date, datetime, timedelta, timezone
from functools import wraps
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import pandas as pd
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from cache import TTLCache, summary_key, week_key
from config import Settings
from database import SessionLocal, Reservation, CancellationCode
from errors import (
    BookingError,
    BookingValidationError,
    CancellationWindowClosed,
    CodeExpired,
    ConflictError,
    DuplicateDayBooking,
    EmailMismatch,
    InvalidCode,
    InvalidOrExpiredRequest,
    NotFoundError,
    SpotTaken,
    TooManyAttempts,
    TransientError,
    WeeklyLimitExceeded,
)
from logging_config import get_logger
from mailer import Mailer
from schemas import (
    ReservationDTO,
    ReportReservation,
    UserWeekStats,
    WeeklyReportDTO,
    WeekSummary,
    normalize_email,
    validate_email_domain,
)
from week_helpers import (
    VisibleWeek,
    compute_visible_week,
    date_range,
    is_cancellation_allowed,
    week_of_month,
)

logger = get_logger(__name__)

Clock = Callable[[], datetime]

ADMIN_LIST_LIMIT = 500
MAX_RANGE_DAYS = 31


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; they were stored as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_iso_date(value) -> Optional[date]:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        return None


def new_reservation_id() -> str:
    return uuid.uuid4().hex


def generate_code() -> str:
    """Uniformly random 6-digit code (100000-999999)."""
    return str(100000 + secrets.randbelow(900000))


# ==========================================
# SESSION HANDLING
# ==========================================

def with_db(func):
    """
    Session lifecycle decorator for service methods.

    - If a Session is passed (first argument or `db=`): use it, the caller
      (FastAPI's Depends(get_db), a test) owns its lifecycle
    - Otherwise (scripts): open one from SessionLocal and clean it up after
    """
    @wraps(func)
    def wrapper(self, *args, **kwargs):
        if (args and isinstance(args[0], Session)) or kwargs.get('db') is not None:
            return func(self, *args, **kwargs)

        db = SessionLocal()
        try:
            return func(self, db, *args, **kwargs)
        except Exception as e:
            db.rollback()
            logger.error(f"Error in {func.__name__}: {e}")
            raise
        finally:
            SessionLocal.remove()

    return wrapper


class _CacheAware:
    """Post-commit side effects shared by the write services. Never raise."""

    cache: Optional[TTLCache]
    mailer: Optional[Mailer]

    def _invalidate(self, *patterns: Optional[str]) -> None:
        if self.cache is None:
            return
        for pattern in patterns:
            try:
                self.cache.invalidate(pattern)
            except Exception:
                logger.exception(f"Cache invalidation failed for pattern={pattern!r}")

    def _invalidate_week(self, week: VisibleWeek) -> None:
        self._invalidate(week_key(week.start, week.end), summary_key(week.start, week.end))

    def _notify(self, send_name: str, **kwargs) -> None:
        if self.mailer is None:
            return
        try:
            getattr(self.mailer, send_name)(**kwargs)
        except Exception:
            logger.exception(f"Email dispatch failed ({send_name})")


class ReservationService(_CacheAware):
    """Reservations: the weekly invariant engine plus admin maintenance."""

    def __init__(self, settings: Settings, cache: Optional[TTLCache] = None,
                 mailer: Optional[Mailer] = None, clock: Clock = utc_now):
        self.settings = settings
        self.cache = cache
        self.mailer = mailer
        self.clock = clock

    def visible_week(self) -> VisibleWeek:
        """Recomputed on every call, it moves with the clock."""
        return compute_visible_week(self.clock(), self.settings.tzinfo, self.settings.week_cutover_hour)

    # ==========================================
    # RESERVE
    # ==========================================

    @with_db
    def reserve(self, db: Session, email: Optional[str], day: Optional[str], spot: Optional[str]) -> ReservationDTO:
        """
        Creates a reservation under the three booking rules, atomically.

        Raises:
            BookingValidationError: missing field, bad email, date outside the
                visible week or unknown spot
            DuplicateDayBooking / SpotTaken / WeeklyLimitExceeded: rule violated
            TransientError: the store failed
        """
        if not email or not day or not spot:
            raise BookingValidationError("Email, date, and parking spot are required")

        normalized = validate_email_domain(email, self.settings.allowed_domain)

        week = self.visible_week()
        reservation_date = parse_iso_date(day)
        if reservation_date is None or not week.contains(reservation_date):
            raise BookingValidationError("You can only reserve dates within the visible week.")

        if spot not in self.settings.parking_spots:
            raise BookingValidationError("Invalid parking spot selected.")

        # Checks and insert share one serializable transaction
        try:
            self._check_rules(db, normalized, reservation_date, spot, week)

            reservation = Reservation(
                id=new_reservation_id(),
                email=normalized,
                date=reservation_date,
                spot=spot,
                created_at=as_utc(self.clock()),
            )
            db.add(reservation)
            db.commit()
        except BookingError as e:
            db.rollback()
            logger.info(f"Reservation rejected for {normalized} on {reservation_date} ({spot}): {e.message}")
            raise
        except IntegrityError as e:
            db.rollback()
            raise self._classify_conflict(db, normalized, reservation_date, spot) from e
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Reservation transaction failed: {e}")
            raise TransientError("Failed to create reservation. Please try again.") from e

        logger.info(f"Reservation {reservation.id} created: {normalized} {spot} {reservation_date}")

        self._notify("send_reservation_confirmation", email=normalized, spot=spot, date=reservation_date.isoformat())
        self._invalidate_week(week)

        return ReservationDTO.model_validate(reservation)

    def _check_rules(self, db: Session, email: str, day: date, spot: str, week: VisibleWeek) -> None:
        same_day = db.query(Reservation.id).filter(
            Reservation.date == day,
            Reservation.email == email
        ).first()
        if same_day:
            raise DuplicateDayBooking("You can only reserve one parking spot per day.")

        taken = db.query(Reservation.id).filter(
            Reservation.date == day,
            Reservation.spot == spot
        ).first()
        if taken:
            raise SpotTaken(f"Parking spot {spot} is already reserved for this date.")

        weekly_count = db.query(func.count(Reservation.id)).filter(
            Reservation.email == email,
            Reservation.date >= week.start,
            Reservation.date <= week.end
        ).scalar() or 0

        limit = self.settings.max_weekly_reservations
        if weekly_count >= limit:
            raise WeeklyLimitExceeded(
                f"You can only make {limit} reservations per week. "
                f"You currently have {weekly_count} reservations."
            )

    def _classify_conflict(self, db: Session, email: str, day: date, spot: str) -> ConflictError:
        """Maps a unique-constraint violation back to the rule it broke."""
        try:
            same_day = db.query(Reservation.id).filter(
                Reservation.date == day,
                Reservation.email == email
            ).first()
        finally:
            db.rollback()
        if same_day:
            return DuplicateDayBooking("You can only reserve one parking spot per day.")
        return SpotTaken(f"Parking spot {spot} is already reserved for this date.")

    # ==========================================
    # ADMIN MAINTENANCE
    # ==========================================

    @with_db
    def release(self, db: Session, reservation_id: str) -> None:
        """Deletes one reservation unconditionally."""
        reservation = db.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation not found.")

        try:
            db.query(CancellationCode).filter(CancellationCode.reservation_id == reservation_id).delete()
            db.delete(reservation)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise TransientError("Failed to release reservation.") from e

        logger.info(f"Reservation {reservation_id} released ({reservation.email} {reservation.spot} {reservation.date})")
        self._invalidate_week(self.visible_week())

    @with_db
    def purge_older_than(self, db: Session, cutoff: date) -> int:
        """Deletes every reservation strictly before `cutoff`. Returns the count."""
        stale_ids = select(Reservation.id).where(Reservation.date < cutoff)
        try:
            db.query(CancellationCode).filter(
                CancellationCode.reservation_id.in_(stale_ids)
            ).delete(synchronize_session=False)
            deleted = db.query(Reservation).filter(
                Reservation.date < cutoff
            ).delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise TransientError("Failed to delete old reservations.") from e

        logger.info(f"Purged {deleted} reservations older than {cutoff}")
        self._invalidate(None)
        return deleted

    @with_db
    def cleanup_stale(self, db: Session) -> Tuple[int, date]:
        """Purges everything before the current visible week."""
        cutoff = self.visible_week().start
        return self.purge_older_than(db, cutoff), cutoff

    @with_db
    def clear_all(self, db: Session) -> int:
        try:
            db.query(CancellationCode).delete(synchronize_session=False)
            deleted = db.query(Reservation).delete(synchronize_session=False)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise TransientError("Failed to clear reservations") from e

        logger.warning(f"All reservations cleared ({deleted})")
        self._invalidate(None)
        return deleted

    @with_db
    def bulk_import(self, db: Session, records: Iterable[Dict]) -> int:
        """
        Inserts raw reservation records in one atomic batch.

        Emails are normalized; a record breaking a uniqueness rule aborts the
        whole batch.
        """
        rows = []
        for index, record in enumerate(records):
            email = record.get("email")
            day = parse_iso_date(record.get("date"))
            spot = record.get("spot")
            if not email or day is None or not spot:
                raise BookingValidationError(f"Record {index} needs email, date (YYYY-MM-DD) and spot")

            created_at = record.get("createdAt") or record.get("created_at")
            if created_at is not None and pd.isna(created_at):
                created_at = None
            rows.append(Reservation(
                id=str(record.get("id") or new_reservation_id()),
                email=normalize_email(email),
                date=day,
                spot=str(spot),
                created_at=pd.Timestamp(created_at).to_pydatetime() if created_at else self.clock(),
            ))

        try:
            db.add_all(rows)
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictError("Import contains reservations that conflict with existing ones.") from e
        except SQLAlchemyError as e:
            db.rollback()
            raise TransientError("Import failed.") from e

        logger.info(f"Imported {len(rows)} reservations")
        self._invalidate(None)
        return len(rows)

    # ==========================================
    # READS
    # ==========================================

    def resolve_range(self, start: Optional[str] = None, end: Optional[str] = None) -> Tuple[date, date]:
        """Explicit range, falling back to the visible week for missing bounds."""
        week = self.visible_week()
        start_date = parse_iso_date(start) if start else week.start
        end_date = parse_iso_date(end) if end else week.end
        if start_date is None or end_date is None:
            raise BookingValidationError("Dates must use the YYYY-MM-DD format.")
        if start_date > end_date:
            raise BookingValidationError("Start date must not be after end date.")
        if (end_date - start_date).days + 1 > MAX_RANGE_DAYS:
            raise BookingValidationError(f"Date ranges are limited to {MAX_RANGE_DAYS} days.")
        return start_date, end_date

    @with_db
    def list_all(self, db: Session, limit: int = ADMIN_LIST_LIMIT) -> List[ReservationDTO]:
        res = db.query(Reservation).order_by(
            Reservation.date.desc(),
            Reservation.created_at.desc()
        ).limit(limit).all()
        return [ReservationDTO.model_validate(r) for r in res]

    @with_db
    def week_reservations(self, db: Session, start: Optional[str] = None,
                          end: Optional[str] = None) -> List[ReservationDTO]:
        start_date, end_date = self.resolve_range(start, end)
        key = week_key(start_date, end_date)

        cached = self.cache.get(key) if self.cache is not None else None
        if cached is not None:
            return cached

        try:
            res = db.query(Reservation).filter(
                Reservation.date >= start_date,
                Reservation.date <= end_date
            ).order_by(Reservation.date.asc(), Reservation.spot.asc()).all()
        except SQLAlchemyError as e:
            raise TransientError("Failed to fetch weekly reservations") from e

        reservations = [ReservationDTO.model_validate(r) for r in res]
        if self.cache is not None:
            self.cache.set(key, reservations)
        return reservations

    @with_db
    def week_summary(self, db: Session, start: Optional[str] = None, end: Optional[str] = None) -> WeekSummary:
        """Grid of {date: {spot: email or None}} for every day of the range."""
        start_date, end_date = self.resolve_range(start, end)
        key = summary_key(start_date, end_date)

        cached = self.cache.get(key) if self.cache is not None else None
        if cached is not None:
            return cached

        summary: WeekSummary = {
            d.isoformat(): {spot: None for spot in self.settings.parking_spots}
            for d in date_range(start_date, end_date)
        }

        try:
            res = db.query(Reservation).filter(
                Reservation.date >= start_date,
                Reservation.date <= end_date
            ).all()
        except SQLAlchemyError as e:
            raise TransientError("Failed to fetch weekly summary") from e

        for r in res:
            summary[r.date.isoformat()][r.spot] = r.email

        if self.cache is not None:
            self.cache.set(key, summary)
        return summary


class CancellationService(_CacheAware):
    """
    Self-service cancellation in two steps:
    request a code by email, then present it to delete the reservation.
    """

    def __init__(self, settings: Settings, cache: Optional[TTLCache] = None,
                 mailer: Optional[Mailer] = None, clock: Clock = utc_now):
        self.settings = settings
        self.cache = cache
        self.mailer = mailer
        self.clock = clock

    def can_cancel(self, reservation_date: date) -> bool:
        return is_cancellation_allowed(
            reservation_date,
            self.clock(),
            self.settings.tzinfo,
            self.settings.same_day_cancel_cutoff_hour
        )

    @with_db
    def request_code(self, db: Session, reservation_id: Optional[str], email: Optional[str]) -> None:
        """
        Issues a fresh code for the reservation and emails it.

        The code replaces any previous one and is never returned to the caller.
        """
        if not reservation_id or not email:
            raise BookingValidationError("Reservation ID and email are required")

        reservation = db.get(Reservation, reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation not found")

        presented = normalize_email(email)
        if reservation.email.lower() != presented:
            raise EmailMismatch("Email does not match reservation")

        if not self.can_cancel(reservation.date):
            raise CancellationWindowClosed(
                "Cancellation not allowed. You can only cancel future reservations "
                f"or before {self.settings.same_day_cancel_cutoff_hour}:00 AM on the reservation day."
            )

        now = as_utc(self.clock())
        code = generate_code()
        try:
            db.merge(CancellationCode(
                reservation_id=reservation_id,
                code=code,
                email=presented,
                attempts=0,
                expires_at=now + timedelta(minutes=self.settings.cancellation_code_ttl_minutes),
                created_at=now,
            ))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise TransientError("Failed to request cancellation code") from e

        logger.info(f"Cancellation code issued for reservation {reservation_id}")
        self._notify(
            "send_cancellation_code",
            email=presented,
            code=code,
            spot=reservation.spot,
            date=reservation.date.isoformat()
        )

    @with_db
    def verify_and_cancel(self, db: Session, reservation_id: Optional[str], code: Optional[str]) -> None:
        """
        Deletes the reservation if `code` matches the live code.

        A wrong guess keeps the code (retry allowed) unless the attempt limit
        is configured and reached. An expired code is removed.
        """
        if not reservation_id or code is None or not str(code).strip():
            raise BookingValidationError("Reservation ID and code are required")

        stored = db.get(CancellationCode, reservation_id)
        if stored is None:
            raise InvalidOrExpiredRequest("Invalid or expired cancellation request")

        try:
            if as_utc(self.clock()) > as_utc(stored.expires_at):
                db.delete(stored)
                db.commit()
                logger.info(f"Expired cancellation code removed for reservation {reservation_id}")
                raise CodeExpired("Cancellation code has expired. Please request a new one.")

            # Byte comparison: compare_digest rejects non-ASCII str input
            presented = str(code).strip().encode("utf-8")
            if not secrets.compare_digest(stored.code.encode("utf-8"), presented):
                self._register_failed_attempt(db, stored)

            reservation = db.get(Reservation, reservation_id)
            if reservation is not None:
                db.delete(reservation)
            db.delete(stored)
            db.commit()
        except BookingError:
            raise
        except SQLAlchemyError as e:
            db.rollback()
            raise TransientError("Failed to cancel reservation") from e

        logger.info(f"Reservation {reservation_id} cancelled by its owner")
        self._invalidate("week:", "summary:")

    def _register_failed_attempt(self, db: Session, stored: CancellationCode) -> None:
        limit = self.settings.cancellation_max_attempts
        stored.attempts = (stored.attempts or 0) + 1

        if limit and stored.attempts >= limit:
            db.delete(stored)
            db.commit()
            logger.warning(f"Cancellation code for {stored.reservation_id} revoked after {stored.attempts} failed attempts")
            raise TooManyAttempts("Too many wrong attempts. Please request a new code.")

        db.commit()
        logger.info(f"Wrong cancellation code for reservation {stored.reservation_id} (attempt {stored.attempts})")
        raise InvalidCode("Invalid cancellation code")


class ReportService:
    """Read-only attendance aggregation for the admin reports."""

    def __init__(self, settings: Settings, clock: Clock = utc_now):
        self.settings = settings
        self.clock = clock

    @with_db
    def weekly_report(self, db: Session, start: Optional[str] = None, end: Optional[str] = None) -> WeeklyReportDTO:
        """
        Per-user attendance for a week (defaults to the visible week).

        Users are sorted by distinct days descending, then email.
        """
        week = compute_visible_week(self.clock(), self.settings.tzinfo, self.settings.week_cutover_hour)
        week_start = parse_iso_date(start) if start else week.start
        week_end = parse_iso_date(end) if end else week.end
        if week_start is None or week_end is None or week_start > week_end:
            raise BookingValidationError("Invalid report range.")

        try:
            res = db.query(Reservation).filter(
                Reservation.date >= week_start,
                Reservation.date <= week_end
            ).all()
        except SQLAlchemyError as e:
            raise TransientError("Failed to fetch weekly report") from e

        user_stats: Dict[str, Dict] = {}
        for r in res:
            stats = user_stats.setdefault(r.email, {"days": set(), "reservations": []})
            stats["days"].add(r.date)
            stats["reservations"].append(ReportReservation(date=r.date, spot=r.spot))

        report = [
            UserWeekStats(
                email=email,
                days_count=len(stats["days"]),
                reservations=sorted(stats["reservations"], key=lambda x: x.date)
            )
            for email, stats in user_stats.items()
        ]
        report.sort(key=lambda u: (-u.days_count, u.email))

        logger.info(f"weekly_report: {len(report)} users between {week_start} and {week_end}")
        return WeeklyReportDTO(week_start=week_start, week_end=week_end, report=report)

    @staticmethod
    def monthly_csv_filename(year: int, month: int) -> str:
        return f"parking-report-{date(year, month, 1).strftime('%B')}-{year}.csv"

    @with_db
    def monthly_csv(self, db: Session, year: int, month: int) -> str:
        """
        Distinct reserved days per user and week of the month, as CSV.

        Columns: Email, Week 1 Days .. Week N Days (N = highest week with data,
        lower weeks zero-filled), Total Days. Rows by total descending, then email.
        """
        if not 1 <= month <= 12:
            raise BookingValidationError("Month must be between 1 and 12.")

        first_day = date(year, month, 1)
        last_day = date(year, month, monthrange(year, month)[1])

        try:
            res = db.query(Reservation.email, Reservation.date).filter(
                Reservation.date >= first_day,
                Reservation.date <= last_day
            ).all()
        except SQLAlchemyError as e:
            raise TransientError("Failed to generate monthly report") from e

        rows = []
        weeks = [1]
        if res:
            df = pd.DataFrame([{"email": r.email, "date": r.date} for r in res])
            df["week"] = [week_of_month(d) for d in df["date"]]
            weeks = list(range(1, int(df["week"].max()) + 1))

            pivot = (
                df.groupby(["email", "week"])["date"].nunique()
                .unstack(fill_value=0)
                .reindex(columns=weeks, fill_value=0)
            )
            pivot["total"] = pivot.sum(axis=1)
            pivot = pivot.reset_index().sort_values(["total", "email"], ascending=[False, True])
            rows = [[row[0]] + [int(v) for v in row[1:]] for row in pivot.itertuples(index=False)]

        buffer = io.StringIO()
        header = ["Email"] + [f"Week {w} Days" for w in weeks] + ["Total Days"]
        csv.writer(buffer, lineterminator="\n").writerow(header)
        csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n").writerows(rows)

        logger.info(f"monthly_csv: {len(rows)} users for {year}-{month:02d}")
        return buffer.getvalue().rstrip("\n")
