"""
Reservation Boss - Week and Calendar Helpers
=============================================

Pure date logic, always evaluated from an explicit "now" and timezone:
- Visible week (Mon-Fri open for booking, with the Friday cutover rule)
- Same-day cancellation window
- Week-of-month numbering used by the monthly report
"""

from datetime import date, datetime, timedelta, timezone, tzinfo
from math import ceil
from typing import Dict, List

from pydantic import BaseModel, ConfigDict

from config import WEEK_CUTOVER_HOUR

WORKING_DAYS = 5
FRIDAY = 5
SATURDAY = 6
SUNDAY = 7


class VisibleWeek(BaseModel):
    """Monday-Friday range currently open for booking."""
    model_config = ConfigDict(frozen=True)

    start: date
    end: date
    dates: List[date]

    def contains(self, day: date) -> bool:
        return day in self.dates

    def labelled_dates(self) -> List[Dict[str, str]]:
        """Dates with English weekday names, for the UI."""
        return [{"date": d.isoformat(), "day": d.strftime("%A")} for d in self.dates]


def to_local(now: datetime, tz: tzinfo) -> datetime:
    """Converts an instant to local wall-clock time. Naive values are taken as UTC."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(tz)


def compute_visible_week(now: datetime, tz: tzinfo, cutover_hour: int = WEEK_CUTOVER_HOUR) -> VisibleWeek:
    """
    Computes the visible week for the given instant.

    Shows the current week Monday-Friday, or the next one from Friday at
    `cutover_hour` (local time) through the weekend.
    """
    local = to_local(now, tz)
    dow = local.isoweekday()  # Mon=1 .. Sun=7
    monday = local.date() - timedelta(days=dow - 1)

    if (dow == FRIDAY and local.hour >= cutover_hour) or dow in (SATURDAY, SUNDAY):
        monday += timedelta(days=7)

    dates = [monday + timedelta(days=i) for i in range(WORKING_DAYS)]
    return VisibleWeek(start=dates[0], end=dates[-1], dates=dates)


def is_cancellation_allowed(reservation_date: date, now: datetime, tz: tzinfo, cutoff_hour: int = 8) -> bool:
    """Future dates can always be cancelled; the same day only before `cutoff_hour`."""
    local = to_local(now, tz)
    today = local.date()

    if reservation_date > today:
        return True
    if reservation_date == today:
        return local.hour < cutoff_hour
    return False


def week_of_month(day: date) -> int:
    """
    Week number inside the month, weeks starting on Monday.

    The offset is the weekday of the 1st counted from Sunday=0, so a Sunday
    1st would land in week 0; it is folded into week 1.
    """
    first = day.replace(day=1)
    offset = first.isoweekday() % 7  # Sun=0 .. Sat=6
    return max(1, ceil((day.day + offset - 1) / 7))


def date_range(start: date, end: date) -> List[date]:
    """Inclusive list of calendar days."""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]
