"""Week boundary resolution.

Every timesheet is keyed by the Monday that starts the week in the
employee's own calendar. A timestamp is first converted to the employee's
local calendar date; the week is derived from that date only, so two
timestamps on the same local day always land in the same week no matter
what time of day (or which UTC date) they carry.
"""
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlmodel import Session

from config import DEFAULT_TIMEZONE
from models import DayOfWeek, UserTimezone

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WeekWindow:
    week_start: date
    week_end: date

    def contains(self, day: date) -> bool:
        return self.week_start <= day <= self.week_end

    def dates(self) -> list[date]:
        """The seven calendar dates of the week, Monday first."""
        return [self.week_start + timedelta(days=offset) for offset in range(7)]


def local_date(moment: datetime | date, tz: tzinfo | None = None) -> date:
    """Calendar date of ``moment`` in ``tz``.

    Naive datetimes (legacy rows, SQLite reads) are taken as UTC. A plain
    ``date`` is already a calendar date and is returned unchanged.
    """
    if not isinstance(moment, datetime):
        return moment
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(tz or DEFAULT_TIMEZONE).date()


def day_of_week(moment: datetime | date, tz: tzinfo | None = None) -> DayOfWeek:
    return DayOfWeek(local_date(moment, tz).weekday())


def week_end_for(week_start: date) -> date:
    return week_start + timedelta(days=6)


def resolve_week(moment: datetime | date, tz: tzinfo | None = None) -> WeekWindow:
    """Monday-start / Sunday-end week containing ``moment``'s local date."""
    day = local_date(moment, tz)
    # weekday() is 0 for Monday and 6 for Sunday, so it is the offset back to Monday
    week_start = day - timedelta(days=day.weekday())
    return WeekWindow(week_start=week_start, week_end=week_end_for(week_start))


def timezone_for_user(session: Session, user_id: int) -> tzinfo:
    """The user's own calendar zone, or the company-wide default."""
    row = session.get(UserTimezone, user_id)
    if not row or not row.timezone:
        return DEFAULT_TIMEZONE
    try:
        return ZoneInfo(row.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"User {user_id} has invalid timezone {row.timezone!r}, using {DEFAULT_TIMEZONE}")
        return DEFAULT_TIMEZONE
