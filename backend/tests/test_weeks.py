"""Tests for week boundary resolution."""
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

from models import DayOfWeek, UserTimezone
from weeks import day_of_week, local_date, resolve_week, timezone_for_user


def test_every_day_resolves_to_its_monday_week():
    """Over two years of days, the window starts on Monday, spans 7 days and holds the day."""
    day = date(2024, 1, 1)
    while day < date(2026, 1, 1):
        window = resolve_week(day)
        assert window.week_start.weekday() == 0
        assert window.week_end == window.week_start + timedelta(days=6)
        assert window.contains(day)
        day += timedelta(days=1)


def test_sunday_belongs_to_previous_monday():
    window = resolve_week(date(2025, 11, 9))
    assert window.week_start == date(2025, 11, 3)
    assert window.week_end == date(2025, 11, 9)


def test_monday_starts_its_own_week():
    assert resolve_week(date(2025, 11, 3)).week_start == date(2025, 11, 3)


def test_resolving_inside_window_is_idempotent():
    window = resolve_week(datetime(2025, 11, 6, 19, 0, tzinfo=UTC))
    for day in window.dates():
        assert resolve_week(day) == window


def test_time_of_day_does_not_change_the_week():
    tz = ZoneInfo("Europe/London")
    early = datetime(2025, 11, 9, 0, 1, tzinfo=tz)
    late = datetime(2025, 11, 9, 23, 59, tzinfo=tz)
    assert resolve_week(early, tz) == resolve_week(late, tz)


def test_local_calendar_date_wins_over_utc_date():
    """Sunday evening UTC is already Monday morning in India."""
    moment = datetime(2025, 11, 9, 20, 0, tzinfo=UTC)
    assert resolve_week(moment, ZoneInfo("UTC")).week_start == date(2025, 11, 3)
    assert resolve_week(moment, ZoneInfo("Asia/Kolkata")).week_start == date(2025, 11, 10)
    assert day_of_week(moment, ZoneInfo("Asia/Kolkata")) == DayOfWeek.MONDAY


def test_monday_utc_can_still_be_sunday_locally():
    moment = datetime(2025, 11, 3, 2, 0, tzinfo=UTC)
    tz = ZoneInfo("America/New_York")
    assert local_date(moment, tz) == date(2025, 11, 2)
    assert resolve_week(moment, tz).week_start == date(2025, 10, 27)


def test_naive_datetime_is_read_as_utc():
    naive = datetime(2025, 11, 9, 20, 0)
    assert local_date(naive, ZoneInfo("Asia/Kolkata")) == date(2025, 11, 10)


def test_day_of_week_for_thursday():
    assert day_of_week(datetime(2025, 11, 6, 19, 0, tzinfo=UTC)) == DayOfWeek.THURSDAY


def test_timezone_for_user_falls_back_to_default(test_session):
    assert timezone_for_user(test_session, 1) == ZoneInfo("UTC")


def test_timezone_for_user_reads_user_row(test_session):
    test_session.add(UserTimezone(user_id=1, timezone="Asia/Kolkata"))
    test_session.commit()
    assert timezone_for_user(test_session, 1) == ZoneInfo("Asia/Kolkata")


def test_invalid_user_timezone_uses_default(test_session, caplog):
    test_session.add(UserTimezone(user_id=2, timezone="Mars/Olympus"))
    test_session.commit()
    assert timezone_for_user(test_session, 2) == ZoneInfo("UTC")
    assert "invalid timezone" in caplog.text
