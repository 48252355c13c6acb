from datetime import UTC, date, datetime
from decimal import Decimal
from enum import Enum, IntEnum

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel, UniqueConstraint


class DayOfWeek(IntEnum):
    """Day of a Monday-start week; values match ``date.weekday()``."""

    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def short_name(self) -> str:
        return self.name[:3].lower()


class EntrySource(str, Enum):
    MANUAL = "manual"
    TIME_CLOCK = "time_clock"
    LEAVE = "leave"


class TimesheetStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"


class ClockStatus(str, Enum):
    CLOCKED_IN = "clocked_in"
    PAUSED = "paused"
    CLOCKED_OUT = "clocked_out"


class LeaveStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# The only place a day is tied to a column name
DAY_FIELDS = {
    DayOfWeek.MONDAY: "mon_hours",
    DayOfWeek.TUESDAY: "tue_hours",
    DayOfWeek.WEDNESDAY: "wed_hours",
    DayOfWeek.THURSDAY: "thu_hours",
    DayOfWeek.FRIDAY: "fri_hours",
    DayOfWeek.SATURDAY: "sat_hours",
    DayOfWeek.SUNDAY: "sun_hours",
}

ZERO_HOURS = Decimal("0.00")


class Timesheet(SQLModel, table=True):
    __tablename__ = "timesheets"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    week_start: date = Field(index=True)  # Monday in the owner's calendar
    week_end: date  # week_start + 6 days
    status: str = Field(default=TimesheetStatus.DRAFT.value)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), sa_type=DateTime(timezone=True))
    updated_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))


class TimesheetEntry(SQLModel, table=True):
    __tablename__ = "timesheet_entries"
    __table_args__ = (
        UniqueConstraint("timesheet_id", "project", "task", "source", name="uniq_timesheet_entries_key"),
    )

    id: int | None = Field(default=None, primary_key=True)
    timesheet_id: int = Field(foreign_key="timesheets.id", index=True)
    project: str
    task: str
    source: str = Field(default=EntrySource.MANUAL.value, index=True)
    mon_hours: Decimal = Field(default=ZERO_HOURS, max_digits=6, decimal_places=2)
    tue_hours: Decimal = Field(default=ZERO_HOURS, max_digits=6, decimal_places=2)
    wed_hours: Decimal = Field(default=ZERO_HOURS, max_digits=6, decimal_places=2)
    thu_hours: Decimal = Field(default=ZERO_HOURS, max_digits=6, decimal_places=2)
    fri_hours: Decimal = Field(default=ZERO_HOURS, max_digits=6, decimal_places=2)
    sat_hours: Decimal = Field(default=ZERO_HOURS, max_digits=6, decimal_places=2)
    sun_hours: Decimal = Field(default=ZERO_HOURS, max_digits=6, decimal_places=2)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), sa_type=DateTime(timezone=True))
    updated_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.project, self.task, self.source)

    def get_hours(self, day: DayOfWeek) -> Decimal:
        return Decimal(getattr(self, DAY_FIELDS[day]) or 0)

    def set_hours(self, day: DayOfWeek, hours: Decimal) -> None:
        setattr(self, DAY_FIELDS[day], hours)

    def day_hours(self) -> list[Decimal]:
        return [self.get_hours(day) for day in DayOfWeek]

    def total_hours(self) -> Decimal:
        return sum(self.day_hours(), ZERO_HOURS)


class ClockSession(SQLModel, table=True):
    """A clock-in/out session, owned by the time clock feature."""

    __tablename__ = "time_clock"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    issue_id: int | None = Field(default=None, foreign_key="issues.id")
    project_name: str | None = Field(default=None)
    clock_in: datetime = Field(sa_type=DateTime(timezone=True))
    clock_out: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))  # NULL while active
    paused_duration: Decimal = Field(default=ZERO_HOURS, max_digits=8, decimal_places=4)  # hours
    total_hours: Decimal | None = Field(default=None, max_digits=6, decimal_places=2)
    status: str = Field(default=ClockStatus.CLOCKED_IN.value, index=True)


class Issue(SQLModel, table=True):
    __tablename__ = "issues"

    id: int | None = Field(default=None, primary_key=True)
    title: str | None = Field(default=None)
    project_name: str | None = Field(default=None)


class LeaveRequest(SQLModel, table=True):
    __tablename__ = "leave_requests"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    start_date: date  # inclusive, local calendar
    end_date: date  # inclusive, local calendar
    leave_type: str
    reason: str | None = Field(default=None)
    status: str = Field(default=LeaveStatus.PENDING.value, index=True)


class UserTimezone(SQLModel, table=True):
    __tablename__ = "user_timezones"

    user_id: int = Field(primary_key=True)
    timezone: str  # IANA name, e.g. 'Asia/Kolkata'


class ReconciledSession(SQLModel, table=True):
    """Ledger of clock sessions whose hours already live in a timesheet."""

    __tablename__ = "reconciled_sessions"

    clock_session_id: int = Field(primary_key=True, foreign_key="time_clock.id")
    timesheet_id: int = Field(index=True)
    hours: Decimal = Field(max_digits=6, decimal_places=2)
    reconciled_at: datetime = Field(default_factory=lambda: datetime.now(UTC), sa_type=DateTime(timezone=True))
