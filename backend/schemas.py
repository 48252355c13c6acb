from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from models import DayOfWeek, EntrySource


class ManualEntryRow(BaseModel):
    project: str = ""
    task: str = ""
    source: str = EntrySource.MANUAL.value
    mon_hours: Decimal = Field(default=Decimal("0"), ge=0)
    tue_hours: Decimal = Field(default=Decimal("0"), ge=0)
    wed_hours: Decimal = Field(default=Decimal("0"), ge=0)
    thu_hours: Decimal = Field(default=Decimal("0"), ge=0)
    fri_hours: Decimal = Field(default=Decimal("0"), ge=0)
    sat_hours: Decimal = Field(default=Decimal("0"), ge=0)
    sun_hours: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator(
        "mon_hours", "tue_hours", "wed_hours", "thu_hours", "fri_hours", "sat_hours", "sun_hours",
        mode="before",
    )
    @classmethod
    def blank_hours_are_zero(cls, v):
        # The grid posts empty cells as "" or null
        if v is None or v == "":
            return Decimal("0")
        return v


class SaveTimesheetRequest(BaseModel):
    entries: list[ManualEntryRow]


class SaveTimesheetResponse(BaseModel):
    timesheet_id: int
    week_start: date
    entries_saved: int
    ignored: int


class TimesheetSummary(BaseModel):
    id: int
    user_id: int
    week_start: date
    week_end: date
    status: str


class EntryView(BaseModel):
    id: int | None = None  # None for virtual rows
    project: str
    task: str
    source: str
    mon_hours: float = 0.0
    tue_hours: float = 0.0
    wed_hours: float = 0.0
    thu_hours: float = 0.0
    fri_hours: float = 0.0
    sat_hours: float = 0.0
    sun_hours: float = 0.0
    total_hours: float = 0.0
    virtual: bool = False


class TimesheetView(BaseModel):
    user_id: int
    week_start: date
    week_end: date
    timesheet: TimesheetSummary | None = None
    entries: list[EntryView]
    day_totals: dict[str, float]
    total_hours: float


class ClockOutResponse(BaseModel):
    clock_session_id: int
    total_hours: float
    timesheet_updated: bool


class MoveDayHoursRequest(BaseModel):
    from_week_start: date
    to_week_start: date
    day: DayOfWeek

    @field_validator("day", mode="before")
    @classmethod
    def parse_day_name(cls, v):
        # Accept "thu", "thursday" or 3
        if isinstance(v, str):
            name = v.strip().lower()
            if name.isdigit():
                return int(name)
            for day in DayOfWeek:
                if name in (day.short_name, day.name.lower()):
                    return day
            raise ValueError(f"Unknown day: {v}")
        return v


class BatchError(BaseModel):
    record: str
    error: str


class BatchReport(BaseModel):
    """Outcome counts of one maintenance procedure run."""

    procedure: str
    processed: int = 0
    created: int = 0
    updated: int = 0
    merged: int = 0
    errors: list[BatchError] = []

    def add_error(self, record: str, exc: Exception) -> None:
        self.errors.append(BatchError(record=record, error=str(exc)))

    def summary(self) -> str:
        return (
            f"{self.procedure}: processed={self.processed} created={self.created} "
            f"updated={self.updated} merged={self.merged} errors={len(self.errors)}"
        )
