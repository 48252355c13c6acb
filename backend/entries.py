"""Additive merging of hours into timesheet entries.

An entry is identified inside its timesheet by (project, task, source).
Contributions are summed into the day column, never written over it, so
merges commute and replaying them in any order gives the same totals.
"""
import logging
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import NamedTuple

from sqlmodel import Session, select

from errors import ValidationError
from models import ZERO_HOURS, DayOfWeek, EntrySource, TimesheetEntry

logger = logging.getLogger(__name__)

HOURS_QUANTUM = Decimal("0.01")
# Smallest stored value that still rounds up to one quantum
MIN_COUNTED_HOURS = HOURS_QUANTUM / 2
DEFAULT_PROJECT = "General"
DEFAULT_TASK = "General Work"


class MergeOutcome(NamedTuple):
    entry: TimesheetEntry
    created: bool


def round_hours(value) -> Decimal:
    """Quantize an hour quantity to 2 decimals, rounding half up."""
    if value is None or value == "":
        return ZERO_HOURS
    if isinstance(value, float):
        # str() keeps 3.25 as 3.25 instead of its binary expansion
        value = str(value)
    try:
        return Decimal(value).quantize(HOURS_QUANTUM, rounding=ROUND_HALF_UP)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid hours value: {value!r}") from e


def normalize_key(project: str | None, task: str | None, source: str | EntrySource) -> tuple[str, str, str]:
    project = (project or "").strip() or DEFAULT_PROJECT
    task = (task or "").strip() or DEFAULT_TASK
    try:
        source = EntrySource(source).value
    except ValueError as e:
        raise ValidationError(f"Unknown entry source: {source!r}") from e
    return project, task, source


def find_entry(session: Session, timesheet_id: int, project: str, task: str, source: str) -> TimesheetEntry | None:
    return session.exec(
        select(TimesheetEntry)
        .where(TimesheetEntry.timesheet_id == timesheet_id)
        .where(TimesheetEntry.project == project)
        .where(TimesheetEntry.task == task)
        .where(TimesheetEntry.source == source)
        .order_by(TimesheetEntry.id)
    ).first()


def merge_contribution(
    session: Session,
    timesheet_id: int,
    *,
    project: str | None,
    task: str | None,
    source: str | EntrySource,
    day: DayOfWeek,
    hours,
) -> MergeOutcome | None:
    """Add ``hours`` to ``day`` of the matching entry, creating it if needed.

    Zero or negative contributions are a no-op and never create a row.
    """
    hours = round_hours(hours)
    if hours <= 0:
        return None

    day = DayOfWeek(day)
    project, task, source = normalize_key(project, task, source)
    entry = find_entry(session, timesheet_id, project, task, source)

    if entry:
        entry.set_hours(day, round_hours(entry.get_hours(day) + hours))
        entry.updated_at = datetime.now(UTC)
        created = False
    else:
        entry = TimesheetEntry(timesheet_id=timesheet_id, project=project, task=task, source=source)
        entry.set_hours(day, hours)
        created = True

    session.add(entry)
    session.flush()
    logger.debug(
        f"Merged {hours}h into entry {entry.id} ({project} / {task} / {source}) on {day.short_name}"
    )
    return MergeOutcome(entry=entry, created=created)


def merge_entry_hours(target: TimesheetEntry, other: TimesheetEntry) -> TimesheetEntry:
    """Column-wise sum of all seven days of ``other`` into ``target``."""
    for day in DayOfWeek:
        target.set_hours(day, round_hours(target.get_hours(day) + other.get_hours(day)))
    target.updated_at = datetime.now(UTC)
    return target
