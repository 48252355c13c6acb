import logging
from collections import defaultdict
from datetime import date
from decimal import Decimal

from sqlmodel import Session, select

from config import LEAVE_HOURS_PER_DAY
from models import DAY_FIELDS, ZERO_HOURS, DayOfWeek, EntrySource, LeaveRequest, LeaveStatus, TimesheetEntry
from schemas import EntryView, TimesheetSummary, TimesheetView
from timesheets import find_timesheets_for_week
from weeks import WeekWindow, resolve_week

logger = logging.getLogger(__name__)


def _leave_task(leave: LeaveRequest) -> str:
    label = (leave.leave_type or "").upper()
    return f"{label} - {leave.reason}" if leave.reason else label


def build_leave_entries(leaves: list[LeaveRequest], window: WeekWindow) -> list[EntryView]:
    """One virtual row per approved leave, with hours on each covered day of the week."""
    views = []
    for leave in leaves:
        if leave.status != LeaveStatus.APPROVED.value:
            continue
        hours = {}
        for day, current in zip(DayOfWeek, window.dates()):
            covered = leave.start_date <= current <= leave.end_date
            hours[DAY_FIELDS[day]] = LEAVE_HOURS_PER_DAY if covered else ZERO_HOURS
        total = sum(hours.values(), ZERO_HOURS)
        if total == 0:
            continue
        views.append(
            EntryView(
                project="Leave",
                task=_leave_task(leave),
                source=EntrySource.LEAVE.value,
                total_hours=float(total),
                virtual=True,
                **{field: float(value) for field, value in hours.items()},
            )
        )
    return views


def _persisted_view(entry: TimesheetEntry) -> EntryView:
    return EntryView(
        id=entry.id,
        project=entry.project,
        task=entry.task,
        source=entry.source,
        total_hours=float(entry.total_hours()),
        **{DAY_FIELDS[day]: float(entry.get_hours(day)) for day in DayOfWeek},
    )


def get_timesheet_view(session: Session, user_id: int, week_start: date) -> TimesheetView:
    """The week as API clients see it: persisted rows, leave rows, and totals.

    Leave rows are computed from approved leave requests on every read and
    are never written to the entries table.
    """
    window = resolve_week(week_start)
    timesheets = find_timesheets_for_week(session, user_id, window)
    primary = timesheets[0] if timesheets else None

    entries = []
    if timesheets:
        entries = session.exec(
            select(TimesheetEntry)
            .where(TimesheetEntry.timesheet_id.in_([t.id for t in timesheets]))
            .order_by(TimesheetEntry.created_at, TimesheetEntry.id)
        ).all()

    leaves = session.exec(
        select(LeaveRequest)
        .where(LeaveRequest.user_id == user_id)
        .where(LeaveRequest.status == LeaveStatus.APPROVED.value)
        .where(LeaveRequest.end_date >= window.week_start)
        .where(LeaveRequest.start_date <= window.week_end)
        .order_by(LeaveRequest.start_date, LeaveRequest.id)
    ).all()

    views = [_persisted_view(entry) for entry in entries] + build_leave_entries(leaves, window)

    day_totals = defaultdict(Decimal)
    for view in views:
        for day in DayOfWeek:
            day_totals[day.short_name] += Decimal(str(getattr(view, DAY_FIELDS[day])))
    grand_total = sum(day_totals.values(), ZERO_HOURS)

    logger.info(
        f"Timesheet view for user {user_id} week {window.week_start}: "
        f"{len(entries)} persisted, {len(views) - len(entries)} leave, {grand_total}h"
    )
    return TimesheetView(
        user_id=user_id,
        week_start=window.week_start,
        week_end=window.week_end,
        timesheet=TimesheetSummary(
            id=primary.id,
            user_id=primary.user_id,
            week_start=primary.week_start,
            week_end=primary.week_end,
            status=primary.status,
        ) if primary else None,
        entries=views,
        day_totals={day.short_name: float(day_totals[day.short_name]) for day in DayOfWeek},
        total_hours=float(grand_total),
    )
