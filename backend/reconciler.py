"""Consolidates clock sessions and manual rows into weekly timesheets.

The live path (clock-out, manual save) and the maintenance procedures share
the same identity and merge steps. Every clock session that reaches a
timesheet is written to the reconciled_sessions ledger in the same
transaction, which is what lets the backfill be re-run safely.
"""
import logging
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from functools import partial

from sqlalchemy import delete
from sqlmodel import Session, select

from batch import process_record
from db import unit_of_work
from entries import MIN_COUNTED_HOURS, MergeOutcome, merge_contribution, normalize_key, round_hours
from errors import ClockSessionError, NotFoundError, ValidationError
from models import (
    DAY_FIELDS,
    ZERO_HOURS,
    ClockSession,
    ClockStatus,
    DayOfWeek,
    EntrySource,
    Issue,
    ReconciledSession,
    Timesheet,
    TimesheetEntry,
)
from schemas import BatchReport, ManualEntryRow
from timesheets import (
    find_timesheet,
    fix_all_timesheet_weeks,
    get_or_create_timesheet,
    merge_duplicate_timesheets,
)
from weeks import day_of_week, local_date, resolve_week, timezone_for_user

logger = logging.getLogger(__name__)

WORK_DAYS = (DayOfWeek.MONDAY, DayOfWeek.TUESDAY, DayOfWeek.WEDNESDAY, DayOfWeek.THURSDAY, DayOfWeek.FRIDAY)
MINIMUM_SESSION_HOURS = Decimal("0.01")


def _as_utc(moment: datetime) -> datetime:
    # SQLite and legacy rows hand back naive UTC timestamps
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def calculate_total_hours(clock_in: datetime, clock_out: datetime, paused_hours=0) -> Decimal:
    """Worked hours between clock-in and clock-out, less paused time.

    Any positive interval counts as at least 0.01 hours.
    """
    elapsed = Decimal(str((_as_utc(clock_out) - _as_utc(clock_in)).total_seconds())) / Decimal(3600)
    worked = elapsed - Decimal(paused_hours or 0)
    if elapsed > 0 and worked < MINIMUM_SESSION_HOURS:
        worked = MINIMUM_SESSION_HOURS
    return round_hours(max(worked, ZERO_HOURS))


def derive_project_task(session: Session, clock_session: ClockSession) -> tuple[str, str]:
    project = clock_session.project_name or "General"
    task = "General Work"

    if clock_session.issue_id:
        issue = session.get(Issue, clock_session.issue_id)
        if issue:
            project = issue.project_name or clock_session.project_name or "General"
            task = f"Issue #{clock_session.issue_id}: {issue.title or 'Untitled'}"
        else:
            logger.warning(f"Clock session {clock_session.id} links missing issue {clock_session.issue_id}")
            task = f"Issue #{clock_session.issue_id}"

    project, task, _ = normalize_key(project, task, EntrySource.TIME_CLOCK)
    return project, task


def _is_eligible(clock_session: ClockSession) -> bool:
    return (
        clock_session.status == ClockStatus.CLOCKED_OUT.value
        and clock_session.clock_out is not None
        and clock_session.total_hours is not None
        and round_hours(clock_session.total_hours) > 0
    )


def reconcile_clock_session(session: Session, clock_session: ClockSession) -> MergeOutcome | None:
    """Merge one closed clock session into its week's timesheet.

    Returns None when the session is not eligible or was already reconciled.
    Runs inside the caller's transaction.
    """
    if not _is_eligible(clock_session):
        return None
    if session.get(ReconciledSession, clock_session.id):
        logger.debug(f"Clock session {clock_session.id} already reconciled")
        return None

    tz = timezone_for_user(session, clock_session.user_id)
    window = resolve_week(clock_session.clock_out, tz)
    day = day_of_week(clock_session.clock_out, tz)
    hours = round_hours(clock_session.total_hours)

    timesheet = get_or_create_timesheet(session, clock_session.user_id, window.week_start)
    project, task = derive_project_task(session, clock_session)
    outcome = merge_contribution(
        session,
        timesheet.id,
        project=project,
        task=task,
        source=EntrySource.TIME_CLOCK,
        day=day,
        hours=hours,
    )

    session.add(ReconciledSession(clock_session_id=clock_session.id, timesheet_id=timesheet.id, hours=hours))
    session.flush()
    logger.info(
        f"Clock session {clock_session.id}: {hours}h on {day.short_name} "
        f"into timesheet {timesheet.id} ({project} / {task})"
    )
    return outcome


def close_clock_session(session: Session, clock_session_id: int, *, now: datetime | None = None) -> dict:
    """Clock out an active session, then add its hours to the timesheet.

    The clock-out is committed on its own. The timesheet merge is best
    effort: if it fails the session stays closed and the backfill picks it
    up later.
    """
    clock_session = session.get(ClockSession, clock_session_id)
    if not clock_session:
        raise NotFoundError(f"Clock session {clock_session_id} not found")
    if clock_session.status == ClockStatus.CLOCKED_OUT.value:
        raise ClockSessionError(f"Clock session {clock_session_id} is already clocked out")

    clock_out = _as_utc(now or datetime.now(UTC))
    total_hours = calculate_total_hours(clock_session.clock_in, clock_out, clock_session.paused_duration)

    clock_session.clock_out = clock_out
    clock_session.total_hours = total_hours
    clock_session.status = ClockStatus.CLOCKED_OUT.value
    session.add(clock_session)
    session.commit()
    logger.info(f"Clock session {clock_session_id} closed with {total_hours}h")

    timesheet_updated = False
    try:
        outcome = unit_of_work(
            session, lambda: reconcile_clock_session(session, session.get(ClockSession, clock_session_id))
        )
        timesheet_updated = outcome is not None
    except Exception:
        # The clock-out itself already succeeded
        logger.exception(f"Error adding clock session {clock_session_id} to timesheet")

    return {
        "clock_session_id": clock_session_id,
        "total_hours": total_hours,
        "timesheet_updated": timesheet_updated,
    }


def save_manual_entries(session: Session, user_id: int, week_start: date, rows: list[ManualEntryRow]) -> dict:
    """Replace the user's manual rows for the week with ``rows``.

    Rows tagged with another source belong to the system and are ignored.
    Blank rows and rows without hours are dropped; rows sharing a key are
    summed. Runs inside the caller's transaction.
    """
    timesheet = get_or_create_timesheet(session, user_id, week_start)

    ignored = 0
    pending: dict[tuple[str, str, str], list[Decimal]] = {}
    for row in rows:
        if row.source != EntrySource.MANUAL.value:
            ignored += 1
            continue
        if not row.project.strip() or not row.task.strip():
            continue
        hours = [round_hours(getattr(row, DAY_FIELDS[day])) for day in DayOfWeek]
        if any(h < 0 for h in hours):
            raise ValidationError(f"Negative hours for {row.project} / {row.task}")
        if sum(hours) == 0:
            continue
        key = normalize_key(row.project, row.task, EntrySource.MANUAL)
        if key in pending:
            hours = [round_hours(a + b) for a, b in zip(pending[key], hours)]
        pending[key] = hours

    session.exec(
        delete(TimesheetEntry)
        .where(TimesheetEntry.timesheet_id == timesheet.id)
        .where(TimesheetEntry.source == EntrySource.MANUAL.value)
    )

    for (project, task, source), hours in pending.items():
        entry = TimesheetEntry(timesheet_id=timesheet.id, project=project, task=task, source=source)
        for day, value in zip(DayOfWeek, hours):
            entry.set_hours(day, value)
        session.add(entry)
    session.flush()

    if ignored:
        logger.info(f"Ignored {ignored} non-manual row(s) in save for timesheet {timesheet.id}")
    logger.info(f"Saved {len(pending)} manual entries to timesheet {timesheet.id}")
    return {
        "timesheet_id": timesheet.id,
        "week_start": timesheet.week_start,
        "entries_saved": len(pending),
        "ignored": ignored,
    }


def _count_merge(report: BatchReport, outcome: MergeOutcome | None) -> None:
    if outcome is None:
        return
    if outcome.created:
        report.created += 1
    else:
        report.updated += 1


def _reconcile_by_id(session: Session, clock_session_id: int) -> MergeOutcome | None:
    return reconcile_clock_session(session, session.get(ClockSession, clock_session_id))


def backfill_timesheet_entries(session: Session) -> BatchReport:
    """Merge every closed clock session that is not yet in a timesheet."""
    report = BatchReport(procedure="backfill")
    already_reconciled = select(ReconciledSession.clock_session_id)
    session_ids = session.exec(
        select(ClockSession.id)
        .where(ClockSession.status == ClockStatus.CLOCKED_OUT.value)
        .where(ClockSession.clock_out.is_not(None))
        .where(ClockSession.total_hours >= MIN_COUNTED_HOURS)
        .where(ClockSession.id.not_in(already_reconciled))
        .order_by(ClockSession.clock_out, ClockSession.id)
    ).all()
    logger.info(f"Found {len(session_ids)} clock session(s) to reconcile")

    for clock_session_id in session_ids:
        ok, outcome = process_record(
            session, report, f"clock session {clock_session_id}",
            partial(_reconcile_by_id, session, clock_session_id),
        )
        if ok:
            report.processed += 1
            _count_merge(report, outcome)

    logger.info(report.summary())
    return report


def _move_entry_day(session: Session, entry_id: int, to_week_start: date, day: DayOfWeek) -> MergeOutcome | None:
    entry = session.get(TimesheetEntry, entry_id)
    hours = entry.get_hours(day)
    if hours <= 0:
        return None

    stale = session.get(Timesheet, entry.timesheet_id)
    target = get_or_create_timesheet(session, stale.user_id, to_week_start)
    if target.id == stale.id:
        logger.warning(f"Timesheet {stale.id} already covers {to_week_start}, leaving entry {entry_id} alone")
        return None

    outcome = merge_contribution(
        session,
        target.id,
        project=entry.project,
        task=entry.task,
        source=entry.source,
        day=day,
        hours=hours,
    )
    entry.set_hours(day, ZERO_HOURS)
    entry.updated_at = datetime.now(UTC)
    session.add(entry)
    session.flush()
    logger.info(
        f"Moved {hours}h {day.short_name} of {entry.project} / {entry.task} "
        f"from timesheet {stale.id} to {target.id}"
    )
    return outcome


def move_day_hours(session: Session, from_week_start: date, to_week_start: date, day: DayOfWeek) -> BatchReport:
    """Move one day column from timesheets stored at ``from_week_start`` to the right week.

    A repair for hours that a boundary bug filed under the wrong week. The
    source column is zeroed after the move, so running it again is a no-op.
    """
    day = DayOfWeek(day)
    to_week_start = resolve_week(to_week_start).week_start
    if from_week_start == to_week_start:
        raise ValidationError("Source and target weeks are the same")

    report = BatchReport(procedure="move-day-hours")
    day_column = getattr(TimesheetEntry, DAY_FIELDS[day])
    entry_ids = session.exec(
        select(TimesheetEntry.id)
        .join(Timesheet, Timesheet.id == TimesheetEntry.timesheet_id)
        .where(Timesheet.week_start == from_week_start)
        .where(day_column > 0)
        .order_by(TimesheetEntry.id)
    ).all()
    logger.info(
        f"Found {len(entry_ids)} entry/entries with {day.short_name} hours in week {from_week_start}"
    )

    for entry_id in entry_ids:
        ok, outcome = process_record(
            session, report, f"entry {entry_id}",
            partial(_move_entry_day, session, entry_id, to_week_start, day),
        )
        if ok:
            report.processed += 1
            _count_merge(report, outcome)

    logger.info(report.summary())
    return report


def _carry_forward(session: Session, user_id: int, today: date | None) -> int | None:
    if today is None:
        today = local_date(datetime.now(UTC), timezone_for_user(session, user_id))
    current = resolve_week(today)
    if find_timesheet(session, user_id, current.week_start):
        return None

    previous = session.exec(
        select(Timesheet)
        .where(Timesheet.user_id == user_id)
        .where(Timesheet.week_start == current.week_start - timedelta(days=7))
        .order_by(Timesheet.created_at, Timesheet.id)
    ).first()
    if not previous:
        return None

    # Clock hours come from the backfill and leave is projected on read
    candidates = [
        entry
        for entry in session.exec(
            select(TimesheetEntry)
            .where(TimesheetEntry.timesheet_id == previous.id)
            .where(TimesheetEntry.source == EntrySource.MANUAL.value)
            .order_by(TimesheetEntry.id)
        ).all()
        if any(entry.get_hours(day) > 0 for day in WORK_DAYS)
    ]
    if not candidates:
        return None

    timesheet = get_or_create_timesheet(session, user_id, current.week_start)
    copied = 0
    for entry in candidates:
        copy = TimesheetEntry(
            timesheet_id=timesheet.id, project=entry.project, task=entry.task, source=entry.source
        )
        for day in WORK_DAYS:
            copy.set_hours(day, entry.get_hours(day))
        session.add(copy)
        copied += 1
    session.flush()
    logger.info(f"Created timesheet {timesheet.id} for user {user_id} with {copied} entries from {previous.id}")
    return copied


def create_missing_week_timesheets(session: Session, today: date | None = None) -> BatchReport:
    """Open the current week for users whose previous week has weekday hours.

    Manual rows with Monday to Friday hours are carried into the new week;
    weekend columns start at zero.
    """
    report = BatchReport(procedure="create-current-week")
    user_ids = session.exec(select(Timesheet.user_id).distinct().order_by(Timesheet.user_id)).all()

    for user_id in user_ids:
        ok, copied = process_record(
            session, report, f"user {user_id}", partial(_carry_forward, session, user_id, today)
        )
        if not ok:
            continue
        report.processed += 1
        if copied is not None:
            report.created += 1

    logger.info(report.summary())
    return report


def run_all(session: Session) -> list[BatchReport]:
    """Nightly consistency pass: re-align weeks, collapse duplicates, then backfill."""
    return [
        fix_all_timesheet_weeks(session),
        merge_duplicate_timesheets(session),
        backfill_timesheet_entries(session),
    ]
