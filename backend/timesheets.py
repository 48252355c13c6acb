"""Timesheet identity: one timesheet per (user, week_start).

Lookups tolerate legacy rows whose ranges were stored before the week
boundary was fixed. The two maintenance passes here put the table back
into shape when that tolerance is no longer enough.
"""
import logging
from datetime import UTC, date, datetime
from functools import partial

from sqlalchemy import func, or_, update
from sqlmodel import Session, select

from batch import process_record
from db import lock_week
from entries import find_entry, merge_entry_hours
from models import ReconciledSession, Timesheet, TimesheetEntry, TimesheetStatus
from schemas import BatchReport
from weeks import WeekWindow, resolve_week

logger = logging.getLogger(__name__)


def _owner_order():
    return (Timesheet.created_at, Timesheet.id)


def find_timesheet(session: Session, user_id: int, week_start: date) -> Timesheet | None:
    """Timesheet owning ``week_start``: exact match, else a legacy range containing it."""
    exact = session.exec(
        select(Timesheet)
        .where(Timesheet.user_id == user_id)
        .where(Timesheet.week_start == week_start)
        .order_by(*_owner_order())
    ).all()
    if len(exact) > 1:
        logger.warning(
            f"Found {len(exact)} timesheets for user {user_id} week {week_start}, "
            f"using {exact[0].id}; run merge-duplicates to collapse them"
        )
    if exact:
        return exact[0]

    containing = session.exec(
        select(Timesheet)
        .where(Timesheet.user_id == user_id)
        .where(Timesheet.week_start <= week_start)
        .where(Timesheet.week_end >= week_start)
        .order_by(*_owner_order())
    ).first()
    if containing:
        logger.info(
            f"Reusing timesheet {containing.id} ({containing.week_start} to {containing.week_end}) "
            f"for user {user_id} week {week_start}"
        )
    return containing


def get_or_create_timesheet(session: Session, user_id: int, week_start: date) -> Timesheet:
    """Find the timesheet owning the week, or create a draft for it.

    Takes the (user, week) lock first so a concurrent caller cannot create
    a second row between the lookup and the insert.
    """
    window = resolve_week(week_start)
    lock_week(session, user_id, window.week_start)

    timesheet = find_timesheet(session, user_id, window.week_start)
    if timesheet:
        return timesheet

    timesheet = Timesheet(
        user_id=user_id,
        week_start=window.week_start,
        week_end=window.week_end,
        status=TimesheetStatus.DRAFT.value,
    )
    session.add(timesheet)
    session.flush()
    logger.info(f"Created timesheet {timesheet.id} for user {user_id} week {window.week_start}")
    return timesheet


def find_timesheets_for_week(session: Session, user_id: int, window: WeekWindow) -> list[Timesheet]:
    """Every timesheet of the user that starts on or overlaps the window, exact match first."""
    timesheets = session.exec(
        select(Timesheet)
        .where(Timesheet.user_id == user_id)
        .where(
            or_(
                Timesheet.week_start == window.week_start,
                (Timesheet.week_start <= window.week_end) & (Timesheet.week_end >= window.week_start),
            )
        )
        .order_by(*_owner_order())
    ).all()
    return sorted(timesheets, key=lambda t: t.week_start != window.week_start)


def fold_timesheet(session: Session, source: Timesheet, target: Timesheet) -> dict:
    """Move every entry of ``source`` into ``target`` and delete ``source``.

    Entries whose key already exists in ``target`` are summed column-wise;
    the rest are re-parented. Runs inside the caller's transaction.
    """
    entries = session.exec(
        select(TimesheetEntry).where(TimesheetEntry.timesheet_id == source.id).order_by(TimesheetEntry.id)
    ).all()

    merged = moved = 0
    for entry in entries:
        existing = find_entry(session, target.id, entry.project, entry.task, entry.source)
        if existing:
            merge_entry_hours(existing, entry)
            session.add(existing)
            session.delete(entry)
            merged += 1
        else:
            entry.timesheet_id = target.id
            entry.updated_at = datetime.now(UTC)
            session.add(entry)
            moved += 1
        session.flush()

    session.exec(
        update(ReconciledSession)
        .where(ReconciledSession.timesheet_id == source.id)
        .values(timesheet_id=target.id)
    )
    target.updated_at = datetime.now(UTC)
    session.add(target)
    session.delete(source)
    session.flush()

    logger.info(f"Folded timesheet {source.id} into {target.id}: {merged} entries merged, {moved} moved")
    return {"merged": merged, "moved": moved}


def _collapse_group(session: Session, user_id: int, week_start: date) -> int:
    lock_week(session, user_id, week_start)
    timesheets = session.exec(
        select(Timesheet)
        .where(Timesheet.user_id == user_id)
        .where(Timesheet.week_start == week_start)
        .order_by(*_owner_order())
    ).all()
    survivor, duplicates = timesheets[0], timesheets[1:]
    logger.info(
        f"User {user_id}, week {week_start}: keeping timesheet {survivor.id}, "
        f"merging {[t.id for t in duplicates]}"
    )
    for duplicate in duplicates:
        fold_timesheet(session, duplicate, survivor)
    return len(duplicates)


def merge_duplicate_timesheets(session: Session) -> BatchReport:
    """Collapse every (user, week_start) group with more than one timesheet.

    The earliest-created timesheet survives. Each group is one unit of work,
    so a failing group is left exactly as it was.
    """
    report = BatchReport(procedure="merge-duplicates")
    groups = session.exec(
        select(Timesheet.user_id, Timesheet.week_start, func.count(Timesheet.id))
        .group_by(Timesheet.user_id, Timesheet.week_start)
        .having(func.count(Timesheet.id) > 1)
        .order_by(Timesheet.user_id, Timesheet.week_start)
    ).all()

    if not groups:
        logger.info("No duplicate timesheets found")
        return report

    logger.info(f"Found {len(groups)} duplicate group(s)")
    for user_id, week_start, _count in groups:
        ok, folded = process_record(
            session, report, f"user {user_id} week {week_start}",
            partial(_collapse_group, session, user_id, week_start),
        )
        if ok:
            report.processed += 1
            report.merged += folded

    logger.info(report.summary())
    return report


def _fix_week(session: Session, timesheet_id: int) -> str | None:
    timesheet = session.get(Timesheet, timesheet_id)
    if timesheet is None:
        return None

    window = resolve_week(timesheet.week_start)
    if timesheet.week_start == window.week_start and timesheet.week_end == window.week_end:
        return None

    lock_week(session, timesheet.user_id, window.week_start)
    owner = session.exec(
        select(Timesheet)
        .where(Timesheet.user_id == timesheet.user_id)
        .where(Timesheet.week_start == window.week_start)
        .where(Timesheet.id != timesheet.id)
        .order_by(*_owner_order())
    ).first()

    if owner:
        fold_timesheet(session, timesheet, owner)
        return "merged"

    logger.info(
        f"Timesheet {timesheet.id}: {timesheet.week_start}..{timesheet.week_end} -> "
        f"{window.week_start}..{window.week_end}"
    )
    timesheet.week_start = window.week_start
    timesheet.week_end = window.week_end
    timesheet.updated_at = datetime.now(UTC)
    session.add(timesheet)
    session.flush()
    return "updated"


def fix_all_timesheet_weeks(session: Session) -> BatchReport:
    """Re-align every timesheet to its canonical Monday-start window.

    A misaligned timesheet is moved in place, or folded into the timesheet
    that already owns the corrected window.
    """
    report = BatchReport(procedure="fix-weeks")
    timesheet_ids = session.exec(
        select(Timesheet.id).order_by(Timesheet.week_start, Timesheet.user_id, Timesheet.id)
    ).all()
    logger.info(f"Checking {len(timesheet_ids)} timesheet(s)")

    for timesheet_id in timesheet_ids:
        ok, outcome = process_record(
            session, report, f"timesheet {timesheet_id}", partial(_fix_week, session, timesheet_id)
        )
        if not ok:
            continue
        report.processed += 1
        if outcome == "updated":
            report.updated += 1
        elif outcome == "merged":
            report.merged += 1

    logger.info(report.summary())
    return report
