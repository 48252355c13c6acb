#!/usr/bin/env python3
"""
Read-only check of the timesheet invariants.
Run this before and after a maintenance pass to see what it will touch.
"""
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sqlalchemy import func
from sqlmodel import Session, select

from entries import MIN_COUNTED_HOURS
from models import ClockSession, ClockStatus, EntrySource, ReconciledSession, Timesheet, TimesheetEntry
from weeks import resolve_week

logger = logging.getLogger(__name__)


def check_data(session: Session) -> dict:
    """Report every broken invariant without changing anything."""
    total = session.exec(select(func.count(Timesheet.id))).one()
    logger.info(f"📊 Total timesheets in database: {total}")

    duplicate_timesheets = [
        {"user_id": user_id, "week_start": week_start.isoformat(), "count": count}
        for user_id, week_start, count in session.exec(
            select(Timesheet.user_id, Timesheet.week_start, func.count(Timesheet.id))
            .group_by(Timesheet.user_id, Timesheet.week_start)
            .having(func.count(Timesheet.id) > 1)
        ).all()
    ]
    for dup in duplicate_timesheets:
        logger.warning(f"⚠️  user {dup['user_id']} has {dup['count']} timesheets for {dup['week_start']}")

    duplicate_entry_keys = [
        {"timesheet_id": timesheet_id, "project": project, "task": task, "source": source, "count": count}
        for timesheet_id, project, task, source, count in session.exec(
            select(
                TimesheetEntry.timesheet_id,
                TimesheetEntry.project,
                TimesheetEntry.task,
                TimesheetEntry.source,
                func.count(TimesheetEntry.id),
            )
            .group_by(TimesheetEntry.timesheet_id, TimesheetEntry.project, TimesheetEntry.task, TimesheetEntry.source)
            .having(func.count(TimesheetEntry.id) > 1)
        ).all()
    ]
    for dup in duplicate_entry_keys:
        logger.warning(f"⚠️  timesheet {dup['timesheet_id']} repeats {dup['project']} / {dup['task']} / {dup['source']}")

    misaligned_weeks = []
    for timesheet in session.exec(select(Timesheet).order_by(Timesheet.id)).all():
        window = resolve_week(timesheet.week_start)
        if (timesheet.week_start, timesheet.week_end) != (window.week_start, window.week_end):
            misaligned_weeks.append(timesheet.id)
    if misaligned_weeks:
        logger.warning(f"⚠️  {len(misaligned_weeks)} timesheet(s) not aligned to Monday: {misaligned_weeks}")

    materialized_leave = session.exec(
        select(func.count(TimesheetEntry.id)).where(TimesheetEntry.source == EntrySource.LEAVE.value)
    ).one()
    if materialized_leave:
        logger.warning(f"⚠️  {materialized_leave} leave row(s) stored in timesheet_entries")

    unreconciled_sessions = session.exec(
        select(func.count(ClockSession.id))
        .where(ClockSession.status == ClockStatus.CLOCKED_OUT.value)
        .where(ClockSession.total_hours >= MIN_COUNTED_HOURS)
        .where(ClockSession.id.not_in(select(ReconciledSession.clock_session_id)))
    ).one()
    if unreconciled_sessions:
        logger.info(f"📋 {unreconciled_sessions} closed clock session(s) not yet in a timesheet")

    ok = not (duplicate_timesheets or duplicate_entry_keys or misaligned_weeks)
    if ok:
        logger.info("✅ Timesheet invariants hold")

    return {
        "ok": ok,
        "timesheets": total,
        "duplicate_timesheets": duplicate_timesheets,
        "duplicate_entry_keys": duplicate_entry_keys,
        "misaligned_weeks": misaligned_weeks,
        "materialized_leave": materialized_leave,
        "unreconciled_sessions": unreconciled_sessions,
    }


if __name__ == "__main__":
    from config import LOG_LEVEL
    from db import engine

    logging.basicConfig(level=LOG_LEVEL)
    with Session(engine) as session:
        result = check_data(session)
    sys.exit(0 if result["ok"] else 1)
