"""Run a timesheet maintenance procedure - can be run as a cron job.

    python maintenance.py all
    python maintenance.py move-day-hours --from-week 2025-10-27 --to-week 2025-11-03 --day thu
"""
import argparse
import logging
import os
import sys
from datetime import date

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sqlalchemy.exc import OperationalError
from sqlmodel import Session

from config import LOG_LEVEL
from db import create_db_and_tables, engine
from errors import ValidationError
from reconciler import backfill_timesheet_entries, create_missing_week_timesheets, move_day_hours, run_all
from schemas import MoveDayHoursRequest
from timesheets import fix_all_timesheet_weeks, merge_duplicate_timesheets
from verify_timesheets import check_data

logger = logging.getLogger(__name__)

PROCEDURES = {
    "backfill": lambda session, args: [backfill_timesheet_entries(session)],
    "merge-duplicates": lambda session, args: [merge_duplicate_timesheets(session)],
    "fix-weeks": lambda session, args: [fix_all_timesheet_weeks(session)],
    "create-current-week": lambda session, args: [create_missing_week_timesheets(session)],
    "move-day-hours": lambda session, args: [
        move_day_hours(session, args.move.from_week_start, args.move.to_week_start, args.move.day)
    ],
    "all": lambda session, args: run_all(session),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Timesheet maintenance procedures")
    parser.add_argument("procedure", choices=[*PROCEDURES, "verify"])
    parser.add_argument("--from-week", type=date.fromisoformat, help="move-day-hours: stored week_start to repair")
    parser.add_argument("--to-week", type=date.fromisoformat, help="move-day-hours: week the hours belong to")
    parser.add_argument("--day", help="move-day-hours: day column, e.g. thu")
    return parser


def main(argv=None) -> int:
    logging.basicConfig(level=LOG_LEVEL)
    args = build_parser().parse_args(argv)

    if args.procedure == "move-day-hours":
        if not (args.from_week and args.to_week and args.day):
            print("ERROR: move-day-hours needs --from-week, --to-week and --day")
            return 2
        try:
            args.move = MoveDayHoursRequest(from_week_start=args.from_week, to_week_start=args.to_week, day=args.day)
        except ValueError as e:
            print(f"ERROR: {e}")
            return 2

    try:
        create_db_and_tables()
        with Session(engine) as session:
            if args.procedure == "verify":
                result = check_data(session)
                print(f"Invariants hold: {result['ok']}")
                return 0 if result["ok"] else 1
            reports = PROCEDURES[args.procedure](session, args)
    except OperationalError as e:
        print(f"ERROR: database unavailable: {e.orig}")
        return 1
    except ValidationError as e:
        print(f"ERROR: {e}")
        return 2

    for report in reports:
        print(f"SUCCESS: {report.summary()}")
        for error in report.errors:
            print(f"  {error.record}: {error.error}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
