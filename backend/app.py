import logging
from contextlib import asynccontextmanager
from datetime import date

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from sqlmodel import Session

from config import LOG_LEVEL
from db import create_db_and_tables, get_session, unit_of_work
from errors import ClockSessionError, NotFoundError, ValidationError
from projection import get_timesheet_view
from reconciler import (
    backfill_timesheet_entries,
    close_clock_session,
    create_missing_week_timesheets,
    move_day_hours,
    save_manual_entries,
)
from schemas import (
    BatchReport,
    ClockOutResponse,
    MoveDayHoursRequest,
    SaveTimesheetRequest,
    SaveTimesheetResponse,
    TimesheetView,
)
from timesheets import fix_all_timesheet_weeks, merge_duplicate_timesheets
from verify_timesheets import check_data

# Configure logging
logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    create_db_and_tables()
    logger.info("Database initialized")
    yield


# Create FastAPI app
app = FastAPI(title="Timesheet Reconciliation API", version="1.0.0", lifespan=lifespan)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins in development
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/timesheets", response_model=TimesheetView)
def get_timesheet(
    user_id: int = Query(..., description="Owner of the timesheet"),
    week_start: date = Query(..., description="Any date in the week, YYYY-MM-DD"),
    session: Session = Depends(get_session),
):
    """Get the consolidated week: persisted rows plus approved leave."""
    logger.info(f"Timesheet request for user {user_id}, week of {week_start}")

    try:
        return get_timesheet_view(session, user_id, week_start)
    except Exception as e:
        logger.error(f"Error getting timesheet: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.put("/timesheets/{user_id}/weeks/{week_start}", response_model=SaveTimesheetResponse)
def save_timesheet(
    user_id: int,
    week_start: date,
    request: SaveTimesheetRequest,
    session: Session = Depends(get_session),
):
    """Replace the user's manual rows for the week. System rows are left untouched."""
    logger.info(f"Save timesheet request for user {user_id}, week of {week_start}: {len(request.entries)} rows")

    try:
        return unit_of_work(session, lambda: save_manual_entries(session, user_id, week_start, request.entries))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Error saving timesheet: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.post("/time-clock/sessions/{session_id}/clock-out", response_model=ClockOutResponse)
def clock_out(session_id: int, session: Session = Depends(get_session)):
    """Close an active clock session and add its hours to the weekly timesheet."""
    logger.info(f"Clock-out request for session {session_id}")

    try:
        return close_clock_session(session, session_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ClockSessionError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except Exception as e:
        logger.error(f"Error clocking out: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


def _run_batch(name: str, procedure) -> BatchReport:
    logger.info(f"Starting {name}")
    try:
        report = procedure()
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception as e:
        logger.error(f"{name} failed: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e
    logger.info(report.summary())
    return report


@app.post("/admin/timesheets/backfill", response_model=BatchReport)
def backfill(session: Session = Depends(get_session)):
    """Merge every closed clock session that is not yet in a timesheet."""
    return _run_batch("backfill", lambda: backfill_timesheet_entries(session))


@app.post("/admin/timesheets/merge-duplicates", response_model=BatchReport)
def merge_duplicates(session: Session = Depends(get_session)):
    """Collapse timesheets that share a user and week."""
    return _run_batch("merge-duplicates", lambda: merge_duplicate_timesheets(session))


@app.post("/admin/timesheets/fix-weeks", response_model=BatchReport)
def fix_weeks(session: Session = Depends(get_session)):
    """Re-align every timesheet to a Monday-start week."""
    return _run_batch("fix-weeks", lambda: fix_all_timesheet_weeks(session))


@app.post("/admin/timesheets/create-current-week", response_model=BatchReport)
def create_current_week(session: Session = Depends(get_session)):
    """Open the current week for users who worked last week."""
    return _run_batch("create-current-week", lambda: create_missing_week_timesheets(session))


@app.post("/admin/timesheets/move-day-hours", response_model=BatchReport)
def move_hours(request: MoveDayHoursRequest, session: Session = Depends(get_session)):
    """Move one day's hours from a wrongly stored week to the right one."""
    return _run_batch(
        "move-day-hours",
        lambda: move_day_hours(session, request.from_week_start, request.to_week_start, request.day),
    )


@app.get("/admin/timesheets/verify")
def verify(session: Session = Depends(get_session)):
    """Report broken timesheet invariants without changing anything."""
    try:
        return check_data(session)
    except Exception as e:
        logger.error(f"Verify error: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e)) from e


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Timesheet Reconciliation API", "docs": "/docs"}
