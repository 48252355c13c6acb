import os

# Must be set before config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TIMESHEET_TIMEZONE"] = "UTC"

from datetime import UTC, date, datetime, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine, select

import models  # noqa: F401
from app import app
from db import get_session
from models import ClockSession, ClockStatus, DAY_FIELDS, EntrySource, Timesheet, TimesheetEntry


@pytest.fixture(scope="function")
def engine():
    """In-memory database shared by every connection of one test."""
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="function")
def test_session(engine):
    """Create a test database session."""
    with Session(engine) as session:
        yield session


@pytest.fixture(scope="function")
def client(test_session):
    """Create a test client with dependency override."""

    def get_test_session():
        yield test_session

    app.dependency_overrides[get_session] = get_test_session
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_timesheet(session, user_id, week_start, week_end=None, created_at=None):
    timesheet = Timesheet(
        user_id=user_id,
        week_start=week_start,
        week_end=week_end or week_start + timedelta(days=6),
        created_at=created_at or datetime.now(UTC),
    )
    session.add(timesheet)
    session.commit()
    session.refresh(timesheet)
    return timesheet


def make_entry(session, timesheet, project="Core", task="Build", source=EntrySource.MANUAL.value, **hours):
    entry = TimesheetEntry(timesheet_id=timesheet.id, project=project, task=task, source=source)
    for field in DAY_FIELDS.values():
        setattr(entry, field, Decimal(str(hours.get(field, 0))))
    session.add(entry)
    session.commit()
    session.refresh(entry)
    return entry


def make_clock_session(session, user_id=1, clock_out=None, total_hours="1.00", **fields):
    clock_session = ClockSession(
        user_id=user_id,
        clock_in=fields.pop("clock_in", (clock_out or datetime(2025, 11, 6, 9, 0, tzinfo=UTC)) - timedelta(hours=1)),
        clock_out=clock_out,
        total_hours=Decimal(str(total_hours)) if total_hours is not None else None,
        status=fields.pop("status", ClockStatus.CLOCKED_OUT.value if clock_out else ClockStatus.CLOCKED_IN.value),
        **fields,
    )
    session.add(clock_session)
    session.commit()
    session.refresh(clock_session)
    return clock_session


def entries_for(session, user_id, week_start):
    """All entries of the user's timesheets starting at ``week_start``."""
    return session.exec(
        select(TimesheetEntry)
        .join(Timesheet, Timesheet.id == TimesheetEntry.timesheet_id)
        .where(Timesheet.user_id == user_id)
        .where(Timesheet.week_start == week_start)
        .order_by(TimesheetEntry.id)
    ).all()


def assert_unique_keys(session):
    """No user has two timesheets for a week and no timesheet repeats an entry key."""
    weeks = session.exec(select(Timesheet.user_id, Timesheet.week_start)).all()
    assert len(weeks) == len(set(weeks))
    keys = session.exec(
        select(TimesheetEntry.timesheet_id, TimesheetEntry.project, TimesheetEntry.task, TimesheetEntry.source)
    ).all()
    assert len(keys) == len(set(keys))


MONDAY_NOV_3 = date(2025, 11, 3)
MONDAY_OCT_27 = date(2025, 10, 27)
