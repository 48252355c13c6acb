"""Tests for migration 001 against a legacy schema without unique keys."""
import pytest
from sqlalchemy import inspect, text
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from migrations.migrate_001_timesheet_constraints import ENTRY_KEY_INDEX, WEEK_KEY_INDEX, has_unique_key, migrate

LEGACY_SCHEMA = [
    """
    CREATE TABLE timesheets (
        id INTEGER PRIMARY KEY,
        user_id INTEGER NOT NULL,
        week_start DATE NOT NULL,
        week_end DATE NOT NULL,
        status VARCHAR DEFAULT 'draft'
    )
    """,
    """
    CREATE TABLE timesheet_entries (
        id INTEGER PRIMARY KEY,
        timesheet_id INTEGER NOT NULL,
        project VARCHAR NOT NULL,
        task VARCHAR NOT NULL,
        source VARCHAR NOT NULL,
        mon_hours NUMERIC(6, 2) DEFAULT 0,
        tue_hours NUMERIC(6, 2) DEFAULT 0,
        wed_hours NUMERIC(6, 2) DEFAULT 0,
        thu_hours NUMERIC(6, 2) DEFAULT 0,
        fri_hours NUMERIC(6, 2) DEFAULT 0,
        sat_hours NUMERIC(6, 2) DEFAULT 0,
        sun_hours NUMERIC(6, 2) DEFAULT 0
    )
    """,
]


@pytest.fixture
def legacy_engine():
    engine = create_engine("sqlite://", poolclass=StaticPool)
    with engine.begin() as conn:
        for statement in LEGACY_SCHEMA:
            conn.execute(text(statement))
    yield engine
    engine.dispose()


def insert_timesheet(conn, id, user_id=1, week_start="2025-11-03"):
    conn.execute(
        text("INSERT INTO timesheets (id, user_id, week_start, week_end) VALUES (:id, :user_id, :week_start, '2025-11-09')"),
        {"id": id, "user_id": user_id, "week_start": week_start},
    )


def insert_entry(conn, timesheet_id, project, task, source, **hours):
    columns = ", ".join(["timesheet_id", "project", "task", "source", *hours])
    values = ", ".join([":timesheet_id", ":project", ":task", ":source", *(f":{c}" for c in hours)])
    conn.execute(
        text(f"INSERT INTO timesheet_entries ({columns}) VALUES ({values})"),
        {"timesheet_id": timesheet_id, "project": project, "task": task, "source": source, **hours},
    )


def index_names(engine, table):
    return {index["name"] for index in inspect(engine).get_indexes(table)}


def test_skips_when_tables_are_missing():
    engine = create_engine("sqlite://", poolclass=StaticPool)
    migrate(engine)
    assert inspect(engine).get_table_names() == []


def test_collapses_duplicate_entries_and_adds_keys(legacy_engine):
    with legacy_engine.begin() as conn:
        insert_timesheet(conn, 1)
        insert_entry(conn, 1, "A", "T", "manual", mon_hours=2)
        insert_entry(conn, 1, "A", "T", "manual", tue_hours=3)
        insert_entry(conn, 1, "A", "T", "time_clock", thu_hours=1)
        insert_entry(conn, 1, "Leave", "SICK", "leave", wed_hours=8)

    migrate(legacy_engine)

    with legacy_engine.connect() as conn:
        rows = conn.execute(text(
            "SELECT project, task, source, mon_hours, tue_hours FROM timesheet_entries ORDER BY id"
        )).fetchall()
    assert [tuple(row[:3]) for row in rows] == [("A", "T", "manual"), ("A", "T", "time_clock")]
    assert (float(rows[0][3]), float(rows[0][4])) == (2.0, 3.0)
    assert ENTRY_KEY_INDEX in index_names(legacy_engine, "timesheet_entries")
    assert WEEK_KEY_INDEX in index_names(legacy_engine, "timesheets")


def test_is_safe_to_run_twice(legacy_engine):
    with legacy_engine.begin() as conn:
        insert_timesheet(conn, 1)
        insert_entry(conn, 1, "A", "T", "manual", mon_hours=2)

    migrate(legacy_engine)
    migrate(legacy_engine)

    with legacy_engine.connect() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM timesheet_entries")).scalar() == 1
        assert has_unique_key(conn, "timesheet_entries", ("timesheet_id", "project", "task", "source"))
        assert has_unique_key(conn, "timesheets", ("user_id", "week_start"))


def test_week_key_waits_for_duplicate_timesheets(legacy_engine, caplog):
    with legacy_engine.begin() as conn:
        insert_timesheet(conn, 1)
        insert_timesheet(conn, 2)

    migrate(legacy_engine)

    assert WEEK_KEY_INDEX not in index_names(legacy_engine, "timesheets")
    assert ENTRY_KEY_INDEX in index_names(legacy_engine, "timesheet_entries")
    assert "merge-duplicates" in caplog.text


def test_recognises_constraint_from_current_models(engine):
    migrate(engine)

    with engine.connect() as conn:
        assert has_unique_key(conn, "timesheet_entries", ("timesheet_id", "project", "task", "source"))
    assert ENTRY_KEY_INDEX not in index_names(engine, "timesheet_entries")
