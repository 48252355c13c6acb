"""Tests for the maintenance command line."""
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

import maintenance
from conftest import MONDAY_NOV_3, MONDAY_OCT_27, entries_for, make_clock_session, make_entry, make_timesheet


@pytest.fixture
def cli_engine(engine, monkeypatch):
    """Point the command line at the test database."""
    monkeypatch.setattr(maintenance, "engine", engine)
    monkeypatch.setattr(maintenance, "create_db_and_tables", lambda: None)
    return engine


def test_backfill(cli_engine, test_session, capsys):
    make_clock_session(test_session, clock_out=datetime(2025, 11, 6, 19, 0, tzinfo=UTC), total_hours="2")

    assert maintenance.main(["backfill"]) == 0

    out = capsys.readouterr().out
    assert "SUCCESS: backfill: processed=1 created=1" in out
    assert entries_for(test_session, 1, MONDAY_NOV_3)[0].thu_hours == Decimal("2.00")


def test_all_runs_every_consistency_procedure(cli_engine, capsys):
    assert maintenance.main(["all"]) == 0

    out = capsys.readouterr().out
    for procedure in ("fix-weeks", "merge-duplicates", "backfill"):
        assert f"SUCCESS: {procedure}:" in out


def test_move_day_hours(cli_engine, test_session, capsys):
    stale = make_timesheet(test_session, 1, MONDAY_OCT_27)
    make_entry(test_session, stale, thu_hours=4)

    code = maintenance.main(["move-day-hours", "--from-week", "2025-10-27", "--to-week", "2025-11-03", "--day", "thu"])

    assert code == 0
    assert "processed=1 created=1" in capsys.readouterr().out
    test_session.expire_all()
    assert entries_for(test_session, 1, MONDAY_NOV_3)[0].thu_hours == Decimal("4.00")


def test_move_day_hours_needs_all_arguments(cli_engine, capsys):
    assert maintenance.main(["move-day-hours", "--from-week", "2025-10-27"]) == 2
    assert "needs --from-week, --to-week and --day" in capsys.readouterr().out


def test_move_day_hours_bad_day(cli_engine):
    assert maintenance.main(["move-day-hours", "--from-week", "2025-10-27", "--to-week", "2025-11-03",
                             "--day", "someday"]) == 2


def test_move_day_hours_same_week(cli_engine, capsys):
    code = maintenance.main(["move-day-hours", "--from-week", "2025-11-03", "--to-week", "2025-11-04", "--day", "1"])

    assert code == 2
    assert "same" in capsys.readouterr().out


def test_verify_reports_duplicates(cli_engine, test_session, capsys):
    assert maintenance.main(["verify"]) == 0

    make_timesheet(test_session, 1, MONDAY_NOV_3)
    make_timesheet(test_session, 1, MONDAY_NOV_3)

    assert maintenance.main(["verify"]) == 1
    assert "Invariants hold: False" in capsys.readouterr().out


def test_unknown_procedure_exits():
    with pytest.raises(SystemExit):
        maintenance.main(["rebuild-everything"])


def test_database_unavailable(monkeypatch, capsys):
    def refuse():
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    monkeypatch.setattr(maintenance, "create_db_and_tables", refuse)

    assert maintenance.main(["backfill"]) == 1
    assert "database unavailable: connection refused" in capsys.readouterr().out


def test_main_configures_logging(cli_engine, monkeypatch):
    """The console script entry point sets up logging itself."""
    calls = []
    monkeypatch.setattr(maintenance.logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    assert maintenance.main(["fix-weeks"]) == 0

    assert calls == [{"level": maintenance.LOG_LEVEL}]
