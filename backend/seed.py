from datetime import UTC, date, datetime
from decimal import Decimal

from sqlmodel import Session, select

from db import engine
from models import ClockSession, ClockStatus, Issue, LeaveRequest, LeaveStatus, Timesheet


def seed_database():
    """Seed the collaborator tables with sample sessions, issues and leave."""
    with Session(engine) as session:
        # Check if data already exists
        existing = session.exec(select(ClockSession)).first() or session.exec(select(Timesheet)).first()
        if existing:
            print("Database already has data, skipping seed.")
            return

        issues = [
            Issue(id=42, title="Fix bug", project_name="Core"),
            Issue(id=57, title="Payslip export", project_name="Payroll"),
        ]
        session.add_all(issues)
        session.flush()

        sample_sessions = [
            ClockSession(
                user_id=1,
                issue_id=42,
                clock_in=datetime(2025, 11, 6, 9, 30, tzinfo=UTC),
                clock_out=datetime(2025, 11, 6, 12, 45, tzinfo=UTC),  # Thursday
                total_hours=Decimal("3.25"),
                status=ClockStatus.CLOCKED_OUT.value,
            ),
            ClockSession(
                user_id=1,
                project_name="Internal",
                clock_in=datetime(2025, 11, 7, 13, 0, tzinfo=UTC),
                clock_out=datetime(2025, 11, 7, 17, 30, tzinfo=UTC),  # Friday
                total_hours=Decimal("4.5"),
                status=ClockStatus.CLOCKED_OUT.value,
            ),
            ClockSession(
                user_id=2,
                issue_id=57,
                clock_in=datetime(2025, 11, 3, 8, 0, tzinfo=UTC),
                clock_out=datetime(2025, 11, 3, 16, 0, tzinfo=UTC),  # Monday
                total_hours=Decimal("8"),
                status=ClockStatus.CLOCKED_OUT.value,
            ),
            ClockSession(
                user_id=2,
                clock_in=datetime(2025, 11, 4, 8, 0, tzinfo=UTC),  # still clocked in
                status=ClockStatus.CLOCKED_IN.value,
            ),
        ]
        sample_leave = [
            LeaveRequest(
                user_id=1,
                start_date=date(2025, 11, 5),
                end_date=date(2025, 11, 5),  # Wednesday
                leave_type="sick",
                reason="Flu",
                status=LeaveStatus.APPROVED.value,
            ),
            LeaveRequest(
                user_id=2,
                start_date=date(2025, 11, 6),
                end_date=date(2025, 11, 7),
                leave_type="casual",
                status=LeaveStatus.PENDING.value,
            ),
        ]

        session.add_all(sample_sessions + sample_leave)
        session.commit()
        print(f"Seeded database with {len(sample_sessions)} clock sessions and {len(sample_leave)} leave requests.")


if __name__ == "__main__":
    from db import create_db_and_tables

    create_db_and_tables()
    seed_database()
