import logging
from datetime import date

from sqlalchemy import event, text
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, SQLModel, create_engine

from config import DATABASE_URL, UNIT_OF_WORK_RETRIES

logger = logging.getLogger(__name__)


def use_immediate_transactions(sqlite_engine):
    """Make every SQLite transaction take the write lock when it begins.

    pysqlite defers BEGIN until the first write, so two writers could both
    run the existence check of get-or-create before either one inserts.
    """

    @event.listens_for(sqlite_engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return sqlite_engine


# Log database driver for observability
db_driver = DATABASE_URL.split(":", 1)[0] if ":" in DATABASE_URL else "unknown"
logger.info(f"DB_URL_DRIVER={db_driver}")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)
if DATABASE_URL.startswith("sqlite"):
    use_immediate_transactions(engine)


def create_db_and_tables(bind=None):
    """Create database and tables if they don't exist.
    This is safe to call multiple times - it won't wipe existing data.
    """
    import models  # noqa: F401  registers the tables on SQLModel.metadata

    SQLModel.metadata.create_all(bind or engine)


def get_session():
    """Get database session."""
    with Session(engine) as session:
        yield session


def is_postgres(bind) -> bool:
    """Check if an engine, connection or session talks to PostgreSQL."""
    if isinstance(bind, Session):
        bind = bind.get_bind()
    return "postgresql" in str(bind.engine.url).lower()


def lock_week(session: Session, user_id: int, week_start: date) -> None:
    """Serialize writers on one (user, week) until the transaction ends.

    PostgreSQL gets a transaction-scoped advisory lock. A SQLite engine set up
    with ``use_immediate_transactions`` holds the database write lock from
    BEGIN, so nothing more is needed there.
    """
    if not is_postgres(session):
        return
    session.execute(
        text("SELECT pg_advisory_xact_lock(:user_id, :week)"),
        {"user_id": int(user_id), "week": week_start.toordinal()},
    )


def unit_of_work(session: Session, operation, *, retries: int = UNIT_OF_WORK_RETRIES):
    """Run ``operation()`` and commit it as one transaction.

    A uniqueness conflict means a concurrent writer won the race; the work is
    rolled back and replayed so the lookup sees the other writer's row.
    Any other exception rolls back and propagates.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            result = operation()
            session.commit()
            return result
        except IntegrityError as e:
            session.rollback()
            if attempt >= retries:
                raise
            logger.warning(f"Uniqueness conflict on attempt {attempt}/{retries}, retrying: {e.orig}")
        except Exception:
            session.rollback()
            raise
