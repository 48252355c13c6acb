"""
Migration: Harden timesheet tables with unique keys.

This migration:
1. Deletes leave rows stored in timesheet_entries (leave is projected on read)
2. Collapses duplicate (timesheet_id, project, task, source) rows by summing their hours
3. Adds unique index on timesheet_entries (timesheet_id, project, task, source)
4. Adds unique index on timesheets (user_id, week_start) when no duplicate weeks remain
Works on PostgreSQL and SQLite; safe to run more than once.
"""
import logging

from sqlalchemy import inspect, text

logger = logging.getLogger(__name__)

DAY_COLUMNS = ("mon_hours", "tue_hours", "wed_hours", "thu_hours", "fri_hours", "sat_hours", "sun_hours")
ENTRY_KEY_INDEX = "uniq_timesheet_entries_key"
WEEK_KEY_INDEX = "uniq_timesheets_user_week"


def has_unique_key(conn, table, columns):
    """Check if a unique constraint or unique index already covers exactly ``columns``."""
    inspector = inspect(conn)
    wanted = set(columns)
    for constraint in inspector.get_unique_constraints(table):
        if set(constraint["column_names"]) == wanted:
            return True
    for index in inspector.get_indexes(table):
        if index.get("unique") and set(index["column_names"]) == wanted:
            return True
    return False


def migrate(engine):
    """Run migration."""
    with engine.connect() as conn:
        # Start transaction
        trans = conn.begin()

        try:
            tables = set(inspect(conn).get_table_names())
            if not {"timesheets", "timesheet_entries"} <= tables:
                logger.info("Timesheet tables do not exist yet, skipping migration")
                trans.rollback()
                return

            drop_materialized_leave(conn)
            collapse_duplicate_entries(conn)
            add_entry_key_index(conn)
            add_week_key_index(conn)

            trans.commit()
            logger.info("Migration 001 completed successfully")
        except Exception as e:
            trans.rollback()
            logger.error(f"Migration 001 failed: {str(e)}")
            raise


def drop_materialized_leave(conn):
    result = conn.execute(text("DELETE FROM timesheet_entries WHERE source = 'leave'"))
    if result.rowcount:
        logger.info(f"✅ Deleted {result.rowcount} stored leave row(s); leave is now projected on read")


def collapse_duplicate_entries(conn):
    """Sum each duplicate key group into its oldest row and delete the rest."""
    sums = ", ".join(f"SUM({column}) AS {column}" for column in DAY_COLUMNS)
    groups = conn.execute(text(f"""
        SELECT timesheet_id, project, task, source, MIN(id) AS keep_id, {sums}
        FROM timesheet_entries
        GROUP BY timesheet_id, project, task, source
        HAVING COUNT(*) > 1
    """)).mappings().all()

    if not groups:
        logger.info("No duplicate entry keys found")
        return

    logger.warning(f"Found {len(groups)} duplicate entry key(s), collapsing...")
    assignments = ", ".join(f"{column} = :{column}" for column in DAY_COLUMNS)
    for group in groups:
        params = {column: group[column] or 0 for column in DAY_COLUMNS}
        params["keep_id"] = group["keep_id"]
        conn.execute(text(f"UPDATE timesheet_entries SET {assignments} WHERE id = :keep_id"), params)
        conn.execute(text("""
            DELETE FROM timesheet_entries
            WHERE timesheet_id = :timesheet_id AND project = :project AND task = :task
              AND source = :source AND id <> :keep_id
        """), {
            "timesheet_id": group["timesheet_id"],
            "project": group["project"],
            "task": group["task"],
            "source": group["source"],
            "keep_id": group["keep_id"],
        })
        logger.info(f"  - timesheet {group['timesheet_id']}: {group['project']} / {group['task']} / {group['source']}")
    logger.info("✅ Duplicate entry keys collapsed")


def add_entry_key_index(conn):
    if has_unique_key(conn, "timesheet_entries", ("timesheet_id", "project", "task", "source")):
        logger.info("Entry key constraint already exists")
        return
    logger.info("Creating unique index on timesheet_entries (timesheet_id, project, task, source)...")
    conn.execute(text(f"""
        CREATE UNIQUE INDEX IF NOT EXISTS {ENTRY_KEY_INDEX}
        ON timesheet_entries (timesheet_id, project, task, source)
    """))
    logger.info("✅ Entry key index created")


def add_week_key_index(conn):
    if has_unique_key(conn, "timesheets", ("user_id", "week_start")):
        logger.info("Timesheet week constraint already exists")
        return

    duplicates = conn.execute(text("""
        SELECT user_id, week_start, COUNT(*) AS count
        FROM timesheets
        GROUP BY user_id, week_start
        HAVING COUNT(*) > 1
    """)).fetchall()
    if duplicates:
        logger.warning(
            f"⚠️  Found {len(duplicates)} duplicate (user_id, week_start) pair(s); "
            "run `python maintenance.py merge-duplicates` and then this migration again"
        )
        for dup in duplicates:
            logger.warning(f"  - user_id: {dup[0]}, week_start: {dup[1]}, count: {dup[2]}")
        return

    logger.info("Creating unique index on timesheets (user_id, week_start)...")
    conn.execute(text(f"""
        CREATE UNIQUE INDEX IF NOT EXISTS {WEEK_KEY_INDEX}
        ON timesheets (user_id, week_start)
    """))
    logger.info("✅ Week key index created")


if __name__ == "__main__":
    from db import engine
    migrate(engine)
