#!/usr/bin/env python3
"""
Manual script to run migration 001 on production database.
Run this from the backend directory or adjust the import path.
"""
import logging
import os
import sys

# Add backend directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import LOG_LEVEL
from db import engine
from migrations.migrate_001_timesheet_constraints import migrate

logging.basicConfig(level=LOG_LEVEL)
logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("Running migration 001 manually...")
    try:
        migrate(engine)
        logger.info("✅ Migration 001 completed successfully!")
    except Exception:
        logger.exception("❌ Migration 001 failed")
        sys.exit(1)
