"""
Huddle Database Schema Script

Creates every table, unique constraint and index declared by the models
against DATABASE_URL (or APP_DATABASE_URL). Existing tables are left untouched.

Usage:
    python scripts/db_scripts/init_db.py
"""

import os
import sys
from pathlib import Path

# Add the project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from huddle.core.logging import get_logger, setup_logging  # noqa: E402
from huddle.db.db import build_engine, create_schema  # noqa: E402

logger = get_logger("huddle.scripts.init_db")


def main():
    setup_logging()
    database_url = os.getenv("APP_DATABASE_URL") or os.getenv("DATABASE_URL")
    if not database_url:
        logger.error("Set DATABASE_URL (or APP_DATABASE_URL) first")
        sys.exit(1)

    engine = build_engine(database_url)
    try:
        tables = create_schema(engine)
    except Exception as e:
        logger.error(f"Schema creation failed: {e}")
        sys.exit(1)
    finally:
        engine.dispose()
    logger.info(f"Tables present: {', '.join(tables)}")


if __name__ == "__main__":
    main()
