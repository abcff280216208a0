#!/usr/bin/env python3
"""Create the lms-backend tables in the database named by DATABASE_URL.

RUN:  DATABASE_URL=postgresql+asyncpg://... python scripts/init_db.py

Safe to re-run: existing tables are left alone.
"""

from __future__ import annotations

import asyncio
import logging
import sys

from lms.core.config import SETTINGS
from lms.core.logging import setup_logging
from lms.db import engine as db

logger = logging.getLogger("init_db")


async def main() -> int:
    if db.engine is None:
        logger.error("DATABASE_URL is not set")
        return 1
    try:
        tables = await db.create_tables()
    finally:
        await db.engine.dispose()
    logger.info("Tables ready: %s", ", ".join(tables))
    return 0


if __name__ == "__main__":
    setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)
    sys.exit(asyncio.run(main()))
