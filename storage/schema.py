"""Database schema for Campaign Reports.

This module contains the SQLite schema for the campaign and customer
records the line-item report pipeline reads.
"""

import asyncio
import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS customers (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL DEFAULT '',
    gam_advertiser_ids TEXT NOT NULL DEFAULT '[]',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS campaigns (
    id TEXT PRIMARY KEY,
    customer_id TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    start_date TEXT,
    end_date TEXT,
    excluded_line_item_ids TEXT NOT NULL DEFAULT '[]',
    deleted INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (customer_id) REFERENCES customers(id)
);

CREATE INDEX IF NOT EXISTS idx_campaigns_customer ON campaigns(customer_id);
"""


async def initialize_schema(db_path: str | Path) -> None:
    """Create the schema if needed.

    Called on application startup and by test fixtures.
    """
    path = Path(db_path).expanduser()
    loop = asyncio.get_event_loop()

    def _init():
        path.parent.mkdir(parents=True, exist_ok=True)
        with sqlite3.connect(str(path)) as conn:
            conn.executescript(SCHEMA)
        logger.info(f"Database schema ready at {path}")

    await loop.run_in_executor(None, _init)
