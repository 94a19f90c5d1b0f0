"""SQLite database connection management and schema migrations."""

from __future__ import annotations

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS scan_jobs (
    id TEXT PRIMARY KEY,
    repo_url TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    languages TEXT NOT NULL DEFAULT '[]',
    error_message TEXT,
    created_at REAL NOT NULL,
    completed_at REAL,
    review_stats TEXT NOT NULL DEFAULT '{}',
    tool_runs TEXT NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS scan_findings (
    job_id TEXT NOT NULL,
    id TEXT NOT NULL,
    position INTEGER NOT NULL,
    severity TEXT NOT NULL,
    tool TEXT NOT NULL,
    file_path TEXT NOT NULL DEFAULT '',
    line_number INTEGER NOT NULL DEFAULT 0,
    description TEXT NOT NULL DEFAULT '',
    remediation TEXT NOT NULL DEFAULT '',
    code_example TEXT NOT NULL DEFAULT '',
    rule_id TEXT NOT NULL DEFAULT '',
    reviewed INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (job_id, id),
    FOREIGN KEY (job_id) REFERENCES scan_jobs(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_jobs_created
    ON scan_jobs(created_at);
CREATE INDEX IF NOT EXISTS idx_findings_job
    ON scan_findings(job_id);
"""


async def get_db(db_path: str | Path) -> aiosqlite.Connection:
    """Open (or create) the database and run migrations."""
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    db = await aiosqlite.connect(str(db_path))
    db.row_factory = aiosqlite.Row
    await db.execute("PRAGMA journal_mode=WAL")
    await db.execute("PRAGMA foreign_keys=ON")

    await _migrate(db)
    return db


async def _migrate(db: aiosqlite.Connection) -> None:
    """Run schema migrations if needed."""
    cursor = await db.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    row = await cursor.fetchone()

    if row is None:
        await db.executescript(SCHEMA_SQL)
        await db.execute(
            "INSERT INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
        await db.commit()
        logger.info("Database initialized at schema version %d", SCHEMA_VERSION)
        return

    cursor = await db.execute("SELECT version FROM schema_version")
    row = await cursor.fetchone()
    current = row[0] if row else 0

    if current < SCHEMA_VERSION:
        logger.info(
            "Migrating database from version %d to %d",
            current,
            SCHEMA_VERSION,
        )
        if current < 2:
            # v1 kept only the job outcome; v2 records per-tool runs and review counts
            await db.execute(
                "ALTER TABLE scan_jobs "
                "ADD COLUMN review_stats TEXT NOT NULL DEFAULT '{}'"
            )
            await db.execute(
                "ALTER TABLE scan_jobs "
                "ADD COLUMN tool_runs TEXT NOT NULL DEFAULT '[]'"
            )
        await db.execute(
            "UPDATE schema_version SET version = ?",
            (SCHEMA_VERSION,),
        )
        await db.commit()
