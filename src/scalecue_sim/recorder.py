"""Run recording for scalecue-sim.

Stores per-step metric samples and events in SQLite so runs can be
compared after the fact. The engine itself keeps nothing on disk.
"""

from __future__ import annotations

import json
import time
from typing import Any

import aiosqlite

from scalecue.models import Snapshot

SCHEMA_VERSION = 1

SCHEMA = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY
);

-- One row per simulator run
CREATE TABLE IF NOT EXISTS runs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    scenario TEXT NOT NULL,
    seed INTEGER,
    config TEXT,  -- JSON engine config
    started_at REAL NOT NULL,
    finished_at REAL,
    final_tick REAL
);

-- Metrics after each step
CREATE TABLE IF NOT EXISTS samples (
    run_id INTEGER NOT NULL REFERENCES runs(id),
    tick REAL NOT NULL,
    queued INTEGER NOT NULL,
    processing INTEGER NOT NULL,
    completed INTEGER NOT NULL,
    failed INTEGER NOT NULL,
    expired INTEGER NOT NULL,
    active_workers INTEGER NOT NULL,
    ready_workers INTEGER NOT NULL,
    target_workers INTEGER NOT NULL
);

-- Item and worker transitions
CREATE TABLE IF NOT EXISTS events (
    run_id INTEGER NOT NULL REFERENCES runs(id),
    tick REAL NOT NULL,
    event_type TEXT NOT NULL,
    subject TEXT NOT NULL,
    details TEXT
);

CREATE INDEX IF NOT EXISTS idx_samples_run_tick ON samples(run_id, tick);
CREATE INDEX IF NOT EXISTS idx_events_run_type ON events(run_id, event_type);
"""


async def init_db(db_path: str) -> aiosqlite.Connection:
    """
    Initialize database connection and schema.

    Args:
        db_path: Path to SQLite file or ":memory:" for in-memory.

    Returns:
        Open database connection.
    """
    conn = await aiosqlite.connect(db_path)
    conn.row_factory = aiosqlite.Row

    await conn.execute("PRAGMA journal_mode=WAL")
    await conn.execute("PRAGMA foreign_keys=ON")

    async with conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    ) as cursor:
        exists = await cursor.fetchone()

    if not exists:
        await conn.executescript(SCHEMA)
        await conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
        await conn.commit()

    return conn


async def start_run(
    conn: aiosqlite.Connection,
    scenario: str,
    config: dict[str, Any],
    seed: int | None = None,
) -> int:
    """Create a run row. Returns the run ID."""
    cursor = await conn.execute(
        "INSERT INTO runs (scenario, seed, config, started_at) VALUES (?, ?, ?, ?)",
        (scenario, seed, json.dumps(config), time.time()),
    )
    await conn.commit()
    return cursor.lastrowid


async def record_sample(conn: aiosqlite.Connection, run_id: int, snapshot: Snapshot) -> None:
    """Store the metrics of one step. Committed by finish_run."""
    m = snapshot.metrics
    await conn.execute(
        """
        INSERT INTO samples (
            run_id, tick, queued, processing, completed, failed, expired,
            active_workers, ready_workers, target_workers
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            run_id, snapshot.tick, m.queued, m.processing, m.completed, m.failed,
            m.expired, m.active_workers, m.ready_workers, snapshot.target_workers,
        ),
    )


async def record_event(
    conn: aiosqlite.Connection,
    run_id: int,
    tick: float,
    event_type: str,
    subject: str,
    details: str = "",
) -> None:
    """Store one event. Committed by finish_run."""
    await conn.execute(
        "INSERT INTO events (run_id, tick, event_type, subject, details) VALUES (?, ?, ?, ?, ?)",
        (run_id, tick, event_type, subject, details),
    )


async def finish_run(conn: aiosqlite.Connection, run_id: int, final_tick: float) -> None:
    """Close out a run and commit everything recorded for it."""
    await conn.execute(
        "UPDATE runs SET finished_at = ?, final_tick = ? WHERE id = ?",
        (time.time(), final_tick, run_id),
    )
    await conn.commit()


async def list_runs(conn: aiosqlite.Connection, limit: int = 20) -> list[dict]:
    """Most recent runs first."""
    async with conn.execute(
        "SELECT * FROM runs ORDER BY id DESC LIMIT ?", (limit,)
    ) as cursor:
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]


async def get_samples(conn: aiosqlite.Connection, run_id: int) -> list[dict]:
    """All samples for a run in tick order."""
    async with conn.execute(
        "SELECT * FROM samples WHERE run_id = ? ORDER BY tick", (run_id,)
    ) as cursor:
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]


async def get_events(
    conn: aiosqlite.Connection,
    run_id: int,
    event_type: str | None = None,
) -> list[dict]:
    """Events for a run, optionally filtered by type."""
    query = "SELECT * FROM events WHERE run_id = ?"
    params: list = [run_id]
    if event_type:
        query += " AND event_type = ?"
        params.append(event_type)
    query += " ORDER BY tick"

    async with conn.execute(query, params) as cursor:
        rows = await cursor.fetchall()
        return [dict(row) for row in rows]
