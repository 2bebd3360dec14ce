from __future__ import annotations

import sqlite3
from pathlib import Path


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS patterns (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        name TEXT NOT NULL DEFAULT '',
        format TEXT NOT NULL CHECK(format IN ('json','yaml','xml','csv','text')),
        instructions TEXT NOT NULL,
        json_schema TEXT,
        csv_schema TEXT,
        csv_delimiter TEXT NOT NULL DEFAULT 'comma' CHECK(csv_delimiter IN ('comma','semicolon')),
        model_profile TEXT NOT NULL DEFAULT 'managed-default',
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS jobs (
        id TEXT PRIMARY KEY,
        pattern_id TEXT NOT NULL,
        user_id TEXT NOT NULL,
        image_url TEXT NOT NULL,
        extras TEXT,
        idempotency_key TEXT,
        status TEXT NOT NULL CHECK(status IN ('queued','running','succeeded','failed')),
        manifest TEXT,
        error TEXT,
        latency_ms INTEGER,
        created_at TEXT NOT NULL,
        started_at TEXT,
        completed_at TEXT,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE UNIQUE INDEX IF NOT EXISTS jobs_user_idempotency
        ON jobs(user_id, idempotency_key) WHERE idempotency_key IS NOT NULL
    """,
    "CREATE INDEX IF NOT EXISTS jobs_status ON jobs(status)",
    """
    CREATE TABLE IF NOT EXISTS webhooks (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        url TEXT NOT NULL,
        secret TEXT NOT NULL,
        events TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        last_triggered_at TEXT
    )
    """,
]


class Database:
    def __init__(self, db_url: str) -> None:
        if db_url.startswith("sqlite:///"):
            self.path = Path(db_url.replace("sqlite:///", ""))
        else:
            raise ValueError("Unsupported database URL")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.path, timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with sqlite3.connect(self.path) as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            for statement in SCHEMA:
                conn.execute(statement)
            conn.commit()


__all__ = ["Database"]
