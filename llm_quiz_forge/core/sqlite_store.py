from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

LOG_LEVELS = ("INFO", "SUCCESS", "WARNING", "ERROR")


def connect(db_path: Path) -> sqlite3.Connection:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    _init_db(conn)
    return conn


def _init_db(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS settings (
            key TEXT PRIMARY KEY,
            value_json TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS logs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            action TEXT NOT NULL,
            details TEXT NOT NULL,
            level TEXT NOT NULL,
            username TEXT,
            created_at TEXT NOT NULL
        );
        """
    )
    conn.commit()


def get_setting(conn: sqlite3.Connection, key: str, default: Any = None) -> Any:
    row = conn.execute("SELECT value_json FROM settings WHERE key = ?", (key,)).fetchone()
    if not row:
        return default
    return json.loads(row["value_json"])


def put_setting(conn: sqlite3.Connection, key: str, value: Any) -> None:
    updated_at = datetime.now(timezone.utc).isoformat()
    conn.execute(
        """
        INSERT INTO settings (key, value_json, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value_json=excluded.value_json,
            updated_at=excluded.updated_at
        """,
        (key, json.dumps(value, ensure_ascii=False), updated_at),
    )
    conn.commit()


def insert_log(
    conn: sqlite3.Connection,
    action: str,
    details: str,
    level: str = "INFO",
    username: str | None = None,
) -> None:
    if level not in LOG_LEVELS:
        raise ValueError(f"Unknown log level: {level}")
    created_at = datetime.now(timezone.utc).isoformat()
    conn.execute(
        """
        INSERT INTO logs (action, details, level, username, created_at)
        VALUES (?, ?, ?, ?, ?)
        """,
        (action, details, level, username, created_at),
    )
    conn.commit()


def fetch_logs(conn: sqlite3.Connection, limit: int = 100) -> list[dict]:
    rows = conn.execute(
        """
        SELECT id, action, details, level, username, created_at
        FROM logs
        ORDER BY id DESC
        LIMIT ?
        """,
        (limit,),
    ).fetchall()
    return [dict(row) for row in rows]
