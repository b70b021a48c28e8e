# src/taskbridge/core/sqlite.py

"""
Shared SQLite helpers for the stores (users, tasks, notifications).

All three tables live in one database file. Every store method opens its own
short-lived connection, so stores can be shared between threads.

Foreign keys are declared in the schema but PRAGMA foreign_keys stays off:
deleting a user must leave tasks/notifications that reference it in place.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
from pathlib import Path

logger = logging.getLogger(__name__)


def open_connection(db_path: str | Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path), timeout=30.0)
    conn.row_factory = sqlite3.Row
    with contextlib.suppress(Exception):
        conn.execute("PRAGMA journal_mode=WAL")
    return conn


def add_missing_columns(cur: sqlite3.Cursor, table: str, columns: dict[str, str]) -> None:
    """Migration helper: ALTER TABLE ADD COLUMN for every column not present yet."""
    cur.execute(f"PRAGMA table_info({table})")
    existing = {row["name"] for row in cur.fetchall()}
    for name, decl in columns.items():
        if name in existing:
            continue
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {name} {decl}")
        logger.info("%s migration: added column %s", table, name)


def is_unique_violation(exc: sqlite3.IntegrityError) -> bool:
    return "UNIQUE" in str(exc).upper()
