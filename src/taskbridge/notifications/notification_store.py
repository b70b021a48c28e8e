# src/taskbridge/notifications/notification_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from ..core.sqlite import add_missing_columns, open_connection
from ..team.user_store import ensure_users_table
from .notification_models import Notification, NotificationType

logger = logging.getLogger(__name__)


class NotificationStore:
    """SQLite notifications table (one row per recipient per dispatch)."""

    def __init__(
        self,
        db_path: str | Path = "taskbridge.sqlite3",
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self._ensure_schema()
        logger.info("NotificationStore ready db=%s", self._db_path)

    def _get_conn(self) -> sqlite3.Connection:
        return open_connection(self._db_path)

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            ensure_users_table(cur)
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS notifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id INTEGER NOT NULL REFERENCES users(id),
                    message TEXT NOT NULL,
                    type TEXT NOT NULL,
                    sent_at REAL NOT NULL,
                    is_read INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            add_missing_columns(cur, "notifications", {"task_id": "INTEGER"})
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_notifications_user ON notifications(user_id, is_read)"
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_notifications_task ON notifications(task_id, type)"
            )
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_notification(row: sqlite3.Row) -> Notification:
        return Notification(
            id=int(row["id"]),
            user_id=int(row["user_id"]),
            message=str(row["message"] or ""),
            type=NotificationType(row["type"]),
            sent_at=float(row["sent_at"] or 0.0),
            is_read=bool(row["is_read"]),
            task_id=int(row["task_id"]) if row["task_id"] is not None else None,
        )

    # ---- public API ----

    def create_notification(
        self,
        *,
        user_id: int,
        message: str,
        type: NotificationType,
        task_id: int | None = None,
    ) -> Notification:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO notifications(user_id, message, type, sent_at, is_read, task_id)
                VALUES (?, ?, ?, ?, 0, ?)
                """,
                (int(user_id), message, NotificationType(type).value, self._clock(), task_id),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for notifications insert")
        finally:
            conn.close()

        logger.debug("Notification id=%s type=%s for user=%s", rowid, NotificationType(type).value, user_id)
        notification = self.get_notification(int(rowid))
        if notification is None:
            raise RuntimeError(f"notification {rowid} vanished right after insert")
        return notification

    def get_notification(self, notification_id: int) -> Notification | None:
        conn = self._get_conn()
        try:
            row = conn.execute("SELECT * FROM notifications WHERE id = ?", (int(notification_id),)).fetchone()
            return self._row_to_notification(row) if row else None
        finally:
            conn.close()

    def list_for_user(self, user_id: int, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        sql = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            sql += " AND is_read = 0"
        sql += " ORDER BY sent_at DESC, id DESC LIMIT ?"
        conn = self._get_conn()
        try:
            rows = conn.execute(sql, (int(user_id), int(limit))).fetchall()
            return [self._row_to_notification(r) for r in rows]
        finally:
            conn.close()

    def list_unread(self, user_id: int) -> list[Notification]:
        return self.list_for_user(user_id, unread_only=True)

    def list_by_type(self, type: NotificationType) -> list[Notification]:
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT * FROM notifications WHERE type = ? ORDER BY id ASC",
                (NotificationType(type).value,),
            ).fetchall()
            return [self._row_to_notification(r) for r in rows]
        finally:
            conn.close()

    def has_notification(
        self,
        *,
        user_id: int,
        type: NotificationType,
        task_id: int | None = None,
        message: str | None = None,
    ) -> bool:
        sql = "SELECT 1 FROM notifications WHERE user_id = ? AND type = ?"
        params: list[Any] = [int(user_id), NotificationType(type).value]
        if task_id is not None:
            sql += " AND task_id = ?"
            params.append(int(task_id))
        if message is not None:
            sql += " AND message = ?"
            params.append(message)
        conn = self._get_conn()
        try:
            return conn.execute(sql + " LIMIT 1", params).fetchone() is not None
        finally:
            conn.close()

    def mark_as_read(self, notification_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("UPDATE notifications SET is_read = 1 WHERE id = ?", (int(notification_id),))
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def mark_all_read(self, user_id: int) -> int:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE notifications SET is_read = 1 WHERE user_id = ? AND is_read = 0",
                (int(user_id),),
            )
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()
