# src/taskbridge/tasks/task_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from ..core.ports import ReplicationSink
from ..core.sqlite import add_missing_columns, open_connection
from ..team.user_models import User, UserRole
from ..team.user_store import ensure_users_table
from .task_models import Task, TaskFilter, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("title", "description", "status", "priority", "assignee_id", "deadline")

_SELECT_JOINED = """
    SELECT t.*,
        a.username AS assignee_username,
        a.discord_id AS assignee_discord_id,
        a.telegram_id AS assignee_telegram_id,
        a.role AS assignee_role,
        a.created_at AS assignee_created_at,
        c.username AS creator_username,
        c.discord_id AS creator_discord_id,
        c.telegram_id AS creator_telegram_id,
        c.role AS creator_role,
        c.created_at AS creator_created_at
    FROM tasks t
    LEFT JOIN users a ON t.assignee_id = a.id
    LEFT JOIN users c ON t.created_by = c.id
"""


class TaskStore:
    """
    SQLite task store.

    The schema is intentionally simple and migration-safe:
    - create table if missing
    - use PRAGMA table_info to detect missing columns
    - add columns with ALTER TABLE only when needed

    Reads always join assignee and creator; a deleted user joins as None.

    Every successful create/update hands the joined task to the replication
    sink (if any). The sink must not block; its failures never reach callers.

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(
        self,
        db_path: str | Path = "taskbridge.sqlite3",
        *,
        replicator: ReplicationSink | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._replicator = replicator
        self._clock = clock
        self._ensure_schema()
        try:
            total = self.count_tasks()
        except Exception:
            total = -1
        logger.info("TaskStore ready db=%s total=%s", self._db_path, total)

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        return open_connection(self._db_path)

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            ensure_users_table(cur)
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS tasks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    description TEXT,
                    status TEXT NOT NULL DEFAULT 'todo',
                    priority TEXT NOT NULL DEFAULT 'medium',
                    assignee_id INTEGER REFERENCES users(id),
                    created_by INTEGER NOT NULL REFERENCES users(id),
                    deadline REAL,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            add_missing_columns(
                cur,
                "tasks",
                {
                    "description": "TEXT",
                    "status": "TEXT NOT NULL DEFAULT 'todo'",
                    "priority": "TEXT NOT NULL DEFAULT 'medium'",
                    "assignee_id": "INTEGER",
                    "deadline": "REAL",
                    "created_at": "REAL NOT NULL DEFAULT 0",
                    "updated_at": "REAL NOT NULL DEFAULT 0",
                },
            )

            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks(assignee_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_tasks_deadline ON tasks(status, deadline)")

            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _joined_user(row: sqlite3.Row, prefix: str, user_id: int | None) -> User | None:
        if user_id is None or row[f"{prefix}_username"] is None:
            return None
        return User(
            id=int(user_id),
            username=str(row[f"{prefix}_username"]),
            discord_id=row[f"{prefix}_discord_id"],
            telegram_id=row[f"{prefix}_telegram_id"],
            role=UserRole.from_db(row[f"{prefix}_role"]),
            created_at=float(row[f"{prefix}_created_at"] or 0.0),
        )

    def _row_to_task(self, row: sqlite3.Row) -> Task:
        assignee_id = int(row["assignee_id"]) if row["assignee_id"] is not None else None
        created_by = int(row["created_by"])
        return Task(
            id=int(row["id"]),
            title=str(row["title"] or ""),
            description=row["description"],
            status=TaskStatus.from_db(row["status"]),
            priority=TaskPriority.from_db(row["priority"]),
            assignee_id=assignee_id,
            created_by=created_by,
            deadline=float(row["deadline"]) if row["deadline"] is not None else None,
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
            assignee=self._joined_user(row, "assignee", assignee_id),
            creator=self._joined_user(row, "creator", created_by),
        )

    def _query(self, where: str = "", params: list[Any] | tuple = (), order: str = "") -> list[Task]:
        sql = _SELECT_JOINED
        if where:
            sql += f" WHERE {where}"
        if order:
            sql += f" ORDER BY {order}"
        conn = self._get_conn()
        try:
            rows = conn.execute(sql, tuple(params)).fetchall()
            return [self._row_to_task(r) for r in rows]
        finally:
            conn.close()

    def _replicate(self, task: Task) -> None:
        if self._replicator is None:
            return
        try:
            self._replicator.submit_task(task)
        except Exception:
            logger.exception("Failed to queue task %s for replication", task.id)

    @staticmethod
    def _normalize_change(key: str, value: Any) -> Any:
        if key == "title":
            if value is None or not str(value).strip():
                raise ValueError("title must not be empty")
            return str(value).strip()
        if key == "description":
            return str(value) if value is not None else None
        if key == "status":
            if value is None:
                raise ValueError("status must not be None")
            return TaskStatus(value).value
        if key == "priority":
            if value is None:
                raise ValueError("priority must not be None")
            return TaskPriority(value).value
        if key == "assignee_id":
            return int(value) if value is not None else None
        if key == "deadline":
            return float(value) if value is not None else None
        raise ValueError(f"unknown task field: {key}")

    # ---- public API ----

    def count_tasks(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM tasks").fetchone()
            return int(n)
        finally:
            conn.close()

    def create_task(
        self,
        *,
        title: str,
        created_by: int,
        description: str | None = None,
        priority: TaskPriority | str | None = None,
        assignee_id: int | None = None,
        deadline: float | None = None,
    ) -> Task:
        if not title or not title.strip():
            raise ValueError("title is required")
        if created_by is None:
            raise ValueError("created_by is required")

        prio = TaskPriority(priority) if priority else TaskPriority.MEDIUM
        now = self._clock()

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO tasks(
                    title, description, status, priority,
                    assignee_id, created_by, deadline,
                    created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    title.strip(),
                    description or None,
                    TaskStatus.TODO.value,
                    prio.value,
                    int(assignee_id) if assignee_id is not None else None,
                    int(created_by),
                    float(deadline) if deadline is not None else None,
                    now,
                    now,
                ),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for tasks insert")
        finally:
            conn.close()

        task = self.get_task(int(rowid))
        if task is None:
            raise RuntimeError(f"task {rowid} vanished right after insert")

        logger.info("Task created id=%s title=%r by=%s", task.id, task.title, task.created_by)
        self._replicate(task)
        return task

    def get_task(self, task_id: int) -> Task | None:
        rows = self._query("t.id = ?", (int(task_id),))
        return rows[0] if rows else None

    def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]:
        """Filtered listing, newest first."""
        clauses: list[str] = []
        params: list[Any] = []
        f = task_filter or TaskFilter()

        if f.status is not None:
            clauses.append("t.status = ?")
            params.append(TaskStatus(f.status).value)
        if f.priority is not None:
            clauses.append("t.priority = ?")
            params.append(TaskPriority(f.priority).value)
        if f.unassigned_only:
            clauses.append("t.assignee_id IS NULL")
        elif f.assignee_id is not None:
            clauses.append("t.assignee_id = ?")
            params.append(int(f.assignee_id))
        if f.created_by is not None:
            clauses.append("t.created_by = ?")
            params.append(int(f.created_by))

        return self._query(" AND ".join(clauses), params, order="t.created_at DESC, t.id DESC")

    def list_tasks_for_assignee(self, user_id: int) -> list[Task]:
        return self.list_tasks(TaskFilter(assignee_id=user_id))

    def list_tasks_with_deadline_within(self, hours: float, now_ts: float | None = None) -> list[Task]:
        """
        Open tasks whose deadline falls in (now, now + hours], soonest first.

        Backs deadline reminders; the periodic trigger lives in reminder_scheduler.
        """
        now = self._clock() if now_ts is None else float(now_ts)
        until = now + float(hours) * 3600.0
        return self._query(
            "t.deadline IS NOT NULL AND t.status != 'done' AND t.deadline > ? AND t.deadline <= ?",
            (now, until),
            order="t.deadline ASC, t.id ASC",
        )

    def update_task(self, task_id: int, changes: Mapping[str, Any] | None = None) -> Task | None:
        """
        Partial update: only keys present in `changes` are written.

        A key mapped to None clears a nullable field (assignee, deadline, description).
        Empty changes return the current state without touching updated_at.
        """
        changes = dict(changes or {})
        fields: list[str] = []
        params: list[Any] = []

        for key in UPDATABLE_FIELDS:
            if key in changes:
                fields.append(f"{key} = ?")
                params.append(self._normalize_change(key, changes.pop(key)))

        if changes:
            raise ValueError(f"unknown task field(s): {', '.join(sorted(changes))}")

        if not fields:
            return self.get_task(task_id)

        fields.append("updated_at = ?")
        params.append(self._clock())
        params.append(int(task_id))

        sql = f"UPDATE tasks SET {', '.join(fields)} WHERE id = ?"

        conn = self._get_conn()
        try:
            cur = conn.execute(sql, params)
            conn.commit()
            changed = cur.rowcount
        finally:
            conn.close()

        if changed == 0:
            return None

        task = self.get_task(task_id)
        if task is None:
            # Deleted concurrently after the UPDATE.
            return None

        logger.info("Task updated id=%s fields=%s", task_id, ",".join(f.split(" ")[0] for f in fields[:-1]))
        self._replicate(task)
        return task

    def delete_task(self, task_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE id = ?", (int(task_id),))
            conn.commit()
            deleted = cur.rowcount > 0
        finally:
            conn.close()

        if deleted:
            logger.info("Task deleted id=%s", task_id)
        return deleted
