# src/taskbridge/team/user_store.py

from __future__ import annotations

import logging
import sqlite3
import time
from collections.abc import Callable, Iterable
from pathlib import Path

from ..core.sqlite import add_missing_columns, open_connection
from .user_models import Platform, User, UserRole

logger = logging.getLogger(__name__)


def ensure_users_table(cur: sqlite3.Cursor) -> None:
    """Create/migrate the users table. Task and notification stores join against it."""
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS users (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            username TEXT NOT NULL UNIQUE,
            discord_id TEXT UNIQUE,
            telegram_id TEXT UNIQUE,
            role TEXT NOT NULL DEFAULT 'member',
            created_at REAL NOT NULL
        )
        """
    )
    add_missing_columns(
        cur,
        "users",
        {
            "role": "TEXT NOT NULL DEFAULT 'member'",
            "created_at": "REAL NOT NULL DEFAULT 0",
        },
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_users_role ON users(role)")


class UserStore:
    """
    SQLite user table.

    Platform account references are nullable and UNIQUE: SQLite allows any
    number of NULLs in a unique index, so "at most one user per account id"
    is enforced by the engine.

    Identity policy (lookup-or-link-or-create) lives in IdentityResolver,
    this class only reads and writes rows.
    """

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
        logger.info("UserStore ready db=%s total=%s", self._db_path, self.count_users())

    def _get_conn(self) -> sqlite3.Connection:
        return open_connection(self._db_path)

    def _ensure_schema(self) -> None:
        conn = self._get_conn()
        try:
            ensure_users_table(conn.cursor())
            conn.commit()
        finally:
            conn.close()

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            id=int(row["id"]),
            username=str(row["username"]),
            discord_id=row["discord_id"],
            telegram_id=row["telegram_id"],
            role=UserRole.from_db(row["role"]),
            created_at=float(row["created_at"] or 0.0),
        )

    def _fetch_one(self, sql: str, params: tuple) -> User | None:
        conn = self._get_conn()
        try:
            row = conn.execute(sql, params).fetchone()
            return self._row_to_user(row) if row else None
        finally:
            conn.close()

    # ---- public API ----

    def count_users(self) -> int:
        conn = self._get_conn()
        try:
            (n,) = conn.execute("SELECT COUNT(*) FROM users").fetchone()
            return int(n)
        finally:
            conn.close()

    def create_user(
        self,
        *,
        username: str,
        role: UserRole = UserRole.MEMBER,
        discord_id: str | None = None,
        telegram_id: str | None = None,
    ) -> User:
        """Insert a user row. sqlite3.IntegrityError propagates on a UNIQUE clash."""
        if not username or not username.strip():
            raise ValueError("username is required")

        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO users(username, discord_id, telegram_id, role, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (username.strip(), discord_id or None, telegram_id or None, UserRole(role).value, self._clock()),
            )
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for users insert")
        finally:
            conn.close()

        user = self.get_user(int(rowid))
        if user is None:
            raise RuntimeError(f"user {rowid} vanished right after insert")
        logger.info("User created id=%s username=%s role=%s", user.id, user.username, user.role.value)
        return user

    def get_user(self, user_id: int) -> User | None:
        return self._fetch_one("SELECT * FROM users WHERE id = ?", (int(user_id),))

    def get_user_by_username(self, username: str) -> User | None:
        if not username:
            return None
        return self._fetch_one("SELECT * FROM users WHERE username = ?", (username.strip(),))

    def get_user_by_account(self, platform: Platform, account_id: str) -> User | None:
        if not account_id:
            return None
        column = Platform(platform).column
        return self._fetch_one(f"SELECT * FROM users WHERE {column} = ?", (str(account_id),))

    def list_users(self, roles: Iterable[UserRole] | None = None) -> list[User]:
        """All users (oldest first), optionally restricted to the given roles."""
        sql = "SELECT * FROM users"
        params: list[str] = []
        if roles is not None:
            wanted = [UserRole(r).value for r in roles]
            if not wanted:
                return []
            sql += f" WHERE role IN ({','.join('?' for _ in wanted)})"
            params.extend(wanted)
        sql += " ORDER BY created_at ASC, id ASC"

        conn = self._get_conn()
        try:
            return [self._row_to_user(r) for r in conn.execute(sql, params).fetchall()]
        finally:
            conn.close()

    def link_account(self, user_id: int, platform: Platform, account_id: str) -> User | None:
        """Attach a platform account reference. Returns None if the user does not exist."""
        column = Platform(platform).column
        conn = self._get_conn()
        try:
            cur = conn.execute(
                f"UPDATE users SET {column} = ? WHERE id = ?",
                (str(account_id), int(user_id)),
            )
            conn.commit()
            changed = cur.rowcount
        finally:
            conn.close()

        if changed == 0:
            return None
        logger.info("Linked %s account to user id=%s", Platform(platform).value, user_id)
        return self.get_user(user_id)

    def set_role(self, user_id: int, role: UserRole) -> User | None:
        conn = self._get_conn()
        try:
            cur = conn.execute(
                "UPDATE users SET role = ? WHERE id = ?",
                (UserRole(role).value, int(user_id)),
            )
            conn.commit()
            changed = cur.rowcount
        finally:
            conn.close()

        if changed == 0:
            return None
        logger.info("User id=%s role -> %s", user_id, UserRole(role).value)
        return self.get_user(user_id)

    def delete_user(self, user_id: int) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM users WHERE id = ?", (int(user_id),))
            conn.commit()
            deleted = cur.rowcount > 0
        finally:
            conn.close()

        if deleted:
            logger.info("User deleted id=%s", user_id)
        return deleted
