# src/taskbridge/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time (every connector is optional).
- The unprefixed names used by older deployments (TELEGRAM_TOKEN, DISCORD_TOKEN,
  AIRTABLE_API_KEY, DATABASE_PATH, ...) are accepted as fallbacks.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

ENV_PREFIX = "TASKBRIDGE"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    parts = [p.strip() for p in raw.replace(",", " ").split() if p.strip()]
    return parts


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _parse_hours(values: List[str], default: List[int]) -> List[int]:
    out: List[int] = []
    for v in values:
        try:
            h = int(v)
        except ValueError:
            continue
        if h > 0 and h not in out:
            out.append(h)
    return sorted(out) if out else list(default)


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    db_path: Path

    # ---- Connector flags ----
    console_enabled: bool
    telegram_enabled: bool

    # ---- Console identity (which platform account the REPL acts as) ----
    console_platform: str
    console_account_id: str
    console_username: str

    # ---- Chat platforms ----
    telegram_token: Optional[str]
    telegram_api_base: str
    telegram_poll_timeout_seconds: int
    discord_token: Optional[str]
    discord_api_base: str

    # ---- External mirror (Airtable) ----
    airtable_api_key: Optional[str]
    airtable_base_id: Optional[str]
    airtable_api_base: str
    mirror_queue_size: int

    # ---- Notifications ----
    deadline_reminders: bool
    reminder_hours: List[int]
    reminder_interval_seconds: float

    # ---- Identity ----
    identity_merge_by_username: bool
    admin_usernames: List[str]

    # ---- Front-end flows ----
    checkin_timeout_seconds: float

    @property
    def airtable_enabled(self) -> bool:
        return bool(self.airtable_api_key and self.airtable_base_id)

    @staticmethod
    def from_env() -> "Settings":
        app_name = _first_env(_k("APP_NAME"), default="taskbridge") or "taskbridge"
        log_level = _first_env(_k("LOG_LEVEL"), "LOG_LEVEL", default="INFO") or "INFO"

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskbridge"))
        db_path = _env_path(_k("DB_PATH"), _env_path("DATABASE_PATH", data_dir / "taskbridge.sqlite3"))

        telegram_token = _first_env(_k("TELEGRAM_TOKEN"), "TELEGRAM_TOKEN", default=None)
        discord_token = _first_env(_k("DISCORD_TOKEN"), "DISCORD_TOKEN", default=None)

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        telegram_enabled = _env_bool(_k("TELEGRAM_ENABLED"), bool(telegram_token))

        console_platform = _env(_k("CONSOLE_PLATFORM"), "telegram").strip().lower()
        console_account_id = _env(_k("CONSOLE_ACCOUNT_ID"), "console").strip()
        console_username = _env(_k("CONSOLE_USERNAME"), os.getenv("USER") or "console").strip()

        airtable_api_key = _first_env(_k("AIRTABLE_API_KEY"), "AIRTABLE_API_KEY", default=None)
        airtable_base_id = _first_env(_k("AIRTABLE_BASE_ID"), "AIRTABLE_BASE_ID", default=None)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            db_path=db_path,
            console_enabled=console_enabled,
            telegram_enabled=telegram_enabled,
            console_platform=console_platform,
            console_account_id=console_account_id,
            console_username=console_username,
            telegram_token=telegram_token,
            telegram_api_base=_env(_k("TELEGRAM_API_BASE"), "https://api.telegram.org"),
            telegram_poll_timeout_seconds=_env_int(_k("TELEGRAM_POLL_TIMEOUT_SECONDS"), 30),
            discord_token=discord_token,
            discord_api_base=_env(_k("DISCORD_API_BASE"), "https://discord.com/api/v10"),
            airtable_api_key=airtable_api_key,
            airtable_base_id=airtable_base_id,
            airtable_api_base=_env(_k("AIRTABLE_API_BASE"), "https://api.airtable.com/v0"),
            mirror_queue_size=_env_int(_k("MIRROR_QUEUE_SIZE"), 1000),
            deadline_reminders=_env_bool(_k("DEADLINE_REMINDERS"), True),
            reminder_hours=_parse_hours(_env_list(_k("REMINDER_HOURS"), []), [1, 24]),
            reminder_interval_seconds=_env_float(_k("REMINDER_INTERVAL_SECONDS"), 300.0),
            identity_merge_by_username=_env_bool(_k("IDENTITY_MERGE_BY_USERNAME"), True),
            admin_usernames=[u.strip().lstrip("@") for u in _env_list(_k("ADMIN_USERNAMES"), []) if u.strip()],
            checkin_timeout_seconds=_env_float(_k("CHECKIN_TIMEOUT_SECONDS"), 600.0),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
