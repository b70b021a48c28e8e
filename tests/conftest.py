# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskbridge.core.state import AppState
from taskbridge.mirrors.replication import MirrorReplicator
from taskbridge.notifications.dispatcher import NotificationDispatcher
from taskbridge.notifications.notification_store import NotificationStore
from taskbridge.tasks.task_store import TaskStore
from taskbridge.team.identity import IdentityResolver
from taskbridge.team.user_models import Platform
from taskbridge.team.user_store import UserStore

from .fakes import FakeChannel, FakeClock, FakeMirror


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        data_dir=tmp_path,
        db_path=tmp_path / "taskbridge.sqlite3",
        # Console identity
        console_platform="telegram",
        console_account_id="console",
        console_username="console",
        # Features
        telegram_enabled=False,
        telegram_token=None,
        telegram_poll_timeout_seconds=1,
        deadline_reminders=False,
        reminder_hours=[1, 24],
        reminder_interval_seconds=1.0,
        identity_merge_by_username=True,
        checkin_timeout_seconds=0.2,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def mirror() -> FakeMirror:
    return FakeMirror()


@pytest.fixture()
def channels() -> dict[Platform, FakeChannel]:
    return {Platform.TELEGRAM: FakeChannel(), Platform.DISCORD: FakeChannel()}


@pytest.fixture()
def state(settings: SimpleNamespace, clock: FakeClock, mirror: FakeMirror, channels):
    """
    AppState wired with deterministic fakes.

    NOTE: We keep real SQLite stores here (users/tasks/notifications) because
    their correctness is part of what we want to test. Only chat platforms
    and the external mirror are faked.
    """
    users = UserStore(settings.db_path, clock=clock)
    replicator = MirrorReplicator([mirror])
    notifications = NotificationStore(settings.db_path, clock=clock)

    app = AppState(
        settings=settings,
        users=users,
        identity=IdentityResolver(users, replicator=replicator),
        task_store=TaskStore(settings.db_path, replicator=replicator, clock=clock),
        notifications=notifications,
        dispatcher=NotificationDispatcher(notifications, users, channels),
        replicator=replicator,
    )
    yield app
    replicator.close(timeout=2.0)
