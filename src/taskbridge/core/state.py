# src/taskbridge/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..mirrors.replication import MirrorReplicator
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.notification_store import NotificationStore
from ..tasks.task_store import TaskStore
from ..team.identity import IdentityResolver
from ..team.user_store import UserStore


@dataclass
class AppState:
    """
    Services shared by every front-end.

    Built once by cli.bootstrap and passed to connectors and command handlers.
    All services are stateless over the SQLite file, so one instance can be
    used from the console thread and the connector thread at the same time.
    """

    settings: Any

    users: UserStore
    identity: IdentityResolver
    task_store: TaskStore
    notifications: NotificationStore
    dispatcher: NotificationDispatcher
    replicator: MirrorReplicator
