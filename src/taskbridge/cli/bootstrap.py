# src/taskbridge/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (stores/identity/dispatcher/mirrors).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.discord_client import DiscordChannel
from ..connectors.telegram_client import TelegramBotAPI, TelegramChannel
from ..core.ports import ChannelSender, RecordMirror
from ..core.state import AppState
from ..mirrors.airtable import AirtableMirror
from ..mirrors.replication import MirrorReplicator
from ..notifications.dispatcher import NotificationDispatcher
from ..notifications.notification_store import NotificationStore
from ..tasks.task_store import TaskStore
from ..team.identity import IdentityResolver
from ..team.user_models import Platform
from ..team.user_store import UserStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)


def _build_mirrors(settings) -> list[RecordMirror]:
    if not getattr(settings, "airtable_enabled", False):
        logger.info("Airtable mirror disabled (no API key/base id).")
        return []
    return [
        AirtableMirror(
            api_key=settings.airtable_api_key,
            base_id=settings.airtable_base_id,
            api_base=settings.airtable_api_base,
        )
    ]


def _build_channels(settings) -> dict[Platform, ChannelSender]:
    channels: dict[Platform, ChannelSender] = {}
    if settings.telegram_token:
        channels[Platform.TELEGRAM] = TelegramChannel(
            TelegramBotAPI(settings.telegram_token, api_base=settings.telegram_api_base)
        )
    if settings.discord_token:
        channels[Platform.DISCORD] = DiscordChannel(settings.discord_token, api_base=settings.discord_api_base)
    if not channels:
        logger.warning("No delivery channels configured; notifications are stored only.")
    return channels


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    # users table first: tasks/notifications reference it
    users = UserStore(settings.db_path)
    replicator = MirrorReplicator(_build_mirrors(settings), max_queue=settings.mirror_queue_size)
    notifications = NotificationStore(settings.db_path)

    state = AppState(
        settings=settings,
        users=users,
        identity=IdentityResolver(
            users,
            replicator=replicator,
            merge_by_username=settings.identity_merge_by_username,
            admin_usernames=getattr(settings, "admin_usernames", ()),
        ),
        task_store=TaskStore(settings.db_path, replicator=replicator),
        notifications=notifications,
        dispatcher=NotificationDispatcher(notifications, users, _build_channels(settings)),
        replicator=replicator,
    )
    logger.info("State ready (db=%s, channels=%s)", settings.db_path, sorted(p.value for p in state.dispatcher.platforms))
    return state
