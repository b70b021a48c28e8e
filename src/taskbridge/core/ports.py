# src/taskbridge/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps chat platforms, mirrors and storage swappable and makes testing easier.
"""

from collections.abc import Iterable, Mapping
from typing import Any, Awaitable, Protocol

from ..notifications.notification_models import Notification, NotificationType
from ..tasks.task_models import Task, TaskFilter
from ..team.user_models import Platform, User, UserRole


class ChannelSender(Protocol):
    """
    Connector-side port: deliver a direct message to one platform account.

    Implementations raise on failure; the dispatcher isolates and logs it.
    """

    def send_direct_message(self, account_id: str, text: str) -> Awaitable[None]: ...


class RecordMirror(Protocol):
    """External record-store replica (best-effort, called from the replicator thread)."""

    def sync_task(self, task: Task) -> None: ...
    def sync_user(self, user: User) -> None: ...
    def save_checkin(self, *, user: User, question: str, answer: str, timestamp: float) -> None: ...


class ReplicationSink(Protocol):
    """Where stores hand records after a successful write (fire-and-forget)."""

    def submit_task(self, task: Task) -> None: ...
    def submit_user(self, user: User) -> None: ...


class UserRepo(Protocol):
    def create_user(
            self,
            *,
            username: str,
            role: UserRole = UserRole.MEMBER,
            discord_id: str | None = None,
            telegram_id: str | None = None,
    ) -> User: ...

    def get_user(self, user_id: int) -> User | None: ...
    def get_user_by_username(self, username: str) -> User | None: ...
    def get_user_by_account(self, platform: Platform, account_id: str) -> User | None: ...
    def list_users(self, roles: Iterable[UserRole] | None = None) -> list[User]: ...
    def link_account(self, user_id: int, platform: Platform, account_id: str) -> User | None: ...
    def set_role(self, user_id: int, role: UserRole) -> User | None: ...
    def delete_user(self, user_id: int) -> bool: ...


class TaskRepo(Protocol):
    def create_task(
            self,
            *,
            title: str,
            created_by: int,
            description: str | None = None,
            priority: Any = None,
            assignee_id: int | None = None,
            deadline: float | None = None,
    ) -> Task: ...

    def get_task(self, task_id: int) -> Task | None: ...
    def list_tasks(self, task_filter: TaskFilter | None = None) -> list[Task]: ...
    def update_task(self, task_id: int, changes: Mapping[str, Any]) -> Task | None: ...
    def delete_task(self, task_id: int) -> bool: ...
    def list_tasks_for_assignee(self, user_id: int) -> list[Task]: ...
    def list_tasks_with_deadline_within(self, hours: float, now_ts: float | None = None) -> list[Task]: ...


class NotificationRepo(Protocol):
    def create_notification(
            self,
            *,
            user_id: int,
            message: str,
            type: NotificationType,
            task_id: int | None = None,
    ) -> Notification: ...

    def has_notification(
            self,
            *,
            user_id: int,
            type: NotificationType,
            task_id: int | None = None,
            message: str | None = None,
    ) -> bool: ...

    def list_unread(self, user_id: int) -> list[Notification]: ...
    def mark_as_read(self, notification_id: int) -> bool: ...
