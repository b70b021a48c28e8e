# src/taskbridge/notifications/dispatcher.py

from __future__ import annotations

"""
Notification fan-out.

For every lifecycle event the dispatcher:
1) synchronously writes one Notification row per distinct recipient,
2) delivers the message to every linked channel of every recipient at once
   (asyncio.gather with return_exceptions=True: settle all, fail none).

Delivery is best-effort. A failed channel is logged and never affects the
stored rows, other channels of the same user, or other recipients.
"""

import asyncio
import logging
from collections.abc import Iterable, Mapping

from ..core.ports import ChannelSender, NotificationRepo, UserRepo
from ..tasks.task_models import Task
from ..team.user_models import Platform, User, UserRole
from .notification_models import Notification, NotificationType

logger = logging.getLogger(__name__)

STATUS_EMOJI: dict[str, str] = {
    "todo": "📝",
    "in_progress": "🔄",
    "review": "👀",
    "done": "✅",
}


def task_created_message(task: Task) -> str:
    return f'🆕 New task created: "{task.title}"'


def task_assigned_message(task: Task) -> str:
    return f'📋 You have been assigned a task: "{task.title}"'


def status_changed_message(task: Task, new_status: str) -> str:
    status = str(new_status)
    return f'{STATUS_EMOJI.get(status, "📌")} Task "{task.title}" status changed to: {status}'


def deadline_reminder_message(task: Task, hours_left: int | float) -> str:
    hours = int(hours_left) if float(hours_left).is_integer() else hours_left
    return f'⏰ Reminder: {hours} h left until the deadline of "{task.title}"'


class NotificationDispatcher:
    def __init__(
        self,
        notifications: NotificationRepo,
        users: UserRepo,
        channels: Mapping[Platform, ChannelSender] | None = None,
    ) -> None:
        self._notifications = notifications
        self._users = users
        self._channels: dict[Platform, ChannelSender] = dict(channels or {})

    def set_channel(self, platform: Platform, sender: ChannelSender | None) -> None:
        """Attach (or detach with None) the sender used for one platform."""
        if sender is None:
            self._channels.pop(Platform(platform), None)
        else:
            self._channels[Platform(platform)] = sender

    @property
    def platforms(self) -> list[Platform]:
        return list(self._channels)

    # ---- lifecycle events ----

    async def notify_task_created(self, task: Task) -> list[Notification]:
        """Every admin and manager except the task's creator."""
        managers = self._users.list_users(roles=(UserRole.ADMIN, UserRole.MANAGER))
        recipients = [(u.id, u) for u in managers if u.id != task.created_by]
        return await self._dispatch(
            recipients,
            task_created_message(task),
            NotificationType.TASK_CREATED,
            task_id=task.id,
        )

    async def notify_task_assigned(self, task: Task, assignee: User) -> list[Notification]:
        return await self._dispatch(
            [(assignee.id, assignee)],
            task_assigned_message(task),
            NotificationType.TASK_ASSIGNED,
            task_id=task.id,
        )

    async def notify_status_changed(self, task: Task, new_status: str) -> list[Notification]:
        """Only the creator. The row is kept even if the creator's user row is gone."""
        creator = self._users.get_user(task.created_by)
        return await self._dispatch(
            [(task.created_by, creator)],
            status_changed_message(task, new_status),
            NotificationType.STATUS_CHANGED,
            task_id=task.id,
        )

    async def notify_deadline_reminder(self, task: Task, assignee: User, hours_left: int | float) -> list[Notification]:
        return await self._dispatch(
            [(assignee.id, assignee)],
            deadline_reminder_message(task, hours_left),
            NotificationType.DEADLINE_REMINDER,
            task_id=task.id,
        )

    # ---- internals ----

    async def _dispatch(
        self,
        recipients: Iterable[tuple[int, User | None]],
        message: str,
        type: NotificationType,
        *,
        task_id: int | None,
    ) -> list[Notification]:
        created: list[Notification] = []
        targets: list[User] = []
        seen: set[int] = set()

        for user_id, user in recipients:
            if user_id in seen:
                continue
            seen.add(user_id)
            created.append(
                self._notifications.create_notification(
                    user_id=user_id,
                    message=message,
                    type=type,
                    task_id=task_id,
                )
            )
            if user is not None:
                targets.append(user)

        attempts = [
            self._deliver(platform, account_id, message, user)
            for user in targets
            for platform, account_id in user.linked_accounts().items()
            if platform in self._channels
        ]
        if attempts:
            await asyncio.gather(*attempts, return_exceptions=True)

        logger.info(
            "Dispatched %s to %d recipient(s) over %d channel attempt(s)",
            type.value,
            len(created),
            len(attempts),
        )
        return created

    async def _deliver(self, platform: Platform, account_id: str, message: str, user: User) -> bool:
        sender = self._channels.get(platform)
        if sender is None:
            return False
        try:
            await sender.send_direct_message(account_id, message)
        except Exception:
            logger.exception(
                "Delivery failed platform=%s account=%s user=%s",
                platform.value,
                account_id,
                user.id,
            )
            return False
        logger.debug("Delivered via %s to user=%s", platform.value, user.id)
        return True
