# src/taskbridge/notifications/notification_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum


class NotificationType(StrEnum):
    TASK_ASSIGNED = "task_assigned"
    DEADLINE_REMINDER = "deadline_reminder"
    STATUS_CHANGED = "status_changed"
    TASK_CREATED = "task_created"


@dataclass(slots=True)
class Notification:
    """
    Durable record of the intent to notify a user.

    Written before any delivery attempt; it is not proof of receipt.
    """

    id: int
    user_id: int
    message: str
    type: NotificationType
    sent_at: float
    is_read: bool = False
    task_id: int | None = None
