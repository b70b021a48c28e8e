# src/taskbridge/tasks/reminder_scheduler.py

from __future__ import annotations

"""
Deadline reminder scheduler.

A small polling loop that:
- asks the task store for open tasks due within each reminder window,
- sends at most one reminder per task per pass (smallest matching window wins),
- skips reminders that were already recorded for the same assignee/task/window.

The notification rows double as the "already reminded" ledger, so restarts
do not re-send reminders.
"""

import asyncio
import logging
import time
from collections.abc import Iterable

from ..core.ports import NotificationRepo, TaskRepo
from ..notifications.dispatcher import NotificationDispatcher, deadline_reminder_message
from ..notifications.notification_models import NotificationType

logger = logging.getLogger(__name__)


async def check_deadlines_once(
        task_store: TaskRepo,
        dispatcher: NotificationDispatcher,
        notifications: NotificationRepo,
        reminder_hours: Iterable[int],
        *,
        now_ts: float | None = None,
) -> int:
    """Run one reminder pass. Returns the number of reminders sent."""
    now = time.time() if now_ts is None else float(now_ts)
    windows = sorted({int(h) for h in reminder_hours if int(h) > 0})

    seen: set[int] = set()
    sent = 0

    for hours in windows:
        for task in task_store.list_tasks_with_deadline_within(hours, now_ts=now):
            if task.id in seen:
                continue
            seen.add(task.id)

            assignee = task.assignee
            if assignee is None:
                continue

            message = deadline_reminder_message(task, hours)
            if notifications.has_notification(
                user_id=assignee.id,
                type=NotificationType.DEADLINE_REMINDER,
                task_id=task.id,
                message=message,
            ):
                continue

            try:
                await dispatcher.notify_deadline_reminder(task, assignee, hours)
                sent += 1
                logger.info("Deadline reminder task=%s user=%s window=%sh", task.id, assignee.id, hours)
            except Exception:
                logger.exception("Deadline reminder failed task=%s", task.id)

    return sent


async def run_deadline_reminders(
        task_store: TaskRepo,
        dispatcher: NotificationDispatcher,
        notifications: NotificationRepo,
        *,
        reminder_hours: Iterable[int] = (1, 24),
        interval_seconds: float = 300.0,
) -> None:
    """
    Repeat check_deadlines_once every interval_seconds.

    To stop the scheduler, cancel the coroutine/task.
    """
    hours = list(reminder_hours)
    sleep_s = max(0.5, float(interval_seconds))
    logger.info("Deadline reminders started windows=%s interval=%.0fs", hours, sleep_s)

    while True:
        try:
            await check_deadlines_once(task_store, dispatcher, notifications, hours)
        except Exception:
            logger.exception("Deadline reminder pass failed")

        await asyncio.sleep(sleep_s)
