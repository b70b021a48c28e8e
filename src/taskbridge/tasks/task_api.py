# src/taskbridge/tasks/task_api.py

from __future__ import annotations

"""
Task workflow helpers used by front-ends.

Each helper performs the store mutation first and then triggers the matching
notifications. Anything after a successful write (notification rows, channel
delivery) is logged on failure and never turns a successful mutation into an
error for the caller.
"""

import logging
from collections.abc import Awaitable, Mapping
from typing import Any

from ..core.state import AppState
from ..notifications.notification_models import Notification
from ..team.user_models import User, UserRole
from .task_models import Task, TaskPriority, TaskStatus

logger = logging.getLogger(__name__)


async def _notify_safely(what: str, coro: Awaitable[list[Notification]]) -> None:
    try:
        await coro
    except Exception:
        logger.exception("Notification step failed: %s", what)


async def create_task(
    state: AppState,
    *,
    actor: User,
    title: str,
    description: str | None = None,
    priority: TaskPriority | str | None = None,
    assignee_id: int | None = None,
    deadline: float | None = None,
) -> Task:
    """Create a task on behalf of `actor`, announce it to managers and the assignee."""
    task = state.task_store.create_task(
        title=title,
        created_by=actor.id,
        description=description,
        priority=priority,
        assignee_id=assignee_id,
        deadline=deadline,
    )

    await _notify_safely(f"task_created #{task.id}", state.dispatcher.notify_task_created(task))
    if task.assignee is not None:
        await _notify_safely(
            f"task_assigned #{task.id}",
            state.dispatcher.notify_task_assigned(task, task.assignee),
        )
    return task


async def update_task(state: AppState, task_id: int, changes: Mapping[str, Any]) -> Task | None:
    """
    Partial update + notifications.

    - assignee changed to a user -> task_assigned for the new assignee
    - status changed             -> status_changed for the creator

    Returns None if the task does not exist.
    """
    before = state.task_store.get_task(task_id)
    if before is None:
        return None

    after = state.task_store.update_task(task_id, changes)
    if after is None:
        return None

    if "assignee_id" in changes and after.assignee_id is not None and after.assignee_id != before.assignee_id:
        assignee = after.assignee or state.users.get_user(after.assignee_id)
        if assignee is not None:
            await _notify_safely(
                f"task_assigned #{after.id}",
                state.dispatcher.notify_task_assigned(after, assignee),
            )
        else:
            logger.warning("Task %s assigned to unknown user id=%s", after.id, after.assignee_id)

    if "status" in changes and after.status != before.status:
        await _notify_safely(
            f"status_changed #{after.id}",
            state.dispatcher.notify_status_changed(after, after.status.value),
        )

    return after


async def assign_task(state: AppState, task_id: int, assignee_id: int | None) -> Task | None:
    return await update_task(state, task_id, {"assignee_id": assignee_id})


async def change_status(state: AppState, task_id: int, status: TaskStatus | str) -> Task | None:
    return await update_task(state, task_id, {"status": TaskStatus(status)})


def can_delete(state: AppState, actor: User, task: Task) -> bool:
    return task.created_by == actor.id or state.identity.has_permission(actor.id, UserRole.MANAGER)


async def delete_task(state: AppState, *, actor: User, task_id: int) -> bool:
    """Delete a task. Allowed for its creator and for managers/admins."""
    task = state.task_store.get_task(task_id)
    if task is None:
        return False
    if not can_delete(state, actor, task):
        raise PermissionError(f"user {actor.id} may not delete task {task_id}")
    return state.task_store.delete_task(task_id)
