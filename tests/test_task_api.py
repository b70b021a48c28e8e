# tests/test_task_api.py

from __future__ import annotations

import pytest

from taskbridge.notifications.notification_models import NotificationType
from taskbridge.tasks import task_api
from taskbridge.tasks.task_models import TaskStatus
from taskbridge.team.user_models import Platform, UserRole


@pytest.mark.asyncio
async def test_ship_release_flow(state, clock, channels) -> None:
    u1 = state.identity.resolve_or_create(Platform.TELEGRAM, "111", "lead")
    state.identity.set_role(u1.id, UserRole.MANAGER)
    u1 = state.identity.get_user(u1.id)
    u2 = state.identity.resolve_or_create(Platform.DISCORD, "222", "dev")

    task = await task_api.create_task(state, actor=u1, title="Ship release")
    assert task.assignee_id is None
    created_at = task.updated_at

    clock.advance(30)
    assigned = await task_api.assign_task(state, task.id, u2.id)
    assert assigned is not None and assigned.assignee_id == u2.id
    assert assigned.updated_at > created_at

    # reassigning to the same user is not a new assignment
    await task_api.assign_task(state, task.id, u2.id)

    rows = state.notifications.list_by_type(NotificationType.TASK_ASSIGNED)
    assert [n.user_id for n in rows] == [u2.id]
    assert [m.account_id for m in channels[Platform.DISCORD].sent] == ["222"]

    clock.advance(30)
    done = await task_api.change_status(state, task.id, TaskStatus.DONE)
    assert done is not None and done.status == TaskStatus.DONE

    status_rows = state.notifications.list_by_type(NotificationType.STATUS_CHANGED)
    assert [n.user_id for n in status_rows] == [u1.id]
    assert [m.text for m in channels[Platform.TELEGRAM].sent] == ['✅ Task "Ship release" status changed to: done']


@pytest.mark.asyncio
async def test_create_with_assignee_notifies_assignee(state) -> None:
    boss = state.users.create_user(username="boss", role=UserRole.ADMIN)
    dev = state.users.create_user(username="dev", telegram_id="5")

    task = await task_api.create_task(state, actor=boss, title="Review PR", assignee_id=dev.id)

    assert task.assignee is not None and task.assignee.id == dev.id
    assert [n.user_id for n in state.notifications.list_by_type(NotificationType.TASK_ASSIGNED)] == [dev.id]
    # creator is the only admin, so nobody else hears about the creation
    assert state.notifications.list_by_type(NotificationType.TASK_CREATED) == []


@pytest.mark.asyncio
async def test_update_missing_task_returns_none(state) -> None:
    assert await task_api.update_task(state, 404, {"title": "x"}) is None


@pytest.mark.asyncio
async def test_delete_requires_creator_or_manager(state) -> None:
    owner = state.users.create_user(username="owner")
    stranger = state.users.create_user(username="stranger")
    manager = state.users.create_user(username="pm", role=UserRole.MANAGER)

    t1 = await task_api.create_task(state, actor=owner, title="Mine")
    t2 = await task_api.create_task(state, actor=owner, title="Also mine")

    with pytest.raises(PermissionError):
        await task_api.delete_task(state, actor=stranger, task_id=t1.id)

    assert await task_api.delete_task(state, actor=owner, task_id=t1.id) is True
    assert await task_api.delete_task(state, actor=manager, task_id=t2.id) is True
    assert await task_api.delete_task(state, actor=manager, task_id=t2.id) is False


@pytest.mark.asyncio
async def test_mutations_are_replicated(state, mirror) -> None:
    boss = state.users.create_user(username="boss")
    task = await task_api.create_task(state, actor=boss, title="Mirror me")
    await task_api.change_status(state, task.id, "review")

    assert state.replicator.flush(timeout=5.0)
    assert [(t.id, t.status) for t in mirror.tasks] == [(task.id, TaskStatus.TODO), (task.id, TaskStatus.REVIEW)]


@pytest.mark.asyncio
async def test_combined_assign_and_status_update(state, clock, channels) -> None:
    u1 = state.users.create_user(username="lead", role=UserRole.MANAGER, telegram_id="111")
    u2 = state.users.create_user(username="dev", discord_id="222")
    task = await task_api.create_task(state, actor=u1, title="Ship release")

    clock.advance(30)
    updated = await task_api.update_task(state, task.id, {"assignee_id": u2.id, "status": "in_progress"})

    assert updated is not None
    assert updated.assignee_id == u2.id
    assert updated.status == TaskStatus.IN_PROGRESS
    assert updated.updated_at > task.updated_at

    assigned = state.notifications.list_by_type(NotificationType.TASK_ASSIGNED)
    assert [n.user_id for n in assigned] == [u2.id]
    status_rows = state.notifications.list_by_type(NotificationType.STATUS_CHANGED)
    assert [n.user_id for n in status_rows] == [u1.id]
    assert [m.account_id for m in channels[Platform.DISCORD].sent] == ["222"]
    assert [m.text for m in channels[Platform.TELEGRAM].sent] == [
        '🔄 Task "Ship release" status changed to: in_progress'
    ]
