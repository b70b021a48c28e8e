# tests/test_dispatcher.py

from __future__ import annotations

import pytest

from taskbridge.notifications.dispatcher import (
    NotificationDispatcher,
    deadline_reminder_message,
    status_changed_message,
)
from taskbridge.notifications.notification_models import NotificationType
from taskbridge.team.user_models import Platform, UserRole

from .fakes import FailingChannel, FakeChannel


@pytest.mark.asyncio
async def test_task_created_goes_to_managers_except_creator(state, channels) -> None:
    a1 = state.users.create_user(username="a1", role=UserRole.ADMIN, telegram_id="1")
    state.users.create_user(username="a2", role=UserRole.ADMIN, telegram_id="2", discord_id="d2")
    state.users.create_user(username="m1", role=UserRole.MANAGER, telegram_id="3")
    state.users.create_user(username="dev", telegram_id="4")

    task = state.task_store.create_task(title="Write docs", created_by=a1.id)
    created = await state.dispatcher.notify_task_created(task)

    assert sorted(n.user_id for n in created) == sorted(
        u.id for u in state.users.list_users() if u.username in ("a2", "m1")
    )
    assert all(n.type == NotificationType.TASK_CREATED for n in created)
    assert all(n.message == '🆕 New task created: "Write docs"' for n in created)

    tg = [m.account_id for m in channels[Platform.TELEGRAM].sent]
    dc = [m.account_id for m in channels[Platform.DISCORD].sent]
    assert sorted(tg) == ["2", "3"]
    assert dc == ["d2"]


@pytest.mark.asyncio
async def test_failed_channel_does_not_block_others(state) -> None:
    failing = FailingChannel()
    working = FakeChannel()
    dispatcher = NotificationDispatcher(
        state.notifications,
        state.users,
        {Platform.TELEGRAM: failing, Platform.DISCORD: working},
    )
    boss = state.users.create_user(username="boss", role=UserRole.MANAGER)
    dev = state.users.create_user(username="dev", telegram_id="10", discord_id="20")
    task = state.task_store.create_task(title="Fix bug", created_by=boss.id)

    created = await dispatcher.notify_task_assigned(task, dev)

    assert len(created) == 1
    assert failing.calls == 1
    assert [(m.account_id, m.text) for m in working.sent] == [("20", '📋 You have been assigned a task: "Fix bug"')]
    assert state.notifications.list_unread(dev.id)[0].id == created[0].id


@pytest.mark.asyncio
async def test_status_changed_goes_to_creator_even_if_deleted(state, channels) -> None:
    boss = state.users.create_user(username="boss", telegram_id="1")
    task = state.task_store.create_task(title="Audit", created_by=boss.id)

    await state.dispatcher.notify_status_changed(task, "review")
    assert [m.text for m in channels[Platform.TELEGRAM].sent] == ['👀 Task "Audit" status changed to: review']

    state.users.delete_user(boss.id)
    created = await state.dispatcher.notify_status_changed(task, "done")

    assert len(created) == 1
    assert created[0].user_id == boss.id
    assert len(channels[Platform.TELEGRAM].sent) == 1


def test_message_texts(state) -> None:
    boss = state.users.create_user(username="boss")
    task = state.task_store.create_task(title="Plan", created_by=boss.id)

    assert status_changed_message(task, "blocked") == '📌 Task "Plan" status changed to: blocked'
    assert status_changed_message(task, "done") == '✅ Task "Plan" status changed to: done'
    assert deadline_reminder_message(task, 24) == '⏰ Reminder: 24 h left until the deadline of "Plan"'
    assert deadline_reminder_message(task, 1.5) == '⏰ Reminder: 1.5 h left until the deadline of "Plan"'


@pytest.mark.asyncio
async def test_user_without_linked_accounts_gets_row_only(state, channels) -> None:
    boss = state.users.create_user(username="boss")
    ghost = state.users.create_user(username="ghost")
    task = state.task_store.create_task(title="Quiet", created_by=boss.id)

    created = await state.dispatcher.notify_task_assigned(task, ghost)

    assert len(created) == 1
    assert not channels[Platform.TELEGRAM].sent
    assert not channels[Platform.DISCORD].sent


@pytest.mark.asyncio
async def test_failed_admin_channel_does_not_block_other_admin(state) -> None:
    failing = FailingChannel()
    working = FakeChannel()
    dispatcher = NotificationDispatcher(
        state.notifications,
        state.users,
        {Platform.TELEGRAM: failing, Platform.DISCORD: working},
    )
    author = state.users.create_user(username="author")
    broken = state.users.create_user(username="a1", role=UserRole.ADMIN, telegram_id="1")
    healthy = state.users.create_user(username="a2", role=UserRole.ADMIN, discord_id="d2")
    task = state.task_store.create_task(title="Rotate keys", created_by=author.id)

    created = await dispatcher.notify_task_created(task)

    assert sorted(n.user_id for n in created) == sorted([broken.id, healthy.id])
    assert len(state.notifications.list_by_type(NotificationType.TASK_CREATED)) == 2
    assert failing.calls == 1
    assert [(m.account_id, m.text) for m in working.sent] == [("d2", '🆕 New task created: "Rotate keys"')]
