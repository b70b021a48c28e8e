# tests/test_task_store.py

from __future__ import annotations

import pytest

from taskbridge.tasks.task_models import TaskFilter, TaskPriority, TaskStatus
from taskbridge.tasks.task_store import TaskStore
from taskbridge.team.user_models import UserRole
from taskbridge.team.user_store import UserStore

from .fakes import FakeClock

HOUR = 3600.0


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def users(tmp_path, clock) -> UserStore:
    return UserStore(tmp_path / "db.sqlite3", clock=clock)


@pytest.fixture()
def store(tmp_path, clock, users) -> TaskStore:
    return TaskStore(tmp_path / "db.sqlite3", clock=clock)


def test_create_task_fills_defaults_and_joins_users(store: TaskStore, users: UserStore, clock: FakeClock) -> None:
    boss = users.create_user(username="boss", role=UserRole.MANAGER, telegram_id="100")
    dev = users.create_user(username="dev", telegram_id="200")

    task = store.create_task(title="  Ship release  ", created_by=boss.id, assignee_id=dev.id)

    assert task.title == "Ship release"
    assert task.status == TaskStatus.TODO
    assert task.priority == TaskPriority.MEDIUM
    assert task.created_at == task.updated_at == clock.now
    assert task.creator is not None and task.creator.username == "boss"
    assert task.assignee is not None and task.assignee.username == "dev"

    assert store.get_task(task.id) == task


def test_create_task_requires_title(store: TaskStore, users: UserStore) -> None:
    boss = users.create_user(username="boss")
    with pytest.raises(ValueError):
        store.create_task(title="   ", created_by=boss.id)


def test_get_missing_task_returns_none(store: TaskStore) -> None:
    assert store.get_task(12345) is None


def test_empty_update_does_not_touch_updated_at(store: TaskStore, users: UserStore, clock: FakeClock) -> None:
    boss = users.create_user(username="boss")
    task = store.create_task(title="A", created_by=boss.id)

    clock.advance(60)
    same = store.update_task(task.id, {})

    assert same == task
    assert same is not None and same.updated_at == task.updated_at


def test_partial_update_changes_only_given_fields(store: TaskStore, users: UserStore, clock: FakeClock) -> None:
    boss = users.create_user(username="boss")
    task = store.create_task(title="A", created_by=boss.id, description="keep me", deadline=clock.now + HOUR)

    clock.advance(5)
    updated = store.update_task(task.id, {"status": "in_progress", "deadline": None})

    assert updated is not None
    assert updated.status == TaskStatus.IN_PROGRESS
    assert updated.deadline is None
    assert updated.description == "keep me"
    assert updated.title == "A"
    assert updated.updated_at == task.updated_at + 5


def test_update_rejects_unknown_fields_and_bad_values(store: TaskStore, users: UserStore) -> None:
    boss = users.create_user(username="boss")
    task = store.create_task(title="A", created_by=boss.id)

    with pytest.raises(ValueError):
        store.update_task(task.id, {"owner": 1})
    with pytest.raises(ValueError):
        store.update_task(task.id, {"status": "blocked"})
    with pytest.raises(ValueError):
        store.update_task(task.id, {"title": ""})


def test_update_missing_task_returns_none(store: TaskStore) -> None:
    assert store.update_task(999, {"title": "x"}) is None


def test_list_tasks_filters_and_orders_newest_first(store: TaskStore, users: UserStore, clock: FakeClock) -> None:
    boss = users.create_user(username="boss")
    dev = users.create_user(username="dev")

    t1 = store.create_task(title="one", created_by=boss.id, assignee_id=dev.id, priority="high")
    clock.advance(1)
    t2 = store.create_task(title="two", created_by=boss.id)
    clock.advance(1)
    t3 = store.create_task(title="three", created_by=dev.id, assignee_id=dev.id)
    store.update_task(t3.id, {"status": "done"})

    assert [t.id for t in store.list_tasks()] == [t3.id, t2.id, t1.id]
    assert [t.id for t in store.list_tasks(TaskFilter(status=TaskStatus.DONE))] == [t3.id]
    assert [t.id for t in store.list_tasks(TaskFilter(priority=TaskPriority.HIGH))] == [t1.id]
    assert [t.id for t in store.list_tasks(TaskFilter(unassigned_only=True))] == [t2.id]
    assert [t.id for t in store.list_tasks(TaskFilter(created_by=dev.id))] == [t3.id]
    assert [t.id for t in store.list_tasks_for_assignee(dev.id)] == [t3.id, t1.id]


def test_deadline_window_bounds_and_done_excluded(store: TaskStore, users: UserStore, clock: FakeClock) -> None:
    boss = users.create_user(username="boss")
    now = clock.now

    later = store.create_task(title="later", created_by=boss.id, deadline=now + 20 * HOUR)
    soon = store.create_task(title="soon", created_by=boss.id, deadline=now + HOUR)
    edge = store.create_task(title="edge", created_by=boss.id, deadline=now + 24 * HOUR)
    store.create_task(title="past", created_by=boss.id, deadline=now - 1)
    store.create_task(title="far", created_by=boss.id, deadline=now + 24 * HOUR + 1)
    store.create_task(title="no deadline", created_by=boss.id)
    finished = store.create_task(title="finished", created_by=boss.id, deadline=now + 2 * HOUR)
    store.update_task(finished.id, {"status": "done"})

    due = store.list_tasks_with_deadline_within(24, now_ts=now)
    assert [t.id for t in due] == [soon.id, later.id, edge.id]

    assert [t.id for t in store.list_tasks_with_deadline_within(1, now_ts=now)] == [soon.id]


def test_deleted_creator_joins_as_none(store: TaskStore, users: UserStore) -> None:
    boss = users.create_user(username="boss")
    task = store.create_task(title="orphan", created_by=boss.id)

    assert users.delete_user(boss.id) is True

    again = store.get_task(task.id)
    assert again is not None
    assert again.created_by == boss.id
    assert again.creator is None


def test_delete_task(store: TaskStore, users: UserStore) -> None:
    boss = users.create_user(username="boss")
    task = store.create_task(title="gone", created_by=boss.id)

    assert store.delete_task(task.id) is True
    assert store.delete_task(task.id) is False
    assert store.get_task(task.id) is None
