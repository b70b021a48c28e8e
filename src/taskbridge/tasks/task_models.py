# src/taskbridge/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ..team.user_models import User


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    No transition graph is enforced: any status may follow any other.
    """

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    REVIEW = "review"
    DONE = "done"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.TODO
        try:
            return cls(raw)
        except ValueError:
            return cls.TODO


class TaskPriority(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @classmethod
    def from_db(cls, raw: str | None) -> TaskPriority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(raw)
        except ValueError:
            return cls.MEDIUM


@dataclass(slots=True)
class Task:
    id: int
    title: str
    description: str | None
    status: TaskStatus
    priority: TaskPriority
    assignee_id: int | None
    created_by: int
    deadline: float | None
    created_at: float
    updated_at: float

    # Joined (denormalized) users; None when unassigned or the user row is gone.
    assignee: User | None = None
    creator: User | None = None


@dataclass(slots=True, frozen=True)
class TaskFilter:
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    assignee_id: int | None = None
    created_by: int | None = None
    unassigned_only: bool = False
