# src/taskbridge/mirrors/airtable.py

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

import httpx

from ..tasks.task_models import Task
from ..team.user_models import User

logger = logging.getLogger(__name__)

TABLE_USERS = "Users"
TABLE_TASKS = "Tasks"
TABLE_CHECKINS = "Check-ins"


def _iso(ts: float | None) -> str:
    if ts is None:
        return ""
    return datetime.fromtimestamp(float(ts), tz=UTC).isoformat()


def user_fields(user: User) -> dict[str, Any]:
    return {
        "user_id": user.id,
        "username": user.username,
        "discord_id": user.discord_id or "",
        "telegram_id": user.telegram_id or "",
        "role": user.role.value,
        "created_at": _iso(user.created_at),
    }


def task_fields(task: Task) -> dict[str, Any]:
    return {
        "task_id": task.id,
        "title": task.title,
        "description": task.description or "",
        "status": task.status.value,
        "priority": task.priority.value,
        "assignee_id": task.assignee_id or 0,
        "assignee_username": task.assignee.username if task.assignee else "",
        "created_by": task.created_by,
        "creator_username": task.creator.username if task.creator else "",
        "deadline": _iso(task.deadline),
        "created_at": _iso(task.created_at),
        "updated_at": _iso(task.updated_at),
    }


class AirtableMirror:
    """
    Airtable REST mirror (upsert keyed by our numeric ids).

    Synchronous on purpose: it only ever runs on the replicator thread.
    Errors raise (httpx.HTTPError) and are logged by the replicator.
    """

    def __init__(
        self,
        *,
        api_key: str,
        base_id: str,
        api_base: str = "https://api.airtable.com/v0",
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key or not base_id:
            raise ValueError("Airtable api_key and base_id are required")
        self._client = httpx.Client(
            base_url=f"{api_base.rstrip('/')}/{base_id}",
            headers={"Authorization": f"Bearer {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _find_record_id(self, table: str, key_field: str, key: int) -> str | None:
        resp = self._client.get(
            f"/{table}",
            params={"filterByFormula": f"{{{key_field}}} = {int(key)}", "maxRecords": 1},
        )
        resp.raise_for_status()
        records = resp.json().get("records") or []
        if not records:
            return None
        return str(records[0]["id"])

    def _upsert(self, table: str, key_field: str, fields: dict[str, Any]) -> None:
        record_id = self._find_record_id(table, key_field, fields[key_field])
        if record_id is None:
            resp = self._client.post(f"/{table}", json={"records": [{"fields": fields}]})
            action = "created"
        else:
            resp = self._client.patch(f"/{table}/{record_id}", json={"fields": fields})
            action = "updated"
        resp.raise_for_status()
        logger.info("Airtable %s %s=%s %s", table, key_field, fields[key_field], action)

    # ---- RecordMirror ----

    def sync_task(self, task: Task) -> None:
        self._upsert(TABLE_TASKS, "task_id", task_fields(task))

    def sync_user(self, user: User) -> None:
        self._upsert(TABLE_USERS, "user_id", user_fields(user))

    def save_checkin(self, *, user: User, question: str, answer: str, timestamp: float) -> None:
        resp = self._client.post(
            f"/{TABLE_CHECKINS}",
            json={
                "records": [
                    {
                        "fields": {
                            "user_id": user.id,
                            "username": user.username,
                            "question": question,
                            "answer": answer,
                            "timestamp": _iso(timestamp),
                        }
                    }
                ]
            },
        )
        resp.raise_for_status()
        logger.info("Airtable check-in saved for %s", user.username)
