# src/taskbridge/cli/commands.py

from __future__ import annotations

import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from ..core.state import AppState
from ..tasks import task_api
from ..tasks.task_models import Task, TaskFilter, TaskPriority, TaskStatus
from ..team.identity import IdentityError
from ..team.user_models import Platform, User, UserRole

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CommandContext:
    platform: Platform
    account_id: str
    display_name: str


CommandHandler = Callable[[AppState, list[str], User, CommandContext], Awaitable[str]]

# Telegram-style shortcuts: /task_12, /assign_12, /done_12, /status_12_done
_SHORTCUT_RE = re.compile(r"^(task|assign|done|status)_(\d+)(?:_(\w+))?$")

STATUS_ICON = {
    TaskStatus.TODO: "📝",
    TaskStatus.IN_PROGRESS: "🔄",
    TaskStatus.REVIEW: "👀",
    TaskStatus.DONE: "✅",
}

PRIORITY_ICON = {
    TaskPriority.LOW: "🟢",
    TaskPriority.MEDIUM: "🟡",
    TaskPriority.HIGH: "🟠",
    TaskPriority.URGENT: "🔴",
}

LIST_LIMIT = 20


class CommandRegistry:
    """Slash-command registry used by connectors (/help, /tasks, /create, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    @staticmethod
    def parse(line: str) -> tuple[str, list[str]] | None:
        """Split "/command@bot args" into (command, args). None if not a command."""
        if not line.startswith("/"):
            return None
        parts = line[1:].split()
        if not parts:
            return "", []

        name = parts[0].split("@", 1)[0].lower()
        args = parts[1:]

        m = _SHORTCUT_RE.match(name)
        if m:
            name = m.group(1)
            args = [m.group(2)] + ([m.group(3)] if m.group(3) else []) + args
        return name, args

    async def handle(
        self,
        state: AppState,
        line: str,
        *,
        platform: Platform | str,
        account_id: str,
        display_name: str,
    ) -> str | None:
        """
        Handle a string like "/command args" sent by a platform account.
        Returns a reply string or None if not a command.
        """
        parsed = self.parse(line)
        if parsed is None:
            return None

        name, args = parsed
        if not name:
            return "Empty command. Use /help to list available commands."

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        ctx = CommandContext(
            platform=Platform(platform),
            account_id=str(account_id),
            display_name=display_name,
        )

        try:
            actor = state.identity.resolve_or_create(ctx.platform, ctx.account_id, display_name)
        except (IdentityError, ValueError):
            logger.exception("Could not resolve %s account %s", ctx.platform.value, account_id)
            return "Could not identify you. Please try again later."

        try:
            return await handler(state, args, actor, ctx)
        except PermissionError:
            return "You do not have permission to do that."
        except ValueError as e:
            return f"Invalid input: {e}"
        except Exception:
            logger.exception("Command /%s crashed.", name)
            return "Internal error while handling a command."

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- rendering ----

def format_ts(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.fromtimestamp(ts).astimezone().strftime("%Y-%m-%d %H:%M")


def parse_deadline(args: list[str]) -> float | None:
    """'YYYY-MM-DD HH:MM' or 'YYYY-MM-DD' (end of day) in local time; 'none' clears."""
    raw = " ".join(args).strip()
    if raw.lower() in ("none", "clear", "-"):
        return None
    for fmt in ("%Y-%m-%d %H:%M", "%Y-%m-%d"):
        try:
            dt = datetime.strptime(raw, fmt)
        except ValueError:
            continue
        if fmt == "%Y-%m-%d":
            dt = dt.replace(hour=23, minute=59)
        return dt.timestamp()
    raise ValueError("deadline must look like YYYY-MM-DD HH:MM")


def render_task_line(task: Task, *, show_assignee: bool = True) -> str:
    line = f"{STATUS_ICON[task.status]} #{task.id} {task.title}"
    if show_assignee:
        line += f" @{task.assignee.username}" if task.assignee else " (unassigned)"
    if task.deadline is not None:
        line += f" (due: {format_ts(task.deadline)})"
    return f"{line} {PRIORITY_ICON[task.priority]}"


def render_task_details(task: Task) -> str:
    lines = [
        f"Task #{task.id}: {task.title}",
        "",
        f"Status: {STATUS_ICON[task.status]} {task.status.value}",
        f"Priority: {PRIORITY_ICON[task.priority]} {task.priority.value}",
        f"Created by: {task.creator.username if task.creator else 'Unknown'}",
    ]
    if task.assignee:
        lines.append(f"Assignee: {task.assignee.username}")
    if task.deadline is not None:
        lines.append(f"Deadline: {format_ts(task.deadline)}")
    if task.description:
        lines.extend(["", f"Description: {task.description}"])
    return "\n".join(lines)


def _task_id(args: list[str], usage: str) -> int:
    if not args:
        raise ValueError(f"usage: {usage}")
    try:
        return int(args[0].lstrip("#"))
    except ValueError:
        raise ValueError(f"task id must be a number ({usage})") from None


# ---- handlers ----

async def cmd_help(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    return registry.build_help()


async def cmd_whoami(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    linked = ", ".join(f"{p.value}={acc}" for p, acc in actor.linked_accounts().items()) or "none"
    return f"You are {actor.username} (#{actor.id}), role: {actor.role.value}\nLinked accounts: {linked}"


async def cmd_tasks(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    status = TaskStatus(args[0].lower()) if args else None
    tasks = state.task_store.list_tasks(TaskFilter(status=status))
    if not tasks:
        return "No tasks found."
    lines = [render_task_line(t) for t in tasks[:LIST_LIMIT]]
    more = f"\n... and {len(tasks) - LIST_LIMIT} more" if len(tasks) > LIST_LIMIT else ""
    return "Tasks:\n" + "\n".join(lines) + more


async def cmd_my(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    tasks = state.task_store.list_tasks_for_assignee(actor.id)
    if not tasks:
        return "You have no assigned tasks."
    return "Your tasks:\n" + "\n".join(render_task_line(t, show_assignee=False) for t in tasks)


async def cmd_create(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    """/create <title> [| description]"""
    raw = " ".join(args).strip()
    title, _, description = raw.partition("|")
    if not title.strip():
        return "Usage: /create <title> [| description]"

    task = await task_api.create_task(
        state,
        actor=actor,
        title=title.strip(),
        description=description.strip() or None,
    )
    return f'Task #{task.id} created: "{task.title}"\nUse /assign {task.id} to assign it to yourself.'


async def cmd_task(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    task = state.task_store.get_task(_task_id(args, "/task <id>"))
    if task is None:
        return "Task not found."
    return render_task_details(task)


async def cmd_assign(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    """/assign <id> [username] (defaults to yourself)"""
    task_id = _task_id(args, "/assign <id> [username]")
    if state.task_store.get_task(task_id) is None:
        return "Task not found."

    assignee = actor
    if len(args) > 1:
        found = state.identity.get_user_by_username(args[1].lstrip("@"))
        if found is None:
            return f"User {args[1]} not found in team."
        assignee = found

    updated = await task_api.assign_task(state, task_id, assignee.id)
    if updated is None:
        return "Failed to assign task."
    who = "you" if assignee.id == actor.id else assignee.username
    return f"Task #{task_id} assigned to {who}."


async def cmd_unassign(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    task_id = _task_id(args, "/unassign <id>")
    if state.task_store.get_task(task_id) is None:
        return "Task not found."
    updated = await task_api.assign_task(state, task_id, None)
    if updated is None:
        return "Failed to update task."
    return f"Task #{task_id} is now unassigned."


async def cmd_status(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    task_id = _task_id(args, "/status <id> <status>")
    valid = ", ".join(s.value for s in TaskStatus)
    if len(args) < 2 or args[1].lower() not in {s.value for s in TaskStatus}:
        return f"Invalid status. Valid options: {valid}"
    status = TaskStatus(args[1].lower())

    if state.task_store.get_task(task_id) is None:
        return "Task not found."
    updated = await task_api.change_status(state, task_id, status)
    if updated is None:
        return "Failed to update task status."
    return f"Task #{task_id} status changed to: {status.value}"


async def cmd_done(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    task_id = _task_id(args, "/done <id>")
    if state.task_store.get_task(task_id) is None:
        return "Task not found."
    updated = await task_api.change_status(state, task_id, TaskStatus.DONE)
    if updated is None:
        return "Failed to update task."
    return f"Task #{task_id} marked as done!"


async def cmd_priority(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    task_id = _task_id(args, "/priority <id> <priority>")
    valid = ", ".join(p.value for p in TaskPriority)
    if len(args) < 2 or args[1].lower() not in {p.value for p in TaskPriority}:
        return f"Invalid priority. Valid options: {valid}"

    if state.task_store.get_task(task_id) is None:
        return "Task not found."
    updated = await task_api.update_task(state, task_id, {"priority": TaskPriority(args[1].lower())})
    if updated is None:
        return "Failed to update task."
    return f"Task #{task_id} priority set to: {updated.priority.value}"


async def cmd_deadline(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    task_id = _task_id(args, "/deadline <id> <YYYY-MM-DD HH:MM|none>")
    if len(args) < 2:
        return "Usage: /deadline <id> <YYYY-MM-DD HH:MM|none>"
    deadline = parse_deadline(args[1:])

    if state.task_store.get_task(task_id) is None:
        return "Task not found."
    updated = await task_api.update_task(state, task_id, {"deadline": deadline})
    if updated is None:
        return "Failed to update task."
    if updated.deadline is None:
        return f"Task #{task_id} deadline cleared."
    return f"Task #{task_id} deadline set to {format_ts(updated.deadline)}."


async def cmd_delete(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    task_id = _task_id(args, "/delete <id>")
    deleted = await task_api.delete_task(state, actor=actor, task_id=task_id)
    if not deleted:
        return "Task not found."
    return f"Task #{task_id} deleted."


async def cmd_team(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    users = state.identity.list_users()
    if not users:
        return "No team members yet."
    badge = {UserRole.ADMIN: " 👑", UserRole.MANAGER: " 🛡️", UserRole.MEMBER: ""}
    return "Team members:\n" + "\n".join(f"{u.username} - {u.role.value}{badge[u.role]}" for u in users)


async def cmd_role(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    """/role <username> <role>: managers may change roles, only admins may grant or revoke admin."""
    if len(args) < 2:
        return "Usage: /role <username> <admin|manager|member>"
    if not state.identity.has_permission(actor.id, UserRole.MANAGER):
        return "You do not have permission to change roles."

    role = UserRole(args[1].lower())
    if role == UserRole.ADMIN and not state.identity.has_permission(actor.id, UserRole.ADMIN):
        return "Only admins can grant the admin role."

    target = state.identity.get_user_by_username(args[0].lstrip("@"))
    if target is None:
        return "User not found in team."
    if target.role == UserRole.ADMIN and not state.identity.has_permission(actor.id, UserRole.ADMIN):
        return "Only admins can change an admin's role."

    updated = state.identity.set_role(target.id, role)
    if updated is None:
        return "Failed to update role."
    return f"Updated {updated.username}'s role to {updated.role.value}."


async def cmd_notifications(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    """/notifications [read]"""
    if args and args[0].lower() in ("read", "clear"):
        n = state.notifications.mark_all_read(actor.id)
        return f"Marked {n} notification(s) as read."

    unread = state.notifications.list_unread(actor.id)
    if not unread:
        return "No unread notifications."
    lines = [f"[{format_ts(n.sent_at)}] {n.message}" for n in unread[:LIST_LIMIT]]
    return "Unread notifications:\n" + "\n".join(lines) + "\nUse /notifications read to mark them as read."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?", "start"])
registry.register("whoami", cmd_whoami, help_text="Show your team profile.")
registry.register("tasks", cmd_tasks, help_text="List tasks: /tasks [status].")
registry.register("my", cmd_my, help_text="Show tasks assigned to you.")
registry.register("create", cmd_create, help_text="Create a task: /create <title> [| description].",
                  aliases=["task_create"])
registry.register("task", cmd_task, help_text="Show task details: /task <id>.")
registry.register("assign", cmd_assign, help_text="Assign a task: /assign <id> [username].")
registry.register("unassign", cmd_unassign, help_text="Remove the assignee: /unassign <id>.")
registry.register("status", cmd_status, help_text="Change status: /status <id> <todo|in_progress|review|done>.")
registry.register("done", cmd_done, help_text="Mark a task as done: /done <id>.")
registry.register("priority", cmd_priority, help_text="Change priority: /priority <id> <low|medium|high|urgent>.")
registry.register("deadline", cmd_deadline, help_text="Set deadline: /deadline <id> <YYYY-MM-DD HH:MM|none>.")
registry.register("delete", cmd_delete, help_text="Delete a task (creator or manager): /delete <id>.")
registry.register("team", cmd_team, help_text="List team members.")
registry.register("role", cmd_role, help_text="Change a role (manager+): /role <username> <role>.")
registry.register("notifications", cmd_notifications, help_text="Unread notifications: /notifications [read].")


async def cmd_checkin(state: AppState, args: list[str], actor: User, ctx: CommandContext) -> str:
    # the Telegram connector intercepts /checkin and runs the conversational flow
    return "Check-ins are only available in the Telegram chat with the bot."


registry.register("checkin", cmd_checkin, help_text="Answer a short progress check-in (Telegram).")
