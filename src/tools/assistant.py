"""Personal Assistant specialist tools: task list, task lifecycle and email.

Task lifecycle::

    create ──► todo ──start──► in_progress ──complete──► completed
                 │                  │                        │
                 └──────────────────┴────────archive─────────┴──► archived

``complete`` is also allowed straight from ``todo``.  ``delete`` removes a
task in any state.  Every mutation writes an ``AgentAction`` audit row with
the previous and new state in the same transaction as the change.
"""

from __future__ import annotations

import html
import logging
from datetime import UTC, datetime
from typing import Any, Literal

from langchain_core.runnables import RunnableConfig
from langchain_core.tools import tool
from pydantic import Field

from src.db.models import AgentTask, Priority, TaskStatus
from src.db.store import TASK_FILTERS, StoreError
from src.services.mailer import MailerError, MailerNotConfiguredError, validate_email
from src.tools.runtime import (
    StrictArgs,
    blank_to_none,
    fail,
    isoformat,
    not_signed_in,
    ok,
    tool_runtime,
)

logger = logging.getLogger(__name__)

UNCHANGED = "unchanged"
DEFAULT_SENDER_NAME = "Personal Assistant"

# action -> (allowed source states, target state)
TRANSITIONS: dict[str, tuple[frozenset[str], str]] = {
    "start": (frozenset({TaskStatus.todo.value}), TaskStatus.in_progress.value),
    "complete": (
        frozenset({TaskStatus.todo.value, TaskStatus.in_progress.value}),
        TaskStatus.completed.value,
    ),
    "archive": (
        frozenset({
            TaskStatus.todo.value, TaskStatus.in_progress.value, TaskStatus.completed.value,
        }),
        TaskStatus.archived.value,
    ),
}

_CLOSED = {TaskStatus.completed.value, TaskStatus.archived.value}
_UNAVAILABLE = "I couldn't reach your task list right now. Please try again."


class FetchTasksArgs(StrictArgs):
    filter: Literal[
        "all", "todo", "in_progress", "completed", "archived", "high_priority", "overdue",
    ] = Field(
        description="'all' returns everything; the others filter by status, priority or due date",
    )


class ManageTaskArgs(StrictArgs):
    action: Literal["create", "edit", "start", "complete", "archive", "delete"] = Field(
        description="Action to perform on a task",
    )
    task_id: str = Field(
        description="Id of the task for every action except create. Use '' for create.",
    )
    title: str = Field(
        description="Task title. Required for create. Use '' to keep the title on edit.",
    )
    description: str = Field(
        description="Task description. Use '' if not applicable or to keep it on edit.",
    )
    priority: Literal["low", "medium", "high", "urgent", "unchanged"] = Field(
        description="Task priority. Use 'unchanged' to keep it on edit ('medium' on create).",
    )
    due_at: str = Field(
        description="Due date/time in ISO 8601, e.g. '2026-02-25T17:00:00Z'. Use '' for none.",
    )


class SendEmailArgs(StrictArgs):
    to: str = Field(description="Recipient email address")
    subject: str = Field(description="Email subject line")
    body: str = Field(description="Email body, plain text or basic HTML")


# ── Helpers ──────────────────────────────────────────────────────────


def _as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps (SQLite drops the offset)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def parse_due_at(value: str) -> datetime | None:
    """Parse an ISO 8601 due date into UTC; naive values are taken as UTC.

    Raises:
        ValueError: *value* is not ISO 8601.
    """
    text = blank_to_none(value)
    if text is None:
        return None
    parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def is_overdue(task: AgentTask, now: datetime) -> bool:
    due = _as_utc(task.due_at)
    return due is not None and due < now and task.status not in _CLOSED


def snapshot(task: AgentTask) -> dict[str, Any]:
    """JSON-safe view of a task, used in results and audit rows."""
    return {
        "id": task.id,
        "title": task.title,
        "description": task.description or "",
        "status": task.status,
        "priority": task.priority,
        "due_at": isoformat(_as_utc(task.due_at)),
        "completed_at": isoformat(_as_utc(task.completed_at)),
    }


# ── Tools ────────────────────────────────────────────────────────────


@tool("fetch_tasks", args_schema=FetchTasksArgs)
def fetch_tasks(filter: str, config: RunnableConfig) -> dict:
    """Fetch the current user's tasks, newest first.

    Always call this before answering questions about tasks and before
    changing a task the user refers to by name, to look up its id.
    """
    runtime = tool_runtime(config)
    user_id = runtime.context.user_id
    if user_id is None:
        return not_signed_in("see your tasks", tasks=[])
    if filter not in TASK_FILTERS:
        return fail(f"Unknown filter '{filter}'.", tasks=[])

    now = datetime.now(UTC)
    try:
        rows = runtime.store.list_tasks(user_id, filter, now=now)
    except StoreError:
        return fail(_UNAVAILABLE, tasks=[])

    tasks = [{**snapshot(t), "overdue": is_overdue(t, now)} for t in rows]
    return ok(
        f"Found {len(tasks)} task(s) for filter '{filter}'.",
        tasks=tasks,
        summary={
            "total": len(tasks),
            "todo": sum(t["status"] == TaskStatus.todo.value for t in tasks),
            "in_progress": sum(t["status"] == TaskStatus.in_progress.value for t in tasks),
            "completed": sum(t["status"] == TaskStatus.completed.value for t in tasks),
            "archived": sum(t["status"] == TaskStatus.archived.value for t in tasks),
            "overdue": sum(t["overdue"] for t in tasks),
        },
    )


def _create_task(runtime, user_id, title, description, priority, due_at) -> dict:
    title = title.strip()
    if not title:
        return fail("Title is required to create a task.")

    store = runtime.store
    with store.transaction() as session:
        task = store.create_task(
            user_id,
            title=title,
            description=blank_to_none(description),
            priority=Priority.medium.value if priority == UNCHANGED else priority,
            due_at=due_at,
            session=session,
        )
        state = snapshot(task)
        store.create_audit_log_entry(
            task_ref=task.id,
            user_id=user_id,
            action_type="created",
            previous_state=None,
            new_state=state,
            session=session,
        )
    logger.info("Task %s created for user %s", task.id, user_id)
    return ok(f'Task "{title}" created.', task=state)


def _edit_changes(task, title, description, priority, due_at) -> dict[str, Any]:
    changes: dict[str, Any] = {}
    if blank_to_none(title):
        changes["title"] = title.strip()
    if blank_to_none(description):
        changes["description"] = description.strip()
    if priority != UNCHANGED and priority != task.priority:
        changes["priority"] = priority
    if due_at is not None:
        changes["due_at"] = due_at
    return changes


def _mutate_task(runtime, user_id, action, task_id, title, description, priority, due_at) -> dict:
    store = runtime.store
    with store.transaction() as session:
        task = store.get_task(user_id, task_id, session=session)
        if task is None:
            return fail("Task not found or access denied.")
        before = snapshot(task)

        if action == "delete":
            store.delete_task(task.id, session=session)
            store.create_audit_log_entry(
                task_ref=task_id,
                user_id=user_id,
                action_type="deleted",
                previous_state=before,
                new_state=None,
                attached=False,
                session=session,
            )
            logger.info("Task %s deleted by user %s", task_id, user_id)
            return ok(f'Task "{before["title"]}" deleted permanently.')

        if action == "edit":
            if task.status == TaskStatus.archived.value:
                return fail(f'Task "{task.title}" is archived and can no longer be edited.')
            changes = _edit_changes(task, title, description, priority, due_at)
            if not changes:
                return fail("Nothing to update: provide at least one new value.")
            action_type = "edited"
            message = "Task updated."
        else:
            sources, target = TRANSITIONS[action]
            if task.status not in sources:
                return fail(
                    f'Cannot {action} task "{task.title}" while it is {task.status}.',
                    task=before,
                )
            changes = {"status": target}
            if target == TaskStatus.completed.value:
                changes["completed_at"] = datetime.now(UTC)
            action_type = "status_change"
            message = {
                "start": f'Task "{task.title}" is now in progress.',
                "complete": f'Task "{task.title}" marked as complete!',
                "archive": f'Task "{task.title}" archived.',
            }[action]

        updated = store.update_task(task.id, changes, session=session)
        after = snapshot(updated)
        store.create_audit_log_entry(
            task_ref=task.id,
            user_id=user_id,
            action_type=action_type,
            previous_state=before,
            new_state=after,
            session=session,
        )
    logger.info("Task %s %s by user %s", task_id, action_type, user_id)
    return ok(message, task=after)


@tool("manage_task", args_schema=ManageTaskArgs)
def manage_task(
    action: str,
    task_id: str,
    title: str,
    description: str,
    priority: str,
    due_at: str,
    config: RunnableConfig,
) -> dict:
    """Create, edit, start, complete, archive or delete one of the user's tasks.

    Every change is recorded in the task audit log.  For anything but
    create, look up the task id with fetch_tasks first.
    """
    runtime = tool_runtime(config)
    user_id = runtime.context.user_id
    if user_id is None:
        return not_signed_in("manage tasks")

    try:
        due = parse_due_at(due_at)
    except ValueError:
        return fail(f'"{due_at}" is not a valid ISO 8601 date, e.g. 2026-02-25T17:00:00Z.')

    try:
        if action == "create":
            return _create_task(runtime, user_id, title, description, priority, due)

        target = blank_to_none(task_id)
        if target is None:
            return fail("task_id is required for this action.")
        return _mutate_task(runtime, user_id, action, target, title, description, priority, due)
    except StoreError:
        return fail(_UNAVAILABLE)


def _sender_name(runtime, user_id: str) -> str:
    try:
        user = runtime.store.get_user(user_id)
    except StoreError:
        return DEFAULT_SENDER_NAME
    if user is None:
        return DEFAULT_SENDER_NAME
    if user.full_name:
        return user.full_name
    if user.email:
        return user.email.split("@")[0]
    return DEFAULT_SENDER_NAME


def _html_body(body: str, sender: str) -> str:
    signature = f"<br><br>Best regards,<br><strong>{html.escape(sender)}</strong>"
    if "<" in body:
        return body + signature
    return html.escape(body).replace("\n", "<br>") + signature


@tool("send_email", args_schema=SendEmailArgs)
def send_email(to: str, subject: str, body: str, config: RunnableConfig) -> dict:
    """Send an email on the user's behalf.

    Sends immediately.  Only call this after the user has explicitly
    confirmed the recipient, subject and body.
    """
    runtime = tool_runtime(config)
    user_id = runtime.context.user_id
    if user_id is None:
        return not_signed_in("send email")

    error = validate_email(to)
    if error:
        return fail(error)
    if not subject.strip() or not body.strip():
        return fail("An email needs both a subject and a body.")

    mailer = runtime.mailer
    if mailer is None or not mailer.is_configured:
        return fail("Email is not configured on this server, so the message was not sent.")

    sender = _sender_name(runtime, user_id)
    recipient = to.strip()
    try:
        message_id = mailer.send(
            to=recipient,
            subject=subject,
            text=f"{body}\n\nBest regards,\n{sender}",
            html=_html_body(body, sender),
            from_name=sender,
        )
    except MailerNotConfiguredError:
        return fail("Email is not configured on this server, so the message was not sent.")
    except MailerError as exc:
        return fail(str(exc))

    return ok(
        f"Email sent to {recipient}.",
        message_id=message_id,
        recipient=recipient,
        subject=subject,
    )


ASSISTANT_TOOLS = [fetch_tasks, manage_task, send_email]
