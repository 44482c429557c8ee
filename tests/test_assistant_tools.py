"""Tests for the Personal Assistant tools (tasks + email)."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from src.services.mailer import MailerError
from src.tools.assistant import (
    fetch_tasks,
    manage_task,
    parse_due_at,
    send_email,
)

# ── Helpers ──────────────────────────────────────────────────────────


def _manage(config, action: str, **fields) -> dict:
    args = {
        "action": action,
        "task_id": "",
        "title": "",
        "description": "",
        "priority": "unchanged",
        "due_at": "",
    }
    args.update(fields)
    return manage_task.invoke(args, config=config)


def _create(config, title: str = "Review budget", **fields) -> dict:
    return _manage(config, "create", title=title, **fields)["task"]


def _mock_mailer(configured: bool = True) -> MagicMock:
    mailer = MagicMock()
    mailer.is_configured = configured
    mailer.send.return_value = "<msg-1@example.com>"
    return mailer


# ── parse_due_at ─────────────────────────────────────────────────────


class TestParseDueAt:
    def test_blank_is_none(self):
        assert parse_due_at("") is None

    def test_z_suffix_is_utc(self):
        assert parse_due_at("2026-02-25T17:00:00Z") == datetime(2026, 2, 25, 17, tzinfo=UTC)

    def test_offset_converted_to_utc(self):
        assert parse_due_at("2026-02-25T18:00:00+01:00") == datetime(2026, 2, 25, 17, tzinfo=UTC)

    def test_garbage_raises(self):
        with pytest.raises(ValueError):
            parse_due_at("next tuesday")


# ── Task lifecycle ───────────────────────────────────────────────────


class TestCreateTask:
    def test_create_defaults_to_medium_todo(self, signed_in):
        task = _create(signed_in)
        assert task["status"] == "todo"
        assert task["priority"] == "medium"

    def test_create_requires_title(self, signed_in):
        result = _manage(signed_in, "create", title="  ")
        assert result["success"] is False

    def test_create_rejects_bad_due_date(self, signed_in):
        result = _manage(signed_in, "create", title="x", due_at="soon")
        assert result["success"] is False
        assert "ISO 8601" in result["message"]

    def test_create_writes_audit_row(self, store, signed_in):
        task = _create(signed_in)
        log = store.list_audit_log(task["id"])
        assert [entry.action_type for entry in log] == ["created"]
        assert log[0].previous_state is None
        assert log[0].new_state["title"] == "Review budget"


class TestTransitions:
    def test_start_then_complete(self, store, signed_in):
        task = _create(signed_in)
        started = _manage(signed_in, "start", task_id=task["id"])
        assert started["task"]["status"] == "in_progress"

        completed = _manage(signed_in, "complete", task_id=task["id"])
        assert completed["task"]["status"] == "completed"
        assert completed["task"]["completed_at"] is not None

        actions = [e.action_type for e in store.list_audit_log(task["id"])]
        assert actions == ["created", "status_change", "status_change"]

    def test_complete_directly_from_todo(self, signed_in):
        task = _create(signed_in)
        result = _manage(signed_in, "complete", task_id=task["id"])
        assert result["success"] is True

    def test_cannot_start_completed_task(self, signed_in):
        task = _create(signed_in)
        _manage(signed_in, "complete", task_id=task["id"])
        result = _manage(signed_in, "start", task_id=task["id"])
        assert result["success"] is False
        assert result["task"]["status"] == "completed"

    def test_archived_task_cannot_be_archived_again(self, signed_in):
        task = _create(signed_in)
        _manage(signed_in, "archive", task_id=task["id"])
        assert _manage(signed_in, "archive", task_id=task["id"])["success"] is False

    def test_other_users_task_is_invisible(self, store, signed_in, make_config):
        task = _create(signed_in)
        intruder = store.upsert_user("ext-mallory")
        result = _manage(make_config(user_id=intruder.id), "complete", task_id=task["id"])
        assert result["success"] is False
        assert "not found" in result["message"].lower()

    def test_missing_task_id(self, signed_in):
        result = _manage(signed_in, "start")
        assert result["success"] is False
        assert "task_id" in result["message"]


class TestEditTask:
    def test_edit_changes_only_given_fields(self, signed_in):
        task = _create(signed_in, description="Q3 numbers", priority="low")
        result = _manage(signed_in, "edit", task_id=task["id"], priority="urgent")
        assert result["task"]["priority"] == "urgent"
        assert result["task"]["title"] == "Review budget"
        assert result["task"]["description"] == "Q3 numbers"

    def test_edit_due_date(self, signed_in):
        task = _create(signed_in)
        result = _manage(signed_in, "edit", task_id=task["id"], due_at="2030-01-01T09:00:00Z")
        assert result["task"]["due_at"] == "2030-01-01T09:00:00+00:00"

    def test_edit_without_changes_fails(self, signed_in):
        task = _create(signed_in)
        assert _manage(signed_in, "edit", task_id=task["id"])["success"] is False

    def test_archived_task_cannot_be_edited(self, signed_in):
        task = _create(signed_in)
        _manage(signed_in, "archive", task_id=task["id"])
        result = _manage(signed_in, "edit", task_id=task["id"], title="New title")
        assert result["success"] is False
        assert "archived" in result["message"]


class TestDeleteTask:
    def test_delete_keeps_audit_history(self, store, user, signed_in):
        task = _create(signed_in)
        _manage(signed_in, "start", task_id=task["id"])

        result = _manage(signed_in, "delete", task_id=task["id"])

        assert result["success"] is True
        assert store.get_task(user.id, task["id"]) is None
        log = store.list_audit_log(task["id"])
        assert [e.action_type for e in log] == ["created", "status_change", "deleted"]
        assert all(e.task_id is None for e in log)
        assert log[-1].previous_state["title"] == "Review budget"


class TestFetchTasks:
    def test_summary_counts(self, signed_in):
        first = _create(signed_in, title="A")
        _create(signed_in, title="B")
        _manage(signed_in, "start", task_id=first["id"])

        result = fetch_tasks.invoke({"filter": "all"}, config=signed_in)

        assert result["summary"]["total"] == 2
        assert result["summary"]["todo"] == 1
        assert result["summary"]["in_progress"] == 1

    def test_newest_first(self, signed_in):
        _create(signed_in, title="Older")
        _create(signed_in, title="Newer")
        titles = [t["title"] for t in fetch_tasks.invoke({"filter": "all"}, config=signed_in)["tasks"]]
        assert titles == ["Newer", "Older"]

    def test_overdue_filter(self, signed_in):
        past = (datetime.now(UTC) - timedelta(days=1)).isoformat()
        future = (datetime.now(UTC) + timedelta(days=1)).isoformat()
        _create(signed_in, title="Late", due_at=past)
        _create(signed_in, title="On time", due_at=future)
        done = _create(signed_in, title="Late but done", due_at=past)
        _manage(signed_in, "complete", task_id=done["id"])

        result = fetch_tasks.invoke({"filter": "overdue"}, config=signed_in)

        assert [t["title"] for t in result["tasks"]] == ["Late"]
        assert result["tasks"][0]["overdue"] is True

    def test_high_priority_filter(self, signed_in):
        _create(signed_in, title="Urgent one", priority="urgent")
        _create(signed_in, title="Low one", priority="low")
        result = fetch_tasks.invoke({"filter": "high_priority"}, config=signed_in)
        assert [t["title"] for t in result["tasks"]] == ["Urgent one"]


# ── send_email ───────────────────────────────────────────────────────


class TestSendEmail:
    def _send(self, config, **overrides) -> dict:
        args = {"to": "bob@example.com", "subject": "Hello", "body": "See you <soon>"}
        args.update(overrides)
        return send_email.invoke(args, config=config)

    def test_sends_with_signature(self, make_config, user):
        mailer = _mock_mailer()
        result = self._send(make_config(user_id=user.id, mailer=mailer), body="Line one\nLine two")

        assert result["success"] is True
        assert result["message_id"] == "<msg-1@example.com>"
        kwargs = mailer.send.call_args.kwargs
        assert kwargs["to"] == "bob@example.com"
        assert kwargs["from_name"] == "Alice Smith"
        assert kwargs["text"].endswith("Best regards,\nAlice Smith")
        assert "Line one<br>Line two" in kwargs["html"]

    def test_sender_falls_back_to_email_local_part(self, store, make_config):
        nameless = store.upsert_user("ext-nameless", email="carol@example.com")
        mailer = _mock_mailer()
        self._send(make_config(user_id=nameless.id, mailer=mailer), body="Hi")
        assert mailer.send.call_args.kwargs["from_name"] == "carol"

    def test_invalid_recipient(self, make_config, user):
        mailer = _mock_mailer()
        result = self._send(make_config(user_id=user.id, mailer=mailer), to="bob@")
        assert result["success"] is False
        mailer.send.assert_not_called()

    def test_not_configured(self, make_config, user):
        mailer = _mock_mailer(configured=False)
        result = self._send(make_config(user_id=user.id, mailer=mailer))
        assert result["success"] is False
        assert "not configured" in result["message"]
        mailer.send.assert_not_called()

    def test_missing_mailer(self, signed_in):
        assert self._send(signed_in)["success"] is False

    def test_delivery_failure(self, make_config, user):
        mailer = _mock_mailer()
        mailer.send.side_effect = MailerError("Failed to send email: relay refused")
        result = self._send(make_config(user_id=user.id, mailer=mailer))
        assert result["success"] is False
        assert "relay refused" in result["message"]
