"""Shared test fixtures for the Agentic Services test suite."""

from __future__ import annotations

import os

import pytest


def pytest_configure(config):
    """Set test environment variables BEFORE collection starts.

    This runs before any imports, so config.py won't fail on module load.
    """
    os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key-123")
    os.environ["DATABASE_URL"] = "sqlite://"
    os.environ["SEED_DEMO_DATA"] = "false"
    os.environ["METRICS_ENABLED"] = "false"
    for name in ("SUPABASE_URL", "SUPABASE_ANON_KEY", "SMTP_USER", "SMTP_PASSWORD"):
        os.environ.pop(name, None)


@pytest.fixture
def store():
    """A fresh in-memory store with the demo catalog loaded."""
    from src.db.seed import seed_demo_data
    from src.db.store import Store

    s = Store.from_url("sqlite://")
    s.create_all()
    seed_demo_data(s)
    yield s
    s.dispose()


@pytest.fixture
def user(store):
    return store.upsert_user("ext-alice", email="alice@example.com", full_name="Alice Smith")


@pytest.fixture
def make_config(store):
    """Factory for the ``RunnableConfig`` a tool expects.

    ``make_config(user_id=...)`` for a signed-in caller, ``make_config()``
    for an anonymous one.
    """
    from src.context import AgentContext
    from src.tools.runtime import ToolRuntime

    def _make(user_id: str | None = None, mailer=None, target_store=None):
        runtime = ToolRuntime(
            context=AgentContext(user_id=user_id),
            store=target_store or store,
            mailer=mailer,
        )
        return {"configurable": {"runtime": runtime}}

    return _make


@pytest.fixture
def signed_in(make_config, user):
    return make_config(user_id=user.id)


@pytest.fixture
def anonymous(make_config):
    return make_config()


@pytest.fixture
def product_named(store):
    """Look up a seeded product by its exact name."""

    def _find(name: str):
        return next(p for p in store.list_products() if p.name == name)

    return _find


class ScriptedLLM:
    """Stands in for a tool-bound chat model.

    Each ``invoke`` returns the next scripted step; a callable step is given
    the messages the model received.  Every received message list is kept in
    ``calls``.
    """

    def __init__(self, *steps):
        self._steps = list(steps)
        self.calls: list[list] = []

    def invoke(self, messages):
        self.calls.append(list(messages))
        step = self._steps.pop(0)
        return step(messages) if callable(step) else step


@pytest.fixture
def scripted_llm():
    return ScriptedLLM


@pytest.fixture
def tool_call_message():
    """Build an ``AIMessage`` requesting one tool call."""
    from langchain_core.messages import AIMessage

    def _make(name: str, args: dict | None = None, call_id: str = "call-1"):
        return AIMessage(
            content="",
            tool_calls=[{"name": name, "args": args or {}, "id": call_id, "type": "tool_call"}],
        )

    return _make
