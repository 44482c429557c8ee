"""Shared plumbing for agent tools.

Tools are plain LangChain ``@tool`` functions.  Everything a tool needs
besides its arguments travels in the ``RunnableConfig`` of the graph run::

    graph.invoke(
        {"messages": [...]},
        config={"configurable": {"runtime": ToolRuntime(context, store, mailer)}},
    )

A tool declares a ``config: RunnableConfig`` parameter (LangChain injects
it and keeps it out of the model-facing schema) and calls
``tool_runtime(config)``.

Every tool returns a result envelope ``{"success": bool, "message": str,
...payload}``, on failure too, so the model can always explain what
happened.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from langchain_core.runnables import RunnableConfig
from pydantic import BaseModel, ConfigDict

from src.context import AgentContext
from src.db.store import Store
from src.services.mailer import Mailer

CENTS = Decimal("0.01")


@dataclass
class ToolRuntime:
    """Turn-scoped dependencies handed to every tool call."""

    context: AgentContext
    store: Store
    mailer: Mailer | None = None


class StrictArgs(BaseModel):
    """Base for tool argument schemas: every field required, nothing extra.

    Optional inputs are expressed as empty-string sentinels so the schema
    stays strict for the model's function-calling validation.
    """

    model_config = ConfigDict(extra="forbid")


def tool_runtime(config: RunnableConfig | None) -> ToolRuntime:
    runtime = ((config or {}).get("configurable") or {}).get("runtime")
    if not isinstance(runtime, ToolRuntime):
        raise RuntimeError("Tool invoked without a ToolRuntime in config['configurable']")
    return runtime


# ── Result envelope ──────────────────────────────────────────────────


def ok(message: str, **payload: Any) -> dict[str, Any]:
    return {"success": True, "message": message, **payload}


def fail(message: str, **payload: Any) -> dict[str, Any]:
    return {"success": False, "message": message, **payload}


def not_signed_in(action: str, **payload: Any) -> dict[str, Any]:
    return fail(f"You need to be signed in to {action}. Please log in and try again.", **payload)


# ── Value helpers ────────────────────────────────────────────────────


def blank_to_none(value: str) -> str | None:
    """Empty-string sentinel -> ``None``; other strings are stripped."""
    value = value.strip()
    return value or None


def money(amount: Decimal | int | float) -> float:
    return float(Decimal(amount).quantize(CENTS))


def format_money(amount: Decimal | int | float) -> str:
    return f"${Decimal(amount).quantize(CENTS)}"


def isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
