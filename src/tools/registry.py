"""Catalog of every agent tool and the single place tool calls are executed.

A specialist never sees the full catalog: ``ToolRegistry.scoped`` gives it a
registry limited to its own tools, and the graph's tools node executes
through that scoped registry.  A call to any other name (hallucinated, or
belonging to another specialist) is answered with a failure envelope and
nothing runs.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import Any

from langchain_core.runnables import RunnableConfig
from langchain_core.tools import BaseTool
from pydantic import ValidationError

from src.services.metrics import metrics
from src.tools.assistant import ASSISTANT_TOOLS
from src.tools.navigator import NAVIGATOR_TOOLS
from src.tools.runtime import fail
from src.tools.sales import SALES_TOOLS
from src.tools.support import SUPPORT_TOOLS

logger = logging.getLogger(__name__)

ALL_TOOLS: list[BaseTool] = [
    *SALES_TOOLS,
    *SUPPORT_TOOLS,
    *NAVIGATOR_TOOLS,
    *ASSISTANT_TOOLS,
]


def _describe_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        field = ".".join(str(p) for p in error.get("loc", ())) or "arguments"
        parts.append(f"{field}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


class ToolRegistry:
    """Named, schema-validated tools for one owner (a specialist or ``all``)."""

    def __init__(self, tools: Iterable[BaseTool], owner: str = "all"):
        self.owner = owner
        self._tools: dict[str, BaseTool] = {}
        for t in tools:
            if t.name in self._tools:
                raise ValueError(f"Duplicate tool name: {t.name}")
            self._tools[t.name] = t

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    @property
    def tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def scoped(self, names: Iterable[str], owner: str) -> ToolRegistry:
        """Return a registry holding only *names*.

        Raises:
            KeyError: a name is not in this registry.
        """
        names = list(names)
        missing = [n for n in names if n not in self._tools]
        if missing:
            raise KeyError(f"Unknown tools for {owner}: {', '.join(missing)}")
        return ToolRegistry((self._tools[n] for n in names), owner=owner)

    def execute(self, tool_call: dict[str, Any], config: RunnableConfig) -> dict[str, Any]:
        """Run one model-issued tool call and return its result envelope.

        Unknown names and invalid arguments produce a failure envelope.
        Exceptions raised by the tool itself propagate.
        """
        name = tool_call.get("name") or ""
        args = tool_call.get("args") or {}

        selected = self._tools.get(name)
        if selected is None:
            logger.warning("Rejected call to %r: not a tool of %s", name, self.owner)
            metrics.record_tool_call(self.owner, name or "<missing>", "rejected")
            return fail(f"Tool '{name}' is not available to this agent.")

        try:
            selected.args_schema.model_validate(args)
        except ValidationError as exc:
            details = _describe_errors(exc)
            logger.info("Invalid arguments for %s (%s): %s", name, self.owner, details)
            metrics.record_tool_call(self.owner, name, "invalid_args")
            return fail(f"Invalid arguments for {name}: {details}")

        t0 = time.perf_counter()
        result = selected.invoke(args, config=config)
        elapsed = (time.perf_counter() - t0) * 1000

        if not isinstance(result, dict):
            result = {"success": True, "message": str(result)}
        outcome = "success" if result.get("success") else "failure"
        metrics.record_tool_call(self.owner, name, outcome, latency_ms=elapsed)
        logger.debug("Tool %s/%s -> %s in %.0fms", self.owner, name, outcome, elapsed)
        return result


def default_registry() -> ToolRegistry:
    """The full tool catalog."""
    return ToolRegistry(ALL_TOOLS)
