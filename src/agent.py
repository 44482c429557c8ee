"""LangGraph graphs for the specialist agents and the intent orchestrator.

Architecture:
  Every specialist is its own compiled StateGraph with two nodes:

    1. **agent**  — the specialist's LLM, bound ONLY to its own tools
    2. **tools**  — executes the requested tool calls, in order, through a
                    ``ToolRegistry`` scoped to the same tool set

  Routing inside a specialist:
    agent → (has tool calls?) → tools → agent (loop)
          → (no tool calls?)  → END

  When the UI sends no (or an unknown) ``agentType``, the **orchestrator**
  graph runs instead.  Its single LLM node is bound only to one
  ``transfer_to_<specialist>`` handoff tool per specialist:

    orchestrator → (handoff?)    → <specialist subgraph> → END
                 → (no handoff?) → END   (the reply is a clarifying question)

  The handoff call itself is not added to the conversation, so the
  specialist sees the same history it would have seen in direct mode.

  Memory:
    Graphs are stateless.  The client sends the whole conversation on every
    turn and the runner persists the transcript, so no checkpointer is used.

  Tools get the turn's ``ToolRuntime`` through
  ``config["configurable"]["runtime"]``; the tool loop is bounded by the
  ``recursion_limit`` the runner passes in the same config.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Annotated, Any

from langchain_anthropic import ChatAnthropic
from langchain_core.messages import AIMessage, AnyMessage, SystemMessage, ToolMessage
from langchain_core.runnables import RunnableConfig
from langchain_core.tools import BaseTool, StructuredTool
from langgraph.graph import END, StateGraph
from langgraph.graph.message import add_messages
from pydantic import BaseModel, ConfigDict
from typing_extensions import TypedDict

from src.config import (
    ANTHROPIC_API_KEY,
    LLM_MAX_RETRIES,
    LLM_TIMEOUT_SECONDS,
    ROUTER_MODEL_NAME,
)
from src.prompts import get_system_prompt
from src.services.metrics import metrics
from src.specialists import AGENT_MAP, ORCHESTRATOR_KEY, SPECIALISTS, SpecialistAgent
from src.tools.registry import ToolRegistry, default_registry

logger = logging.getLogger(__name__)

HANDOFF_PREFIX = "transfer_to_"
CLARIFY_FALLBACK = (
    "I can help with shopping, support questions, finding pages on the site, "
    "or your tasks and emails. Which of these do you need?"
)


# ── State schema ─────────────────────────────────────────────────────


class ConversationState(TypedDict):
    """The state that flows through every graph.

    ``messages`` uses the LangGraph ``add_messages`` reducer so that each
    node can append messages without overwriting the full history.

    ``route`` is set by the orchestrator node to the chosen specialist key
    (or ``""``).  It is internal plumbing and never shown to the user.
    """

    messages: Annotated[list[AnyMessage], add_messages]
    route: str


# ── LLM builders ────────────────────────────────────────────────────


def _build_llm(model: str, tools: list[BaseTool]):
    """Build a specialist LLM bound to exactly *tools*."""
    llm = ChatAnthropic(
        model=model,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.1,  # Low temperature for consistent, factual responses
        max_tokens=2048,
        timeout=LLM_TIMEOUT_SECONDS,
        max_retries=LLM_MAX_RETRIES,
    )
    return llm.bind_tools(tools)


def _build_router_llm(handoff_tools: list[BaseTool]):
    """Build the lightweight orchestrator LLM, bound only to handoff tools."""
    llm = ChatAnthropic(
        model=ROUTER_MODEL_NAME,
        api_key=ANTHROPIC_API_KEY,
        temperature=0.0,  # Deterministic routing
        max_tokens=512,
        timeout=LLM_TIMEOUT_SECONDS,
        max_retries=LLM_MAX_RETRIES,
    )
    return llm.bind_tools(handoff_tools)


# ── Helpers ──────────────────────────────────────────────────────────


def content_to_text(content: Any) -> str:
    """Flatten model output to a string.

    Strings pass through, text blocks of a content list are joined, and any
    other structure is JSON-serialised.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                parts.append(block.get("text", ""))
        if parts:
            return "".join(parts)
    if content is None:
        return ""
    return json.dumps(content, default=str)


class _HandoffArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


def _make_handoff_tool(specialist: SpecialistAgent) -> StructuredTool:
    def transfer() -> str:
        return f"Transferred to {specialist.role_name}."

    return StructuredTool.from_function(
        func=transfer,
        name=f"{HANDOFF_PREFIX}{specialist.key}",
        description=(
            f"Hand the conversation to the {specialist.role_name}: {specialist.description}."
        ),
        args_schema=_HandoffArgs,
    )


def _invoke_llm(llm, messages: list[AnyMessage], operation: str) -> AIMessage:
    t0 = time.perf_counter()
    try:
        response = llm.invoke(messages)
    except Exception as exc:
        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_failure(
            "anthropic", operation, error_type=type(exc).__name__, latency_ms=elapsed,
        )
        raise
    elapsed = (time.perf_counter() - t0) * 1000
    metrics.record_success("anthropic", operation, latency_ms=elapsed)
    logger.debug("%s responded in %.0fms", operation, elapsed)
    return response


# ── Node: agent (specialist LLM with its tools) ─────────────────────


def _make_agent_node(specialist: SpecialistAgent, llm):
    """Create the LLM node of a specialist.

    The bound LLM is captured in the closure so that repeated node
    invocations (agent -> tools -> agent -> ...) share one client.
    """

    def agent_node(state: ConversationState) -> dict:
        logger.debug("%s agent node invoked — model: %s", specialist.key, specialist.model)
        system = SystemMessage(content=get_system_prompt(specialist.key))
        response = _invoke_llm(llm, [system] + state["messages"], f"{specialist.key}_invoke")
        return {"messages": [response]}

    return agent_node


# ── Node: tools (scoped registry) ────────────────────────────────────


def _make_tools_node(registry: ToolRegistry):
    """Create the node that executes tool calls through *registry*.

    Calls run sequentially in the order the model issued them; each result
    envelope goes back to the model as a JSON ``ToolMessage``.
    """

    def tools_node(state: ConversationState, config: RunnableConfig) -> dict:
        last_message = state["messages"][-1]
        results = []
        for call in getattr(last_message, "tool_calls", None) or []:
            result = registry.execute(call, config)
            results.append(
                ToolMessage(
                    content=json.dumps(result, default=str),
                    tool_call_id=call["id"],
                    name=call["name"],
                    status="success" if result.get("success") else "error",
                )
            )
        return {"messages": results}

    return tools_node


# ── Node: orchestrator (handoff only) ────────────────────────────────


def _make_orchestrator_node(llm):
    """Create the node that picks a specialist or asks one clarifying question.

    A handoff writes ``state["route"]`` and adds nothing to ``messages``.
    """

    def orchestrator_node(state: ConversationState) -> dict:
        system = SystemMessage(content=get_system_prompt(ORCHESTRATOR_KEY))
        try:
            response = _invoke_llm(llm, [system] + state["messages"], "orchestrator_route")
        except Exception as exc:
            # Fallback: ask the user to pick, never guess a specialist
            logger.warning("Orchestrator failed, asking the user to choose: %s", exc)
            return {"route": "", "messages": [AIMessage(content=CLARIFY_FALLBACK)]}

        tool_calls = getattr(response, "tool_calls", None) or []
        for call in tool_calls:
            target = call.get("name", "").removeprefix(HANDOFF_PREFIX)
            if target in AGENT_MAP:
                logger.info("Orchestrator handed off to %s", target)
                return {"route": target}
            logger.warning("Orchestrator requested unknown handoff %r", call.get("name"))

        if tool_calls:
            text = content_to_text(response.content).strip()
            response = AIMessage(content=text or CLARIFY_FALLBACK)
        return {"route": "", "messages": [response]}

    return orchestrator_node


# ── Conditional edges ────────────────────────────────────────────────


def should_use_tools(state: ConversationState) -> str:
    """Check if the last message has tool calls; if so, route to tools node."""
    last_message = state["messages"][-1]
    if hasattr(last_message, "tool_calls") and last_message.tool_calls:
        return "tools"
    return END


def route_to_specialist(state: ConversationState) -> str:
    """Follow the orchestrator's handoff, or end the turn on a clarifying question."""
    route = state.get("route") or ""
    return route if route in AGENT_MAP else END


# ── Graph assembly ───────────────────────────────────────────────────


def create_specialist_graph(specialist: SpecialistAgent, registry: ToolRegistry | None = None):
    """Build and compile the agent/tools loop for one specialist.

    Returns a compiled graph that can be invoked with:
        graph.invoke(
            {"messages": [HumanMessage(content="...")]},
            config={
                "configurable": {"runtime": ToolRuntime(...)},
                "recursion_limit": MAX_AGENT_STEPS,
            },
        )
    """
    scoped = (registry or default_registry()).scoped(specialist.allowed_tools, specialist.key)
    llm = _build_llm(specialist.model, scoped.tools)

    graph = StateGraph(ConversationState)
    graph.add_node("agent", _make_agent_node(specialist, llm))
    graph.add_node("tools", _make_tools_node(scoped))
    graph.set_entry_point("agent")
    graph.add_conditional_edges("agent", should_use_tools, {"tools": "tools", END: END})
    graph.add_edge("tools", "agent")

    compiled = graph.compile()
    logger.debug(
        "%s graph compiled — model: %s, tools: %s",
        specialist.role_name, specialist.model, ", ".join(scoped.names),
    )
    return compiled


def create_orchestrator_graph(specialist_graphs: dict[str, Any]):
    """Build the intent-routing graph around already compiled specialist graphs."""
    handoff_tools = [_make_handoff_tool(s) for s in SPECIALISTS]
    llm = _build_router_llm(handoff_tools)

    graph = StateGraph(ConversationState)
    graph.add_node("orchestrator", _make_orchestrator_node(llm))
    for key, compiled in specialist_graphs.items():
        graph.add_node(key, compiled)
        graph.add_edge(key, END)
    graph.set_entry_point("orchestrator")
    graph.add_conditional_edges(
        "orchestrator",
        route_to_specialist,
        {**{key: key for key in specialist_graphs}, END: END},
    )

    compiled = graph.compile()
    logger.debug("Orchestrator graph compiled — router: %s", ROUTER_MODEL_NAME)
    return compiled


def create_agent_graphs(registry: ToolRegistry | None = None) -> dict[str, Any]:
    """Compile every specialist graph plus the orchestrator.

    Keys are the specialist route keys and ``"orchestrator"``.
    """
    registry = registry or default_registry()
    graphs = {s.key: create_specialist_graph(s, registry) for s in SPECIALISTS}
    graphs[ORCHESTRATOR_KEY] = create_orchestrator_graph(dict(graphs))
    logger.info("Compiled %d specialist graphs and the orchestrator", len(SPECIALISTS))
    return graphs
