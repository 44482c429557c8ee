"""Tests for the specialist and orchestrator graphs.

Covers:
  - Orchestrator handoff decisions (and its fallback on LLM errors)
  - The tools node (scoped execution, ToolMessage shape)
  - End-to-end graphs with scripted LLMs
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage, ToolMessage

from src.agent import (
    CLARIFY_FALLBACK,
    ConversationState,
    _make_agent_node,
    _make_handoff_tool,
    _make_orchestrator_node,
    _make_tools_node,
    content_to_text,
    create_orchestrator_graph,
    create_specialist_graph,
    route_to_specialist,
    should_use_tools,
)
from src.specialists import ASSISTANT, SALES, SPECIALISTS, SUPPORT
from src.tools.registry import default_registry


def _state(*messages, route: str = "") -> ConversationState:
    return {"messages": list(messages), "route": route}


# ── TestOrchestratorNode ─────────────────────────────────────────────


class TestOrchestratorNode:
    """Verify the orchestrator hands off or asks, and never guesses."""

    def test_handoff_sets_route_without_messages(self, scripted_llm, tool_call_message):
        node = _make_orchestrator_node(scripted_llm(tool_call_message("transfer_to_support")))
        result = node(_state(HumanMessage(content="My order never arrived")))
        assert result == {"route": "support"}

    def test_clarifying_question_ends_turn(self, scripted_llm):
        question = AIMessage(content="Are you looking to buy something or get help?")
        node = _make_orchestrator_node(scripted_llm(question))
        result = node(_state(HumanMessage(content="hi")))
        assert result["route"] == ""
        assert result["messages"] == [question]

    def test_unknown_handoff_is_not_followed(self, scripted_llm, tool_call_message):
        node = _make_orchestrator_node(scripted_llm(tool_call_message("transfer_to_billing")))
        result = node(_state(HumanMessage(content="hello")))
        assert result["route"] == ""
        assert result["messages"][0].content == CLARIFY_FALLBACK
        assert not result["messages"][0].tool_calls

    def test_llm_error_asks_user_to_choose(self):
        llm = MagicMock()
        llm.invoke.side_effect = RuntimeError("LLM down")
        result = _make_orchestrator_node(llm)(_state(HumanMessage(content="hello")))
        assert result["route"] == ""
        assert result["messages"][0].content == CLARIFY_FALLBACK

    def test_prompt_is_orchestrator_prompt(self, scripted_llm):
        llm = scripted_llm(AIMessage(content="Which one?"))
        _make_orchestrator_node(llm)(_state(HumanMessage(content="hello")))
        system = llm.calls[0][0]
        assert isinstance(system, SystemMessage)
        assert "hand the user over" in system.content


class TestHandoffTools:
    @pytest.mark.parametrize("specialist", SPECIALISTS, ids=lambda s: s.key)
    def test_one_handoff_per_specialist(self, specialist):
        handoff = _make_handoff_tool(specialist)
        assert handoff.name == f"transfer_to_{specialist.key}"
        assert specialist.role_name in handoff.description


# ── TestAgentNode ────────────────────────────────────────────────────


class TestAgentNode:
    def test_prepends_specialist_prompt(self, scripted_llm):
        llm = scripted_llm(AIMessage(content="Hello!"))
        result = _make_agent_node(SALES, llm)(_state(HumanMessage(content="hi")))
        assert result["messages"][0].content == "Hello!"
        assert "TechStore" in llm.calls[0][0].content

    def test_llm_error_propagates(self):
        llm = MagicMock()
        llm.invoke.side_effect = RuntimeError("LLM down")
        with pytest.raises(RuntimeError, match="LLM down"):
            _make_agent_node(SUPPORT, llm)(_state(HumanMessage(content="hi")))


# ── TestToolsNode ────────────────────────────────────────────────────


class TestToolsNode:
    def test_results_become_tool_messages_in_order(self, anonymous):
        registry = default_registry().scoped(SALES.allowed_tools, SALES.key)
        request = AIMessage(
            content="",
            tool_calls=[
                {"name": "search_product", "args": {"name": "mouse"}, "id": "a", "type": "tool_call"},
                {"name": "send_email", "args": {}, "id": "b", "type": "tool_call"},
            ],
        )

        result = _make_tools_node(registry)(_state(request), anonymous)

        first, second = result["messages"]
        assert isinstance(first, ToolMessage)
        assert (first.tool_call_id, first.name, first.status) == ("a", "search_product", "success")
        assert json.loads(first.content)["products"]
        assert (second.tool_call_id, second.status) == ("b", "error")
        assert "not available" in json.loads(second.content)["message"]


# ── TestConditionalEdges ─────────────────────────────────────────────


class TestConditionalEdges:
    def test_tool_calls_route_to_tools(self, tool_call_message):
        assert should_use_tools(_state(tool_call_message("view_cart"))) == "tools"

    def test_plain_answer_routes_to_end(self):
        assert should_use_tools(_state(AIMessage(content="Done."))) == "__end__"

    @pytest.mark.parametrize("route", ["sales", "support", "navigator", "assistant"])
    def test_known_route_goes_to_specialist(self, route):
        assert route_to_specialist(_state(route=route)) == route

    @pytest.mark.parametrize("route", ["", "billing"])
    def test_missing_or_unknown_route_ends(self, route):
        assert route_to_specialist(_state(route=route)) == "__end__"


class TestContentToText:
    def test_string_passthrough(self):
        assert content_to_text("hi") == "hi"

    def test_text_blocks_joined(self):
        blocks = [{"type": "text", "text": "Hello "}, {"type": "tool_use", "id": "x"}, {"type": "text", "text": "there"}]
        assert content_to_text(blocks) == "Hello there"

    def test_none_is_empty(self):
        assert content_to_text(None) == ""

    def test_other_structures_serialised(self):
        assert content_to_text({"a": 1}) == '{"a": 1}'


# ── End-to-end graphs ────────────────────────────────────────────────


class TestSpecialistGraph:
    def test_foreign_tool_request_is_answered_with_failure(
        self, scripted_llm, tool_call_message, signed_in,
    ):
        """A sales model asking for send_email gets a rejection, nothing is sent."""
        llm = scripted_llm(
            tool_call_message("send_email", {"to": "x@example.com", "subject": "s", "body": "b"}),
            AIMessage(content="I can't send emails."),
        )
        mailer = MagicMock()
        signed_in["configurable"]["runtime"].mailer = mailer

        with patch("src.agent._build_llm", return_value=llm):
            graph = create_specialist_graph(SALES)
        state = graph.invoke(
            {"messages": [HumanMessage(content="email my friend")], "route": ""},
            config=signed_in,
        )

        tool_message = state["messages"][2]
        assert tool_message.status == "error"
        assert "not available" in json.loads(tool_message.content)["message"]
        mailer.send.assert_not_called()
        assert state["messages"][-1].content == "I can't send emails."

    def test_llm_is_bound_only_to_own_tools(self, scripted_llm):
        with patch("src.agent._build_llm", return_value=scripted_llm()) as mock_build:
            create_specialist_graph(ASSISTANT)
        tools = mock_build.call_args.args[1]
        assert [t.name for t in tools] == list(ASSISTANT.allowed_tools)


class TestOrchestratorGraph:
    def test_handoff_runs_specialist_on_unchanged_history(
        self, scripted_llm, tool_call_message, anonymous,
    ):
        sales_llm = scripted_llm(AIMessage(content="We have laptops!"))
        router_llm = scripted_llm(tool_call_message("transfer_to_sales"))

        with patch("src.agent._build_llm", return_value=sales_llm), \
                patch("src.agent._build_router_llm", return_value=router_llm):
            graph = create_orchestrator_graph({"sales": create_specialist_graph(SALES)})

        question = HumanMessage(content="Do you sell laptops?")
        state = graph.invoke({"messages": [question], "route": ""}, config=anonymous)

        assert state["route"] == "sales"
        assert state["messages"][-1].content == "We have laptops!"
        received = sales_llm.calls[0]
        assert len(received) == 2
        assert received[1].content == question.content

    def test_no_handoff_returns_question(self, scripted_llm, anonymous):
        router_llm = scripted_llm(AIMessage(content="What do you need help with?"))
        with patch("src.agent._build_llm", return_value=scripted_llm()), \
                patch("src.agent._build_router_llm", return_value=router_llm):
            graph = create_orchestrator_graph({"sales": create_specialist_graph(SALES)})

        state = graph.invoke({"messages": [HumanMessage(content="hi")], "route": ""}, config=anonymous)
        assert state["messages"][-1].content == "What do you need help with?"
