"""One chat turn, end to end.

    request history ─► context + session ─► specialist graph (model/tool loop)
                                                  │
                      transcript persisted ◄── final text

The runner is synchronous: the HTTP layer runs it in a worker thread and
bounds it with the turn timeout.  Transcript writes are best-effort; a
database hiccup after the model answered must not cost the user the answer.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from langchain_core.messages import AIMessage, AnyMessage, HumanMessage
from langgraph.errors import GraphRecursionError

from src.agent import content_to_text, create_agent_graphs
from src.config import (
    DATABASE_URL,
    DB_ECHO,
    DB_POOL_TIMEOUT_SECONDS,
    MAX_AGENT_STEPS,
    SEED_DEMO_DATA,
)
from src.context import AgentContext, ContextResolver
from src.db.models import MessageRole
from src.db.seed import seed_demo_data
from src.db.store import Store, StoreError
from src.services.identity import get_identity_client
from src.services.mailer import Mailer
from src.specialists import ORCHESTRATOR, SpecialistAgent, get_specialist
from src.tools.runtime import ToolRuntime

logger = logging.getLogger(__name__)

GENERIC_ERROR = "Sorry, something went wrong while processing your message. Please try again."
STEP_LIMIT_ERROR = (
    "Sorry, I couldn't finish that request within my step limit. "
    "Could you break it into smaller steps?"
)
EMPTY_RESPONSE = "Sorry, I couldn't come up with a response. Could you rephrase that?"


class ConversationError(Exception):
    """A turn failed; ``str(exc)`` is safe to show to the user."""


@dataclass(frozen=True)
class TurnResult:
    response: str
    session_id: str | None


def to_langchain_messages(messages: Iterable[Mapping[str, Any]]) -> list[AnyMessage]:
    """Convert ``{"role", "content"}`` items to LangChain messages, in order."""
    converted: list[AnyMessage] = []
    for item in messages:
        if item["role"] == MessageRole.user.value:
            converted.append(HumanMessage(content=item["content"]))
        elif item["role"] == MessageRole.assistant.value:
            converted.append(AIMessage(content=item["content"]))
        else:
            raise ValueError(f"Unsupported message role: {item['role']!r}")
    return converted


class ConversationRunner:
    def __init__(
        self,
        graphs: Mapping[str, Any],
        resolver: ContextResolver,
        store: Store,
        mailer: Mailer | None = None,
        max_steps: int = MAX_AGENT_STEPS,
    ):
        self._graphs = graphs
        self._resolver = resolver
        self._store = store
        self._mailer = mailer
        self._max_steps = max_steps

    def select(self, agent_type: str | None) -> SpecialistAgent:
        """Direct route-key lookup; unknown or missing keys go to the orchestrator."""
        specialist = get_specialist(agent_type)
        if specialist is None:
            if agent_type:
                logger.info("Unknown agentType %r, routing by intent", agent_type)
            return ORCHESTRATOR
        return specialist

    def run_turn(
        self,
        messages: list[Mapping[str, Any]],
        agent_type: str | None = None,
        session_id: str | None = None,
        token: str | None = None,
    ) -> TurnResult:
        """Answer the last user message of *messages*.

        Raises:
            ConversationError: the model or graph failed, or the tool loop
                hit the step limit.
        """
        specialist = self.select(agent_type)
        graph = self._graphs[specialist.key]

        context = self._resolver.resolve(token)
        history = to_langchain_messages(messages)
        user_text = content_to_text(history[-1].content)

        config = {
            "configurable": {
                "runtime": ToolRuntime(context=context, store=self._store, mailer=self._mailer),
            },
            "recursion_limit": self._max_steps,
        }
        try:
            state = graph.invoke({"messages": history, "route": ""}, config=config)
        except GraphRecursionError as exc:
            logger.warning("%s hit the step limit (%d)", specialist.key, self._max_steps)
            raise ConversationError(STEP_LIMIT_ERROR) from exc
        except Exception as exc:
            logger.exception("%s turn failed", specialist.key)
            raise ConversationError(GENERIC_ERROR) from exc

        response = content_to_text(state["messages"][-1].content).strip() or EMPTY_RESPONSE

        # Sessions and transcript are only written for turns that produced an answer.
        context = self._resolver.attach_session(context, session_id, specialist)
        self._persist(context, MessageRole.user.value, user_text)
        self._persist(context, MessageRole.assistant.value, response)
        if context.session_id:
            try:
                self._store.update_session_metadata(
                    context.session_id, last_user_message=user_text, last_ai_message=response,
                )
            except StoreError:
                logger.warning("Could not refresh metadata of session %s", context.session_id)

        return TurnResult(response=response, session_id=context.session_id)

    def _persist(self, context: AgentContext, role: str, content: str) -> None:
        if not context.session_id:
            return
        try:
            self._store.append_message(context.session_id, context.user_id, role, content)
        except StoreError:
            logger.warning("Could not persist %s message for session %s", role, context.session_id)

    def close(self) -> None:
        self._resolver.close()
        self._store.dispose()


def build_runner(store: Store | None = None) -> ConversationRunner:
    """Wire the store, identity client, mailer and compiled graphs together."""
    if store is None:
        store = Store.from_url(DATABASE_URL, echo=DB_ECHO, pool_timeout=DB_POOL_TIMEOUT_SECONDS)
    store.create_all()
    if SEED_DEMO_DATA:
        seed_demo_data(store)

    mailer = Mailer()
    if not mailer.is_configured:
        logger.warning("SMTP credentials not set — send_email will report it is not configured")

    return ConversationRunner(
        create_agent_graphs(),
        ContextResolver(get_identity_client(), store),
        store,
        mailer,
    )
