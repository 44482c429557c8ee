"""Customer Support specialist tools: help-center search and ticket creation."""

from __future__ import annotations

import logging
from typing import Literal

from langchain_core.runnables import RunnableConfig
from langchain_core.tools import tool
from pydantic import Field

from src.db.models import KBArticle
from src.db.store import StoreError
from src.tools.ranking import contains, query_words, rank
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

MAX_ARTICLES = 10


class LoadKnowledgeBaseArgs(StrictArgs):
    query: str = Field(
        description="The user's question or topic, used to pick the most relevant articles",
    )


class CreateSupportTicketArgs(StrictArgs):
    subject: str = Field(description="Short subject line summarising the user's issue")
    message: str = Field(description="Full description of the user's issue or request")
    priority: Literal["low", "medium", "high", "urgent"] = Field(
        description="Urgency level of the ticket",
    )
    referenced_kb_id: str = Field(
        description="Id of a related knowledge base article, or '' if not applicable",
    )


def score_article(article: KBArticle, query: str) -> int:
    """Title 20, description 10, content 5; per word: title 6, description 3, content 1."""
    q = query.strip().lower()
    score = 0
    if contains(article.title, q):
        score += 20
    if contains(article.description, q):
        score += 10
    if contains(article.content, q):
        score += 5
    for word in query_words(query, 2):
        if contains(article.title, word):
            score += 6
        if contains(article.description, word):
            score += 3
        if contains(article.content, word):
            score += 1
    return score


@tool("load_knowledge_base", args_schema=LoadKnowledgeBaseArgs)
def load_knowledge_base(query: str, config: RunnableConfig) -> dict:
    """Load the help-center articles most relevant to the user's question.

    Always call this first when a user asks a support question.
    """
    runtime = tool_runtime(config)
    try:
        articles = runtime.store.list_kb_articles()
    except StoreError:
        return fail("Failed to load the knowledge base. Please try again.", articles=[])

    if not articles:
        return ok(
            "The knowledge base is currently empty. Let the user know and offer "
            "to create a support ticket.",
            articles=[],
        )

    ranked = rank(
        articles, lambda a: score_article(a, query), limit=MAX_ARTICLES, drop_zero=False,
    )
    return ok(
        f"Loaded {len(ranked)} article(s) from the knowledge base.",
        articles=[
            {
                "id": article.id,
                "title": article.title,
                "description": article.description,
                "content": article.content,
                "relevance_score": score,
                "category": (
                    {"name": article.category.name, "slug": article.category.slug}
                    if article.category
                    else None
                ),
            }
            for article, score in ranked
        ],
    )


@tool("create_support_ticket", args_schema=CreateSupportTicketArgs)
def create_support_ticket(
    subject: str,
    message: str,
    priority: str,
    referenced_kb_id: str,
    config: RunnableConfig,
) -> dict:
    """Open a support ticket for an issue that needs to be tracked by the team.

    Use this when the user explicitly asks to raise a ticket, or when the
    knowledge base cannot resolve their issue.
    """
    runtime = tool_runtime(config)
    user_id = runtime.context.user_id
    if user_id is None:
        return not_signed_in("create a support ticket")

    subject = subject.strip()
    message = message.strip()
    if not subject or not message:
        return fail("A ticket needs both a subject and a description of the issue.")

    store = runtime.store
    try:
        kb_id = blank_to_none(referenced_kb_id)
        if kb_id is not None and store.get_kb_article(kb_id) is None:
            logger.info("Dropping unknown referenced_kb_id %r on new ticket", kb_id)
            kb_id = None

        ticket = store.create_support_ticket(
            user_id,
            subject=subject,
            message=message,
            priority=priority,
            referenced_kb_id=kb_id,
        )
    except StoreError:
        return fail("Failed to create the support ticket. Please try again.")

    logger.info("Support ticket %s opened by user %s (%s)", ticket.id, user_id, priority)
    return ok(
        "Support ticket created successfully.",
        ticket={
            "id": ticket.id,
            "subject": ticket.subject,
            "status": ticket.status,
            "priority": ticket.priority,
            "referenced_kb_id": ticket.referenced_kb_id,
            "created_at": isoformat(ticket.created_at),
        },
        next_steps=[
            f"Your ticket ID is: {ticket.id}",
            "Our support team will review your request and get back to you shortly.",
            "You will be notified once there is an update on your ticket.",
        ],
    )


SUPPORT_TOOLS = [load_knowledge_base, create_support_ticket]
