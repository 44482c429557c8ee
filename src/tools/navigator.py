"""Website Navigator specialist tools.

The site map (modules, pages, keywords, click-paths) lives in the store, so
the navigator answers "where do I find..." questions from data rather than
from its prompt.
"""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.runnables import RunnableConfig
from langchain_core.tools import tool
from pydantic import Field

from src.db.models import NavPath
from src.db.store import StoreError
from src.tools.ranking import contains, query_words, rank
from src.tools.runtime import StrictArgs, blank_to_none, fail, ok, tool_runtime

logger = logging.getLogger(__name__)

MAX_RESULTS = 5
MAX_TOPIC_MATCHES = 2
ALL_MODULES = "all"

_UNAVAILABLE = "The site map is temporarily unavailable. Please try again."


class SearchNavigationArgs(StrictArgs):
    query: str = Field(
        description="The user's intent, e.g. 'how do I change my plan' or 'billing settings'",
    )
    module: str = Field(
        description="Module slug to search in (docs, products, support, account) or 'all'",
    )


class GetPageDetailsArgs(StrictArgs):
    path: str = Field(description="Page path, e.g. '/docs/api'")
    summarize: bool = Field(description="True for a short summary, False for the full content")


class FindRelatedPagesArgs(StrictArgs):
    current_path: str = Field(description="Path of the page the user is on or just read")
    topic: str = Field(description="Optional topic to widen the search, or '' for none")


def score_page(page: NavPath, query: str) -> int:
    """Title 10, each matching keyword 5, description 3, per long word in content 1."""
    q = query.strip().lower()
    score = 0
    if contains(page.title, q):
        score += 10
    for keyword in page.keywords or []:
        keyword = keyword.lower()
        if q and (keyword in q or q in keyword):
            score += 5
    if contains(page.description, q):
        score += 3
    for word in query_words(query, 3):
        if contains(page.content, word):
            score += 1
    return score


def relevance_label(score: int) -> str:
    if score > 10:
        return "high"
    if score > 5:
        return "medium"
    return "low"


def _page_summary(page: NavPath) -> dict[str, Any]:
    return {
        "path": page.path,
        "title": page.title,
        "module": page.module.slug if page.module else None,
        "description": page.description,
    }


@tool("search_navigation", args_schema=SearchNavigationArgs)
def search_navigation(query: str, module: str, config: RunnableConfig) -> dict:
    """Find the pages of the website that match what the user is looking for.

    Returns paths, descriptions, click-by-click steps and a relevance label.
    Use this when users ask "where can I find..." or "how do I...".
    """
    runtime = tool_runtime(config)
    slug = (blank_to_none(module) or ALL_MODULES).lower()

    try:
        if slug != ALL_MODULES:
            known = [m.slug for m in runtime.store.list_nav_modules()]
            if slug not in known:
                return fail(
                    f'Unknown section "{module}".',
                    available_modules=known,
                )
        pages = runtime.store.list_nav_paths(None if slug == ALL_MODULES else slug)
    except StoreError:
        return fail(_UNAVAILABLE, results=[])

    ranked = rank(pages, lambda p: score_page(p, query), limit=MAX_RESULTS)
    if not ranked:
        return fail(
            f'No pages found for "{query}". Try different keywords or browse the main sections.',
            results=[],
            suggestions=[
                "Check the /docs section for documentation",
                "Visit /products for product information",
                "See /support for help and FAQs",
            ],
        )

    return ok(
        f'Found {len(ranked)} page(s) matching "{query}".',
        results=[
            {**_page_summary(page), "steps": page.steps or [], "relevance": relevance_label(score)}
            for page, score in ranked
        ],
        search_query=query,
    )


@tool("get_page_details", args_schema=GetPageDetailsArgs)
def get_page_details(path: str, summarize: bool, config: RunnableConfig) -> dict:
    """Get the content of one page, in full or as a short summary."""
    runtime = tool_runtime(config)
    try:
        page = runtime.store.get_nav_path(path.strip())
    except StoreError:
        return fail(_UNAVAILABLE)

    if page is None:
        return fail(
            f'Page "{path}" not found. Please verify the path.',
            suggestion="Use search_navigation to find the correct page path.",
        )

    return ok(
        "Showing page summary. Ask again with summarize false for the full content."
        if summarize
        else "Showing full page content.",
        page={
            **_page_summary(page),
            "content": page.description if summarize else page.content,
            "keywords": page.keywords or [],
            "steps": page.steps or [],
            "related_paths": page.related_paths or [],
        },
    )


@tool("find_related_pages", args_schema=FindRelatedPagesArgs)
def find_related_pages(current_path: str, topic: str, config: RunnableConfig) -> dict:
    """Suggest pages related to the current page, optionally around a topic.

    Use this when the user finishes reading a page or asks what to read next.
    """
    runtime = tool_runtime(config)
    try:
        pages = runtime.store.list_nav_paths()
    except StoreError:
        return fail(_UNAVAILABLE, related_pages=[])

    by_path = {page.path: page for page in pages}
    current = by_path.get(current_path.strip())
    if current is None:
        return fail(f'Page "{current_path}" not found.', related_pages=[])

    linked = [by_path[p] for p in current.related_paths or [] if p in by_path]

    subject = blank_to_none(topic)
    if subject is not None:
        subject = subject.lower()
        exclude = {current.path, *(current.related_paths or [])}
        matches = [
            page
            for page in pages
            if page.path not in exclude
            and (
                any(k.lower() in subject or subject in k.lower() for k in page.keywords or [])
                or contains(page.title, subject)
            )
        ]
        linked.extend(matches[:MAX_TOPIC_MATCHES])

    current_summary = {"path": current.path, "title": current.title}
    if not linked:
        return ok("No related pages found.", current_page=current_summary, related_pages=[])
    return ok(
        f"Found {len(linked)} related page(s).",
        current_page=current_summary,
        related_pages=[_page_summary(page) for page in linked],
    )


NAVIGATOR_TOOLS = [search_navigation, get_page_details, find_related_pages]
