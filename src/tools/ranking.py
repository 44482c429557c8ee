"""Keyword relevance ranking shared by the catalog search tools.

Scoring is weighted substring matching: a tool supplies a scorer that adds
points for the whole query appearing in a field and for individual query
words appearing in it.  ``rank`` sorts by descending score with Python's
stable sort, so rows with equal scores keep the order the store returned
them in and repeated searches give identical results.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TypeVar

T = TypeVar("T")


def query_words(query: str, longer_than: int) -> list[str]:
    """Lower-cased words of *query* with more than *longer_than* characters."""
    return [w for w in query.lower().split() if len(w) > longer_than]


def contains(text: str | None, needle: str) -> bool:
    return bool(needle) and needle in (text or "").lower()


def rank(
    items: Iterable[T],
    scorer: Callable[[T], int],
    *,
    limit: int | None = None,
    drop_zero: bool = True,
) -> list[tuple[T, int]]:
    """Return ``(item, score)`` pairs, best first, optionally truncated."""
    scored = [(item, scorer(item)) for item in items]
    if drop_zero:
        scored = [pair for pair in scored if pair[1] > 0]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:limit] if limit is not None else scored
