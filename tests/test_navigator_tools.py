"""Tests for the Website Navigator tools."""

from __future__ import annotations

import pytest

from src.tools.navigator import (
    MAX_RESULTS,
    find_related_pages,
    get_page_details,
    relevance_label,
    score_page,
    search_navigation,
)


class TestSearchNavigation:
    def test_finds_billing_settings(self, anonymous):
        result = search_navigation.invoke(
            {"query": "change plan", "module": "all"}, config=anonymous,
        )
        assert result["success"] is True
        assert result["results"][0]["path"] == "/account/billing"
        assert result["results"][0]["steps"]

    def test_module_filter_limits_results(self, anonymous):
        result = search_navigation.invoke({"query": "api", "module": "docs"}, config=anonymous)
        assert result["success"] is True
        assert {r["module"] for r in result["results"]} == {"docs"}

    def test_blank_module_searches_everything(self, anonymous):
        result = search_navigation.invoke({"query": "pricing", "module": ""}, config=anonymous)
        assert result["results"][0]["path"] == "/products/pricing"

    def test_unknown_module_lists_available(self, anonymous):
        result = search_navigation.invoke({"query": "api", "module": "blog"}, config=anonymous)
        assert result["success"] is False
        assert "docs" in result["available_modules"]

    def test_at_most_five_results(self, anonymous):
        result = search_navigation.invoke({"query": "api", "module": "all"}, config=anonymous)
        assert len(result["results"]) <= MAX_RESULTS

    def test_no_match_offers_suggestions(self, anonymous):
        result = search_navigation.invoke({"query": "zzzz", "module": "all"}, config=anonymous)
        assert result["success"] is False
        assert result["suggestions"]

    def test_repeated_search_is_stable(self, anonymous):
        args = {"query": "api keys", "module": "all"}
        first = search_navigation.invoke(args, config=anonymous)
        second = search_navigation.invoke(args, config=anonymous)
        assert [r["path"] for r in first["results"]] == [r["path"] for r in second["results"]]


class TestScorePage:
    def test_keyword_and_title_match(self, store):
        page = store.get_nav_path("/products/pricing")
        # title 10, keyword 5, description 3, content word 1
        assert score_page(page, "pricing") == 19

    @pytest.mark.parametrize(
        ("score", "label"),
        [(0, "low"), (5, "low"), (6, "medium"), (10, "medium"), (11, "high")],
    )
    def test_relevance_label(self, score, label):
        assert relevance_label(score) == label


class TestGetPageDetails:
    def test_full_content(self, anonymous):
        result = get_page_details.invoke({"path": "/docs/api", "summarize": False}, config=anonymous)
        assert result["success"] is True
        assert "Rate limits" in result["page"]["content"]
        assert result["page"]["related_paths"]

    def test_summary_uses_description(self, anonymous):
        result = get_page_details.invoke({"path": "/docs/api", "summarize": True}, config=anonymous)
        assert result["page"]["content"].startswith("Complete API documentation")

    def test_unknown_path(self, anonymous):
        result = get_page_details.invoke({"path": "/nowhere", "summarize": True}, config=anonymous)
        assert result["success"] is False
        assert "search_navigation" in result["suggestion"]


class TestFindRelatedPages:
    def test_linked_pages(self, anonymous):
        result = find_related_pages.invoke(
            {"current_path": "/docs/quickstart", "topic": ""}, config=anonymous,
        )
        paths = [p["path"] for p in result["related_pages"]]
        assert paths == ["/docs/api", "/docs/authentication"]

    def test_topic_adds_matches(self, anonymous):
        result = find_related_pages.invoke(
            {"current_path": "/docs/quickstart", "topic": "pricing"}, config=anonymous,
        )
        paths = [p["path"] for p in result["related_pages"]]
        assert "/products/pricing" in paths
        assert paths.count("/docs/api") == 1

    def test_unknown_current_page(self, anonymous):
        result = find_related_pages.invoke(
            {"current_path": "/nowhere", "topic": ""}, config=anonymous,
        )
        assert result["success"] is False
