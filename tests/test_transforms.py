"""Tests for trace summaries, UI records and model-facing condensation."""

from __future__ import annotations

import json
from typing import Any

from jira_daemon.transforms import (
    condense_for_model,
    extract_structured_data,
    extract_topics,
    summarize_tool_result,
)
from jira_daemon.transforms.condense import UI_LIST_NOTE


def _issue(key: str, summary: str, status: str, assignee: str | None, points: float | None) -> dict[str, Any]:
    return {"key": key, "summary": summary, "status": status, "assignee": assignee, "story_points": points}


SPRINT_RESULT: dict[str, Any] = {
    "total_issues": 3,
    "total_story_points": 8,
    "sprints": {
        "ALP Sprint 24": {
            "issue_count": 3,
            "issues": [
                _issue("ALP-1", "Login page form", "Done", "john.doe@example.com", 5),
                _issue("ALP-2", "Login page tests", "In Progress", "jane.roe@example.com", 3),
                _issue("ALP-3", "Docs", "Done", None, None),
            ],
        },
    },
}


# --- Summaries ---


class TestSummarizeToolResult:
    def test_empty_result(self) -> None:
        assert summarize_tool_result("get_issue", {}) == "No results found"
        assert summarize_tool_result("get_issue", None) == "No results found"

    def test_read_tools(self) -> None:
        assert summarize_tool_result("get_sprint_issues", SPRINT_RESULT) == "Found 3 issues (8 story points)"
        assert summarize_tool_result("list_sprints", {"sprints": [{"id": 1}]}) == "Found 1 sprint"
        assert summarize_tool_result(
            "get_context", {"team_members": ["A", "B"], "statuses": ["Done"]}
        ) == "2 team members, 1 status"
        assert summarize_tool_result(
            "get_issue", {"key": "ALP-1", "summary": "Fix", "status": "Done"}
        ) == "ALP-1: Fix (Done)"
        assert summarize_tool_result(
            "get_activity", {"total_changes": 2, "period": {"since": "2025-12-01"}}
        ) == "Found 2 status changes since 2025-12-01"

    def test_query_csv(self) -> None:
        missing = {"rows": [], "summary": {"totalRows": 4, "rowIndices": [5]}}
        assert summarize_tool_result("query_csv", missing) == "Rows 5 not found (CSV has 4 rows)"

        filtered = {"rows": [{}], "summary": {"totalRows": 4, "filteredRows": 1, "filtersApplied": ['Team="api"']}}
        assert summarize_tool_result("query_csv", filtered) == 'Found 1 of 4 rows (filtered by: Team="api")'

    def test_prepare_issues(self) -> None:
        rejected = {"preview": [], "ready_for_creation": False, "errors": ["No CSV data available"]}
        assert summarize_tool_result("prepare_issues", rejected) == "Error: No CSV data available"

        ready = {"preview": [{"summary": "Login page"}], "ready_for_creation": True, "errors": []}
        assert summarize_tool_result("prepare_issues", ready) == 'Prepared 1 issue (e.g. "Login page")'

    def test_bulk_results(self) -> None:
        result = {"total": 3, "succeeded": 2, "failed": 1, "results": []}
        assert summarize_tool_result("create_issues", result) == "2/3 succeeded, 1 failed"

    def test_epic_tools(self) -> None:
        assert summarize_tool_result("list_epics", {"total_epics": 2, "epics": []}) == "Found 2 epics"
        progress = {
            "epic": {"key": "ALP-500"},
            "progress": {"completed_issues": 1, "total_issues": 5, "percent_by_points": 50},
        }
        assert summarize_tool_result("get_epic_progress", progress) == "ALP-500: 1/5 issues done, 50% by points"

    def test_unknown_tool(self) -> None:
        assert summarize_tool_result("mystery", {"x": 1}) == "Tool executed successfully"


# --- Structured Data ---


class TestExtractStructuredData:
    def test_one_record_per_sprint(self) -> None:
        result = {
            "sprints": {
                "S1": {"issues": [_issue("A-1", "x", "Done", None, 2)]},
                "S2": {"issues": [_issue("A-2", "y", "Done", None, 1.5), _issue("A-3", "z", "Done", None, 1.5)]},
            },
        }
        records = extract_structured_data("get_sprint_issues", result)

        assert [r["sprint_name"] for r in records] == ["S1", "S2"]
        assert records[1]["summary"] == "2 issues (3 story points)"
        assert all(r["type"] == "issue_list" for r in records)

    def test_filtered_analysis(self) -> None:
        result = {"message": "Found 1 issues", "issues": [_issue("A-1", "x", "Done", None, 5)]}
        (record,) = extract_structured_data("analyze_cached_data", result)

        assert record["sprint_name"] == "Filtered Results"
        assert record["total_story_points"] == 5

    def test_activity(self) -> None:
        result = {"period": {"since": "2025-12-01"}, "total_changes": 1, "changes": [{"issue_key": "A-1"}]}
        (record,) = extract_structured_data("get_activity", result)
        assert record["type"] == "activity_list"

    def test_epic_progress(self) -> None:
        result = {"epic": {"key": "ALP-500"}, "progress": {"total_issues": 5}, "breakdown_by_status": {}}
        (record,) = extract_structured_data("get_epic_progress", result)

        assert record["type"] == "epic_progress"
        assert record["progress"] == {"total_issues": 5}

    def test_epic_list(self) -> None:
        result = {"total_epics": 1, "epics": [{"key": "ALP-500", "summary": "Checkout", "status": "Done"}]}
        (record,) = extract_structured_data("list_epics", result)

        assert record["sprint_name"] == "Project Epics"
        assert record["summary"] == "1 epics"
        assert record["issues"][0]["issue_type"] == "Epic"
        assert record["total_story_points"] == 0

    def test_nothing_to_show(self) -> None:
        assert extract_structured_data("get_activity", {"changes": []}) == []
        assert extract_structured_data("analyze_cached_data", {"message": "3 issues"}) == []
        assert extract_structured_data("get_issue", {"key": "A-1"}) == []
        assert extract_structured_data("list_epics", {"total_epics": 0, "epics": []}) == []
        assert extract_structured_data("get_sprint_issues", "oops") == []


# --- Condensation ---


class TestExtractTopics:
    def test_repeated_phrases(self) -> None:
        topics = extract_topics(["Login page redesign", "Login page tests", "Payment api"])
        assert topics == [("login page", 2)]

    def test_stop_words_break_phrases(self) -> None:
        assert extract_topics(["Fix login page", "Fix login page"]) == [("login page", 2)]

    def test_brackets_and_short_words(self) -> None:
        assert extract_topics(["[UI] Dark mode toggle", "(UI) dark mode toggle"]) == [
            ("dark mode", 2),
            ("mode toggle", 2),
            ("dark mode toggle", 2),
        ]


class TestCondenseForModel:
    def test_sprint_issues(self) -> None:
        text = condense_for_model("get_sprint_issues", SPRINT_RESULT)

        assert text.startswith("SUMMARY: 3 issues | 8 story points")
        assert "SPRINT BREAKDOWN" not in text
        assert "- john doe: 5 pts (1 tasks)" in text
        assert "- Unassigned: 0 pts (1 tasks)" in text
        assert '- "login page" (2 issues)' in text
        assert "- Done: 2" in text
        assert text.endswith(UI_LIST_NOTE)
        assert "Login page form" not in text

    def test_top_performer_with_breakdown(self) -> None:
        text = condense_for_model("get_sprint_issues", SPRINT_RESULT, {"include_breakdown": True})
        assert "TOP PERFORMER: john doe (5 pts)" in text
        assert "BREAKDOWN BY ASSIGNEE" not in text

    def test_sprint_breakdown_lowest_first(self) -> None:
        result = {
            "total_issues": 2,
            "total_story_points": 9,
            "sprints": {
                "Big": {"issue_count": 1, "issues": [_issue("A-1", "x", "Done", None, 8)]},
                "Small": {"issue_count": 1, "issues": [_issue("A-2", "y", "Done", None, 1)]},
            },
        }
        text = condense_for_model("get_sprint_issues", result)
        assert "- Small: 1 issues, 1 pts\n- Big: 1 issues, 8 pts" in text

    def test_prepared_issues_drop_empty_values(self) -> None:
        result = {
            "preview": [{"summary": "A", "description": "", "assignee": "", "story_points": None, "issue_type": "Story"}],
            "ready_for_creation": True,
            "errors": [],
        }
        text = condense_for_model("prepare_issues", result)

        prefix = "Ready to create 1 issues. Call create_issues with: "
        assert text.startswith(prefix)
        assert json.loads(text[len(prefix):]) == {"issues": [{"summary": "A", "issue_type": "Story"}]}

    def test_unready_preparation_is_passed_through(self) -> None:
        result = {"preview": [], "ready_for_creation": False, "errors": ["No CSV data available"]}
        assert json.loads(condense_for_model("prepare_issues", result)) == result

    def test_analysis(self) -> None:
        listed = {"issues": [_issue("A-1", "x", "Done", None, 5), _issue("A-2", "y", "Done", None, 3)]}
        assert condense_for_model("analyze_cached_data", listed).startswith("RESULT: 2 issues (8 story points).")
        assert condense_for_model("analyze_cached_data", {"message": "Total story points: 8"}) == "Total story points: 8"

    def test_other_results_are_json(self) -> None:
        assert json.loads(condense_for_model("get_issue", {"key": "A-1"})) == {"key": "A-1"}
        assert condense_for_model("get_issue", "plain") == "plain"
