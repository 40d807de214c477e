"""Tests for the CSV and cached-data tools."""

from __future__ import annotations

from typing import Any

import pytest

from conftest import FakeBackend, make_context
from jira_daemon.errors import ToolValidationError
from jira_daemon.tools import ToolContext, get_registry
from jira_daemon.tools.local.analyze_cached_data import NO_DATA, matches_condition
from jira_daemon.tools.local.csv_utils import available_filters, find_column, parse_row_range

CSV_ROWS = [
    {"Title": "Login page", "Details": "Build it", "Team": "Web", "Release": "1.0"},
    {"Title": "Logout button", "Details": "", "Team": "Web", "Release": "1.1"},
    {"Title": "Payments API", "Details": "Stripe", "Team": "API", "Release": ""},
    {"Title": "Audit log", "Details": "Store events", "Team": "API", "Release": "1.0"},
]

CACHED = [
    {"key": "ALP-1", "summary": "a", "status": "Done", "assignee": "john.doe@example.com", "story_points": 5},
    {"key": "ALP-2", "summary": "b", "status": "Done", "assignee": "jane.roe@example.com", "story_points": 3},
    {"key": "ALP-3", "summary": "c", "status": "To Do", "assignee": None, "story_points": None},
]


def _csv_ctx(backend: FakeBackend) -> ToolContext:
    return make_context(backend, csv_rows=CSV_ROWS)


# --- Helpers ---


class TestCsvUtils:
    def test_row_range(self) -> None:
        assert parse_row_range("2-3", 4) == [2, 3]
        assert parse_row_range(" 3 - 10 ", 4) == [3, 4]
        assert parse_row_range("0-2", 4) is None
        assert parse_row_range("3-1", 4) is None
        assert parse_row_range("5-6", 4) is None
        assert parse_row_range("abc", 4) is None

    def test_find_column_ignores_case(self) -> None:
        assert find_column(["Title", "Team"], "title") == "Title"
        assert find_column(["Title"], "Name") is None

    def test_available_filters(self) -> None:
        filters = available_filters(CSV_ROWS, list(CSV_ROWS[0]))
        assert filters["Team"] == ["API", "Web"]
        assert filters["Release"] == ["1.0", "1.1"]


# --- query_csv ---


class TestQueryCsv:
    @pytest.mark.asyncio
    async def test_no_csv(self, ctx: ToolContext) -> None:
        outcome = await get_registry().dispatch("query_csv", ctx, {})
        assert outcome.result["rows"] == []
        assert outcome.result["summary"]["totalRows"] == 0

    @pytest.mark.asyncio
    async def test_row_range(self, backend: FakeBackend) -> None:
        outcome = await get_registry().dispatch("query_csv", _csv_ctx(backend), {"row_range": "2-3"})
        assert [r["Title"] for r in outcome.result["rows"]] == ["Logout button", "Payments API"]
        assert outcome.result["summary"]["filtersApplied"] == ["rows 2-3"]

    @pytest.mark.asyncio
    async def test_invalid_range(self, backend: FakeBackend) -> None:
        outcome = await get_registry().dispatch("query_csv", _csv_ctx(backend), {"row_range": "9-12"})
        assert outcome.result["rows"] == []
        assert outcome.result["summary"]["filtersApplied"] == ["Invalid range: 9-12"]

    @pytest.mark.asyncio
    async def test_row_indices_skip_out_of_range(self, backend: FakeBackend) -> None:
        outcome = await get_registry().dispatch("query_csv", _csv_ctx(backend), {"rowIndices": [4, 40]})
        assert [r["Title"] for r in outcome.result["rows"]] == ["Audit log"]
        assert outcome.result["summary"]["rowIndices"] == [4, 40]

    @pytest.mark.asyncio
    async def test_filters(self, backend: FakeBackend) -> None:
        args: dict[str, Any] = {"filters": {"Team": "api", "Release": ["1.0", "2.0"]}}
        outcome = await get_registry().dispatch("query_csv", _csv_ctx(backend), args)
        summary = outcome.result["summary"]

        assert [r["Title"] for r in outcome.result["rows"]] == ["Audit log"]
        assert summary["filteredRows"] == 1
        assert summary["filtersApplied"] == ['Team="api"', "Release IN [1.0, 2.0]"]
        assert "Team" in summary["availableFilters"]

    @pytest.mark.asyncio
    async def test_limit(self, backend: FakeBackend) -> None:
        outcome = await get_registry().dispatch("query_csv", _csv_ctx(backend), {"limit": 2})
        assert len(outcome.result["rows"]) == 2
        assert outcome.result["summary"]["filteredRows"] == 4


# --- prepare_issues ---


class TestPrepareIssues:
    @pytest.mark.asyncio
    async def test_builds_preview(self, backend: FakeBackend) -> None:
        args = {
            "row_range": "1-2",
            "mapping": {
                "summary_column": "title",
                "description_column": "Details",
                "assignee": "Jane",
                "story_points": 3,
                "fix_versions": "Release",
            },
        }
        outcome = await get_registry().dispatch("prepare_issues", _csv_ctx(backend), args)
        result = outcome.result

        assert result["ready_for_creation"] is True
        assert result["errors"] == []
        first, second = result["preview"]
        assert first["summary"] == "Login page"
        assert first["description"] == "Build it"
        assert first["issue_type"] == "Story"
        assert first["fix_versions"] == ["1.0"]
        assert second["fix_versions"] == ["1.1"]
        assert second["assignee"] == "Jane"

    @pytest.mark.asyncio
    async def test_literal_fix_versions_and_bad_rows(self, backend: FakeBackend) -> None:
        args = {
            "row_indices": [3, 9],
            "mapping": {"summary_column": "Title", "fix_versions": ["2.0"]},
        }
        outcome = await get_registry().dispatch("prepare_issues", _csv_ctx(backend), args)
        result = outcome.result

        assert [p["summary"] for p in result["preview"]] == ["Payments API"]
        assert result["preview"][0]["fix_versions"] == ["2.0"]
        assert result["errors"] == ["Row 9 out of range (1-4)"]
        assert result["ready_for_creation"] is False

    @pytest.mark.asyncio
    async def test_missing_description_column_is_a_warning(self, backend: FakeBackend) -> None:
        args = {"row_range": "1-1", "mapping": {"summary_column": "Title", "description_column": "Body"}}
        outcome = await get_registry().dispatch("prepare_issues", _csv_ctx(backend), args)

        assert outcome.result["ready_for_creation"] is True
        assert outcome.result["errors"][0].startswith('Warning: Column "Body" not found')

    @pytest.mark.parametrize(
        "args,error",
        [
            ({"row_range": "x", "mapping": {"summary_column": "Title"}}, 'Invalid row_range "x". Use format "1-100".'),
            ({"mapping": {"summary_column": "Title"}}, "row_range or row_indices is required"),
            ({"row_range": "1-2", "mapping": {"assignee": "x"}}, "summary_column is required. Available columns: Title, Details, Team, Release"),
            ({"row_range": "1-2", "mapping": {"summary_column": "Name"}}, 'Column "Name" not found. Available: Title, Details, Team, Release'),
        ],
    )
    @pytest.mark.asyncio
    async def test_rejections(self, backend: FakeBackend, args: dict[str, Any], error: str) -> None:
        outcome = await get_registry().dispatch("prepare_issues", _csv_ctx(backend), args)
        assert outcome.result == {"preview": [], "ready_for_creation": False, "errors": [error]}

    @pytest.mark.asyncio
    async def test_no_csv(self, ctx: ToolContext) -> None:
        outcome = await get_registry().dispatch("prepare_issues", ctx, {"row_range": "1-2", "mapping": {"summary_column": "Title"}})
        assert outcome.result["errors"] == ["No CSV data available"]


# --- analyze_cached_data ---


class TestMatchesCondition:
    def test_numeric(self) -> None:
        assert matches_condition(5, "story_points", {"gt": 3})
        assert not matches_condition(3, "story_points", {"gt": 3})
        assert matches_condition(3, "story_points", {"gte": 3, "lte": 3})
        assert not matches_condition(None, "story_points", {"lt": 2})

    def test_assignee_tokens(self) -> None:
        assert matches_condition("john.doe@example.com", "assignee", {"eq": "john doe"})
        assert not matches_condition("jane.roe@example.com", "assignee", {"eq": "john"})

    def test_status_is_exact(self) -> None:
        assert matches_condition("Done", "status", {"eq": "done"})
        assert not matches_condition("Not Done", "status", {"eq": "done"})

    def test_float_points_equal_whole_numbers(self) -> None:
        """
        Input: Jira-style 5.0 points, eq given as 5 or "5"
        Output: compared by value, not by text
        """
        assert matches_condition(5.0, "story_points", {"eq": 5})
        assert matches_condition(5.0, "story_points", {"eq": "5"})
        assert not matches_condition(3.0, "story_points", {"eq": 5})

    def test_string_thresholds_are_coerced(self) -> None:
        assert matches_condition(5.0, "story_points", {"gt": "3"})
        assert not matches_condition(2.0, "story_points", {"gte": "2.5"})

    def test_non_numeric_threshold_is_rejected(self) -> None:
        with pytest.raises(ToolValidationError, match="condition.gt must be a number"):
            matches_condition(5.0, "story_points", {"gt": "lots"})


class TestAnalyzeCachedData:
    async def _run(self, backend: FakeBackend, args: dict[str, Any]) -> dict[str, Any]:
        ctx = make_context(backend, cached_issues=CACHED)
        outcome = await get_registry().dispatch("analyze_cached_data", ctx, args)
        return outcome.result

    @pytest.mark.asyncio
    async def test_without_cached_data(self, ctx: ToolContext) -> None:
        outcome = await get_registry().dispatch("analyze_cached_data", ctx, {"operation": "count"})
        assert outcome.result == {"message": NO_DATA}

    @pytest.mark.asyncio
    async def test_count(self, backend: FakeBackend) -> None:
        result = await self._run(backend, {"operation": "count", "field": "story_points", "condition": {"gt": 3}})
        assert result["message"] == '1 issues matching {"gt": 3} (out of 3 total)'

    @pytest.mark.asyncio
    async def test_filter(self, backend: FakeBackend) -> None:
        result = await self._run(backend, {"operation": "filter", "field": "status", "condition": {"eq": "done"}})
        assert result["message"] == "Found 2 issues"
        assert [i["key"] for i in result["issues"]] == ["ALP-1", "ALP-2"]

    @pytest.mark.asyncio
    async def test_filter_without_matches(self, backend: FakeBackend) -> None:
        result = await self._run(backend, {"operation": "filter", "field": "assignee", "condition": {"eq": "zed"}})
        assert result == {"message": "No issues match the criteria."}

    @pytest.mark.asyncio
    async def test_sum(self, backend: FakeBackend) -> None:
        result = await self._run(backend, {"operation": "sum", "field": "story_points"})
        assert result["message"] == "Total story points: 8 (from 3 issues)"

        wrong = await self._run(backend, {"operation": "sum", "field": "status"})
        assert wrong["message"] == "Sum operation only works with story_points field."

    @pytest.mark.asyncio
    async def test_group(self, backend: FakeBackend) -> None:
        result = await self._run(backend, {"operation": "group", "field": "assignee"})
        assert result["message"] == (
            "Grouped by assignee:\njohn.doe@example.com: 1\njane.roe@example.com: 1\nUnassigned: 1"
        )

    @pytest.mark.asyncio
    async def test_float_points_from_jira(self, backend: FakeBackend) -> None:
        issues = [dict(i, story_points=float(i["story_points"]) if i["story_points"] else None) for i in CACHED]
        ctx = make_context(backend, cached_issues=issues)

        outcome = await get_registry().dispatch(
            "analyze_cached_data", ctx, {"operation": "count", "field": "story_points", "condition": {"eq": 5}}
        )

        assert outcome.result["message"] == '1 issues matching {"eq": 5} (out of 3 total)'

    @pytest.mark.asyncio
    async def test_bad_threshold_is_a_tool_error(self, backend: FakeBackend) -> None:
        ctx = make_context(backend, cached_issues=CACHED)

        outcome = await get_registry().dispatch(
            "analyze_cached_data", ctx, {"operation": "count", "field": "story_points", "condition": {"gt": "many"}}
        )

        assert not outcome.ok
        assert outcome.error == "condition.gt must be a number, got 'many'"
