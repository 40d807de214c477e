"""Tests for the bulk create/update executor."""

from __future__ import annotations

from typing import Any

import pytest

from conftest import ACTIVE_SPRINT, CLOSED_SPRINT, FakeBackend, RecordingSleep
from jira_daemon.errors import JiraAPIError, ToolValidationError
from jira_daemon.jira.cache import MetadataCache
from jira_daemon.jira.mutations import (
    BulkSummary,
    MutationExecutor,
    build_issue_fields,
    build_update_fields,
    map_bulk_response,
)


def _executor(
    backend: FakeBackend, cache: MetadataCache, batch_size: int = 50
) -> tuple[MutationExecutor, RecordingSleep]:
    sleep = RecordingSleep()
    return MutationExecutor(backend, cache, batch_size=batch_size, sleep=sleep), sleep


def _consistent(summary: BulkSummary, expected_total: int) -> None:
    assert summary.total == expected_total == len(summary.results)
    assert summary.succeeded + summary.failed == summary.total


# --- Field Builders ---


class TestBuildIssueFields:
    def test_minimal_issue_defaults_to_story(self) -> None:
        fields = build_issue_fields(
            {"summary": "Add login"}, project_key="ALP", account_id=None, story_points_field=None
        )
        assert fields == {
            "project": {"key": "ALP"},
            "summary": "Add login",
            "issuetype": {"name": "Story"},
        }

    def test_full_issue(self) -> None:
        issue: dict[str, Any] = {
            "summary": "Add login",
            "description": "Details",
            "issue_type": "Bug",
            "story_points": 3,
            "priority": "High",
            "labels": ["auth"],
            "fix_versions": ["1.0"],
            "components": ["Web"],
            "due_date": "2026-01-31",
            "parent_key": " alp-1 ",
        }
        fields = build_issue_fields(
            issue, project_key="ALP", account_id="acc-1", story_points_field="customfield_10016"
        )

        assert fields["description"]["type"] == "doc"
        assert fields["description"]["content"][0]["content"][0]["text"] == "Details"
        assert fields["assignee"] == {"id": "acc-1"}
        assert fields["customfield_10016"] == 3
        assert fields["fixVersions"] == [{"name": "1.0"}]
        assert fields["components"] == [{"name": "Web"}]
        assert fields["duedate"] == "2026-01-31"
        assert fields["parent"] == {"key": "ALP-1"}

    def test_points_dropped_without_field(self) -> None:
        fields = build_issue_fields(
            {"summary": "x", "story_points": 5}, project_key="ALP", account_id=None, story_points_field=None
        )
        assert "story_points" not in fields
        assert all(not k.startswith("customfield") for k in fields)


class TestBuildUpdateFields:
    def test_changes_describe_fields(self) -> None:
        fields, changes = build_update_fields(
            {"issue_key": "ALP-1", "summary": "New title", "story_points": 8, "labels": []},
            account_id=None,
            story_points_field="customfield_10016",
        )
        assert fields == {"summary": "New title", "customfield_10016": 8, "labels": []}
        assert changes == ['summary → "New title"', "points → 8", "labels → []"]

    def test_empty_update(self) -> None:
        assert build_update_fields({"issue_key": "ALP-1"}, account_id=None, story_points_field=None) == ({}, [])


class TestMapBulkResponse:
    def test_failed_elements_by_index(self) -> None:
        batch = [{"summary": "a"}, {"summary": "b"}, {"summary": "c"}]
        response = {
            "issues": [{"key": "ALP-1"}, {"key": "ALP-2"}],
            "errors": [{
                "status": 400,
                "failedElementNumber": 1,
                "elementErrors": {"errors": {"priority": "invalid"}},
            }],
        }
        results = map_bulk_response(batch, response)

        assert [r.to_dict() for r in results] == [
            {"action": "created", "key": "ALP-1", "summary": "a"},
            {"action": "error", "summary": "b", "error": "priority: invalid"},
            {"action": "created", "key": "ALP-2", "summary": "c"},
        ]

    def test_missing_created_issue_is_an_error(self) -> None:
        results = map_bulk_response([{"summary": "a"}], {"issues": []})
        assert results[0].action == "error"
        assert results[0].error == "Unknown error"


# --- Create ---


class TestCreateIssues:
    @pytest.mark.asyncio
    async def test_created_summaries_match_input(
        self, backend: FakeBackend, cache: MetadataCache
    ) -> None:
        executor, _ = _executor(backend, cache)
        issues = [{"summary": "Add login"}, {"summary": "Add logout", "assignee": "jane"}]

        summary = await executor.create_issues(issues)

        _consistent(summary, 2)
        assert summary.succeeded == 2
        assert [r.summary for r in summary.results] == ["Add login", "Add logout"]
        assert [r.key for r in summary.results] == ["ALP-100", "ALP-101"]
        assert backend.bulk_calls[0][1]["assignee"] == {"id": "acc-jane.roe"}

    @pytest.mark.asyncio
    async def test_moves_to_active_sprint_and_transitions(
        self, backend: FakeBackend, cache: MetadataCache
    ) -> None:
        executor, _ = _executor(backend, cache)

        await executor.create_issues([
            {"summary": "Default sprint"},
            {"summary": "Old sprint", "sprint_id": 23, "status": "Done"},
        ])

        assert sorted(backend.moves) == sorted([
            (ACTIVE_SPRINT.id, ["ALP-100"]),
            (CLOSED_SPRINT.id, ["ALP-101"]),
        ])
        assert backend.transitioned == [("ALP-101", "31")]

    @pytest.mark.asyncio
    async def test_batches(self, backend: FakeBackend, cache: MetadataCache) -> None:
        executor, _ = _executor(backend, cache, batch_size=2)

        summary = await executor.create_issues([{"summary": f"Issue {n}"} for n in range(5)])

        _consistent(summary, 5)
        assert [len(call) for call in backend.bulk_calls] == [2, 2, 1]

    @pytest.mark.asyncio
    async def test_partial_failure(self, backend: FakeBackend, cache: MetadataCache) -> None:
        backend.reject_summaries = {"Bad"}
        executor, _ = _executor(backend, cache)

        summary = await executor.create_issues([{"summary": "Good"}, {"summary": "Bad"}, {"summary": ""}])

        _consistent(summary, 3)
        assert [r.action for r in summary.results] == ["created", "error", "error"]
        assert summary.results[1].error == "summary: rejected"
        assert summary.results[2].error == "summary is required"

    @pytest.mark.asyncio
    async def test_rate_limited_batch_is_retried(
        self, backend: FakeBackend, cache: MetadataCache
    ) -> None:
        backend.bulk_failures = [JiraAPIError(429, "Jira API error: 429 Too Many Requests")]
        executor, sleep = _executor(backend, cache)

        summary = await executor.create_issues([{"summary": "Retry me"}])

        assert summary.succeeded == 1
        assert sleep.delays == [1.0]

    @pytest.mark.asyncio
    async def test_exhausted_batch_fails_its_items_only(
        self, backend: FakeBackend, cache: MetadataCache
    ) -> None:
        limited = JiraAPIError(429, "Jira API error: 429 Too Many Requests")
        backend.bulk_failures = [limited, limited, limited]
        executor, _ = _executor(backend, cache, batch_size=1)

        summary = await executor.create_issues([{"summary": "First"}, {"summary": "Second"}])

        _consistent(summary, 2)
        assert summary.results[0].error == "Max retries exceeded"
        assert summary.results[1].action == "created"

    @pytest.mark.asyncio
    async def test_unknown_assignee_fails_before_writing(
        self, backend: FakeBackend, cache: MetadataCache
    ) -> None:
        executor, _ = _executor(backend, cache)

        with pytest.raises(ToolValidationError, match="not found in team"):
            await executor.create_issues([{"summary": "x", "assignee": "nobody"}])
        assert backend.bulk_calls == []

    @pytest.mark.asyncio
    async def test_follow_up_failures_do_not_fail_creation(
        self, backend: FakeBackend, cache: MetadataCache
    ) -> None:
        backend.fail_moves = True
        executor, _ = _executor(backend, cache)

        summary = await executor.create_issues([{"summary": "Still created"}])

        assert summary.succeeded == 1

    @pytest.mark.asyncio
    async def test_empty_input(self, backend: FakeBackend, cache: MetadataCache) -> None:
        executor, _ = _executor(backend, cache)
        with pytest.raises(ToolValidationError, match="cannot be empty"):
            await executor.create_issues([])


# --- Update ---


class TestUpdateIssues:
    @pytest.mark.asyncio
    async def test_partial_failure(self, backend: FakeBackend, cache: MetadataCache) -> None:
        backend.missing_issues = {"ALP-404"}
        executor, _ = _executor(backend, cache)

        summary = await executor.update_issues([
            {"issue_key": "ALP-1", "story_points": 5, "status": "Done"},
            {"issue_key": "ALP-404", "summary": "Gone"},
            {"summary": "No key"},
        ])

        _consistent(summary, 3)
        first, missing, keyless = summary.results
        assert first.action == "updated"
        assert first.changes == ("points → 5", "status → Done")
        assert missing.key == "ALP-404"
        assert "404" in (missing.error or "")
        assert keyless.error == "issue_key is required"

    @pytest.mark.asyncio
    async def test_update_reaches_jira(self, backend: FakeBackend, cache: MetadataCache) -> None:
        """
        Input: a rename of ALP-1
        Output: the fields are sent to Jira before the item is reported updated
        """
        executor, _ = _executor(backend, cache)

        summary = await executor.update_issues([{"issue_key": "ALP-1", "summary": "Renamed"}])

        assert summary.succeeded == 1
        assert backend.updates == [("ALP-1", {"summary": "Renamed"})]

    @pytest.mark.asyncio
    async def test_assignee_and_sprint(self, backend: FakeBackend, cache: MetadataCache) -> None:
        executor, _ = _executor(backend, cache)

        summary = await executor.update_issues([{"issue_key": "ALP-1", "assignee": "john", "sprint_id": 24}])

        assert summary.results[0].changes == ("assignee → john", "sprint → ALP Sprint 24")
        assert backend.updates == [("ALP-1", {"assignee": {"id": "acc-john.doe"}})]
        assert backend.moves == [(ACTIVE_SPRINT.id, ["ALP-1"])]

    @pytest.mark.asyncio
    async def test_unknown_transition(self, backend: FakeBackend, cache: MetadataCache) -> None:
        executor, _ = _executor(backend, cache)

        summary = await executor.update_issues([{"issue_key": "ALP-1", "status": "Shipped"}])

        assert summary.failed == 1
        assert 'Cannot transition to "Shipped"' in (summary.results[0].error or "")

    @pytest.mark.asyncio
    async def test_summary_dict(self, backend: FakeBackend, cache: MetadataCache) -> None:
        executor, _ = _executor(backend, cache)

        summary = await executor.update_issues([{"issue_key": "ALP-1", "priority": "High"}])

        assert summary.to_dict() == {
            "total": 1,
            "succeeded": 1,
            "failed": 0,
            "results": [{"action": "updated", "key": "ALP-1", "changes": ["priority → High"]}],
        }
