"""
Shared fixtures: an in-memory Jira backend and a scripted chat model.

Nothing here touches the network; HTTP client tests use httpx.MockTransport
directly.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, AsyncIterator

import pytest

from jira_daemon.config import ProjectConfig
from jira_daemon.errors import JiraAPIError
from jira_daemon.jira.cache import MetadataCache
from jira_daemon.jira.models import BoardColumn, Epic, Issue, JiraField, Sprint, StatusChange
from jira_daemon.jira.mutations import MutationExecutor
from jira_daemon.llm import ModelReply, StreamChunk, TokenUsage
from jira_daemon.tools import ToolContext


# --- Sample Data ---

JOHN = "john.doe@example.com"
JANE = "jane.roe@example.com"

ACTIVE_SPRINT = Sprint(3625, "ALP Sprint 24", "active", "2025-12-15", "2025-12-29")
CLOSED_SPRINT = Sprint(3601, "ALP Sprint 23", "closed", "2025-12-01", "2025-12-14")
FUTURE_SPRINT = Sprint(3700, "ALP Sprint 25", "future")


def make_config(config_id: str = "alpha", project_key: str = "ALP") -> ProjectConfig:
    return ProjectConfig(
        id=config_id,
        name=config_id.title(),
        base_url=f"https://{config_id}.atlassian.net",
        board_id=42,
        project_key=project_key,
        email="bot@example.com",
        api_token="secret-token",
    )


def sample_issues() -> dict[int, list[Issue]]:
    return {
        ACTIVE_SPRINT.id: [
            Issue("ALP-10", "Login page redesign", "Done", "Story", JOHN, "John Doe", 5),
            Issue("ALP-9", "Login page validation", "In Progress", "Story", JANE, "Jane Roe", 3),
            Issue("ALP-11", "Payment gateway retry", "To Do", "Bug"),
        ],
        CLOSED_SPRINT.id: [
            Issue("ALP-5", "Payment gateway setup", "Done", "Story", JOHN, "John Doe", 8),
        ],
    }


def epic_issues() -> list[Issue]:
    """Children of ALP-500: one per completion weight, plus an unestimated sub-task."""
    return [
        Issue("ALP-510", "Cart API", "Done", "Story", JOHN, "John Doe", 5, "done"),
        Issue("ALP-502", "Cart UI", "UAT", "Story", JANE, "Jane Roe", 4, "indeterminate"),
        Issue("ALP-503", "Coupons", "In Progress", "Story", JANE, "Jane Roe", 2, "indeterminate"),
        Issue("ALP-504", "Gift cards", "Ready to Develop", "Story", None, None, 4, "new"),
        Issue("ALP-505", "Wishlist", "To Do", "Story", None, None, 5, "new"),
        Issue("ALP-506", "Cart UI copy", "To Do", "Sub-task", None, None, None, "new"),
    ]


def status_change(
    key: str,
    to_value: str,
    changed_at: str,
    *,
    field: str = "status",
    assignee: str | None = "John Doe",
    from_value: str = "In Progress",
) -> StatusChange:
    return StatusChange(
        issue_key=key,
        summary=f"Summary of {key}",
        field=field,
        from_value=from_value,
        to_value=to_value,
        changed_by="Jane Roe",
        changed_at=changed_at,
        assignee=assignee,
        story_points=3,
    )


# --- Fake Jira ---


class FakeBackend:
    """JiraBackend over in-memory data; records every write."""

    def __init__(self, config: ProjectConfig | None = None) -> None:
        self.config = config or make_config()
        self.sprints: list[Sprint] = [ACTIVE_SPRINT, CLOSED_SPRINT, FUTURE_SPRINT]
        self.issues: dict[int, list[Issue]] = sample_issues()
        self.fields: list[JiraField] = [
            JiraField("summary", "Summary", False),
            JiraField("customfield_10016", "Story Points", True),
        ]
        self.versions: list[dict[str, Any]] = [
            {"id": "1", "name": "1.0", "released": False, "archived": False},
            {"id": "2", "name": "0.9", "released": True, "archived": True},
        ]
        self.transitions: list[dict[str, str]] = [
            {"id": "11", "name": "To Do"},
            {"id": "21", "name": "In Progress"},
            {"id": "31", "name": "Done"},
        ]
        self.changes: list[StatusChange] = []
        self.issue_details: dict[str, dict[str, Any]] = {}
        self.missing_issues: set[str] = set()
        self.reject_summaries: set[str] = set()
        # exceptions raised by successive bulk_create calls before they succeed
        self.bulk_failures: list[Exception] = []
        self.fail_moves = False
        self.fail_list_sprints: Exception | None = None
        self.epics: list[Epic] = [
            Epic("ALP-500", "Checkout revamp", "In Progress", "Jane Roe"),
            Epic("ALP-400", "Login overhaul", "Done", "John Doe"),
        ]
        self.epic_children: dict[str, list[Issue]] = {}
        self.board_columns: list[BoardColumn] = [
            BoardColumn("To Do", ("To Do",)),
            BoardColumn("Doing", ("In Progress", "In Review")),
            BoardColumn("Done", ("Done",)),
        ]

        self.list_sprints_calls: list[tuple[str, int]] = []
        self.sprint_issue_calls: list[tuple[int, str | None]] = []
        self.bulk_calls: list[list[dict[str, Any]]] = []
        self.moves: list[tuple[int, list[str]]] = []
        self.updates: list[tuple[str, dict[str, Any]]] = []
        self.transitioned: list[tuple[str, str]] = []
        self.status_change_calls: list[tuple[list[int], datetime]] = []
        self.epic_calls: list[tuple[list[str] | None, int]] = []
        self._next_key = 100

    async def list_sprints(self, state: str = "all", max_results: int = 10) -> list[Sprint]:
        self.list_sprints_calls.append((state, max_results))
        if self.fail_list_sprints is not None:
            raise self.fail_list_sprints
        sprints = [s for s in self.sprints if state == "all" or s.state == state]
        return sorted(sprints, key=lambda s: s.id, reverse=True)[:max_results]

    async def get_sprint_issues(
        self, sprint_id: int, story_points_field: str | None = None
    ) -> list[Issue]:
        self.sprint_issue_calls.append((sprint_id, story_points_field))
        return list(self.issues.get(sprint_id, []))

    async def move_issues_to_sprint(self, sprint_id: int, issue_keys: list[str]) -> None:
        if self.fail_moves:
            raise JiraAPIError(500, "Jira API error: 500 Internal Server Error")
        self.moves.append((sprint_id, list(issue_keys)))

    async def get_fields(self) -> list[JiraField]:
        return list(self.fields)

    async def get_versions(self) -> list[dict[str, Any]]:
        return list(self.versions)

    async def get_components(self) -> list[str]:
        return ["API", "Web"]

    async def get_priorities(self) -> list[str]:
        return ["High", "Medium", "Low"]

    async def get_account_id(self, email: str) -> str:
        return f"acc-{email.split('@')[0]}"

    async def get_issue(
        self, issue_key: str, story_points_field: str | None = None
    ) -> dict[str, Any]:
        if issue_key not in self.issue_details:
            raise JiraAPIError(404, "Jira API error: 404 Not Found - Issue does not exist")
        return self.issue_details[issue_key]

    async def bulk_create(self, issue_fields: list[dict[str, Any]]) -> dict[str, Any]:
        self.bulk_calls.append(list(issue_fields))
        if self.bulk_failures:
            raise self.bulk_failures.pop(0)
        issues: list[dict[str, Any]] = []
        errors: list[dict[str, Any]] = []
        for index, fields in enumerate(issue_fields):
            if fields["summary"] in self.reject_summaries:
                errors.append({
                    "status": 400,
                    "failedElementNumber": index,
                    "elementErrors": {"errors": {"summary": "rejected"}},
                })
                continue
            key = f"{self.config.project_key}-{self._next_key}"
            self._next_key += 1
            issues.append({"id": key, "key": key})
        return {"issues": issues, "errors": errors}

    async def update_issue(self, issue_key: str, fields: dict[str, Any]) -> None:
        if issue_key in self.missing_issues:
            raise JiraAPIError(404, "Jira API error: 404 Not Found - Issue does not exist")
        self.updates.append((issue_key, fields))

    async def get_transitions(self, issue_key: str) -> list[dict[str, str]]:
        return list(self.transitions)

    async def transition_issue(self, issue_key: str, transition_id: str) -> None:
        self.transitioned.append((issue_key, transition_id))

    async def list_epics(self, statuses: list[str] | None = None, limit: int = 1000) -> list[Epic]:
        self.epic_calls.append((statuses, limit))
        epics = [e for e in self.epics if not statuses or e.status in statuses]
        return epics[:limit]

    async def get_epic_children(
        self, epic_key: str, story_points_field: str | None = None, include_subtasks: bool = False
    ) -> list[Issue]:
        return [
            i for i in self.epic_children.get(epic_key, [])
            if include_subtasks or i.issue_type != "Sub-task"
        ]

    async def get_board_columns(self) -> list[BoardColumn]:
        return list(self.board_columns)

    async def get_status_changes(
        self, sprint_ids: list[int], since: datetime, story_points_field: str | None = None
    ) -> list[StatusChange]:
        self.status_change_calls.append((list(sprint_ids), since))
        return list(self.changes)


# --- Fake Model ---


class FakeModel:
    """
    Scripted ChatModel.

    `replies` are returned by chat_with_tools in order (an exception in the
    list is raised instead); once exhausted every round answers without tools.
    """

    model = "fake-model"

    def __init__(
        self,
        replies: list[ModelReply | Exception] | None = None,
        answer: str | Exception = "Here is the answer.",
        generations: list[str | Exception] | None = None,
    ) -> None:
        self.replies = list(replies or [])
        self.answer = answer
        self.generations = list(generations or [])
        self.chat_calls: list[tuple[list[dict[str, Any]], list[dict[str, Any]]]] = []
        self.stream_calls: list[list[dict[str, Any]]] = []
        self.prompts: list[str] = []

    async def chat_with_tools(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]
    ) -> ModelReply:
        self.chat_calls.append((list(messages), list(tools)))
        if not self.replies:
            return ModelReply(content="", usage=TokenUsage(100, 10))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def stream_chat(self, messages: list[dict[str, Any]]) -> AsyncIterator[StreamChunk]:
        self.stream_calls.append(list(messages))
        if isinstance(self.answer, Exception):
            raise self.answer
        if self.answer:
            yield StreamChunk(content=self.answer)
        yield StreamChunk(usage=TokenUsage(50, 20))

    async def generate(
        self, prompt: str, *, num_predict: int | None = None, temperature: float = 0.0
    ) -> str:
        self.prompts.append(prompt)
        if not self.generations:
            return ""
        reply = self.generations.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


async def collect(events: AsyncIterator[dict[str, Any]]) -> list[dict[str, Any]]:
    return [event async for event in events]


def make_context(
    backend: FakeBackend,
    cache: MetadataCache | None = None,
    *,
    csv_rows: list[dict[str, str]] | None = None,
    cached_issues: list[dict[str, Any]] | None = None,
    sleep: RecordingSleep | None = None,
) -> ToolContext:
    cache = cache or MetadataCache({backend.config.id: backend})
    return ToolContext(
        config=backend.config,
        backend=backend,
        cache=cache,
        executor=MutationExecutor(backend, cache, sleep=sleep or RecordingSleep()),
        csv_rows=list(csv_rows or []),
        cached_issues=cached_issues,
    )


# --- Fixtures ---


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(backend: FakeBackend, clock: FakeClock) -> MetadataCache:
    return MetadataCache({backend.config.id: backend}, clock=clock)


@pytest.fixture
def ctx(backend: FakeBackend, cache: MetadataCache) -> ToolContext:
    return make_context(backend, cache)
