"""
Jira Cloud REST client (platform v3 + agile 1.0).

One JiraClient per ProjectConfig. Everything above this module talks to the
JiraBackend protocol so tests can swap in an in-memory fake.
"""

from __future__ import annotations

import asyncio
import logging
import re
from datetime import datetime
from typing import Any, Protocol

import httpx

from ..config import ProjectConfig
from ..errors import JiraAPIError
from .models import BoardColumn, Epic, Issue, JiraField, Sprint, StatusChange

logger = logging.getLogger("jira.client")

SPRINT_PAGE_SIZE = 100
SEARCH_PAGE_SIZE = 50
EPIC_PAGE_SIZE = 100
EPIC_LIMIT = 1000


# --- ADF helpers ---


def extract_text_from_adf(adf: Any) -> str:
    """Flatten an Atlassian Document Format tree to plain text."""
    if isinstance(adf, str):
        return adf
    if not isinstance(adf, dict):
        return ""

    def extract_node(node: dict[str, Any]) -> str:
        kind = node.get("type")
        if kind == "text":
            return node.get("text") or ""
        if kind in ("mention", "emoji"):
            return (node.get("attrs") or {}).get("text") or ""
        if kind == "hardBreak":
            return "\n"
        children = node.get("content")
        if isinstance(children, list):
            return "".join(extract_node(child) for child in children)
        return ""

    content = adf.get("content")
    if not isinstance(content, list):
        return ""
    text = "\n".join(extract_node(node) for node in content)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def build_description_field(description: str) -> dict[str, Any]:
    return {
        "type": "doc",
        "version": 1,
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": description}]},
        ],
    }


def normalize_parent_key(parent_key: str) -> str:
    return parent_key.strip().upper()


def _jql_quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _error_details(response: httpx.Response) -> str:
    try:
        parsed = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(parsed, dict):
        if parsed.get("errors"):
            return ", ".join(f"{k}: {v}" for k, v in parsed["errors"].items())
        if parsed.get("errorMessages"):
            return ", ".join(str(m) for m in parsed["errorMessages"])
    return ""


# --- Backend protocol ---


class JiraBackend(Protocol):
    """Operations the cache, handlers and executor need from Jira."""

    config: ProjectConfig

    async def list_sprints(self, state: str = "all", max_results: int = 10) -> list[Sprint]: ...

    async def get_sprint_issues(
        self, sprint_id: int, story_points_field: str | None = None
    ) -> list[Issue]: ...

    async def move_issues_to_sprint(self, sprint_id: int, issue_keys: list[str]) -> None: ...

    async def get_fields(self) -> list[JiraField]: ...

    async def get_versions(self) -> list[dict[str, Any]]: ...

    async def get_components(self) -> list[str]: ...

    async def get_priorities(self) -> list[str]: ...

    async def get_account_id(self, email: str) -> str: ...

    async def get_issue(
        self, issue_key: str, story_points_field: str | None = None
    ) -> dict[str, Any]: ...

    async def bulk_create(self, issue_fields: list[dict[str, Any]]) -> dict[str, Any]: ...

    async def update_issue(self, issue_key: str, fields: dict[str, Any]) -> None: ...

    async def get_transitions(self, issue_key: str) -> list[dict[str, str]]: ...

    async def transition_issue(self, issue_key: str, transition_id: str) -> None: ...

    async def list_epics(
        self, statuses: list[str] | None = None, limit: int = EPIC_LIMIT
    ) -> list[Epic]: ...

    async def get_epic_children(
        self, epic_key: str, story_points_field: str | None = None, include_subtasks: bool = False
    ) -> list[Issue]: ...

    async def get_board_columns(self) -> list[BoardColumn]: ...

    async def get_status_changes(
        self, sprint_ids: list[int], since: datetime, story_points_field: str | None = None
    ) -> list[StatusChange]: ...


# --- Client ---


class JiraClient:
    """httpx-backed JiraBackend with basic auth (email + API token)."""

    def __init__(self, config: ProjectConfig, http: httpx.AsyncClient | None = None) -> None:
        self.config = config
        self._http = http or httpx.AsyncClient(
            base_url=config.base_url,
            auth=(config.email, config.api_token),
            headers={"Accept": "application/json"},
            timeout=30.0,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        response = await self._http.request(method, endpoint, params=params, json=json)
        if response.status_code >= 400:
            details = _error_details(response)
            logger.error(f"{response.status_code} at {endpoint}")
            message = f"Jira API error: {response.status_code} {response.reason_phrase}"
            if details:
                message += f" - {details}"
            raise JiraAPIError(response.status_code, message)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    # --- Sprints ---

    async def list_sprints(self, state: str = "all", max_results: int = 10) -> list[Sprint]:
        params: dict[str, Any] = {"maxResults": 200}
        if state != "all":
            params["state"] = state
        data = await self._request(
            "GET", f"/rest/agile/1.0/board/{self.config.board_id}/sprint", params=params
        )
        sprints = [Sprint.from_api(raw) for raw in data.get("values") or []]
        sprints.sort(key=lambda s: s.id, reverse=True)
        return sprints[:max_results]

    async def get_sprint_issues(
        self, sprint_id: int, story_points_field: str | None = None
    ) -> list[Issue]:
        fields = ["summary", "status", "issuetype", "assignee"]
        if story_points_field:
            fields.append(story_points_field)

        raw_issues: list[dict[str, Any]] = []
        start_at = 0
        while True:
            data = await self._request(
                "GET",
                f"/rest/agile/1.0/sprint/{sprint_id}/issue",
                params={
                    "fields": ",".join(fields),
                    "maxResults": SPRINT_PAGE_SIZE,
                    "startAt": start_at,
                },
            )
            page = data.get("issues") or []
            raw_issues.extend(page)
            start_at += len(page)
            if not page or start_at >= int(data.get("total") or 0):
                break

        return [Issue.from_api(raw, story_points_field) for raw in raw_issues]

    async def move_issues_to_sprint(self, sprint_id: int, issue_keys: list[str]) -> None:
        await self._request(
            "POST", f"/rest/agile/1.0/sprint/{sprint_id}/issue", json={"issues": issue_keys}
        )

    # --- Metadata ---

    async def get_fields(self) -> list[JiraField]:
        data = await self._request("GET", "/rest/api/3/field")
        return [JiraField.from_api(raw) for raw in data or []]

    async def get_versions(self) -> list[dict[str, Any]]:
        data = await self._request(
            "GET", f"/rest/api/3/project/{self.config.project_key}/versions"
        )
        return [
            {
                "id": str(raw.get("id")),
                "name": raw.get("name") or "",
                "released": bool(raw.get("released")),
                "archived": bool(raw.get("archived")),
            }
            for raw in data or []
        ]

    async def get_components(self) -> list[str]:
        data = await self._request(
            "GET", f"/rest/api/3/project/{self.config.project_key}/components"
        )
        return [raw.get("name") or "" for raw in data or []]

    async def get_priorities(self) -> list[str]:
        data = await self._request("GET", "/rest/api/3/priority")
        return [raw.get("name") or "" for raw in data or []]

    async def get_account_id(self, email: str) -> str:
        data = await self._request("GET", "/rest/api/3/user/search", params={"query": email})
        if not data:
            raise JiraAPIError(404, f"User not found: {email}")
        return str(data[0]["accountId"])

    # --- Issues ---

    async def get_issue(
        self, issue_key: str, story_points_field: str | None = None
    ) -> dict[str, Any]:
        fields = ["summary", "description", "status", "assignee", "issuetype", "comment"]
        if story_points_field:
            fields.append(story_points_field)
        data = await self._request(
            "GET", f"/rest/api/3/issue/{issue_key}", params={"fields": ",".join(fields)}
        )
        issue = Issue.from_api(data, story_points_field)
        raw_fields = data.get("fields") or {}
        comments = (raw_fields.get("comment") or {}).get("comments") or []
        return {
            "key": issue.key,
            "summary": issue.summary,
            "description": extract_text_from_adf(raw_fields.get("description")) or None,
            "status": issue.status,
            "assignee": issue.assignee,
            "assignee_display_name": issue.assignee_display_name,
            "story_points": issue.story_points,
            "issue_type": issue.issue_type,
            "comments": [
                {
                    "author": (c.get("author") or {}).get("displayName") or "Unknown",
                    "body": extract_text_from_adf(c.get("body")),
                    "created": c.get("created"),
                }
                for c in comments
            ],
        }

    async def bulk_create(self, issue_fields: list[dict[str, Any]]) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/rest/api/3/issue/bulk",
            json={"issueUpdates": [{"fields": fields} for fields in issue_fields]},
        )

    async def update_issue(self, issue_key: str, fields: dict[str, Any]) -> None:
        await self._request("PUT", f"/rest/api/3/issue/{issue_key}", json={"fields": fields})

    async def get_transitions(self, issue_key: str) -> list[dict[str, str]]:
        data = await self._request("GET", f"/rest/api/3/issue/{issue_key}/transitions")
        return [
            {"id": str(t.get("id")), "name": str(t.get("name") or "")}
            for t in data.get("transitions") or []
        ]

    async def transition_issue(self, issue_key: str, transition_id: str) -> None:
        await self._request(
            "POST",
            f"/rest/api/3/issue/{issue_key}/transitions",
            json={"transition": {"id": transition_id}},
        )

    # --- Epics & Board ---

    async def _search(
        self, jql: str, fields: list[str], limit: int | None = None
    ) -> list[dict[str, Any]]:
        """Enhanced JQL search, following nextPageToken until the last page or limit."""
        raw_issues: list[dict[str, Any]] = []
        next_page_token: str | None = None
        while True:
            body: dict[str, Any] = {"jql": jql, "fields": fields, "maxResults": EPIC_PAGE_SIZE}
            if next_page_token:
                body["nextPageToken"] = next_page_token
            data = await self._request("POST", "/rest/api/3/search/jql", json=body)
            page = data.get("issues") or []
            raw_issues.extend(page)

            next_page_token = data.get("nextPageToken")
            if limit is not None and len(raw_issues) >= limit:
                return raw_issues[:limit]
            if data.get("isLast", True) or not page or not next_page_token:
                return raw_issues

    async def list_epics(
        self, statuses: list[str] | None = None, limit: int = EPIC_LIMIT
    ) -> list[Epic]:
        jql = f"project = {self.config.project_key} AND issuetype = Epic"
        if statuses:
            jql += f" AND status IN ({', '.join(_jql_quote(s) for s in statuses)})"
        jql += " ORDER BY created DESC"
        raw = await self._search(jql, ["summary", "status", "assignee"], limit)
        return [Epic.from_api(r) for r in raw]

    async def get_epic_children(
        self, epic_key: str, story_points_field: str | None = None, include_subtasks: bool = False
    ) -> list[Issue]:
        # "Epic Link" covers company-managed projects, parent covers team-managed ones
        jql = f'parent = {epic_key} OR "Epic Link" = {epic_key}'
        if not include_subtasks:
            jql = f"({jql}) AND issuetype != Sub-task"
        fields = ["summary", "status", "assignee", "issuetype"]
        if story_points_field:
            fields.append(story_points_field)
        raw = await self._search(jql, fields)
        return [Issue.from_api(r, story_points_field) for r in raw]

    async def get_board_columns(self) -> list[BoardColumn]:
        """Board columns in display order, with status ids mapped to names."""
        board, statuses = await asyncio.gather(
            self._request("GET", f"/rest/agile/1.0/board/{self.config.board_id}/configuration"),
            self._request("GET", "/rest/api/3/status"),
        )
        names = {str(s.get("id")): str(s.get("name") or "") for s in statuses or []}
        columns = (board.get("columnConfig") or {}).get("columns") or []
        return [
            BoardColumn(
                name=str(column.get("name") or ""),
                statuses=tuple(
                    names.get(str(s.get("id")), str(s.get("id"))) for s in column.get("statuses") or []
                ),
            )
            for column in columns
        ]

    # --- Activity ---

    async def _changelog(self, issue_key: str) -> list[dict[str, Any]]:
        data = await self._request(
            "GET", f"/rest/api/3/issue/{issue_key}/changelog", params={"maxResults": 100}
        )
        return data.get("values") or []

    async def get_status_changes(
        self, sprint_ids: list[int], since: datetime, story_points_field: str | None = None
    ) -> list[StatusChange]:
        """Changelog items for issues in the given sprints updated since a date."""
        sprint_clause = " OR ".join(f"sprint = {sid}" for sid in sprint_ids)
        jql = f'({sprint_clause}) AND updated >= "{since.strftime("%Y-%m-%d")}" ORDER BY updated DESC'
        fields = ["summary", "assignee"]
        if story_points_field:
            fields.append(story_points_field)

        changes: list[StatusChange] = []
        next_page_token: str | None = None
        while True:
            body: dict[str, Any] = {"jql": jql, "fields": fields, "maxResults": SEARCH_PAGE_SIZE}
            if next_page_token:
                body["nextPageToken"] = next_page_token
            data = await self._request("POST", "/rest/api/3/search/jql", json=body)
            issues = data.get("issues") or []

            histories = await asyncio.gather(
                *(self._changelog(raw["key"]) for raw in issues), return_exceptions=True
            )
            for raw, history in zip(issues, histories):
                if isinstance(history, BaseException):
                    logger.warning(f"Failed to get changelog for {raw['key']}: {history}")
                    continue
                changes.extend(_changes_for(raw, history, since, story_points_field))

            next_page_token = data.get("nextPageToken")
            if data.get("isLast", True) or not issues or not next_page_token:
                break
        return changes


def _parse_timestamp(value: str) -> datetime | None:
    # Jira writes offsets as +0000; fromisoformat wants +00:00
    fixed = re.sub(r"([+-]\d{2})(\d{2})$", r"\1:\2", value)
    try:
        return datetime.fromisoformat(fixed)
    except ValueError:
        return None


def _changes_for(
    raw: dict[str, Any],
    histories: list[dict[str, Any]],
    since: datetime,
    story_points_field: str | None,
) -> list[StatusChange]:
    issue = Issue.from_api(raw, story_points_field)
    out: list[StatusChange] = []
    for history in histories:
        created = str(history.get("created") or "")
        when = _parse_timestamp(created)
        if when is None:
            continue
        cutoff = since if since.tzinfo else since.astimezone()
        if when < cutoff:
            continue
        author = (history.get("author") or {}).get("displayName") or "Unknown"
        for item in history.get("items") or []:
            out.append(StatusChange(
                issue_key=issue.key,
                summary=issue.summary,
                field=str(item.get("field") or ""),
                from_value=item.get("fromString") or None,
                to_value=item.get("toString") or None,
                changed_by=author,
                changed_at=created,
                assignee=issue.assignee_display_name,
                story_points=issue.story_points,
            ))
    return out
