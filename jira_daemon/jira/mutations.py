"""
Bulk create/update executor.

Create:
- assignees are resolved up front; one bad name fails the whole request
  before anything is written
- issues go to the bulk endpoint in batches of BULK_BATCH_SIZE
- each created issue is then moved to its sprint and transitioned; those
  follow-ups are best-effort and only logged on failure

Update:
- every issue is processed concurrently and settles on its own

Every input produces exactly one BulkOperationResult.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from ..config import BULK_BATCH_SIZE, DEFAULT_ISSUE_TYPE
from ..errors import ToolValidationError
from .cache import CacheEntry, MetadataCache
from .client import JiraBackend, build_description_field, normalize_parent_key
from .resolvers import resolve_email, resolve_sprint_id
from .retry import with_retry

logger = logging.getLogger("jira.executor")


# --- Results ---


@dataclass(frozen=True)
class BulkOperationResult:
    action: str  # "created" | "updated" | "error"
    key: str | None = None
    summary: str | None = None
    changes: tuple[str, ...] | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.action != "error"

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"action": self.action}
        if self.key is not None:
            out["key"] = self.key
        if self.summary is not None:
            out["summary"] = self.summary
        if self.changes is not None:
            out["changes"] = list(self.changes)
        if self.error is not None:
            out["error"] = self.error
        return out


@dataclass(frozen=True)
class BulkSummary:
    total: int
    succeeded: int
    failed: int
    results: tuple[BulkOperationResult, ...]

    @classmethod
    def of(cls, results: Sequence[BulkOperationResult]) -> BulkSummary:
        succeeded = sum(1 for r in results if r.ok)
        return cls(
            total=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
            results=tuple(results),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }


# --- Field builders (pure) ---


def _names(values: Any) -> list[dict[str, str]]:
    return [{"name": str(v)} for v in values]


def _has_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def build_issue_fields(
    issue: dict[str, Any],
    *,
    project_key: str,
    account_id: str | None,
    story_points_field: str | None,
) -> dict[str, Any]:
    """Jira `fields` payload for a new issue."""
    fields: dict[str, Any] = {
        "project": {"key": project_key},
        "summary": issue["summary"],
        "issuetype": {"name": issue.get("issue_type") or DEFAULT_ISSUE_TYPE},
    }
    if issue.get("description"):
        fields["description"] = build_description_field(str(issue["description"]))
    if account_id:
        fields["assignee"] = {"id": account_id}
    if issue.get("story_points") is not None and story_points_field:
        fields[story_points_field] = issue["story_points"]
    if issue.get("priority"):
        fields["priority"] = {"name": issue["priority"]}
    if issue.get("labels"):
        fields["labels"] = list(issue["labels"])
    if issue.get("fix_versions"):
        fields["fixVersions"] = _names(issue["fix_versions"])
    if issue.get("components"):
        fields["components"] = _names(issue["components"])
    if issue.get("due_date"):
        fields["duedate"] = issue["due_date"]
    if _has_text(issue.get("parent_key")):
        fields["parent"] = {"key": normalize_parent_key(issue["parent_key"])}
    return fields


def build_update_fields(
    issue: dict[str, Any],
    *,
    account_id: str | None,
    story_points_field: str | None,
) -> tuple[dict[str, Any], list[str]]:
    """Jira `fields` payload for an update, plus human-readable change notes."""
    fields: dict[str, Any] = {}
    changes: list[str] = []

    if issue.get("summary"):
        fields["summary"] = issue["summary"]
        changes.append(f'summary → "{issue["summary"]}"')
    if issue.get("description"):
        fields["description"] = build_description_field(str(issue["description"]))
        changes.append("description updated")
    if account_id:
        fields["assignee"] = {"id": account_id}
    if issue.get("story_points") is not None:
        if story_points_field:
            fields[story_points_field] = issue["story_points"]
            changes.append(f"points → {issue['story_points']}")
        else:
            logger.warning(f"No story points field; skipping points for {issue.get('issue_key')}")
    if issue.get("priority"):
        fields["priority"] = {"name": issue["priority"]}
        changes.append(f"priority → {issue['priority']}")
    if issue.get("labels") is not None:
        fields["labels"] = list(issue["labels"])
        changes.append(f"labels → [{', '.join(issue['labels'])}]")
    if issue.get("fix_versions") is not None:
        fields["fixVersions"] = _names(issue["fix_versions"])
        changes.append(f"fixVersions → [{', '.join(issue['fix_versions'])}]")
    if issue.get("components") is not None:
        fields["components"] = _names(issue["components"])
        changes.append(f"components → [{', '.join(issue['components'])}]")
    if issue.get("due_date"):
        fields["duedate"] = issue["due_date"]
        changes.append(f"dueDate → {issue['due_date']}")
    if _has_text(issue.get("parent_key")):
        fields["parent"] = {"key": normalize_parent_key(issue["parent_key"])}
        changes.append(f"parent → {normalize_parent_key(issue['parent_key'])}")
    return fields, changes


def _bulk_error_text(error: dict[str, Any]) -> str:
    element = error.get("elementErrors") or {}
    parts = [f"{k}: {v}" for k, v in (element.get("errors") or {}).items()]
    parts.extend(str(m) for m in element.get("errorMessages") or [])
    return ", ".join(parts) or f"Jira rejected the issue (status {error.get('status', '?')})"


def map_bulk_response(
    batch: Sequence[dict[str, Any]], response: dict[str, Any]
) -> list[BulkOperationResult]:
    """
    Pair a bulk-create response with its inputs.

    Failed elements are reported by index; created issues come back in input
    order for the remaining elements.
    """
    failures: dict[int, str] = {}
    for error in response.get("errors") or []:
        index = error.get("failedElementNumber")
        if isinstance(index, int) and 0 <= index < len(batch):
            failures[index] = _bulk_error_text(error)

    created = iter(response.get("issues") or [])
    results: list[BulkOperationResult] = []
    for index, issue in enumerate(batch):
        summary = issue.get("summary")
        if index in failures:
            results.append(BulkOperationResult("error", summary=summary, error=failures[index]))
            continue
        made = next(created, None)
        if made is None or not made.get("key"):
            results.append(BulkOperationResult("error", summary=summary, error="Unknown error"))
        else:
            results.append(BulkOperationResult("created", key=made["key"], summary=summary))
    return results


# --- Transitions ---


async def transition_if_needed(
    backend: JiraBackend,
    issue_key: str,
    target_status: str | None,
    current_status: str | None = None,
) -> str:
    """Move an issue to target_status by transition name; returns the resulting status."""
    if not target_status:
        return current_status or "Backlog"
    target = target_status.lower()
    if target == "backlog":
        return "Backlog"
    if current_status and current_status.lower() == target:
        return current_status

    transitions = await backend.get_transitions(issue_key)
    match = next((t for t in transitions if t["name"].lower() == target), None)
    if match is None:
        available = ", ".join(t["name"] for t in transitions)
        raise ToolValidationError(f'Cannot transition to "{target_status}". Available: {available}')

    await backend.transition_issue(issue_key, match["id"])
    return match["name"]


# --- Executor ---


Sleep = Callable[[float], Awaitable[Any]]


class MutationExecutor:
    """Runs create_issues / update_issues for one project."""

    def __init__(
        self,
        backend: JiraBackend,
        cache: MetadataCache,
        *,
        batch_size: int = BULK_BATCH_SIZE,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._cache = cache
        self._batch_size = batch_size
        self._sleep = sleep

    @property
    def config_id(self) -> str:
        return self._backend.config.id

    async def _retry(self, fn: Callable[[], Awaitable[Any]]) -> Any:
        return await with_retry(fn, sleep=self._sleep)

    async def _account_ids(self, names: set[str], entry: CacheEntry) -> dict[str, str]:
        """name -> Jira account id; raises on the first unresolvable name."""
        emails = {name: resolve_email(name, entry.team_members, strict=True) for name in names}
        unique = sorted(set(emails.values()))
        ids = await asyncio.gather(*(self._backend.get_account_id(e) for e in unique))
        by_email = dict(zip(unique, ids))
        return {name: by_email[email] for name, email in emails.items()}

    # --- Create ---

    async def create_issues(self, issues: Sequence[dict[str, Any]]) -> BulkSummary:
        if not issues:
            raise ToolValidationError("issues array is required and cannot be empty")

        entry = await self._cache.get(self.config_id)
        names = {str(i["assignee"]) for i in issues if i.get("assignee")}
        account_ids = await self._account_ids(names, entry)

        results: list[BulkOperationResult | None] = [None] * len(issues)
        submit: list[int] = []
        for index, issue in enumerate(issues):
            if _has_text(issue.get("summary")):
                submit.append(index)
            else:
                results[index] = BulkOperationResult("error", error="summary is required")

        for start in range(0, len(submit), self._batch_size):
            indices = submit[start:start + self._batch_size]
            batch = [issues[i] for i in indices]
            payload = [
                build_issue_fields(
                    issue,
                    project_key=self._backend.config.project_key,
                    account_id=account_ids.get(str(issue.get("assignee"))) if issue.get("assignee") else None,
                    story_points_field=entry.story_points_field,
                )
                for issue in batch
            ]
            try:
                response = await self._retry(lambda: self._backend.bulk_create(payload))
                batch_results = map_bulk_response(batch, response)
            except Exception as e:
                logger.error(f"Bulk create batch of {len(batch)} failed: {e}")
                batch_results = [
                    BulkOperationResult("error", summary=issue.get("summary"), error=str(e))
                    for issue in batch
                ]
            for index, result in zip(indices, batch_results):
                results[index] = result

        follow_ups = [
            self._after_create(result.key, issues[index], entry)
            for index, result in enumerate(results)
            if result is not None and result.ok and result.key
        ]
        await asyncio.gather(*follow_ups)

        final = [r for r in results if r is not None]
        summary = BulkSummary.of(final)
        logger.info(f"Created {summary.succeeded}/{summary.total} issues ({summary.failed} failed)")
        return summary

    async def _after_create(self, key: str, issue: dict[str, Any], entry: CacheEntry) -> None:
        active = entry.active_sprint
        target: int | None = active.id if active else None
        if issue.get("sprint_id") is not None:
            try:
                target = resolve_sprint_id(issue["sprint_id"], entry.sprints)
            except ToolValidationError as e:
                logger.warning(f"Failed to resolve sprint for {key}: {e}; using active sprint")

        if target is not None:
            sprint_id = target
            try:
                await self._retry(lambda: self._backend.move_issues_to_sprint(sprint_id, [key]))
            except Exception as e:
                logger.warning(f"Failed to move {key} to sprint {sprint_id}: {e}")

        status = issue.get("status")
        if status and status != "Backlog":
            try:
                await self._retry(lambda: transition_if_needed(self._backend, key, status))
            except Exception as e:
                logger.warning(f'Failed to transition {key} to "{status}": {e}')

    # --- Update ---

    async def update_issues(self, issues: Sequence[dict[str, Any]]) -> BulkSummary:
        if not issues:
            raise ToolValidationError("issues array is required and cannot be empty")

        entry = await self._cache.get(self.config_id)
        results = await asyncio.gather(
            *(self._update_one(issue, entry) for issue in issues), return_exceptions=True
        )

        final: list[BulkOperationResult] = []
        for issue, result in zip(issues, results):
            if isinstance(result, BaseException):
                final.append(BulkOperationResult(
                    "error", key=issue.get("issue_key"), error=str(result) or "Unknown error"
                ))
            else:
                final.append(result)

        summary = BulkSummary.of(final)
        logger.info(f"Updated {summary.succeeded}/{summary.total} issues ({summary.failed} failed)")
        return summary

    async def _update_one(self, issue: dict[str, Any], entry: CacheEntry) -> BulkOperationResult:
        key = issue.get("issue_key")
        if not _has_text(key):
            return BulkOperationResult("error", error="issue_key is required")

        try:
            changes: list[str] = []
            account_id: str | None = None
            if issue.get("assignee"):
                email = resolve_email(str(issue["assignee"]), entry.team_members, strict=True)
                account_id = await self._backend.get_account_id(email)
                changes.append(f"assignee → {issue['assignee']}")

            fields, field_changes = build_update_fields(
                issue, account_id=account_id, story_points_field=entry.story_points_field
            )
            if fields:
                await self._retry(lambda: self._backend.update_issue(key, fields))
                changes.extend(field_changes)

            if issue.get("sprint_id") is not None:
                sprint_id = resolve_sprint_id(issue["sprint_id"], entry.sprints)
                await self._retry(lambda: self._backend.move_issues_to_sprint(sprint_id, [key]))
                changes.append(f"sprint → {entry.sprint_name(sprint_id)}")

            if issue.get("status"):
                new_status = await self._retry(
                    lambda: transition_if_needed(self._backend, key, issue["status"])
                )
                changes.append(f"status → {new_status}")
        except Exception as e:
            logger.warning(f"Update of {key} failed: {e}")
            return BulkOperationResult("error", key=key, error=str(e) or "Unknown error")

        return BulkOperationResult("updated", key=key, changes=tuple(changes))
