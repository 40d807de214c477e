"""
Epic progress and sprint board reports.

Both are read-only views assembled from the JiraBackend: an epic with its
child issues rolled up by status, and the active sprint laid out in the
board's own column order.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Sequence

from ..errors import ToolValidationError
from .client import EPIC_LIMIT, JiraBackend
from .filters import natural_key
from .models import BoardColumn, Issue, Sprint
from .retry import with_retry

logger = logging.getLogger("jira.reports")

DONE_CATEGORY = "done"

# (substrings, completion share); first match wins, done category is always 1.0
_STATUS_WEIGHTS: tuple[tuple[tuple[str, ...], float], ...] = (
    (("uat", "user acceptance testing", "qa in progress"), 0.75),
    (("ready for qa", "ready for testing", "qa ready"), 0.5),
    (("in progress", "inprogress", "in development"), 0.5),
    (("ready to develop", "ready for development"), 0.25),
)


def key_link(base_url: str, key: str) -> str:
    return f"[{key}]({base_url}/browse/{key})"


def status_completion(status: str, category: str | None) -> float:
    """Share of an issue's points counted as delivered in its current status."""
    if category == DONE_CATEGORY:
        return 1.0
    name = status.lower().strip()
    for needles, weight in _STATUS_WEIGHTS:
        if any(n in name for n in needles):
            return weight
    return 0.0


def _number(value: float) -> float | int:
    value = round(value, 2)
    return int(value) if float(value).is_integer() else value


def _points(issues: Sequence[Issue]) -> float | int:
    return _number(sum(i.story_points or 0 for i in issues))


# --- Epics ---


async def epic_list(
    backend: JiraBackend, statuses: list[str] | None = None, limit: int = EPIC_LIMIT
) -> dict[str, Any]:
    epics = await backend.list_epics(statuses or None, limit)
    base_url = backend.config.base_url
    return {
        "total_epics": len(epics),
        "epics": [
            {
                "key": e.key,
                "key_link": key_link(base_url, e.key),
                "summary": e.summary,
                "status": e.status,
                "assignee": e.assignee,
            }
            for e in epics
        ],
    }


def summarize_epic(epic: dict[str, Any], children: Sequence[Issue], base_url: str) -> dict[str, Any]:
    """
    Roll child issues up into progress numbers and a per-status breakdown.

    percent_by_count counts only done-category issues. completed_story_points
    and percent_by_points weight each issue's points by status_completion, so
    an issue in UAT contributes three quarters of its estimate.
    """
    total_points = sum(i.story_points or 0 for i in children)
    weighted = sum((i.story_points or 0) * status_completion(i.status, i.status_category) for i in children)
    completed = sum(1 for i in children if i.status_category == DONE_CATEGORY)

    grouped: dict[str, list[Issue]] = {}
    for issue in children:
        grouped.setdefault(issue.status, []).append(issue)

    breakdown = {
        status: {
            "count": len(issues),
            "story_points": _points(issues),
            "issues": [
                {
                    "key": i.key,
                    "key_link": key_link(base_url, i.key),
                    "summary": i.summary,
                    "status": i.status,
                    "assignee": i.assignee_display_name,
                    "story_points": i.story_points,
                    "issue_type": i.issue_type,
                }
                for i in sorted(issues, key=lambda i: natural_key(i.key))
            ],
        }
        for status, issues in grouped.items()
    }

    return {
        "epic": {
            "key": epic.get("key"),
            "key_link": key_link(base_url, str(epic.get("key"))),
            "summary": epic.get("summary"),
            "status": epic.get("status"),
            "assignee": epic.get("assignee_display_name"),
        },
        "progress": {
            "total_issues": len(children),
            "completed_issues": completed,
            "total_story_points": _number(total_points),
            "completed_story_points": _number(weighted),
            "percent_by_count": round(completed / len(children) * 100) if children else 0,
            "percent_by_points": round(weighted / total_points * 100) if total_points else 0,
        },
        "breakdown_by_status": breakdown,
    }


async def epic_progress(
    backend: JiraBackend,
    epic_key: str,
    story_points_field: str | None = None,
    include_subtasks: bool = False,
) -> dict[str, Any]:
    key = epic_key.strip().upper()
    if not key:
        raise ToolValidationError("epic_key is required")
    epic, children = await asyncio.gather(
        backend.get_issue(key, story_points_field),
        backend.get_epic_children(key, story_points_field, include_subtasks),
    )
    return summarize_epic(epic, children, backend.config.base_url)


async def epic_progress_many(
    backend: JiraBackend, epic_keys: Sequence[str], story_points_field: str | None = None
) -> dict[str, Any]:
    """Progress for several epics; each epic retries 429s and succeeds or fails on its own."""
    results = await asyncio.gather(
        *(with_retry(partial(epic_progress, backend, key, story_points_field)) for key in epic_keys),
        return_exceptions=True,
    )
    epics: list[dict[str, Any]] = []
    failed: list[dict[str, str]] = []
    for key, result in zip(epic_keys, results):
        if isinstance(result, BaseException):
            logger.warning(f"Failed to get progress for epic {key}: {result}")
            failed.append({"epic_key": key, "error": str(result) or "Unknown error"})
        else:
            epics.append(result)
    return {"total_epics": len(epics), "epics": epics, "failed": failed}


# --- Board ---


def _board_issue(issue: Issue, base_url: str) -> dict[str, Any]:
    return {
        "key": issue.key,
        "key_link": key_link(base_url, issue.key),
        "summary": issue.summary,
        "status": issue.status,
        "assignee": issue.assignee,
        "assignee_display_name": issue.assignee_display_name,
        "story_points": issue.story_points,
        "issue_type": issue.issue_type,
    }


def layout_board(
    sprint: Sprint, issues: Sequence[Issue], columns: Sequence[BoardColumn], base_url: str
) -> dict[str, Any]:
    """
    Place sprint issues into board columns.

    Statuses no column claims get a trailing column of their own, so every
    issue appears exactly once.
    """
    by_status: dict[str, list[Issue]] = {}
    for issue in issues:
        by_status.setdefault(issue.status, []).append(issue)

    def column(name: str, statuses: Sequence[str], members: list[Issue]) -> dict[str, Any]:
        members = sorted(members, key=lambda i: natural_key(i.key))
        return {
            "name": name,
            "statuses": list(statuses),
            "issues": [_board_issue(i, base_url) for i in members],
            "total_points": _points(members),
        }

    laid_out = []
    for board_column in columns:
        members: list[Issue] = []
        for status in board_column.statuses:
            members.extend(by_status.pop(status, []))
        laid_out.append(column(board_column.name, board_column.statuses, members))
    for status, members in by_status.items():
        laid_out.append(column(status, [status], members))

    return {
        "sprint_id": sprint.id,
        "sprint_name": sprint.name,
        "sprint_goal": sprint.goal,
        "start_date": sprint.start_date,
        "end_date": sprint.end_date,
        "columns": laid_out,
        "total_issues": len(issues),
        "total_points": _points(issues),
    }


async def sprint_board(
    backend: JiraBackend, sprint: Sprint, story_points_field: str | None = None
) -> dict[str, Any]:
    issues, columns = await asyncio.gather(
        backend.get_sprint_issues(sprint.id, story_points_field),
        backend.get_board_columns(),
    )
    return layout_board(sprint, issues, columns, backend.config.base_url)
