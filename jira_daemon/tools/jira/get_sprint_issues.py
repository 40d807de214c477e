"""
Sprint issues tool.

Fetches every issue of the requested sprints concurrently, then narrows them
with the assignee/status/keyword/points filters. The flattened result is
remembered on the context so analyze_cached_data can answer follow-ups.
"""

from __future__ import annotations

import asyncio
from typing import Any

from ...errors import ToolValidationError
from ...jira.filters import (
    apply_filters,
    assignee_filter,
    keyword_filter,
    natural_key,
    points_filter,
    status_filter,
)
from ...jira.models import Issue
from ...jira.resolvers import normalize_to_list, parse_int_list, resolve_email, validate_sprint_ids
from ..base import tool
from ..context import ToolContext


def _number(value: Any) -> float | None:
    if value is None or value == "":
        return None
    return float(value)


@tool(
    name="get_sprint_issues",
    description="""Get issues from sprints with filtering.

Examples:
- get_sprint_issues(sprint_ids: [9887]) - all issues
- get_sprint_issues(sprint_ids: [9887], status_filters: ["Done"]) - done tasks
- get_sprint_issues(sprint_ids: [9887], status_filters: ["UI Review"]) - in UI review
- get_sprint_issues(sprint_ids: [9887], include_breakdown: true) - with breakdown chart

Returns: { total_issues, total_story_points, sprints: { "Sprint Name": { issues: [...] } } }""",
    brief="Issues in sprints, filtered by assignee, status, keyword or story points.",
    parameters={
        "type": "object",
        "properties": {
            "sprint_ids": {
                "type": "array",
                "items": {"type": "number"},
                "description": "Sprint IDs from AVAILABLE SPRINTS in prompt",
            },
            "assignees": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Filter by assignee name(s) or email(s)",
            },
            "status_filters": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Filter by status names from AVAILABLE STATUSES (e.g. 'Done', 'UI Review', 'In QA')",
            },
            "keyword": {"type": "string", "description": "Filter by keyword in summary"},
            "min_story_points": {"type": "number", "description": "Only issues with at least this many points"},
            "max_story_points": {"type": "number", "description": "Only issues with at most this many points"},
            "include_breakdown": {
                "type": "boolean",
                "description": "Show assignee breakdown chart (for productivity questions)",
            },
        },
        "required": ["sprint_ids"],
    },
    aliases={"sprint_ids": ("sprint_id",)},
)
async def get_sprint_issues(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    sprint_ids = parse_int_list(args.get("sprint_ids", args.get("sprint_id")))
    assignees = normalize_to_list(args.get("assignees", args.get("assignee")))
    assignee_emails = normalize_to_list(args.get("assignee_emails", args.get("assignee_email")))
    statuses = normalize_to_list(
        args.get("status_filters", args.get("status", args.get("statuses")))
    )
    keyword = args.get("keyword") or None
    min_points = _number(args.get("min_story_points"))
    max_points = _number(args.get("max_story_points"))

    if not sprint_ids:
        raise ToolValidationError("sprint_ids is required")

    entry = await ctx.metadata()
    validate_sprint_ids(sprint_ids, entry.sprints)

    names = assignees or assignee_emails
    emails = [resolve_email(str(n), entry.team_members) for n in names] if names else None

    filters = [
        assignee_filter(emails),
        status_filter([str(s) for s in statuses] if statuses else None),
        keyword_filter(keyword),
        points_filter(min_points, max_points),
    ]

    fetched = await asyncio.gather(
        *(ctx.backend.get_sprint_issues(sid, entry.story_points_field) for sid in sprint_ids)
    )

    base_url = ctx.config.base_url
    sprints: dict[str, dict[str, Any]] = {}
    flat: list[dict[str, Any]] = []
    total_points = 0.0
    for sprint_id, issues in zip(sprint_ids, fetched):
        kept: list[Issue] = sorted(apply_filters(issues, filters), key=lambda i: natural_key(i.key))
        rows = [
            {
                "key": i.key,
                "key_link": f"[{i.key}]({base_url}/browse/{i.key})",
                "summary": i.summary,
                "status": i.status,
                "assignee": i.assignee,
                "story_points": i.story_points,
            }
            for i in kept
        ]
        total_points += sum(i.story_points or 0 for i in kept)
        sprints[entry.sprint_name(sprint_id)] = {"issue_count": len(rows), "issues": rows}
        flat.extend(rows)

    ctx.remember_issues(flat, ", ".join(sprints) or None)

    return {
        "total_issues": len(flat),
        "total_story_points": _clean(total_points),
        "filters_applied": {
            "sprint_ids": sprint_ids,
            "assignees": emails,
            "status_filters": statuses,
            "keyword": keyword,
            "min_story_points": min_points,
            "max_story_points": max_points,
        },
        "sprints": sprints,
    }


def _clean(value: float) -> float | int:
    return int(value) if float(value).is_integer() else value


TOOL = get_sprint_issues
