"""
Status-change activity tool.

Walks the changelog of every issue in the sprints that changed since a date
and keeps only status transitions, newest first.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from ...errors import ToolValidationError
from ...jira.resolvers import (
    normalize_to_list,
    parse_int_list,
    parse_since_date,
    resolve_email,
    validate_sprint_ids,
)
from ..base import tool
from ..context import ToolContext


def _matches_assignee(issue_assignee: str | None, wanted: list[str]) -> bool:
    if not issue_assignee:
        return True
    actual = issue_assignee.lower()
    return any(w in actual or actual in w for w in wanted)


@tool(
    name="get_activity",
    description="""Get status changes for issues in a sprint since a date.

Examples:
- get_activity(since: "2025-12-31") - changes today in active sprint
- get_activity(sprint_ids: [3625], since: "2025-12-23") - changes since Dec 23
- get_activity(since: "2025-12-01", to_status: "Done") - what moved to Done
- get_activity(since: "2025-12-20", assignees: ["John Doe"]) - John's changes

Returns: { period, changes: [{issue_key, summary, field, from, to, changed_by, changed_at}] }""",
    brief="Status changes since a date (optionally per sprint, target status, assignee).",
    parameters={
        "type": "object",
        "properties": {
            "sprint_ids": {
                "type": "array",
                "items": {"type": "number"},
                "description": "Sprint IDs (defaults to active sprint if not provided)",
            },
            "since": {
                "type": "string",
                "description": "Start date in ISO format: 'YYYY-MM-DD' (e.g. '2024-12-23')",
            },
            "until": {"type": "string", "description": "End date 'YYYY-MM-DD' (default: now)"},
            "to_status": {
                "type": "string",
                "description": "Filter: only show changes TO this status (e.g. 'Done')",
            },
            "assignees": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Filter by assignee names (from TEAM MEMBERS)",
            },
        },
        "required": ["since"],
    },
)
async def get_activity(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    since_text = args.get("since")
    if not since_text:
        raise ToolValidationError("since is required (use YYYY-MM-DD format)")

    entry = await ctx.metadata()
    sprint_ids = parse_int_list(args.get("sprint_ids")) or []
    if sprint_ids:
        validate_sprint_ids(sprint_ids, entry.sprints)
    else:
        active = entry.active_sprint
        if active is None:
            raise ToolValidationError("No active sprint. Pass sprint_ids from AVAILABLE SPRINTS.")
        sprint_ids = [active.id]

    since = parse_since_date(str(since_text))
    until = parse_since_date(str(args["until"])) if args.get("until") else datetime.now().astimezone()
    if args.get("until") and until.hour == 0 and until.minute == 0:
        # a bare date means through the end of that day
        until = until.replace(hour=23, minute=59, second=59)
    to_status = args.get("to_status") or None
    assignees = normalize_to_list(args.get("assignees", args.get("assignee")))

    wanted: list[str] | None = None
    if assignees:
        # changelog issues carry display names; match on either the email or the name typed
        wanted = []
        for name in assignees:
            wanted.append(resolve_email(str(name), entry.team_members))
            wanted.append(str(name).lower())

    raw_changes = await ctx.backend.get_status_changes(sprint_ids, since, entry.story_points_field)

    changes = []
    for change in raw_changes:
        if change.field.lower() != "status":
            continue
        if to_status and (change.to_value or "").lower() != str(to_status).lower():
            continue
        if wanted is not None and not _matches_assignee(change.assignee, wanted):
            continue
        when = _when(change.changed_at)
        if when is not None and when > until:
            continue
        changes.append(change)

    changes.sort(key=lambda c: _when(c.changed_at) or since, reverse=True)

    return {
        "period": {"since": since.strftime("%Y-%m-%d"), "until": until.strftime("%Y-%m-%d")},
        "filters_applied": {
            "sprint_ids": sprint_ids,
            "to_status": to_status,
            "assignees": assignees,
        },
        "total_changes": len(changes),
        "changes": [c.to_dict() for c in changes],
    }


def _when(text: str) -> datetime | None:
    try:
        return parse_since_date(text.replace("+0000", "+00:00") if text.endswith("+0000") else text)
    except ToolValidationError:
        return None


TOOL = get_activity
