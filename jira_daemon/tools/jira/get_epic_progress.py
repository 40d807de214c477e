"""Epic progress tool: child issues rolled up by status with weighted completion."""

from __future__ import annotations

from typing import Any

from ...jira.reports import epic_progress
from ..base import tool
from ..context import ToolContext


@tool(
    name="get_epic_progress",
    description="""Get completion of an epic from its child issues.

Examples:
- get_epic_progress(epic_key: "PROJ-500")
- get_epic_progress(epic_key: "PROJ-500", include_subtasks: true)

Points in UAT count 75%, ready for QA or in progress 50%, ready to develop 25%.

Returns: { epic, progress: { total_issues, completed_issues, total_story_points,
completed_story_points, percent_by_count, percent_by_points }, breakdown_by_status }""",
    brief="Completion of one epic from its child issues.",
    parameters={
        "type": "object",
        "properties": {
            "epic_key": {"type": "string", "description": "The epic key (e.g. PROJ-500)"},
            "include_subtasks": {"type": "boolean", "description": "Count sub-tasks too (default: false)"},
        },
        "required": ["epic_key"],
    },
)
async def get_epic_progress(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    entry = await ctx.metadata()
    return await epic_progress(
        ctx.backend,
        str(args["epic_key"]),
        entry.story_points_field,
        include_subtasks=bool(args.get("include_subtasks")),
    )


TOOL = get_epic_progress
