"""Single issue lookup, including description and comments."""

from __future__ import annotations

from typing import Any

from ..base import tool
from ..context import ToolContext


@tool(
    name="get_issue",
    description="""Get details of a specific issue by key, including comments.

Examples:
- get_issue(issue_key: "PROJ-1097") - get full details and comments

Returns: { key, summary, description, status, assignee, comments: [...] }""",
    brief="One issue by key, with description and comments.",
    parameters={
        "type": "object",
        "properties": {
            "issue_key": {"type": "string", "description": "The issue key (e.g. PROJ-1097)"},
        },
        "required": ["issue_key"],
    },
)
async def get_issue(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    entry = await ctx.metadata()
    key = str(args["issue_key"]).strip().upper()
    return await ctx.backend.get_issue(key, entry.story_points_field)


TOOL = get_issue
