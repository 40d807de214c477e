"""List epics tool."""

from __future__ import annotations

from typing import Any

from ...jira.client import EPIC_LIMIT
from ...jira.reports import epic_list
from ...jira.resolvers import normalize_to_list
from ..base import tool
from ..context import ToolContext


@tool(
    name="list_epics",
    description="""List epics in the project, newest first.

Examples:
- list_epics() - every epic
- list_epics(status: ["In Progress"]) - only open epics

Returns: { total_epics, epics: [{ key, key_link, summary, status, assignee }] }""",
    brief="List project epics, optionally by status.",
    parameters={
        "type": "object",
        "properties": {
            "status": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Only epics in these statuses",
            },
            "limit": {"type": "number", "description": f"Max epics (default: {EPIC_LIMIT})"},
        },
        "required": [],
    },
)
async def list_epics(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    statuses = normalize_to_list(args.get("status"))
    return await epic_list(ctx.backend, statuses, int(args.get("limit") or EPIC_LIMIT))


TOOL = list_epics
