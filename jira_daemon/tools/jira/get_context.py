"""Team, status and field-option discovery from the metadata cache."""

from __future__ import annotations

from typing import Any

from ..base import tool
from ..context import ToolContext


@tool(
    name="get_context",
    description="""Get team members, statuses, priorities, versions, and components. Call to discover available field options.

Returns: { team_members: [...], statuses: [...], priorities: [...], versions: [...], components: [...] }""",
    brief="Team members, statuses, priorities, versions and components.",
    parameters={"type": "object", "properties": {}, "required": []},
)
async def get_context(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    entry = await ctx.metadata()
    return {
        "team_members": [m.name for m in entry.team_members],
        "statuses": list(entry.statuses),
        "priorities": list(entry.priorities),
        "versions": list(entry.versions),
        "components": list(entry.components),
    }


TOOL = get_context
