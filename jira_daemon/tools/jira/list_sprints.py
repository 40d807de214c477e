"""
List sprints tool.

Active and closed sprints come from the metadata cache; future sprints are
not cached and are fetched live.
"""

from __future__ import annotations

from typing import Any

from ...config import SPRINT_LIMIT
from ..base import tool
from ..context import ToolContext

HINT = (
    "Use the 'id' number (e.g., 9887) when calling get_sprint_issues. "
    "When user says 'sprint 24', find 'Sprint 24' above and use its id."
)


@tool(
    name="list_sprints",
    description="""Get available sprints with their IDs. Call this FIRST when user mentions sprints.

Returns: { sprints: [{ id: 9887, name: "Sprint 24", state: "active" }, ...], hint: "..." }

IMPORTANT: The 'id' is a 4-5 digit number (e.g., 9887). Use this ID when calling get_sprint_issues.
When user says "sprint 24", find "Sprint 24" in the results and use its id (e.g., 9887).""",
    brief="List sprints with their IDs (state: active, closed, future, all).",
    parameters={
        "type": "object",
        "properties": {
            "state": {
                "type": "string",
                "description": "Filter: 'active', 'closed', 'future' or 'all' (default: 'all')",
            },
            "limit": {"type": "number", "description": f"Max sprints (default: {SPRINT_LIMIT})"},
        },
        "required": [],
    },
)
async def list_sprints(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    state = str(args.get("state") or "all").lower()
    limit = int(args.get("limit") or SPRINT_LIMIT)

    if state == "future":
        sprints = await ctx.backend.list_sprints("future", limit)
    else:
        entry = await ctx.metadata()
        sprints = [s for s in entry.sprints if state == "all" or s.state == state][:limit]

    return {
        "sprints": [{"id": s.id, "name": s.name, "state": s.state} for s in sprints],
        "hint": HINT,
    }


TOOL = list_sprints
