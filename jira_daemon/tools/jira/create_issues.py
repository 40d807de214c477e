"""Bulk issue creation. Never runs inside the reasoning loop; see Orchestrator."""

from __future__ import annotations

from typing import Any

from ..base import tool
from ..context import ToolContext

ISSUE_PROPERTIES: dict[str, Any] = {
    "summary": {"type": "string", "description": "Issue title (required)"},
    "description": {"type": "string", "description": "Issue description"},
    "issue_type": {"type": "string", "description": "Story (default) or Bug"},
    "assignee": {"type": "string", "description": "Assignee name from TEAM MEMBERS"},
    "sprint_id": {
        "type": "number",
        "description": "Sprint ID from AVAILABLE SPRINTS (defaults to active sprint if not specified)",
    },
    "story_points": {"type": "number", "description": "Story point estimate"},
    "status": {"type": "string", "description": "Initial status from AVAILABLE STATUSES"},
    "priority": {
        "type": "string",
        "description": "Priority from AVAILABLE PRIORITIES (e.g. 'High', 'Medium', 'Low')",
    },
    "labels": {"type": "array", "items": {"type": "string"}, "description": "Array of label strings"},
    "fix_versions": {
        "type": "array",
        "items": {"type": "string"},
        "description": "Fix version names from AVAILABLE VERSIONS",
    },
    "components": {
        "type": "array",
        "items": {"type": "string"},
        "description": "Component names from AVAILABLE COMPONENTS",
    },
    "due_date": {"type": "string", "description": "Due date in YYYY-MM-DD format"},
    "parent_key": {"type": "string", "description": "Parent issue or epic key (e.g. PROJ-12)"},
}


@tool(
    name="create_issues",
    description="""Create multiple issues in bulk. Use prepare_issues first when importing from CSV.
If no sprint_id is specified, issues are automatically added to the ACTIVE sprint.

Example:
- create_issues(issues: [{summary: "Task title", assignee: "John", priority: "High", labels: ["frontend"]}])

Returns: { total, succeeded, failed, results: [{action, key, summary}] }""",
    brief="Create issues in bulk (asks the user to confirm first).",
    parameters={
        "type": "object",
        "properties": {
            "issues": {
                "type": "array",
                "description": "Array of issues to create",
                "items": {"type": "object", "properties": ISSUE_PROPERTIES},
            },
        },
        "required": ["issues"],
    },
    kind="write",
)
async def create_issues(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    summary = await ctx.executor.create_issues(list(args.get("issues") or []))
    return summary.to_dict()


TOOL = create_issues
