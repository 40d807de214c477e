"""Bulk issue update. Confirmation-gated like create_issues."""

from __future__ import annotations

from typing import Any

from ..base import tool
from ..context import ToolContext


@tool(
    name="update_issues",
    description="""Update multiple existing issues in bulk.

Example:
- update_issues(issues: [{issue_key: "PROJ-123", status: "Done", fix_versions: ["v2.0"]}])

Returns: { total, succeeded, failed, results: [{action, key, changes}] }""",
    brief="Update existing issues in bulk (asks the user to confirm first).",
    parameters={
        "type": "object",
        "properties": {
            "issues": {
                "type": "array",
                "description": "Array of issues to update",
                "items": {
                    "type": "object",
                    "properties": {
                        "issue_key": {"type": "string", "description": "Issue key (required, e.g. 'PROJ-123')"},
                        "summary": {"type": "string", "description": "New title"},
                        "description": {"type": "string", "description": "New description"},
                        "assignee": {"type": "string", "description": "New assignee name from TEAM MEMBERS"},
                        "sprint_id": {"type": "number", "description": "Move to sprint ID"},
                        "story_points": {"type": "number", "description": "New story points"},
                        "status": {"type": "string", "description": "New status from AVAILABLE STATUSES"},
                        "priority": {"type": "string", "description": "Priority from AVAILABLE PRIORITIES"},
                        "labels": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "New labels (replaces existing)",
                        },
                        "fix_versions": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Fix versions from AVAILABLE VERSIONS",
                        },
                        "components": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Components from AVAILABLE COMPONENTS",
                        },
                        "due_date": {"type": "string", "description": "Due date in YYYY-MM-DD format"},
                        "parent_key": {"type": "string", "description": "New parent issue or epic key"},
                    },
                },
            },
        },
        "required": ["issues"],
    },
    kind="write",
)
async def update_issues(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    summary = await ctx.executor.update_issues(list(args.get("issues") or []))
    return summary.to_dict()


TOOL = update_issues
