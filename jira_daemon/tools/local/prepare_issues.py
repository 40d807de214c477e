"""
Map uploaded CSV rows to create_issues payloads.

Problems come back in `errors` instead of raising, so the model can fix its
mapping; entries starting with "Warning" do not block creation.
"""

from __future__ import annotations

from typing import Any

from ...config import DEFAULT_ISSUE_TYPE
from ..base import tool
from ..context import ToolContext
from .csv_utils import find_column, parse_row_range


def _rejected(error: str) -> dict[str, Any]:
    return {"preview": [], "ready_for_creation": False, "errors": [error]}


@tool(
    name="prepare_issues",
    description="""Prepare issues from CSV for Jira creation.

Examples:
- prepare_issues(row_range: "1-100", mapping: {...}) - first 100 rows
- prepare_issues(row_range: "45-66", mapping: {...}) - rows 45 through 66
- prepare_issues(row_indices: [45, 66, 80], mapping: {...}) - specific rows only

For BULK operations (10+ rows), ALWAYS use row_range instead of row_indices.

mapping object: { summary_column, description_column, assignee, story_points, sprint_id, issue_type, priority, labels, fix_versions (column name or array), components, due_date, parent_key }""",
    brief="Turn CSV rows into issue payloads for create_issues.",
    parameters={
        "type": "object",
        "properties": {
            "row_range": {
                "type": "string",
                "description": "Range string like '1-100' for rows 1 through 100. Use this for bulk operations.",
            },
            "row_indices": {
                "type": "array",
                "items": {"type": "number"},
                "description": "Specific row numbers (1-based). Use row_range instead for large batches.",
            },
            "mapping": {
                "type": "object",
                "description": "Object containing: summary_column, description_column, assignee, story_points, sprint_id, issue_type",
            },
        },
        "required": ["mapping"],
    },
    kind="local",
)
async def prepare_issues(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    rows = ctx.csv_rows
    if not rows:
        return _rejected("No CSV data available")

    row_range = args.get("row_range")
    if row_range:
        indices = parse_row_range(str(row_range), len(rows))
        if indices is None:
            return _rejected(f'Invalid row_range "{row_range}". Use format "1-100".')
    else:
        indices = [int(i) for i in args.get("row_indices") or []]
    if not indices:
        return _rejected("row_range or row_indices is required")

    mapping = args.get("mapping")
    if not isinstance(mapping, dict):
        return _rejected("mapping is required")

    columns = list(rows[0].keys())
    summary_input = mapping.get("summary_column")
    if not summary_input:
        return _rejected(f"summary_column is required. Available columns: {', '.join(columns)}")
    summary_column = find_column(columns, str(summary_input))
    if summary_column is None:
        return _rejected(f'Column "{summary_input}" not found. Available: {", ".join(columns)}')

    errors: list[str] = []
    description_column = None
    if mapping.get("description_column"):
        description_column = find_column(columns, str(mapping["description_column"]))
        if description_column is None:
            errors.append(
                f'Warning: Column "{mapping["description_column"]}" not found, description will be empty'
            )

    # fix_versions is either a column name (one version per row) or a literal list
    fix_versions = mapping.get("fix_versions")
    fix_versions_column = find_column(columns, fix_versions) if isinstance(fix_versions, str) else None

    preview = []
    for index in indices:
        if index < 1 or index > len(rows):
            errors.append(f"Row {index} out of range (1-{len(rows)})")
            continue
        row = rows[index - 1]

        row_versions: list[str] | None = None
        if fix_versions_column and row.get(fix_versions_column):
            row_versions = [row[fix_versions_column]]
        elif isinstance(fix_versions, list):
            row_versions = [str(v) for v in fix_versions]

        preview.append({
            "summary": row.get(summary_column) or f"Row {index}",
            "description": (row.get(description_column) or "") if description_column else "",
            "assignee": mapping.get("assignee") or "",
            "story_points": mapping.get("story_points"),
            "sprint_id": mapping.get("sprint_id"),
            "issue_type": mapping.get("issue_type") or DEFAULT_ISSUE_TYPE,
            "priority": mapping.get("priority") or None,
            "labels": mapping.get("labels") or None,
            "fix_versions": row_versions,
            "components": mapping.get("components") or None,
            "due_date": mapping.get("due_date") or None,
            "parent_key": mapping.get("parent_key") or None,
        })

    blocking = [e for e in errors if not e.startswith("Warning")]
    return {
        "preview": preview,
        "ready_for_creation": bool(preview) and not blocking,
        "errors": errors,
    }


TOOL = prepare_issues
