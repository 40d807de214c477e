"""
Follow-up analytics over issues fetched earlier, without another Jira call.

Works on ToolContext.cached_issues: rows shaped like get_sprint_issues output
(key, summary, status, assignee, story_points).
"""

from __future__ import annotations

import json
from collections import Counter
from typing import Any

from ...errors import ToolValidationError
from ..base import tool
from ..context import ToolContext

NO_DATA = "No cached data available. Please fetch issues first using get_sprint_issues."
OPERATIONS = ("count", "filter", "sum", "group")
FIELDS = ("story_points", "status", "assignee")


def _field_value(issue: dict[str, Any], field: str | None) -> Any:
    if field in FIELDS:
        return issue.get(field)
    return None


def _threshold(condition: dict[str, Any], op: str) -> float:
    try:
        return float(condition[op])
    except (TypeError, ValueError):
        raise ToolValidationError(f"condition.{op} must be a number, got {condition[op]!r}") from None


def _numbers_equal(value: float, wanted: Any) -> bool | None:
    try:
        return float(value) == float(wanted)
    except (TypeError, ValueError):
        return None


def matches_condition(value: Any, field: str | None, condition: dict[str, Any] | None) -> bool:
    """gt/gte/lt/lte apply to numbers; eq compares numbers by value, text otherwise (token-wise for assignee)."""
    if not condition:
        return True
    if value is None:
        return False

    numeric = isinstance(value, (int, float)) and not isinstance(value, bool)
    if numeric:
        if "gt" in condition and value <= _threshold(condition, "gt"):
            return False
        if "gte" in condition and value < _threshold(condition, "gte"):
            return False
        if "lt" in condition and value >= _threshold(condition, "lt"):
            return False
        if "lte" in condition and value > _threshold(condition, "lte"):
            return False

    if condition.get("eq") is not None:
        if numeric:
            equal = _numbers_equal(value, condition["eq"])
            if equal is not None:
                return equal
        actual = str(value).lower()
        wanted = str(condition["eq"]).lower()
        if field == "assignee":
            return all(part in actual for part in wanted.split())
        return actual == wanted
    return True


def _number(value: float) -> float | int:
    return int(value) if float(value).is_integer() else value


@tool(
    name="analyze_cached_data",
    description="""Analyze issues already fetched in this conversation without calling Jira again.

Examples:
- analyze_cached_data(operation: "count", field: "story_points", condition: {gt: 3})
- analyze_cached_data(operation: "filter", field: "assignee", condition: {eq: "john"})
- analyze_cached_data(operation: "sum", field: "story_points")
- analyze_cached_data(operation: "group", field: "status")

Returns: { message, issues? }""",
    brief="Count, filter, sum or group issues fetched earlier.",
    parameters={
        "type": "object",
        "properties": {
            "operation": {"type": "string", "enum": list(OPERATIONS), "description": "count, filter, sum or group"},
            "field": {"type": "string", "enum": list(FIELDS), "description": "Field to inspect"},
            "condition": {
                "type": "object",
                "description": "Any of gt, gte, lt, lte (numbers) or eq (text), e.g. {gte: 5}",
            },
        },
        "required": ["operation"],
    },
    kind="local",
)
async def analyze_cached_data(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    issues = ctx.cached_issues or []
    if not issues:
        return {"message": NO_DATA}

    operation = args.get("operation")
    field = args.get("field")
    condition = args.get("condition") if isinstance(args.get("condition"), dict) else None

    if operation == "count":
        count = sum(1 for i in issues if matches_condition(_field_value(i, field), field, condition))
        suffix = f" matching {json.dumps(condition)}" if condition else ""
        return {"message": f"{count} issues{suffix} (out of {len(issues)} total)"}

    if operation == "filter":
        kept = [i for i in issues if matches_condition(_field_value(i, field), field, condition)]
        if not kept:
            return {"message": "No issues match the criteria."}
        return {"message": f"Found {len(kept)} issues", "issues": kept}

    if operation == "sum":
        if field != "story_points":
            return {"message": "Sum operation only works with story_points field."}
        total = sum(i.get("story_points") or 0 for i in issues)
        return {"message": f"Total story points: {_number(total)} (from {len(issues)} issues)"}

    if operation == "group":
        groups = Counter(
            "Unassigned" if _field_value(i, field) is None else str(_field_value(i, field))
            for i in issues
        )
        lines = "\n".join(f"{k}: {v}" for k, v in groups.most_common())
        return {"message": f"Grouped by {field}:\n{lines}"}

    return {"message": "Unknown operation. Use: count, filter, sum, or group."}


TOOL = analyze_cached_data
