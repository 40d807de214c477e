"""UI-facing records extracted from tool results."""

from __future__ import annotations

from typing import Any


def _points(issues: list[dict[str, Any]]) -> float | int:
    total = sum(i.get("story_points") or 0 for i in issues)
    return int(total) if float(total).is_integer() else total


def issue_list(name: str, issues: list[dict[str, Any]]) -> dict[str, Any]:
    points = _points(issues)
    return {
        "type": "issue_list",
        "summary": f"{len(issues)} issues ({points} story points)",
        "total_issues": len(issues),
        "total_story_points": points,
        "sprint_name": name,
        "issues": issues,
    }


def extract_structured_data(tool_name: str, result: Any) -> list[dict[str, Any]]:
    """Zero or more records per result; only list-shaped tools produce any."""
    if not isinstance(result, dict):
        return []

    if tool_name == "get_sprint_issues":
        return [
            issue_list(name, sprint.get("issues") or [])
            for name, sprint in (result.get("sprints") or {}).items()
        ]

    if tool_name == "analyze_cached_data":
        issues = result.get("issues") or []
        return [issue_list("Filtered Results", issues)] if issues else []

    if tool_name == "get_activity":
        changes = result.get("changes") or []
        if not changes:
            return []
        return [{
            "type": "activity_list",
            "period": result.get("period"),
            "total_changes": result.get("total_changes", len(changes)),
            "changes": changes,
        }]

    if tool_name == "get_epic_progress" and result.get("epic"):
        return [{
            "type": "epic_progress",
            "epic": result["epic"],
            "progress": result.get("progress"),
            "breakdown_by_status": result.get("breakdown_by_status") or {},
        }]

    if tool_name == "list_epics":
        epics = result.get("epics") or []
        if not epics:
            return []
        record = issue_list("Project Epics", [{**e, "story_points": None, "issue_type": "Epic"} for e in epics])
        record["summary"] = f"{len(epics)} epics"
        return [record]

    return []
