"""One-line summaries of tool results for the reasoning trace."""

from __future__ import annotations

from typing import Any


def _plural(count: int, word: str, plural: str | None = None) -> str:
    return f"{count} {word if count == 1 else (plural or word + 's')}"


def _query_csv(data: dict[str, Any]) -> str:
    summary = data.get("summary") or {}
    rows = data.get("rows") or []
    total = summary.get("totalRows", 0)

    if "rowIndices" in summary:
        requested = summary["rowIndices"]
        if not rows:
            return f"Rows {', '.join(str(r) for r in requested)} not found (CSV has {total} rows)"
        if len(requested) == 1:
            return f"Retrieved row {requested[0]}"
        return f"Retrieved {len(rows)} of {len(requested)} requested rows"

    applied = summary.get("filtersApplied") or []
    text = f"Found {summary.get('filteredRows', 0)} of {total} rows"
    if applied:
        text += f" (filtered by: {', '.join(applied)})"
    elif summary.get("availableFilters"):
        text += f" | Filterable columns: {', '.join(list(summary['availableFilters'])[:5])}"
    return text


def _prepare_issues(data: dict[str, Any]) -> str:
    errors = data.get("errors") or []
    if errors and not data.get("ready_for_creation"):
        return f"Error: {', '.join(errors)}"

    preview = data.get("preview") or []
    text = f"Prepared {_plural(len(preview), 'issue')}"
    if preview:
        first = str(preview[0].get("summary") or "")
        text += f' (e.g. "{first[:40]}{"..." if len(first) > 40 else ""}")'
    warnings = [e for e in errors if e.startswith("Warning")]
    if warnings:
        text += f" - {'; '.join(warnings)}"
    return text


def _bulk(data: dict[str, Any]) -> str:
    text = f"{data.get('succeeded', 0)}/{data.get('total', 0)} succeeded"
    if data.get("failed"):
        text += f", {data['failed']} failed"
    return text


def summarize_tool_result(tool_name: str, result: Any) -> str:
    if not result:
        return "No results found"

    if tool_name == "get_sprint_issues":
        return f"Found {result['total_issues']} issues ({result['total_story_points']} story points)"
    if tool_name == "list_sprints":
        return f"Found {_plural(len(result.get('sprints') or []), 'sprint')}"
    if tool_name == "get_context":
        return (
            f"{_plural(len(result.get('team_members') or []), 'team member')}, "
            f"{_plural(len(result.get('statuses') or []), 'status', 'statuses')}"
        )
    if tool_name == "get_issue":
        return f"{result.get('key')}: {result.get('summary')} ({result.get('status')})"
    if tool_name == "get_activity":
        period = result.get("period") or {}
        return f"Found {_plural(result.get('total_changes', 0), 'status change')} since {period.get('since')}"
    if tool_name == "list_epics":
        return f"Found {_plural(result.get('total_epics', 0), 'epic')}"
    if tool_name == "get_epic_progress":
        epic = result.get("epic") or {}
        progress = result.get("progress") or {}
        return (
            f"{epic.get('key')}: {progress.get('completed_issues', 0)}/{progress.get('total_issues', 0)} issues done, "
            f"{progress.get('percent_by_points', 0)}% by points"
        )
    if tool_name == "query_csv":
        return _query_csv(result)
    if tool_name == "prepare_issues":
        return _prepare_issues(result)
    if tool_name == "analyze_cached_data":
        return str(result.get("message", ""))
    if tool_name in ("create_issues", "update_issues"):
        return _bulk(result)
    return "Tool executed successfully"
