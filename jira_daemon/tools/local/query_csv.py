"""
Uploaded CSV explorer.

Three mutually exclusive modes, checked in order: a row range, explicit row
indices, or column filters (substring, case-insensitive; a list means any).
"""

from __future__ import annotations

from typing import Any

from ...config import CSV_LIMIT
from ..base import tool
from ..context import ToolContext
from .csv_utils import available_filters, parse_row_range


def _summary(total: int, filtered: int, columns: list[str], applied: list[str], **extra: Any) -> dict[str, Any]:
    return {
        "totalRows": total,
        "filteredRows": filtered,
        "columns": columns,
        "filtersApplied": applied,
        **extra,
    }


@tool(
    name="query_csv",
    description="""Query the uploaded CSV file. Use this to EXPLORE data, not for bulk creation.

Examples:
- query_csv({ row_range: "100-200" }) - get rows 100 through 200
- query_csv({ rowIndices: [103, 105] }) - get specific rows only
- query_csv({ filters: { "Status": "Done" } }) - filter by column value

NOTE: For bulk issue creation, skip query_csv and use prepare_issues directly with row_range.

Returns: { rows: [...], summary: { totalRows, filteredRows } }""",
    brief="Explore the uploaded CSV by row range, row numbers or column filters.",
    parameters={
        "type": "object",
        "properties": {
            "row_range": {"type": "string", "description": "Range string like '100-200' for rows 100 through 200."},
            "rowIndices": {
                "type": "array",
                "items": {"type": "number"},
                "description": "Specific row indices (1-based). Use row_range for ranges.",
            },
            "filters": {
                "type": "object",
                "description": "Column filters. Values can be string (contains) or array of strings (any match).",
            },
            "limit": {"type": "number", "description": f"Max rows to return (default: {CSV_LIMIT})"},
        },
        "required": [],
    },
    kind="local",
)
async def query_csv(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
    rows = ctx.csv_rows
    if not rows:
        return {"rows": [], "summary": _summary(0, 0, [], [])}

    columns = list(rows[0].keys())
    total = len(rows)
    limit = int(args.get("limit") or CSV_LIMIT)

    row_range = args.get("row_range")
    if row_range:
        indices = parse_row_range(str(row_range), total)
        if indices is None:
            return {"rows": [], "summary": _summary(total, 0, columns, [f"Invalid range: {row_range}"])}
        picked = [rows[i - 1] for i in indices]
        return {"rows": picked, "summary": _summary(total, len(picked), columns, [f"rows {row_range}"])}

    raw_indices = args.get("rowIndices", args.get("rowIndex"))
    if raw_indices is not None:
        requested = raw_indices if isinstance(raw_indices, list) else [raw_indices]
        valid = [int(i) for i in requested if 1 <= int(i) <= total]
        picked = [rows[i - 1] for i in valid]
        return {
            "rows": picked,
            "summary": _summary(total, len(picked), columns, [], rowIndices=requested),
        }

    filtered = list(rows)
    applied: list[str] = []
    filters = args.get("filters")
    if isinstance(filters, dict):
        for column, value in filters.items():
            if not value:
                continue
            if isinstance(value, list):
                wanted = [str(v).lower() for v in value]
                filtered = [
                    r for r in filtered if any(w in (r.get(column) or "").lower() for w in wanted)
                ]
                applied.append(f"{column} IN [{', '.join(str(v) for v in value)}]")
            else:
                needle = str(value).lower()
                filtered = [r for r in filtered if needle in (r.get(column) or "").lower()]
                applied.append(f'{column}="{value}"')

    return {
        "rows": filtered[:limit],
        "summary": _summary(
            total, len(filtered), columns, applied, availableFilters=available_filters(rows, columns)
        ),
    }


TOOL = query_csv
