"""Helpers shared by the CSV tools. Rows are 1-based everywhere the model sees them."""

from __future__ import annotations

import re
from typing import Sequence

MAX_UNIQUE_VALUES_FOR_FILTER = 20
MAX_VALUES_TO_SHOW = 10
MIN_FILL_RATE = 0.3

Row = dict[str, str]


def parse_row_range(text: str, max_rows: int) -> list[int] | None:
    """'100-200' -> [100..200], end clamped to max_rows; None when unusable."""
    match = re.fullmatch(r"\s*(\d+)\s*-\s*(\d+)\s*", text)
    if not match:
        return None
    start, end = int(match.group(1)), int(match.group(2))
    if start < 1 or end < start or start > max_rows:
        return None
    return list(range(start, min(end, max_rows) + 1))


def find_column(columns: Sequence[str], name: str) -> str | None:
    wanted = name.lower()
    return next((c for c in columns if c.lower() == wanted), None)


def available_filters(rows: Sequence[Row], columns: Sequence[str]) -> dict[str, list[str]]:
    """
    Columns worth filtering on, with a sample of their values.

    A column qualifies when at least 30% of rows fill it and it has no more
    than MAX_UNIQUE_VALUES_FOR_FILTER distinct values.
    """
    out: dict[str, list[str]] = {}
    if not rows:
        return out
    for column in columns:
        unique: set[str] = set()
        filled = 0
        for row in rows:
            value = (row.get(column) or "").strip()
            if value:
                unique.add(value)
                filled += 1
            if len(unique) > MAX_UNIQUE_VALUES_FOR_FILTER:
                break
        if filled / len(rows) < MIN_FILL_RATE:
            continue
        if 0 < len(unique) <= MAX_UNIQUE_VALUES_FOR_FILTER:
            out[column] = sorted(unique)[:MAX_VALUES_TO_SHOW]
    return out
