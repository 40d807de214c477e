"""
Composable issue predicates.

Each builder returns a predicate or None (no constraint); apply_filters ANDs
whatever is left.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Iterable, Sequence

from .models import Issue

IssueFilter = Callable[[Issue], bool]

_DONE_WORDS = {"done", "completed", "concluido", "concluído", "finished"}
_PROGRESS_WORDS = {"inprogress", "emprogresso", "working", "started"}
_TODO_WORDS = {"todo", "backlog", "new", "open", "ready"}

_DONE_RE = re.compile(r"done|conclu|completed|finished", re.IGNORECASE)
_PROGRESS_RE = re.compile(r"progress|progresso|working|started", re.IGNORECASE)
_TODO_RE = re.compile(r"todo|backlog|new|open|ready", re.IGNORECASE)


def normalize_status(status: str) -> str:
    return re.sub(r"[\s_-]", "", status.lower())


def status_matches(actual: str, wanted: str) -> bool:
    """Match a status against a filter term, understanding done/in-progress/todo synonyms."""
    term = normalize_status(wanted)
    if term in _DONE_WORDS:
        return bool(_DONE_RE.search(actual))
    if term in _PROGRESS_WORDS:
        return bool(_PROGRESS_RE.search(actual))
    if term in _TODO_WORDS:
        return bool(_TODO_RE.search(normalize_status(actual)))
    return normalize_status(actual) == term


def assignee_filter(emails: Iterable[str] | None) -> IssueFilter | None:
    if not emails:
        return None
    wanted = {e.lower() for e in emails}
    return lambda issue: bool(issue.assignee) and issue.assignee.lower() in wanted


def status_filter(statuses: Sequence[str] | None) -> IssueFilter | None:
    if not statuses:
        return None
    return lambda issue: any(status_matches(issue.status, s) for s in statuses)


def keyword_filter(keyword: str | None) -> IssueFilter | None:
    if not keyword:
        return None
    needle = keyword.lower()
    return lambda issue: needle in issue.summary.lower()


def points_filter(min_points: float | None, max_points: float | None) -> IssueFilter | None:
    if min_points is None and max_points is None:
        return None

    def check(issue: Issue) -> bool:
        points = issue.story_points or 0
        if min_points is not None and points < min_points:
            return False
        if max_points is not None and points > max_points:
            return False
        return True

    return check


def apply_filters(issues: Iterable[Issue], filters: Iterable[IssueFilter | None]) -> list[Issue]:
    active = [f for f in filters if f is not None]
    return [issue for issue in issues if all(f(issue) for f in active)]


def natural_key(key: str) -> list[Any]:
    """PROJ-9 sorts before PROJ-10."""
    return [int(part) if part.isdigit() else part for part in re.split(r"(\d+)", key)]
