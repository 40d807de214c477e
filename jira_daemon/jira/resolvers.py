"""
Pure name, sprint and date resolution.

Nothing here does I/O: callers pass in the roster or sprint list they got
from the metadata cache.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence, TypeVar

from ..errors import ToolValidationError
from .models import Sprint, TeamMember

T = TypeVar("T")

# Sprint ids on Jira Cloud are 4+ digits; smaller numbers are sprint numbers
# as people say them ("sprint 28"). Fragile, but it is what users type.
SPRINT_ID_THRESHOLD = 1000


# --- Name resolution ---


@dataclass(frozen=True)
class Resolved:
    email: str


@dataclass(frozen=True)
class NotFound:
    input: str
    candidates: tuple[str, ...]

    def message(self) -> str:
        return f'"{self.input}" not found in team. Available: {", ".join(self.candidates)}'


@dataclass(frozen=True)
class Ambiguous:
    input: str
    candidates: tuple[str, ...]

    def message(self) -> str:
        return f'Multiple matches for "{self.input}": {", ".join(self.candidates)}. Be more specific.'


Resolution = Resolved | NotFound | Ambiguous


def _matches(part: str, member: TeamMember) -> bool:
    return part in member.name.lower() or part in member.email.lower()


def resolve_name(text: str, roster: Sequence[TeamMember]) -> Resolution:
    """
    Map a free-text name to a roster email.

    Anything with "@" is taken as an email. Otherwise every whitespace token
    must match a member's name or email; if nobody matches, any token will do.
    """
    if "@" in text:
        return Resolved(text.lower())

    parts = text.lower().split()
    matches = [m for m in roster if all(_matches(p, m) for p in parts)]
    if not matches:
        matches = [m for m in roster if any(_matches(p, m) for p in parts)]

    if not matches:
        return NotFound(text, tuple(m.name for m in roster))
    if len(matches) > 1:
        return Ambiguous(text, tuple(m.name for m in matches))
    return Resolved(matches[0].email.lower())


def resolve_email(text: str, roster: Sequence[TeamMember], strict: bool = False) -> str:
    """
    Strict: raise on NotFound/Ambiguous. Lenient: first match, else the raw input.
    """
    result = resolve_name(text, roster)
    if isinstance(result, Resolved):
        return result.email
    if strict:
        raise ToolValidationError(result.message())
    if isinstance(result, Ambiguous):
        # first candidate by roster order
        first = next(m for m in roster if m.name == result.candidates[0])
        return first.email.lower()
    return text.lower()


# --- Sprints ---


def validate_sprint_ids(sprint_ids: Iterable[int], sprints: Sequence[Sprint]) -> None:
    valid = {s.id for s in sprints}
    invalid = [str(sid) for sid in sprint_ids if sid not in valid]
    if invalid:
        raise ToolValidationError(
            f"Invalid sprint IDs: {', '.join(invalid)}. Use IDs from AVAILABLE SPRINTS."
        )


def resolve_sprint_id(value: Any, sprints: Sequence[Sprint]) -> int:
    """
    Turn a model-supplied sprint reference into a real sprint id.

    Values >= SPRINT_ID_THRESHOLD are used as-is. Smaller values are sprint
    numbers matched against names: "Sprint 28", "... 28" or a bare word 28.
    """
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ToolValidationError(f'Sprint "{value}" is not a number.')

    if number >= SPRINT_ID_THRESHOLD:
        return number

    word = re.compile(rf"\b{number}\b")
    for sprint in sprints:
        name = sprint.name.lower()
        if f"sprint {number}" in name or name.endswith(f" {number}") or word.search(name):
            return sprint.id

    available = ", ".join(f"{s.name} (ID: {s.id})" for s in sprints[:10])
    raise ToolValidationError(
        f'Sprint "{number}" not found. Available sprints: {available}. '
        "Use list_sprints to find valid sprint IDs."
    )


# --- Misc ---


def normalize_to_list(value: T | list[T] | None) -> list[T] | None:
    if value is None:
        return None
    return value if isinstance(value, list) else [value]


def parse_int_list(value: Any) -> list[int] | None:
    """Sprint id arguments arrive as ints, numeric strings, or a single value."""
    items = normalize_to_list(value)
    if items is None:
        return None
    try:
        return [int(v) for v in items]
    except (TypeError, ValueError):
        raise ToolValidationError(f"Sprint IDs must be numbers, got {value!r}")


def parse_since_date(text: str) -> datetime:
    """YYYY-MM-DD means local midnight; other ISO 8601 strings are taken as given."""
    if re.fullmatch(r"\d{4}-\d{2}-\d{2}", text):
        year, month, day = (int(p) for p in text.split("-"))
        try:
            return datetime(year, month, day).astimezone()
        except ValueError:
            raise ToolValidationError(f'Invalid date format: "{text}". Use YYYY-MM-DD.')
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise ToolValidationError(f'Invalid date format: "{text}". Use YYYY-MM-DD.')
    return parsed if parsed.tzinfo else parsed.astimezone()
