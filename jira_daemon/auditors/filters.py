"""Did the tool call use enough filters to answer the question?"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from ..errors import LLMError
from ..llm import ChatModel
from .base import Verdict, parse_verdict, skipped

logger = logging.getLogger("jira.audit")

TOOL_TYPINGS = """TOOL TYPINGS:

get_sprint_issues(sprint_ids: number[], assignees?: string[], status_filters?: string[], keyword?: string)
→ Returns: { total_issues, total_story_points, sprints: { [name]: { issues: [{ key, summary, status, assignee, story_points }] } } }
→ No assignees param = ALL assignees
→ No status_filters param = ALL statuses

get_activity(since: string, sprint_ids?: number[], assignees?: string[], to_status?: string)
→ Returns: { period, changes: [{ issue_key, summary, field, from, to, changed_by, changed_at }] }
→ No assignees param = ALL assignees
→ No to_status param = ALL status changes"""


@dataclass(frozen=True)
class AppliedFilters:
    """Filters a read tool actually ran with."""

    assignees: tuple[str, ...] = ()
    sprint_ids: tuple[int, ...] = ()
    status_filters: tuple[str, ...] = ()
    since: str | None = None
    until: str | None = None
    to_status: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "assignees": list(self.assignees) or None,
            "sprint_ids": list(self.sprint_ids) or None,
            "status_filters": list(self.status_filters) or None,
            "since": self.since,
            "until": self.until,
            "to_status": self.to_status,
        }


@dataclass(frozen=True)
class FilterCheck:
    user_question: str
    applied: AppliedFilters
    sprint_name: str | None = None
    assignee_map: Mapping[str, str] = field(default_factory=dict)


def describe_filters(check: FilterCheck) -> str:
    applied = check.applied
    lines: list[str] = []

    if applied.assignees:
        if check.assignee_map:
            people = ", ".join(f"{name} ({email})" for name, email in check.assignee_map.items())
        else:
            people = ", ".join(applied.assignees)
        lines.append(f"assignees: [{people}]")
    else:
        lines.append("assignees: undefined (returns ALL)")

    if applied.sprint_ids:
        lines.append(f"sprint: {check.sprint_name or 'ID ' + ', '.join(str(s) for s in applied.sprint_ids)}")
    else:
        lines.append("sprint: none")

    if applied.status_filters:
        lines.append(f"status_filters: [{', '.join(applied.status_filters)}]")
    else:
        lines.append("status_filters: undefined (returns ALL)")

    if applied.since:
        lines.append(f"period: {applied.since} to {applied.until or 'now'}")
    if applied.to_status:
        lines.append(f"to_status: {applied.to_status}")
    return ", ".join(lines)


class FilterAuditor:
    def __init__(self, model: ChatModel) -> None:
        self._model = model

    async def verify(self, check: FilterCheck) -> Verdict:
        prompt = (
            f"{TOOL_TYPINGS}\n\n"
            f'Q: "{check.user_question}"\n'
            f"Filters used: {describe_filters(check)}\n\n"
            "Can the question be answered with these filters?\n"
            "Answer: YES or NO: [missing filter]"
        )
        try:
            reply = await self._model.generate(prompt, num_predict=40, temperature=0.0)
        except LLMError as e:
            logger.warning(f"Filter audit skipped: {e}")
            return skipped("Skipped (error)")
        return parse_verdict(
            reply,
            pass_token="YES",
            fail_token="NO",
            pass_reason="Filters match question",
            fail_reason="Filter mismatch",
        )
