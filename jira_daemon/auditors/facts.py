"""
Facts auditor and the ground-truth sheets it checks answers against.

Sheets are built only from tool results, never from model text.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Any, Sequence

from ..errors import LLMError
from ..llm import ChatModel
from .base import Verdict, parse_verdict, skipped

logger = logging.getLogger("jira.audit")

MAX_ACTIVITY_DETAILS = 30


@dataclass(frozen=True)
class ReviewIssue:
    key: str
    assignee: str | None = None  # email
    points: float | None = None
    summary: str = ""

    @property
    def short_name(self) -> str:
        return self.assignee.split("@")[0] if self.assignee else "Unassigned"

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> ReviewIssue:
        return cls(
            key=str(row.get("key") or ""),
            assignee=row.get("assignee") or None,
            points=row.get("story_points"),
            summary=str(row.get("summary") or ""),
        )


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def build_assignee_map(issues: Sequence[ReviewIssue]) -> dict[str, str]:
    """short name -> email, first email seen per name."""
    out: dict[str, str] = {}
    for issue in issues:
        if issue.assignee and issue.short_name not in out:
            out[issue.short_name] = issue.assignee
    return out


def build_facts_sheet(issues: Sequence[ReviewIssue], total_points: float) -> str:
    per_person: dict[str, list[float]] = {}
    for issue in issues:
        stats = per_person.setdefault(issue.short_name, [0, 0.0])
        stats[0] += 1
        stats[1] += issue.points or 0

    numbers = "\n".join(
        f"{name}: {int(count)} tasks, {_fmt(points)} pts"
        for name, (count, points) in sorted(per_person.items(), key=lambda kv: kv[1][1], reverse=True)
    )
    details = "\n".join(
        f'{i.key}: "{i.summary}" ({i.short_name}, {_fmt(i.points or 0)} pts)' for i in issues
    )
    return (
        f"NUMBERS:\nTotal: {len(issues)} tasks, {_fmt(total_points)} pts\n{numbers}\n\n"
        f"VALID ISSUES:\n{', '.join(i.key for i in issues)}\n\n"
        f"ISSUE DETAILS:\n{details}"
    )


def build_activity_facts_sheet(
    changes: Sequence[dict[str, Any]],
    total_changes: int,
    period: dict[str, str] | None = None,
) -> str:
    by_status: Counter[str] = Counter()
    by_person: Counter[str] = Counter()
    keys: list[str] = []
    for change in changes:
        if change["issue_key"] not in keys:
            keys.append(change["issue_key"])
        if str(change.get("field", "")).lower() == "status" and change.get("to"):
            by_status[change["to"]] += 1
        by_person[str(change.get("changed_by") or "Unknown").split(" ")[0]] += 1

    statuses = "\n".join(f"→ {s}: {n}" for s, n in by_status.most_common()) or "No status changes"
    people = "\n".join(f"{p}: {n} changes" for p, n in by_person.most_common())
    period_line = f"Period: {period['since']} to {period['until']}" if period else ""
    return (
        f"ACTIVITY SUMMARY:\n{period_line}\n"
        f"Total: {total_changes} changes across {len(keys)} issues\n"
        "(Note: One issue can have multiple status changes, so changes > issues is normal)\n\n"
        f"STATUS TRANSITIONS:\n{statuses}\n\n"
        f"BY PERSON:\n{people}\n\n"
        f"AFFECTED ISSUES:\n{', '.join(keys)}"
    )


@dataclass(frozen=True)
class FactsCheck:
    answer: str
    facts_sheet: str


class FactsAuditor:
    def __init__(self, model: ChatModel) -> None:
        self._model = model

    async def verify(self, check: FactsCheck) -> Verdict:
        if not check.facts_sheet:
            return Verdict(True, "No data to verify")

        prompt = (
            "Verify the AI response against actual data.\n\n"
            f"ACTUAL DATA:\n{check.facts_sheet}\n\n"
            f'AI RESPONSE:\n"{check.answer}"\n\n'
            "Check: totals, per-person counts/points, issue information, any made-up data.\n"
            "Answer: PASS or FAIL: [what's wrong]"
        )
        try:
            reply = await self._model.generate(prompt, temperature=0.0)
        except LLMError as e:
            logger.warning(f"Facts audit skipped: {e}")
            return skipped("Skipped (error)")
        return parse_verdict(
            reply,
            pass_token="PASS",
            fail_token="FAIL",
            pass_reason="Facts verified",
            fail_reason="Fact mismatch",
        )
