"""
Post-answer review.

The filter auditor runs first and a failure there ends the review; the facts
auditor then checks the answer against issue facts and activity facts.
With no ground truth the review is skipped.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from ..llm import ChatModel
from .base import AlwaysPass, Auditor
from .facts import (
    FactsAuditor,
    FactsCheck,
    ReviewIssue,
    build_activity_facts_sheet,
    build_assignee_map,
    build_facts_sheet,
)
from .filters import AppliedFilters, FilterAuditor, FilterCheck
from .mutation import MutationAuditor


@dataclass(frozen=True)
class AuditContext:
    """Latest ground truth from a read tool in this turn."""

    user_question: str | None = None
    tool_used: str | None = None
    applied: AppliedFilters | None = None
    issue_count: int | None = None
    total_points: float | None = None
    issues: tuple[ReviewIssue, ...] = ()
    sprint_name: str | None = None
    activity_changes: tuple[dict[str, Any], ...] = ()
    change_count: int | None = None
    activity_period: dict[str, str] | None = None

    @property
    def has_issue_data(self) -> bool:
        return bool(self.issues) or bool(self.issue_count)

    @property
    def has_activity_data(self) -> bool:
        return bool(self.activity_changes) or bool(self.change_count)


@dataclass(frozen=True)
class ReviewResult:
    passed: bool
    reason: str | None = None
    summary: str | None = None
    skipped: bool = False

    def to_event(self) -> dict[str, Any]:
        return {
            "type": "review_complete",
            "pass": self.passed,
            "reason": self.reason,
            "summary": self.summary,
            "skipped": self.skipped,
        }


@dataclass
class Auditors:
    """The three verifiers a turn may consult."""

    filters: Auditor = field(default_factory=AlwaysPass)
    facts: Auditor = field(default_factory=AlwaysPass)
    mutation: Auditor = field(default_factory=AlwaysPass)


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def build_breakdown(ctx: AuditContext) -> str:
    parts: list[str] = []
    if ctx.issue_count is not None:
        parts.append(f"{ctx.issue_count} issues")
    if ctx.total_points is not None:
        parts.append(f"{_fmt(ctx.total_points)} pts")
    if ctx.change_count is not None:
        parts.append(f"{ctx.change_count} changes")
    if ctx.sprint_name:
        parts.append(f"Sprint: {ctx.sprint_name}")
    if ctx.activity_period:
        parts.append(f"Period: {ctx.activity_period['since']} to {ctx.activity_period['until']}")
    if ctx.issues:
        counts = Counter(i.short_name for i in ctx.issues)
        parts.append(f"By assignee: {', '.join(f'{n}: {c}' for n, c in counts.items())}")
    return ". ".join(parts)


async def run_auditors(answer: str, ctx: AuditContext, auditors: Auditors) -> ReviewResult:
    if not ctx.has_issue_data and not ctx.has_activity_data:
        return ReviewResult(True, skipped=True)

    total_points = ctx.total_points or 0
    if ctx.has_activity_data:
        summary = f"{ctx.change_count or 0} changes"
    else:
        summary = f"{ctx.issue_count or 0} issues, {_fmt(total_points)} pts"
    breakdown = build_breakdown(ctx)
    ran = False

    if ctx.user_question and ctx.applied and ctx.tool_used:
        ran = True
        verdict = await auditors.filters.verify(FilterCheck(
            user_question=ctx.user_question,
            applied=ctx.applied,
            sprint_name=ctx.sprint_name,
            assignee_map=build_assignee_map(ctx.issues),
        ))
        if not verdict.passed:
            return ReviewResult(False, f"⚠ {verdict.reason}. {breakdown}", "Missing filter")

    sheets: list[str] = []
    if answer and ctx.issues:
        sheets.append(build_facts_sheet(ctx.issues, total_points))
    if answer and ctx.activity_changes:
        sheets.append(build_activity_facts_sheet(
            ctx.activity_changes, ctx.change_count or 0, ctx.activity_period
        ))
    for sheet in sheets:
        ran = True
        verdict = await auditors.facts.verify(FactsCheck(answer=answer, facts_sheet=sheet))
        if not verdict.passed:
            return ReviewResult(False, f"⚠ {verdict.reason}. {breakdown}", summary)

    if not ran:
        return ReviewResult(True, skipped=True)
    return ReviewResult(True, f"✓ Verified. {breakdown}", summary)


def llm_auditors(model: ChatModel) -> Auditors:
    return Auditors(
        filters=FilterAuditor(model),
        facts=FactsAuditor(model),
        mutation=MutationAuditor(model),
    )
