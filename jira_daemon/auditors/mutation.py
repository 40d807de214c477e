"""Checks proposed create/update arguments against what the user asked for."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from ..errors import LLMError
from ..llm import ChatModel
from .base import Verdict, parse_verdict, skipped

logger = logging.getLogger("jira.audit")

TOOL_DEFAULTS = """Tool behavior:
- create_issues: Creates issues in Jira. Defaults: issue_type=Story, status=To Do (backlog), priority=Medium
- Omitted fields use sensible defaults - this is NORMAL and NOT an error
- Only required field is "summary" - everything else is optional
- If user mentions "backlog", omitting status is correct (defaults to To Do)
- If user doesn't specify type, Story is the default"""

POLICY = """ONLY flag as NO if:
- Count mismatch (user asked for 5, AI creating 3)
- Wrong assignee (user said "assign to John", AI assigned to "Mary")
- Summary doesn't reflect user's request at all

DO NOT flag:
- Missing optional fields (status, priority, type) - they have defaults
- Minor wording differences in summaries
- Missing description if user didn't specify one"""

MAX_LISTED_SUMMARIES = 5


@dataclass(frozen=True)
class MutationCheck:
    user_request: str
    tool_name: str
    arguments: dict[str, Any]


def describe_proposal(tool_name: str, arguments: dict[str, Any]) -> str:
    issues = [i for i in arguments.get("issues") or [] if isinstance(i, dict)]
    lines = [f"Tool: {tool_name}", f"Count: {len(issues)} issue(s)"]
    if not issues:
        return "\n".join(lines)
    first = issues[0]

    if tool_name == "create_issues":
        for label, name in (
            ("Issue Type", "issue_type"),
            ("Assignee", "assignee"),
            ("Sprint ID", "sprint_id"),
            ("Priority", "priority"),
        ):
            if first.get(name):
                lines.append(f"{label}: {first[name]}")
        listed = "\n".join(
            f"  {n}. {i.get('summary') or '(no summary)'}"
            for n, i in enumerate(issues[:MAX_LISTED_SUMMARIES], start=1)
        )
        if len(issues) > MAX_LISTED_SUMMARIES:
            lines.append(f"Summaries (first {MAX_LISTED_SUMMARIES} of {len(issues)}):\n{listed}")
        else:
            lines.append(f"Summaries:\n{listed}")
    else:
        keys = [str(i["issue_key"]) for i in issues if i.get("issue_key")]
        lines.append(f"Keys: {', '.join(keys) or '(none)'}")
        changes = []
        if first.get("status"):
            changes.append(f"status: {first['status']}")
        if first.get("assignee"):
            changes.append(f"assignee: {first['assignee']}")
        if first.get("story_points") is not None:
            changes.append(f"points: {first['story_points']}")
        if changes:
            lines.append(f"Changes: {', '.join(changes)}")
    return "\n".join(lines)


class MutationAuditor:
    def __init__(self, model: ChatModel) -> None:
        self._model = model

    async def verify(self, check: MutationCheck) -> Verdict:
        prompt = (
            "You are verifying a Jira mutation request. Be LENIENT - only flag CRITICAL issues.\n\n"
            f"{TOOL_DEFAULTS}\n\n"
            f'User requested: "{check.user_request}"\n\n'
            f"AI is proposing:\n{describe_proposal(check.tool_name, check.arguments)}\n\n"
            f"{POLICY}\n\n"
            "Answer YES if acceptable, or NO: [brief critical issue only]"
        )
        try:
            reply = await self._model.generate(prompt, temperature=0.0)
        except LLMError as e:
            logger.warning(f"Mutation audit skipped: {e}")
            return skipped("Skipped (error)")
        return parse_verdict(
            reply,
            pass_token="YES",
            fail_token="NO",
            pass_reason="Arguments match request",
            fail_reason="Argument mismatch",
        )
