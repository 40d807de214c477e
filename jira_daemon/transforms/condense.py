"""
Condense tool results before they re-enter the model context.

List-shaped results become aggregates (per-sprint and per-assignee totals,
frequent topics, status counts) followed by an instruction not to
re-enumerate, since the UI already renders the full list.
"""

from __future__ import annotations

import json
import re
from collections import Counter
from typing import Any

STOP_WORDS = frozenset("""
the a an and or but in on at to for of with by from as is was are were been be
have has had do does did will would could should may might must shall can need
this that these those i you he she it we they what which who whom where when why
how all each every both few more most other some such no nor not only own same so
than too very just also now new first last get set add update fix create delete
remove dev spike
""".split())

MAX_TOPICS = 8
UI_LIST_NOTE = (
    "UI DISPLAYS FULL ISSUE LIST - do NOT list issue names/summaries in your response. "
    "Reference topics/assignees/statuses above for analysis."
)


def extract_topics(summaries: list[str]) -> list[tuple[str, int]]:
    """Bigrams and trigrams occurring at least twice, most frequent first."""
    counts: Counter[str] = Counter()
    for summary in summaries:
        cleaned = re.sub(r"[\[\](){}]", " ", summary)
        cleaned = re.sub(r"[^a-zA-Z0-9\s-]", "", cleaned).lower()
        words = [w for w in cleaned.split() if len(w) > 2]

        for first, second in zip(words, words[1:]):
            if first in STOP_WORDS or second in STOP_WORDS:
                continue
            counts[f"{first} {second}"] += 1

        for first, middle, last in zip(words, words[1:], words[2:]):
            if first in STOP_WORDS or last in STOP_WORDS:
                continue
            counts[f"{first} {middle} {last}"] += 1

    return [(phrase, n) for phrase, n in counts.most_common() if n >= 2]


def _display_name(assignee: str) -> str:
    return assignee.split("@")[0].replace(".", " ", 1)


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def condense_sprint_issues(result: dict[str, Any], args: dict[str, Any]) -> str:
    sprints = result.get("sprints") or {}
    issues = [i for s in sprints.values() for i in s.get("issues") or []]

    lines = [f"SUMMARY: {result.get('total_issues', 0)} issues | {result.get('total_story_points', 0)} story points", ""]

    if len(sprints) > 1:
        stats = sorted(
            (
                (name, s.get("issue_count", 0), sum(i.get("story_points") or 0 for i in s.get("issues") or []))
                for name, s in sprints.items()
            ),
            key=lambda item: item[2],
        )
        lines.append("SPRINT BREAKDOWN (sorted by points, lowest first):")
        lines.extend(f"- {name}: {count} issues, {_fmt(points)} pts" for name, count, points in stats)
        lines.append("")

    per_assignee: dict[str, list[float]] = {}
    for issue in issues:
        bucket = per_assignee.setdefault(issue.get("assignee") or "Unassigned", [0.0, 0])
        bucket[0] += issue.get("story_points") or 0
        bucket[1] += 1
    ranked = sorted(per_assignee.items(), key=lambda item: item[1][0], reverse=True)

    if args.get("include_breakdown") is True:
        if ranked:
            name, (points, _) = ranked[0]
            lines.append(f"TOP PERFORMER: {_display_name(name)} ({_fmt(points)} pts)")
        else:
            lines.append("TOP PERFORMER: N/A (0 pts)")
        lines.append("COMPONENT DISPLAYS FULL BREAKDOWN - do not list assignees yourself.")
    else:
        lines.append("BREAKDOWN BY ASSIGNEE (sorted by points):")
        lines.extend(
            f"- {_display_name(name)}: {_fmt(points)} pts ({int(tasks)} tasks)"
            for name, (points, tasks) in ranked
        )

    topics = extract_topics([str(i.get("summary") or "") for i in issues])
    if topics:
        lines.append("")
        lines.append("TOP TOPICS (by frequency):")
        lines.extend(f'- "{phrase}" ({n} issues)' for phrase, n in topics[:MAX_TOPICS])

    lines.append("")
    lines.append("STATUS BREAKDOWN:")
    lines.extend(f"- {status}: {n}" for status, n in Counter(i.get("status") for i in issues).most_common())

    lines.append("")
    lines.append(UI_LIST_NOTE)
    return "\n".join(lines)


def condense_prepare_issues(result: dict[str, Any]) -> str:
    if not result.get("ready_for_creation"):
        return json.dumps(result)

    issues = []
    for item in result.get("preview") or []:
        # drop empty values so the create_issues call the model copies stays small
        issues.append({
            k: v for k, v in item.items()
            if v is not None and v != "" and v != []
        })
    return f"Ready to create {len(issues)} issues. Call create_issues with: {json.dumps({'issues': issues})}"


def condense_analysis(result: dict[str, Any]) -> str:
    issues = result.get("issues") or []
    if issues:
        points = _fmt(sum(i.get("story_points") or 0 for i in issues))
        return (
            f"RESULT: {len(issues)} issues ({points} story points). "
            "UI DISPLAYS THE LIST - do NOT list issue names/summaries in your response."
        )
    return str(result.get("message", ""))


def condense_for_model(tool_name: str, result: Any, args: dict[str, Any] | None = None) -> str:
    """Tool message content for the model."""
    args = args or {}
    if tool_name == "get_sprint_issues":
        return condense_sprint_issues(result, args)
    if tool_name == "prepare_issues":
        return condense_prepare_issues(result)
    if tool_name == "analyze_cached_data":
        return condense_analysis(result)
    return result if isinstance(result, str) else json.dumps(result, default=str)
