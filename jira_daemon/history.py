"""
Conversation context management.

Architecture:
- summarize_history / extract_data_context: pure regex digests of earlier turns
- compress_messages: collapses old turns into one system note before a model call
- ContextClassifier: decides whether a new message starts a fresh task
  (LLMContextClassifier asks the model; StaticClassifier is for tests)
"""

from __future__ import annotations

import logging
import re
from typing import Any, Protocol

from .config import RECENT_TURN_WINDOW
from .errors import LLMError
from .llm import ChatModel

logger = logging.getLogger("jira.orchestrator")

FRESH = "fresh"
CONTINUING = "continuing"

MAX_DIGEST_KEYS = 10
MAX_INTENTS = 3

_SPRINT_NAME = re.compile(r"[\"']?([A-Z]+-?\w*\s*Sprint\s*\d+)[\"']?", re.IGNORECASE)
_SPRINT_ID = re.compile(r"(?:sprint\s*(?:id[:\s]*)?|ID[:\s]*)(\d{3,5})", re.IGNORECASE)
_ISSUE_COUNT = re.compile(r"(\d+)\s*issues?\b", re.IGNORECASE)
_POINTS = re.compile(r"(\d+)\s*(?:story\s*)?points?\b", re.IGNORECASE)
_MORE_THAN = re.compile(
    r"(\d+)\s*(?:issues?\s*)?(?:have|has|with)\s*more\s*than\s*(\d+)\s*(?:story\s*)?points?",
    re.IGNORECASE,
)
_ASSIGNEE = re.compile(r"(\w+(?:\s+\w+)?)'s\s*tasks?|assigned\s*to\s*(\w+(?:\s+\w+)?)", re.IGNORECASE)
_ISSUE_KEY = re.compile(r"\b[A-Z][A-Z0-9]+-\d+\b")


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def _text(message: dict[str, Any]) -> str:
    return str(message.get("content") or "")


# --- Digests (Pure Functions) ---


def summarize_history(history: list[dict[str, Any]]) -> str:
    """
    Short "what happened so far" text for the classifier.

    Picks data-flow facts (issue counts, sprints, filters) out of assistant
    turns and appends the last two user questions.
    """
    if len(history) <= 1:
        return ""

    flow: list[str] = []
    for message in history:
        if message.get("role") != "assistant":
            continue
        content = _text(message)
        count = _ISSUE_COUNT.search(content)
        points = _POINTS.search(content)
        sprint = _SPRINT_NAME.search(content)

        if sprint and count:
            flow.append(f"fetched {count.group(1)} issues from {sprint.group(1)}")
        elif count and points:
            flow.append(f"{count.group(1)} issues ({points.group(1)} pts)")

        more_than = _MORE_THAN.search(content)
        if more_than:
            flow.append(f"filtered to {more_than.group(1)} with >{more_than.group(2)} pts")

        assignee = _ASSIGNEE.search(content)
        if assignee:
            name = assignee.group(1) or assignee.group(2)
            escaped = re.escape(name)
            counted = re.search(
                rf"(\d+)\s*(?:issues?|tasks?).*{escaped}|{escaped}.*?(\d+)\s*(?:issues?|tasks?)",
                content,
                re.IGNORECASE,
            )
            if counted:
                flow.append(f"filtered to {counted.group(1) or counted.group(2)} for {name}")
            else:
                flow.append(f"filtered for {name}")

    parts: list[str] = []
    if flow:
        parts.append(f"Data flow: {' → '.join(_unique(flow)[-3:])}")
    questions = [_text(m)[:100] for m in history if m.get("role") == "user"]
    if questions:
        parts.append(f"Last questions: {'; '.join(questions[-2:])}")
    return ". ".join(parts)


def extract_data_context(history: list[dict[str, Any]]) -> str | None:
    """Sprint, count, points and issue keys mentioned in the latest assistant turn."""
    answers = [m for m in history if m.get("role") == "assistant"]
    if not answers:
        return None
    last = _text(answers[-1])

    points: list[str] = []
    labelled = (
        (_SPRINT_ID, "Sprint ID: {}"),
        (_SPRINT_NAME, "Sprint: {}"),
        (_ISSUE_COUNT, "{} issues"),
        (_POINTS, "{} story points"),
    )
    for pattern, template in labelled:
        match = pattern.search(last)
        if match:
            points.append(template.format(match.group(1)))

    keys = _unique(_ISSUE_KEY.findall(last))
    if keys:
        if len(keys) <= MAX_DIGEST_KEYS:
            points.append(f"Issues: {', '.join(keys)}")
        else:
            points.append(f"Issues: {', '.join(keys[:5])} and {len(keys) - 5} more")

    return "; ".join(points) or None


# --- Compression ---


def _compressed_note(older: list[dict[str, Any]]) -> str:
    sprints: list[str] = []
    assignees: list[str] = []
    keys: list[str] = []
    intents: list[str] = []

    for message in older:
        content = _text(message)
        sprints.extend(m.group(1).strip() for m in _SPRINT_NAME.finditer(content))
        sprints.extend(f"ID {m.group(1)}" for m in _SPRINT_ID.finditer(content))
        for m in _ASSIGNEE.finditer(content):
            assignees.append((m.group(1) or m.group(2)).strip())
        keys.extend(_ISSUE_KEY.findall(content))
        if message.get("role") == "user" and content:
            intents.append(content[:100])

    parts = [f"{len(older)} earlier messages"]
    if sprints:
        parts.append(f"Sprints: {', '.join(_unique(sprints))}")
    if assignees:
        parts.append(f"Assignees: {', '.join(_unique(assignees))}")
    keys = _unique(keys)
    if keys:
        extra = f" and {len(keys) - MAX_DIGEST_KEYS} more" if len(keys) > MAX_DIGEST_KEYS else ""
        parts.append(f"Issues: {', '.join(keys[:MAX_DIGEST_KEYS])}{extra}")
    if intents:
        parts.append(f"Recent requests: {' | '.join(intents[-MAX_INTENTS:])}")
    return f"[EARLIER CONVERSATION (compressed): {'; '.join(parts)}]"


def compress_messages(
    messages: list[dict[str, Any]], window: int = RECENT_TURN_WINDOW
) -> list[dict[str, Any]]:
    """
    Keep leading system messages and the last `window` turns verbatim.

    Everything in between becomes one synthetic system message. The cut moves
    earlier when it would strand a tool message from the assistant call that
    produced it, or would drop the latest user message.
    """
    head = 0
    while head < len(messages) and messages[head].get("role") == "system":
        head += 1
    system, turns = messages[:head], messages[head:]
    if len(turns) <= window:
        return list(messages)

    cut = len(turns) - window
    last_user = max((i for i, m in enumerate(turns) if m.get("role") == "user"), default=None)
    if last_user is not None:
        cut = min(cut, last_user)
    while cut > 0 and turns[cut].get("role") == "tool":
        cut -= 1
    if cut <= 0:
        return list(messages)

    older, recent = turns[:cut], turns[cut:]
    logger.debug(f"Compressed {len(older)} messages, kept {len(recent)}")
    return [*system, {"role": "system", "content": _compressed_note(older)}, *recent]


# --- Classification ---


class ContextClassifier(Protocol):
    async def classify(self, message: str, history_summary: str) -> str:
        """Return FRESH or CONTINUING."""
        ...


class StaticClassifier:
    """Always answers the same way."""

    def __init__(self, decision: str = CONTINUING) -> None:
        self.decision = decision
        self.calls: list[tuple[str, str]] = []

    async def classify(self, message: str, history_summary: str) -> str:
        self.calls.append((message, history_summary))
        return self.decision


CLASSIFY_PROMPT = """Decide whether a new message continues the current conversation or starts an unrelated task.

Conversation so far: {summary}

New message: "{message}"

CONTINUING: the message refers to earlier results (follow-ups, "those", "them", "what about", filters or
breakdowns of data already fetched, the same sprint, people or issues).
FRESH: the message asks about a different feature area, sprint or topic and needs none of the earlier data.

Answer with one word: FRESH or CONTINUING"""


class LLMContextClassifier:
    """Asks the model. Any failure or unclear answer counts as continuing."""

    def __init__(self, model: ChatModel) -> None:
        self._model = model

    async def classify(self, message: str, history_summary: str) -> str:
        prompt = CLASSIFY_PROMPT.format(summary=history_summary, message=message)
        try:
            answer = await self._model.generate(prompt, num_predict=5, temperature=0.0)
        except LLMError as e:
            logger.warning(f"Context classification failed, continuing: {e}")
            return CONTINUING
        return FRESH if answer.strip().upper().startswith("FRESH") else CONTINUING
