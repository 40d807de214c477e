"""
Orchestrator: the bounded tool loop behind one assistant turn.

Architecture:
- orchestrate(): async generator of event dicts for one user turn
  1. classify the turn as fresh or continuing (after the first turn)
  2. up to MAX_TOOL_ITERATIONS rounds of model tool-selection + dispatch
  3. stream the final answer, report token usage, run the post-answer review
- Write tools never run inside the loop: the turn ends with a
  confirmation_required event carrying a PendingAction
- execute_action(): the caller-driven path that runs a confirmed action

Every stream ends with a "done" event.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping, Sequence

from .auditors import (
    AppliedFilters,
    AuditContext,
    Auditors,
    MutationCheck,
    ReviewIssue,
    Verdict,
    run_auditors,
)
from .config import (
    MAX_TOOL_ITERATIONS,
    TOKEN_WARNING_THRESHOLD,
    WRITE_TOOLS,
    ProjectConfig,
    get_config,
)
from .errors import LLMError
from .history import (
    CONTINUING,
    FRESH,
    ContextClassifier,
    StaticClassifier,
    compress_messages,
    extract_data_context,
    summarize_history,
)
from .jira.cache import MetadataCache
from .jira.client import JiraBackend
from .jira.mutations import MutationExecutor
from .llm import ChatModel, TokenUsage, ToolCall
from .prompts import build_system_prompt
from .tools import ToolContext, ToolRegistry
from .transforms import condense_for_model, extract_structured_data, summarize_tool_result

logger = logging.getLogger("jira.orchestrator")

CSV_TOOLS = ("query_csv", "prepare_issues")
CSV_CONTEXT_KEYWORDS = ("csv", "row", "rows", "file", "spreadsheet", "upload", "column")
CSV_TOOL_KEYWORDS = ("csv", "spreadsheet", "file", "import", "rows", "upload")

CONNECTION_ERROR = "Sorry, I had trouble connecting to the AI. Please try again."


# --- Request / Action Types ---


@dataclass(frozen=True)
class TurnRequest:
    """One user turn: the whole visible conversation, newest message last."""

    messages: list[dict[str, Any]]
    config_id: str | None = None
    csv_rows: list[dict[str, str]] = field(default_factory=list)
    cached_issues: list[dict[str, Any]] | None = None
    cached_sprint_name: str | None = None
    use_auditor: bool = True


@dataclass(frozen=True)
class PendingAction:
    """A proposed create/update, shown to the user and never run automatically."""

    id: str
    tool_name: str
    issues: tuple[dict[str, Any], ...]
    audit: Verdict | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tool_name": self.tool_name,
            "issues": list(self.issues),
            "audit_result": self.audit.to_dict() if self.audit else None,
        }


# --- Helpers (Pure Functions) ---


def _truncate_args(args: dict[str, Any], max_len: int = 200) -> dict[str, Any]:
    """Truncate long string arguments for SSE streaming."""
    truncated: dict[str, Any] = {}
    for key, value in args.items():
        if isinstance(value, str) and len(value) > max_len:
            truncated[key] = value[:max_len] + "..."
        else:
            truncated[key] = value
    return truncated


def _mentions(text: str, keywords: Sequence[str]) -> bool:
    lowered = text.lower()
    return any(k in lowered for k in keywords)


def token_report(usage: TokenUsage) -> str:
    warning = " ⚠ high usage" if usage.total > TOKEN_WARNING_THRESHOLD else ""
    return (
        f"~ Tokens: {usage.prompt_tokens:,} in / {usage.completion_tokens:,} out "
        f"({usage.total:,} total){warning} ~"
    )


def _as_list(value: Any) -> list[Any]:
    if value is None or value == "":
        return []
    return value if isinstance(value, list) else [value]


def audit_from_sprint_issues(ctx: AuditContext, result: dict[str, Any], args: dict[str, Any]) -> AuditContext:
    sprints = result.get("sprints") or {}
    rows = [row for sprint in sprints.values() for row in sprint.get("issues") or []]
    applied = result.get("filters_applied") or {}
    return dataclasses.replace(
        ctx,
        tool_used="get_sprint_issues",
        issue_count=result.get("total_issues", len(rows)),
        total_points=result.get("total_story_points", 0),
        issues=tuple(ReviewIssue.from_row(r) for r in rows),
        sprint_name=", ".join(sprints) or None,
        activity_changes=(),
        change_count=None,
        activity_period=None,
        applied=AppliedFilters(
            assignees=tuple(str(a) for a in _as_list(args.get("assignees", args.get("assignee")))),
            sprint_ids=tuple(applied.get("sprint_ids") or ()),
            status_filters=tuple(str(s) for s in applied.get("status_filters") or ()),
        ),
    )


def audit_from_analysis(ctx: AuditContext, result: dict[str, Any], args: dict[str, Any]) -> AuditContext:
    rows = result.get("issues") or []
    if not rows:
        return ctx
    condition = args.get("condition") if isinstance(args.get("condition"), dict) else {}
    assignee = condition.get("eq") if args.get("field") == "assignee" else None
    return dataclasses.replace(
        ctx,
        issue_count=len(rows),
        total_points=sum(r.get("story_points") or 0 for r in rows),
        issues=tuple(ReviewIssue.from_row(r) for r in rows),
        applied=AppliedFilters(
            assignees=(str(assignee),) if assignee else (),
            sprint_ids=ctx.applied.sprint_ids if ctx.applied else (),
        ),
    )


def audit_from_activity(ctx: AuditContext, result: dict[str, Any]) -> AuditContext:
    period = result.get("period") or {}
    applied = result.get("filters_applied") or {}
    changes = tuple(
        {k: c.get(k) for k in ("issue_key", "summary", "field", "from", "to", "changed_by")}
        for c in result.get("changes") or []
    )
    return dataclasses.replace(
        ctx,
        tool_used="get_activity",
        activity_changes=changes,
        change_count=result.get("total_changes", len(changes)),
        activity_period=period or None,
        issues=(),
        issue_count=None,
        total_points=None,
        sprint_name=None,
        applied=AppliedFilters(
            sprint_ids=tuple(applied.get("sprint_ids") or ()),
            assignees=tuple(applied.get("assignees") or ()),
            since=period.get("since"),
            until=period.get("until"),
            to_status=applied.get("to_status"),
        ),
    )


def update_audit_context(
    ctx: AuditContext, tool_name: str, result: Any, args: dict[str, Any]
) -> AuditContext:
    """Ground truth comes only from tool results; other tools leave it alone."""
    if not isinstance(result, dict):
        return ctx
    if tool_name == "get_sprint_issues":
        return audit_from_sprint_issues(ctx, result, args)
    if tool_name == "analyze_cached_data":
        return audit_from_analysis(ctx, result, args)
    if tool_name == "get_activity":
        return audit_from_activity(ctx, result)
    return ctx


def action_message(tool_name: str, result: dict[str, Any]) -> str:
    succeeded = result.get("succeeded", 0)
    failed = result.get("failed", 0)
    results = result.get("results") or []

    if failed:
        text = f"Completed with {succeeded} succeeded, {failed} failed."
        errors = "; ".join(f"{r.get('key') or 'Unknown'}: {r['error']}" for r in results if r.get("error"))
        return f"{text} Errors: {errors}" if errors else text

    verb = "created" if tool_name == "create_issues" else "updated"
    text = f"Successfully {verb} {succeeded} issue{'' if succeeded == 1 else 's'}."
    keys = ", ".join(r["key"] for r in results if r.get("key"))
    return f"{text} Keys: {keys}" if keys else text


# --- Orchestrator ---


class Orchestrator:
    """
    Runs assistant turns for any configured project.

    Collaborators are injected: the model, the tool registry, the shared
    metadata cache, one Jira backend per config id, the fresh/continuing
    classifier and the auditors.
    """

    def __init__(
        self,
        model: ChatModel,
        registry: ToolRegistry,
        cache: MetadataCache,
        configs: Sequence[ProjectConfig],
        backends: Mapping[str, JiraBackend],
        *,
        classifier: ContextClassifier | None = None,
        auditors: Auditors | None = None,
        max_iterations: int = MAX_TOOL_ITERATIONS,
    ) -> None:
        self._model = model
        self._registry = registry
        self._cache = cache
        self._configs = list(configs)
        self._backends = dict(backends)
        self._classifier = classifier or StaticClassifier(CONTINUING)
        self._auditors = auditors or Auditors()
        self._max_iterations = max_iterations

    @property
    def configs(self) -> list[ProjectConfig]:
        return list(self._configs)

    def project(self, config_id: str | None) -> ProjectConfig:
        return get_config(self._configs, config_id)

    def tool_context(
        self,
        config: ProjectConfig,
        *,
        csv_rows: list[dict[str, str]] | None = None,
        cached_issues: list[dict[str, Any]] | None = None,
        cached_sprint_name: str | None = None,
    ) -> ToolContext:
        backend = self._backends[config.id]
        return ToolContext(
            config=config,
            backend=backend,
            cache=self._cache,
            executor=MutationExecutor(backend, self._cache),
            csv_rows=list(csv_rows or []),
            cached_issues=cached_issues,
            cached_sprint_name=cached_sprint_name,
        )

    def _tool_schemas(self, include_csv: bool, used: set[str]) -> list[dict[str, Any]]:
        names = [
            name for name in self._registry.available_tools
            if include_csv or name not in CSV_TOOLS
        ]
        return self._registry.schemas(names, full=set(WRITE_TOOLS) | used)

    # --- Turn ---

    async def orchestrate(self, request: TurnRequest) -> AsyncIterator[dict[str, Any]]:
        config = self.project(request.config_id)
        if not request.messages:
            yield {"type": "error", "content": "messages must not be empty"}
            yield {"type": "done"}
            return

        current = request.messages[-1]
        previous = request.messages[:-1]
        user_question = str(current.get("content") or "") if current.get("role") == "user" else None
        has_csv = bool(request.csv_rows)

        history = list(request.messages)
        digest: str | None = None
        fresh = False

        if previous and user_question is not None:
            if has_csv and _mentions(user_question, CSV_CONTEXT_KEYWORDS):
                digest = extract_data_context(previous)
                yield {"type": "reasoning", "content": "→ Continuing CSV context"}
            else:
                summary = summarize_history(previous)
                if summary:
                    decision = await self._classifier.classify(user_question, summary)
                    if decision == FRESH:
                        fresh = True
                        history = [current]
                        yield {"type": "reasoning", "content": "↻ New task detected, starting fresh"}
                    else:
                        digest = extract_data_context(previous)
                        yield {"type": "reasoning", "content": "→ Continuing previous context"}

        include_csv = has_csv and _mentions(user_question or "", CSV_TOOL_KEYWORDS)
        cached_issues = None if fresh else request.cached_issues
        ctx = self.tool_context(
            config,
            csv_rows=request.csv_rows,
            cached_issues=cached_issues,
            cached_sprint_name=None if fresh else request.cached_sprint_name,
        )

        entry = await self._cache.get(config.id)
        messages: list[dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(entry, include_csv=include_csv)}
        ]
        if include_csv:
            messages.append({"role": "system", "content": (
                f"[CSV AVAILABLE: {len(request.csv_rows)} rows. "
                "Use prepare_issues to create issues from the uploaded CSV data.]"
            )})
        if cached_issues:
            source = f" from {request.cached_sprint_name}" if request.cached_sprint_name else ""
            messages.append({"role": "system", "content": (
                f"[CACHED DATA AVAILABLE: {len(cached_issues)} issues{source}. "
                "Use analyze_cached_data tool for follow-up questions about this data.]"
            )})
        if digest:
            messages.append({"role": "system", "content": (
                "[AVAILABLE DATA from previous query - use this to answer follow-ups "
                f"without new API calls: {digest}]"
            )})
        messages.extend(
            {"role": m.get("role", "user"), "content": str(m.get("content") or "")} for m in history
        )

        usage = TokenUsage()
        audit = AuditContext(user_question=user_question)
        used: set[str] = set()

        for iteration in range(self._max_iterations):
            try:
                reply = await self._model.chat_with_tools(
                    compress_messages(messages), self._tool_schemas(include_csv, used)
                )
            except LLMError as e:
                logger.error(f"chat_with_tools failed on iteration {iteration + 1}: {e}")
                yield {"type": "chunk", "content": CONNECTION_ERROR}
                yield {"type": "done"}
                return
            usage += reply.usage

            if not reply.tool_calls:
                async for event in self._finish(messages, usage, audit, request.use_auditor):
                    yield event
                return

            call = reply.tool_calls[0]
            used.add(call.name)

            if call.name in WRITE_TOOLS:
                async for event in self._propose(call, reply.content, user_question, request.use_auditor):
                    yield event
                return

            yield {"type": "reasoning", "content": reply.content or f"Calling {call.name}..."}
            yield {"type": "tool_call", "tool": call.name, "arguments": _truncate_args(call.arguments)}

            outcome = await self._registry.dispatch(call.name, ctx, call.arguments)
            messages.append({
                "role": "assistant",
                "content": reply.content,
                "tool_calls": [call.to_message()],
            })

            if not outcome.ok:
                yield {"type": "tool_result", "tool": call.name, "content": f"Error: {outcome.error}"}
                messages.append({"role": "tool", "content": json.dumps({"error": outcome.error})})
                continue

            yield {
                "type": "tool_result",
                "tool": call.name,
                "content": summarize_tool_result(call.name, outcome.result),
            }
            audit = update_audit_context(audit, call.name, outcome.result, call.arguments)
            for item in extract_structured_data(call.name, outcome.result):
                yield {"type": "structured_data", "data": item}
            messages.append({
                "role": "tool",
                "content": condense_for_model(call.name, outcome.result, call.arguments),
            })

        logger.warning(f"Turn hit the {self._max_iterations}-iteration limit")
        yield {"type": "reasoning", "content": "Reached maximum tool iterations, generating summary..."}
        async for event in self._finish(messages, usage, audit, request.use_auditor):
            yield event

    async def _finish(
        self,
        messages: list[dict[str, Any]],
        usage: TokenUsage,
        audit: AuditContext,
        use_auditor: bool,
    ) -> AsyncIterator[dict[str, Any]]:
        """Stream the answer, report tokens, review, then done."""
        answer_parts: list[str] = []
        try:
            async for chunk in self._model.stream_chat(compress_messages(messages)):
                if chunk.usage is not None:
                    usage += chunk.usage
                if chunk.content:
                    answer_parts.append(chunk.content)
                    yield {"type": "chunk", "content": chunk.content}
        except LLMError as e:
            logger.error(f"stream_chat failed: {e}")
            yield {"type": "chunk", "content": CONNECTION_ERROR}
            yield {"type": "done"}
            return

        yield {"type": "reasoning", "content": token_report(usage)}

        if use_auditor and (audit.has_issue_data or audit.has_activity_data):
            review = await run_auditors("".join(answer_parts), audit, self._auditors)
            yield review.to_event()

        yield {"type": "done"}

    async def _propose(
        self,
        call: ToolCall,
        content: str,
        user_question: str | None,
        use_auditor: bool,
    ) -> AsyncIterator[dict[str, Any]]:
        if content:
            yield {"type": "chunk", "content": content}
        verb = "create" if call.name == "create_issues" else "update"
        yield {"type": "reasoning", "content": f"Preparing to {verb} issues..."}
        yield {"type": "tool_call", "tool": call.name, "arguments": call.arguments}

        issues = tuple(i for i in call.arguments.get("issues") or [] if isinstance(i, dict))

        verdict: Verdict | None = None
        if use_auditor and user_question:
            yield {"type": "reasoning", "content": "Auditing mutation arguments..."}
            verdict = await self._auditors.mutation.verify(
                MutationCheck(user_request=user_question, tool_name=call.name, arguments=call.arguments)
            )
            if verdict.passed:
                yield {"type": "reasoning", "content": f"Auditor: ✓ {verdict.reason or 'Arguments match request'}"}
            else:
                yield {"type": "warning", "content": f"Auditor: ⚠ {verdict.reason or 'Argument mismatch'}"}

        action = PendingAction(id=str(uuid.uuid4()), tool_name=call.name, issues=issues, audit=verdict)
        logger.info(f"Proposed {call.name} for {len(issues)} issue(s) as {action.id}")
        yield {"type": "confirmation_required", "pending_action": action.to_dict()}
        yield {"type": "done"}

    # --- Confirmed Actions ---

    async def execute_action(
        self, config_id: str | None, tool_name: str, issues: list[dict[str, Any]]
    ) -> AsyncIterator[dict[str, Any]]:
        """Run a confirmed create/update through the same executor the tools use."""
        config = self.project(config_id)
        yield {"type": "tool_call", "tool": tool_name, "arguments": {"issues": issues}}

        if tool_name not in WRITE_TOOLS:
            yield {"type": "error", "content": f"Not a write tool: {tool_name}"}
            yield {"type": "done"}
            return

        outcome = await self._registry.dispatch(tool_name, self.tool_context(config), {"issues": issues})
        if not outcome.ok:
            yield {"type": "error", "content": outcome.error or "Tool execution failed"}
            yield {"type": "done"}
            return

        yield {
            "type": "tool_result",
            "tool": tool_name,
            "content": summarize_tool_result(tool_name, outcome.result),
        }
        yield {"type": "chunk", "content": action_message(tool_name, outcome.result)}
        yield {"type": "done"}
