"""
Ollama chat client.

Three calls cover everything the daemon needs:
- chat_with_tools: one non-streamed round that may pick a tool
- stream_chat: the final streamed answer
- generate: single-prompt completions for auditors and the context classifier
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Protocol

import httpx

from .config import OllamaSettings
from .errors import LLMError

logger = logging.getLogger("jira.llm")


# --- Message Types ---


@dataclass(frozen=True)
class TokenUsage:
    """Prompt/completion token counts reported by the model."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            self.prompt_tokens + other.prompt_tokens,
            self.completion_tokens + other.completion_tokens,
        )


@dataclass(frozen=True)
class ToolCall:
    """Parsed tool call from a model reply."""

    name: str
    arguments: dict[str, Any]

    def to_message(self) -> dict[str, Any]:
        return {"function": {"name": self.name, "arguments": self.arguments}}


@dataclass(frozen=True)
class ModelReply:
    """One non-streamed assistant turn."""

    content: str
    tool_calls: tuple[ToolCall, ...] = ()
    usage: TokenUsage = field(default_factory=TokenUsage)

    def to_message(self) -> dict[str, Any]:
        message: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [tc.to_message() for tc in self.tool_calls]
        return message


@dataclass(frozen=True)
class StreamChunk:
    """A content delta, or the trailing usage report (content is empty)."""

    content: str = ""
    usage: TokenUsage | None = None


class ChatModel(Protocol):
    """What the orchestrator and auditors need from a model backend."""

    async def chat_with_tools(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]
    ) -> ModelReply: ...

    def stream_chat(self, messages: list[dict[str, Any]]) -> AsyncIterator[StreamChunk]: ...

    async def generate(
        self, prompt: str, *, num_predict: int | None = None, temperature: float = 0.0
    ) -> str: ...


# --- Parsing (Pure Functions) ---


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Tool arguments arrive as an object or a JSON string; anything else is {}."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def parse_tool_calls(response: str) -> list[ToolCall]:
    """Extract <tool_call> blocks some models write inline instead of structured calls."""
    pattern = r"<tool_call>\s*({.*?})\s*</tool_call>"
    matches: list[str] = re.findall(pattern, response, re.DOTALL)

    calls: list[ToolCall] = []
    for match in matches:
        try:
            data: dict[str, Any] = json.loads(match)
        except json.JSONDecodeError:
            continue
        name = data.get("name", "")
        if name:
            calls.append(ToolCall(name=name, arguments=parse_arguments(data.get("arguments"))))
    return calls


def strip_tool_markup(response: str) -> str:
    """Remove tool call and thinking blocks from visible text."""
    cleaned = re.sub(r"<tool_call>.*?</tool_call>", "", response, flags=re.DOTALL)
    cleaned = re.sub(r"<think>.*?</think>", "", cleaned, flags=re.DOTALL)
    return cleaned.strip()


def _usage_from(data: dict[str, Any]) -> TokenUsage:
    return TokenUsage(
        prompt_tokens=int(data.get("prompt_eval_count") or 0),
        completion_tokens=int(data.get("eval_count") or 0),
    )


def _wire_messages(messages: list[dict[str, Any]]) -> list[dict[str, Any]]:
    wire: list[dict[str, Any]] = []
    for msg in messages:
        out: dict[str, Any] = {"role": msg["role"], "content": msg.get("content", "")}
        if msg.get("tool_calls"):
            out["tool_calls"] = msg["tool_calls"]
        wire.append(out)
    return wire


# --- Client ---


class OllamaClient:
    """Async Ollama client; one instance is shared for the process lifetime."""

    def __init__(
        self,
        settings: OllamaSettings | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings or OllamaSettings.from_env()
        self._http = http or httpx.AsyncClient(
            base_url=self._settings.base_url,
            auth=self._settings.auth,
            timeout=self._settings.timeout,
        )

    @property
    def model(self) -> str:
        return self._settings.model

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._http.post(path, json=payload)
        except httpx.HTTPError as e:
            raise LLMError(f"Ollama request failed: {e}") from e
        if response.status_code >= 400:
            raise LLMError(f"Ollama API error: {response.status_code} - {response.text}")
        try:
            return response.json()
        except ValueError as e:
            raise LLMError(f"Ollama returned invalid JSON: {e}") from e

    async def chat_with_tools(
        self, messages: list[dict[str, Any]], tools: list[dict[str, Any]]
    ) -> ModelReply:
        data = await self._post("/api/chat", {
            "model": self._settings.model,
            "messages": _wire_messages(messages),
            "tools": tools,
            "stream": False,
            "options": {"num_predict": self._settings.max_output_tokens},
        })
        message = data.get("message") or {}
        content: str = message.get("content") or ""

        calls = [
            ToolCall(
                name=(tc.get("function") or {}).get("name", ""),
                arguments=parse_arguments((tc.get("function") or {}).get("arguments")),
            )
            for tc in message.get("tool_calls") or []
        ]
        calls = [c for c in calls if c.name]
        if not calls and "<tool_call>" in content:
            calls = parse_tool_calls(content)
            content = strip_tool_markup(content)

        return ModelReply(content=content, tool_calls=tuple(calls), usage=_usage_from(data))

    async def stream_chat(self, messages: list[dict[str, Any]]) -> AsyncIterator[StreamChunk]:
        payload = {
            "model": self._settings.model,
            "messages": _wire_messages(messages),
            "stream": True,
            "options": {"num_predict": self._settings.max_output_tokens},
        }
        try:
            async with self._http.stream("POST", "/api/chat", json=payload) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise LLMError(
                        f"Ollama API error: {response.status_code} - {body.decode(errors='replace')}"
                    )
                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    try:
                        parsed = json.loads(line)
                    except json.JSONDecodeError:
                        continue
                    text = (parsed.get("message") or {}).get("content")
                    if text:
                        yield StreamChunk(content=text)
                    if parsed.get("done"):
                        yield StreamChunk(usage=_usage_from(parsed))
                        return
        except httpx.HTTPError as e:
            raise LLMError(f"Ollama stream failed: {e}") from e

    async def generate(
        self, prompt: str, *, num_predict: int | None = None, temperature: float = 0.0
    ) -> str:
        options: dict[str, Any] = {"temperature": temperature}
        if num_predict is not None:
            options["num_predict"] = num_predict
        data = await self._post("/api/generate", {
            "model": self._settings.model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        })
        return str(data.get("response") or "")
