"""
Base types for the tool system.

Each tool is a self-contained module exporting a `TOOL` object that bundles
the schema (for the model) with the implementation (for execution).

Tool functions take the per-request ToolContext and the raw argument dict
and return a JSON-serializable result; they raise ToolValidationError for
bad input.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .context import ToolContext


ToolFunction = Callable[["ToolContext", dict[str, Any]], Awaitable[Any]]

# remote: reads Jira; local: works on data the request carries; write: mutates Jira
TOOL_KINDS = ("remote", "local", "write")


def _strip_descriptions(schema: Any) -> Any:
    if isinstance(schema, dict):
        return {k: _strip_descriptions(v) for k, v in schema.items() if k != "description"}
    if isinstance(schema, list):
        return [_strip_descriptions(v) for v in schema]
    return schema


@dataclass(frozen=True)
class ToolSpec:
    """
    Immutable tool specification (schema only).

    `brief` is the one-line description used in the light schema that keeps
    the prompt small until the model actually uses a tool.
    """

    name: str
    description: str
    parameters: dict[str, Any]
    brief: str | None = None
    kind: str = "remote"
    # alternate argument names models use for a required parameter
    aliases: tuple[tuple[str, tuple[str, ...]], ...] = ()

    @property
    def required(self) -> tuple[str, ...]:
        return tuple(self.parameters.get("required", ()))

    def names_for(self, param: str) -> tuple[str, ...]:
        return (param,) + dict(self.aliases).get(param, ())

    def to_schema(self, light: bool = False) -> dict[str, Any]:
        """Ollama/OpenAI function-calling shape."""
        if light:
            function = {
                "name": self.name,
                "description": self.brief or self.description.split("\n", 1)[0],
                "parameters": _strip_descriptions(self.parameters),
            }
        else:
            function = {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            }
        return {"type": "function", "function": function}


@dataclass(frozen=True)
class Tool:
    """
    Complete tool definition: schema + implementation.

    Each tool module exports a single `TOOL` instance of this type.
    """

    spec: ToolSpec
    execute: ToolFunction

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def kind(self) -> str:
        return self.spec.kind

    def to_schema(self, light: bool = False) -> dict[str, Any]:
        return self.spec.to_schema(light)


@runtime_checkable
class ToolModule(Protocol):
    """Each tool module must export a TOOL constant of type Tool."""

    TOOL: Tool


def tool(
    name: str,
    description: str,
    parameters: dict[str, Any],
    *,
    brief: str | None = None,
    kind: str = "remote",
    aliases: dict[str, tuple[str, ...]] | None = None,
) -> Callable[[ToolFunction], Tool]:
    """
    Decorator to create a Tool from an async function.

    Usage:
        @tool(name="get_issue", description="...", parameters={...})
        async def get_issue(ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
            ...

        TOOL = get_issue
    """
    if kind not in TOOL_KINDS:
        raise ValueError(f"Unknown tool kind: {kind}")

    def decorator(fn: ToolFunction) -> Tool:
        spec = ToolSpec(
            name=name,
            description=description,
            parameters=parameters,
            brief=brief,
            kind=kind,
            aliases=tuple((aliases or {}).items()),
        )
        return Tool(spec=spec, execute=fn)

    return decorator
