"""
Tool registry: discovers, loads, and dispatches tools.

Architecture:
- Tools are imported from dedicated modules (one tool per module)
- Registry provides one interface for the orchestrator and direct HTTP invocation
- Lazy loading: tool modules are imported on first access
- dispatch() never raises; failures come back as ToolOutcome.error so the
  model can read them and retry
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from typing import Any

from ..errors import ToolValidationError
from .base import Tool, ToolSpec
from .context import ToolContext

logger = logging.getLogger("jira.tools")


@dataclass(frozen=True)
class ToolOutcome:
    """Result of a dispatch: exactly one of result / error is meaningful."""

    tool_name: str
    result: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def missing_required(spec: ToolSpec, arguments: dict[str, Any]) -> list[str]:
    return [
        name
        for name in spec.required
        if all(arguments.get(n) in (None, "", []) for n in spec.names_for(name))
    ]


class ToolRegistry:
    """Central registry for tool implementations."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}
        self._lazy_loaders: dict[str, tuple[str, str]] = {}  # name -> (module_path, attr)
        self._order: list[str] = []

    def register(self, tool: Tool) -> None:
        """Register a tool directly."""
        self._tools[tool.name] = tool
        if tool.name not in self._order:
            self._order.append(tool.name)
        logger.debug(f"Registered tool: {tool.name}")

    def register_lazy(self, name: str, module_path: str, attr: str = "TOOL") -> None:
        """The module is imported and attr read on first use."""
        self._lazy_loaders[name] = (module_path, attr)
        if name not in self._order:
            self._order.append(name)
        logger.debug(f"Registered lazy tool: {name} -> {module_path}.{attr}")

    def _load_lazy(self, name: str) -> Tool | None:
        if name not in self._lazy_loaders:
            return None

        module_path, attr = self._lazy_loaders[name]
        module = importlib.import_module(module_path)
        tool = getattr(module, attr)
        if not isinstance(tool, Tool):
            raise TypeError(f"Tool {name} at {module_path}.{attr} is not a Tool instance")
        self._tools[name] = tool
        del self._lazy_loaders[name]
        logger.debug(f"Lazy-loaded tool: {name}")
        return tool

    def get(self, name: str) -> Tool | None:
        """Get a tool by name, loading lazily if needed."""
        if name in self._tools:
            return self._tools[name]
        return self._load_lazy(name)

    def get_spec(self, name: str) -> ToolSpec | None:
        tool = self.get(name)
        return tool.spec if tool else None

    @property
    def available_tools(self) -> list[str]:
        """All registered tool names in registration order."""
        return list(self._order)

    def get_all_specs(self) -> list[ToolSpec]:
        specs = []
        for name in self.available_tools:
            spec = self.get_spec(name)
            if spec:
                specs.append(spec)
        return specs

    def names_of_kind(self, kind: str) -> list[str]:
        return [s.name for s in self.get_all_specs() if s.kind == kind]

    def schemas(self, names: list[str], full: set[str] | frozenset[str] = frozenset()) -> list[dict[str, Any]]:
        """Function-calling schemas; names in `full` get the long form."""
        out = []
        for name in names:
            spec = self.get_spec(name)
            if spec is None:
                logger.warning(f"Tool not found: {name}")
                continue
            out.append(spec.to_schema(light=name not in full))
        return out

    async def dispatch(self, name: str, ctx: ToolContext, arguments: dict[str, Any]) -> ToolOutcome:
        tool = self.get(name)
        if tool is None:
            return ToolOutcome(name, error=f"Unknown tool: {name}")

        missing = missing_required(tool.spec, arguments)
        if missing:
            return ToolOutcome(name, error=f"{', '.join(missing)} is required")

        try:
            result = await tool.execute(ctx, arguments)
        except ToolValidationError as e:
            logger.info(f"Tool {name} rejected arguments: {e}")
            return ToolOutcome(name, error=str(e))
        except Exception as e:
            logger.exception(f"Tool {name} execution failed")
            return ToolOutcome(name, error=str(e) or "Tool execution failed")
        return ToolOutcome(name, result=result)


# --- Global Registry Instance ---

_registry: ToolRegistry | None = None

JIRA_TOOLS = [
    "list_sprints",
    "get_context",
    "get_sprint_issues",
    "get_issue",
    "get_activity",
    "list_epics",
    "get_epic_progress",
    "create_issues",
    "update_issues",
]

LOCAL_TOOLS = [
    "query_csv",
    "prepare_issues",
    "analyze_cached_data",
]


def get_registry() -> ToolRegistry:
    """Get or create the global tool registry."""
    global _registry
    if _registry is None:
        _registry = ToolRegistry()
        _populate_registry(_registry)
    return _registry


def _populate_registry(registry: ToolRegistry) -> None:
    for name in JIRA_TOOLS:
        registry.register_lazy(name, f"jira_daemon.tools.jira.{name}", "TOOL")
    for name in LOCAL_TOOLS:
        registry.register_lazy(name, f"jira_daemon.tools.local.{name}", "TOOL")
    logger.info(f"Registry populated with {len(registry.available_tools)} tools (lazy)")
