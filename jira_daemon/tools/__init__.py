"""
Tools package: self-contained tool modules.

- tools.jira: read and write tools backed by the Jira API
- tools.local: tools over data the request already carries (CSV, cached issues)

Public API:
- Tool, ToolSpec, tool: core types and decorator
- ToolContext: per-request state passed to tools
- ToolRegistry, ToolOutcome, get_registry: lookup and dispatch
"""

from .base import Tool, ToolFunction, ToolSpec, tool
from .context import ToolContext
from .registry import ToolOutcome, ToolRegistry, get_registry

__all__ = [
    "Tool",
    "ToolSpec",
    "tool",
    "ToolFunction",
    "ToolContext",
    "ToolOutcome",
    "ToolRegistry",
    "get_registry",
]
