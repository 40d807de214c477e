"""Per-request state handed to every tool."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..config import ProjectConfig
from ..jira.cache import CacheEntry, MetadataCache
from ..jira.client import JiraBackend
from ..jira.mutations import MutationExecutor


@dataclass
class ToolContext:
    """
    Everything a tool may touch for one turn.

    csv_rows is the uploaded spreadsheet (if any). cached_issues holds issues
    from an earlier informational call, either handed back by the caller or
    filled in by get_sprint_issues during this turn.
    """

    config: ProjectConfig
    backend: JiraBackend
    cache: MetadataCache
    executor: MutationExecutor
    csv_rows: list[dict[str, str]] = field(default_factory=list)
    cached_issues: list[dict[str, Any]] | None = None
    cached_sprint_name: str | None = None

    async def metadata(self) -> CacheEntry:
        return await self.cache.get(self.config.id)

    def remember_issues(self, issues: list[dict[str, Any]], sprint_name: str | None) -> None:
        self.cached_issues = issues
        self.cached_sprint_name = sprint_name
