"""
Per-project metadata cache.

Sprints, statuses, team roster, custom field ids, versions, components and
priorities change rarely, so they are fetched once per project and kept for
CACHE_TTL. Each project's entry is replaced as a whole; readers see either
the old snapshot or the new one.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from ..config import CACHE_TTL
from ..errors import ConfigError
from .client import JiraBackend
from .models import JiraField, Sprint, TeamMember

logger = logging.getLogger("jira.cache")

RECENT_SPRINTS = 50
SAMPLED_SPRINTS = 5


# --- Field discovery ---


@dataclass(frozen=True)
class FieldSearch:
    key: str
    patterns: tuple[re.Pattern[str], ...]
    fallback_includes: str | None = None


FIELD_SEARCHES: tuple[FieldSearch, ...] = (
    FieldSearch(
        key="story_points",
        patterns=(re.compile(r"^story\s*points?$", re.IGNORECASE),),
        fallback_includes="story point",
    ),
)


def find_fields(
    fields: Sequence[JiraField], searches: Sequence[FieldSearch] = FIELD_SEARCHES
) -> dict[str, str | None]:
    """Resolve logical field keys to custom field ids; None when absent."""
    custom = [f for f in fields if f.custom]
    result: dict[str, str | None] = {}

    for search in searches:
        field_id: str | None = None
        for pattern in search.patterns:
            match = next((f for f in custom if pattern.search(f.name)), None)
            if match:
                logger.info(f"Found {search.key}: {match.id} - {match.name}")
                field_id = match.id
                break

        if field_id is None and search.fallback_includes:
            needle = search.fallback_includes.lower()
            fallback = next((f for f in custom if needle in f.name.lower()), None)
            if fallback:
                logger.info(f"Found {search.key} (fallback): {fallback.id} - {fallback.name}")
                field_id = fallback.id

        if field_id is None:
            logger.info(f"{search.key} field not found")
        result[search.key] = field_id

    return result


# --- Cache entry ---


@dataclass(frozen=True)
class CacheEntry:
    sprints: tuple[Sprint, ...]
    statuses: tuple[str, ...]
    team_members: tuple[TeamMember, ...]
    fields: tuple[JiraField, ...]
    field_mappings: Mapping[str, str | None]
    versions: tuple[str, ...]
    components: tuple[str, ...]
    priorities: tuple[str, ...]
    fetched_at: float

    @property
    def story_points_field(self) -> str | None:
        return self.field_mappings.get("story_points")

    @property
    def active_sprint(self) -> Sprint | None:
        return next((s for s in self.sprints if s.state == "active"), None)

    def sprint_name(self, sprint_id: int) -> str:
        sprint = next((s for s in self.sprints if s.id == sprint_id), None)
        return sprint.name if sprint else f"Sprint {sprint_id}"


# --- Cache ---


class MetadataCache:
    """
    Keyed TTL store of CacheEntry, one per project config id.

    Concurrent expiries may refresh the same project twice; the later write
    wins and both results are complete snapshots.
    """

    def __init__(
        self,
        backends: Mapping[str, JiraBackend],
        ttl_seconds: float = CACHE_TTL.total_seconds(),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backends = dict(backends)
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def _backend(self, config_id: str) -> JiraBackend:
        backend = self._backends.get(config_id)
        if backend is None:
            available = ", ".join(self._backends)
            raise ConfigError(f'Config "{config_id}" not found. Available: {available}')
        return backend

    def is_valid(self, config_id: str) -> bool:
        entry = self._entries.get(config_id)
        return entry is not None and self._clock() - entry.fetched_at < self._ttl

    async def get(self, config_id: str) -> CacheEntry:
        if self.is_valid(config_id):
            return self._entries[config_id]
        return await self.refresh(config_id)

    async def refresh(self, config_id: str) -> CacheEntry:
        backend = self._backend(config_id)
        logger.info(f"Refreshing metadata for {config_id}")
        start = self._clock()

        all_sprints, fields, versions, components, priorities = await asyncio.gather(
            backend.list_sprints("all", RECENT_SPRINTS),
            backend.get_fields(),
            backend.get_versions(),
            backend.get_components(),
            backend.get_priorities(),
        )
        field_mappings = find_fields(fields)
        statuses, team = await self._sample_statuses_and_team(
            backend, field_mappings.get("story_points")
        )

        entry = CacheEntry(
            sprints=tuple(s for s in all_sprints if s.state in ("active", "closed")),
            statuses=statuses,
            team_members=team,
            fields=tuple(fields),
            field_mappings=field_mappings,
            versions=tuple(v["name"] for v in versions if not v.get("archived")),
            components=tuple(components),
            priorities=tuple(priorities),
            fetched_at=self._clock(),
        )
        self._entries[config_id] = entry
        logger.info(
            f"Cached {len(entry.sprints)} sprints, {len(entry.team_members)} members, "
            f"{len(entry.statuses)} statuses for {config_id} in {entry.fetched_at - start:.1f}s"
        )
        return entry

    async def _sample_statuses_and_team(
        self, backend: JiraBackend, story_points_field: str | None
    ) -> tuple[tuple[str, ...], tuple[TeamMember, ...]]:
        recent = await backend.list_sprints("all", SAMPLED_SPRINTS)
        per_sprint = await asyncio.gather(
            *(backend.get_sprint_issues(s.id, story_points_field) for s in recent)
        )

        statuses: set[str] = set()
        members: dict[str, str] = {}
        for issues in per_sprint:
            for issue in issues:
                if issue.status:
                    statuses.add(issue.status)
                if issue.assignee and issue.assignee_display_name:
                    members.setdefault(issue.assignee.lower(), issue.assignee_display_name)

        team = sorted(
            (TeamMember(name=name, email=email) for email, name in members.items()),
            key=lambda m: m.name.lower(),
        )
        return tuple(sorted(statuses)), tuple(team)

    def invalidate(self, config_id: str) -> None:
        self._entries.pop(config_id, None)

    def info(self, config_id: str) -> dict[str, Any]:
        """Seconds since fetch and until expiry; None when nothing is cached."""
        entry = self._entries.get(config_id)
        if entry is None:
            return {"valid": False, "age": None, "expires_in": None}
        age = self._clock() - entry.fetched_at
        return {"valid": age < self._ttl, "age": age, "expires_in": self._ttl - age}
