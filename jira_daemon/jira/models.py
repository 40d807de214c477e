"""Immutable records decoded from Jira REST payloads."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Sprint:
    id: int
    name: str
    state: str
    start_date: str | None = None
    end_date: str | None = None
    goal: str | None = None

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Sprint:
        return cls(
            id=int(data["id"]),
            name=str(data.get("name") or ""),
            state=str(data.get("state") or ""),
            start_date=data.get("startDate") or None,
            end_date=data.get("endDate") or None,
            goal=data.get("goal") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "state": self.state,
            "start_date": self.start_date,
            "end_date": self.end_date,
        }


@dataclass(frozen=True)
class TeamMember:
    name: str
    email: str


@dataclass(frozen=True)
class JiraField:
    id: str
    name: str
    custom: bool

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> JiraField:
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            custom=bool(data.get("custom")),
        )


@dataclass(frozen=True)
class Issue:
    """A sprint issue reduced to the fields the assistant reasons over."""

    key: str
    summary: str
    status: str
    issue_type: str | None = None
    assignee: str | None = None  # email
    assignee_display_name: str | None = None
    story_points: float | None = None
    status_category: str | None = None  # new, indeterminate or done

    @classmethod
    def from_api(cls, data: dict[str, Any], story_points_field: str | None = None) -> Issue:
        fields = data.get("fields") or {}
        assignee = fields.get("assignee") or {}
        status = fields.get("status") or {}
        points = fields.get(story_points_field) if story_points_field else None
        return cls(
            key=str(data.get("key") or ""),
            summary=str(fields.get("summary") or ""),
            status=str(status.get("name") or ""),
            issue_type=(fields.get("issuetype") or {}).get("name"),
            assignee=assignee.get("emailAddress") or None,
            assignee_display_name=assignee.get("displayName") or None,
            # 0 and missing are indistinguishable upstream; both read as "no estimate"
            story_points=points if isinstance(points, (int, float)) and points else None,
            status_category=(status.get("statusCategory") or {}).get("key") or None,
        )


@dataclass(frozen=True)
class StatusChange:
    """One changelog item on one issue."""

    issue_key: str
    summary: str
    field: str
    from_value: str | None
    to_value: str | None
    changed_by: str
    changed_at: str
    assignee: str | None = None  # display name
    story_points: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "issue_key": self.issue_key,
            "summary": self.summary,
            "field": self.field,
            "from": self.from_value,
            "to": self.to_value,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at,
            "assignee": self.assignee,
            "story_points": self.story_points,
        }


@dataclass(frozen=True)
class Epic:
    key: str
    summary: str
    status: str
    assignee: str | None = None  # display name

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Epic:
        fields = data.get("fields") or {}
        return cls(
            key=str(data.get("key") or ""),
            summary=str(fields.get("summary") or ""),
            status=str((fields.get("status") or {}).get("name") or "Unknown"),
            assignee=(fields.get("assignee") or {}).get("displayName") or None,
        )


@dataclass(frozen=True)
class BoardColumn:
    """A board column and the status names mapped onto it, in board order."""

    name: str
    statuses: tuple[str, ...]
