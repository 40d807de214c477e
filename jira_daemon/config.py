"""
Centralized configuration for the Jira assistant daemon.

Architecture:
- ProjectConfig: immutable description of one Jira project/board pairing
- OllamaSettings: where and how to reach the chat model
- Loop and executor limits live here as module constants
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Mapping

from .errors import ConfigError


# --- Limits ---

MAX_TOOL_ITERATIONS = 10
TOKEN_WARNING_THRESHOLD = 25000  # ~80% of a 32k context

CACHE_TTL = timedelta(days=7)

RETRY_DELAY_SECONDS = 1.0
MAX_RETRIES = 3
BULK_BATCH_SIZE = 50

CSV_LIMIT = 50
SPRINT_LIMIT = 20
EPIC_REPORT_LIMIT = 100
DEFAULT_ISSUE_TYPE = "Story"

RECENT_TURN_WINDOW = 8

WRITE_TOOLS: tuple[str, ...] = ("create_issues", "update_issues")


# --- Project Configs ---


_REQUIRED_FIELDS = ("id", "name", "baseUrl", "boardId", "projectKey", "email", "apiToken")

_EXAMPLE = (
    '[{"id":"proj","name":"Project","baseUrl":"https://x.atlassian.net",'
    '"boardId":1,"projectKey":"PROJ","email":"me@x.com","apiToken":"..."}]'
)


@dataclass(frozen=True)
class ProjectConfig:
    """One configured Jira project. Credentials never leave the server."""

    id: str
    name: str
    base_url: str
    board_id: int
    project_key: str
    email: str
    api_token: str

    def to_public(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "projectKey": self.project_key}


def _parse_config(raw: Any) -> ProjectConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"Invalid config: expected an object, got {type(raw).__name__}")
    missing = [f for f in _REQUIRED_FIELDS if raw.get(f) in (None, "")]
    if missing:
        raise ConfigError(f"Invalid config: missing {', '.join(missing)}")
    try:
        board_id = int(raw["boardId"])
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid config: boardId must be a number, got {raw['boardId']!r}")
    return ProjectConfig(
        id=str(raw["id"]),
        name=str(raw["name"]),
        base_url=str(raw["baseUrl"]).rstrip("/"),
        board_id=board_id,
        project_key=str(raw["projectKey"]),
        email=str(raw["email"]),
        api_token=str(raw["apiToken"]),
    )


def load_project_configs(env: Mapping[str, str] | None = None) -> tuple[ProjectConfig, ...]:
    """Parse JIRA_CONFIGS (a JSON array) from the environment."""
    env = os.environ if env is None else env
    raw = env.get("JIRA_CONFIGS")
    if not raw:
        raise ConfigError(
            f"JIRA_CONFIGS environment variable is required. Example: {_EXAMPLE}"
        )
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigError(f"JIRA_CONFIGS is not valid JSON: {e}")
    if not isinstance(data, list) or not data:
        raise ConfigError("JIRA_CONFIGS must be a non-empty JSON array")

    configs = tuple(_parse_config(item) for item in data)
    ids = [c.id for c in configs]
    if len(set(ids)) != len(ids):
        raise ConfigError(f"Invalid config: duplicate ids in {', '.join(ids)}")
    return configs


def get_config(configs: tuple[ProjectConfig, ...], config_id: str | None = None) -> ProjectConfig:
    """Look up a config by id; the first one is the default."""
    if not configs:
        raise ConfigError("No Jira configs loaded")
    if config_id is None:
        return configs[0]
    for config in configs:
        if config.id == config_id:
            return config
    available = ", ".join(c.id for c in configs)
    raise ConfigError(f'Config "{config_id}" not found. Available: {available}')


# --- Model Settings ---


@dataclass(frozen=True)
class OllamaSettings:
    """Ollama endpoint configuration."""

    base_url: str = "http://localhost:11434"
    model: str = "qwen2.5:7b"
    auth_user: str | None = None
    auth_pass: str | None = None
    max_output_tokens: int = 4096
    timeout: float = 300.0

    @property
    def auth(self) -> tuple[str, str] | None:
        if self.auth_user and self.auth_pass:
            return (self.auth_user, self.auth_pass)
        return None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> OllamaSettings:
        env = os.environ if env is None else env
        return cls(
            base_url=env.get("OLLAMA_BASE_URL", cls.base_url).rstrip("/"),
            model=env.get("OLLAMA_MODEL", cls.model),
            auth_user=env.get("OLLAMA_AUTH_USER") or None,
            auth_pass=env.get("OLLAMA_AUTH_PASS") or None,
        )
