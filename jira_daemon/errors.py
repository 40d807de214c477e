"""Exception types shared across the daemon."""

from __future__ import annotations


class AssistantError(Exception):
    """Base class for all daemon errors."""


class ConfigError(AssistantError):
    """Missing or malformed configuration, or an unknown config id."""


class ToolValidationError(AssistantError):
    """Bad tool arguments. The message is relayed to the model verbatim."""


class JiraAPIError(AssistantError):
    """Non-2xx response from Jira."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = status

    @property
    def is_rate_limited(self) -> bool:
        return self.status == 429


class MaxRetriesExceeded(AssistantError):
    """A rate-limited call kept failing after every retry."""

    def __init__(self, message: str = "Max retries exceeded") -> None:
        super().__init__(message)


class LLMError(AssistantError):
    """The model endpoint failed or returned something unusable."""
