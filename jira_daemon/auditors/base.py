"""Verdict type and reply parsing shared by every auditor."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class Verdict:
    passed: bool
    reason: str | None = None
    skipped: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"pass": self.passed, "reason": self.reason}


def skipped(reason: str) -> Verdict:
    return Verdict(True, reason, skipped=True)


def parse_verdict(
    reply: str,
    *,
    pass_token: str,
    fail_token: str,
    pass_reason: str,
    fail_reason: str,
) -> Verdict:
    """
    Read a constrained "PASS" / "FAIL: why" style reply.

    Only a leading fail token blocks; anything unrecognisable is a skip.
    """
    text = reply.strip()
    if re.match(rf"{pass_token}\b", text, re.IGNORECASE):
        return Verdict(True, pass_reason)
    if re.match(rf"{fail_token}\b", text, re.IGNORECASE):
        why = re.sub(rf"^{fail_token}\W*", "", text, flags=re.IGNORECASE).strip()
        return Verdict(False, why or fail_reason)
    return skipped("Skipped (unclear verdict)")


class Auditor(Protocol):
    async def verify(self, check: Any) -> Verdict: ...


class AlwaysPass:
    """Deterministic stand-in for any auditor."""

    def __init__(self, reason: str = "Not audited") -> None:
        self.reason = reason
        self.checks: list[Any] = []

    async def verify(self, check: Any) -> Verdict:
        self.checks.append(check)
        return Verdict(True, self.reason)
