"""
Audit subsystem.

Three LLM-graded checks, each fail-open:
- FilterAuditor: were the applied filters enough for the question?
- FactsAuditor: does the answer match the tool results?
- MutationAuditor: do proposed create/update arguments match the request?

AlwaysPass stands in for any of them in tests.
"""

from .base import AlwaysPass, Auditor, Verdict, parse_verdict
from .facts import (
    FactsAuditor,
    FactsCheck,
    ReviewIssue,
    build_activity_facts_sheet,
    build_assignee_map,
    build_facts_sheet,
)
from .filters import AppliedFilters, FilterAuditor, FilterCheck
from .mutation import MutationAuditor, MutationCheck, describe_proposal
from .review import (
    AuditContext,
    Auditors,
    ReviewResult,
    build_breakdown,
    llm_auditors,
    run_auditors,
)

__all__ = [
    "AlwaysPass",
    "Auditor",
    "Verdict",
    "parse_verdict",
    "FactsAuditor",
    "FactsCheck",
    "ReviewIssue",
    "build_activity_facts_sheet",
    "build_assignee_map",
    "build_facts_sheet",
    "AppliedFilters",
    "FilterAuditor",
    "FilterCheck",
    "MutationAuditor",
    "MutationCheck",
    "describe_proposal",
    "AuditContext",
    "Auditors",
    "ReviewResult",
    "build_breakdown",
    "run_auditors",
    "llm_auditors",
]

