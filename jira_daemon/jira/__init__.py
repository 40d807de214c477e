"""
Jira access layer.

- client: httpx REST client and the JiraBackend protocol
- cache: per-project TTL metadata cache
- resolvers / filters: pure name, status and date matching
- mutations: bulk create/update with 429 retry
"""

from .cache import CacheEntry, MetadataCache
from .client import JiraBackend, JiraClient
from .mutations import BulkSummary, MutationExecutor

__all__ = [
    "CacheEntry",
    "MetadataCache",
    "JiraBackend",
    "JiraClient",
    "BulkSummary",
    "MutationExecutor",
]
