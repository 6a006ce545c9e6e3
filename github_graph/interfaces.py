"""Capabilities the crawler consumes.

The orchestrator only depends on these shapes, so a fake fetcher or an
in-memory store can stand in for GitHub and Neo4j.
"""

from __future__ import annotations

from typing import Any, Mapping, Protocol

from .config import RateLimitInfo
from .schema import NodeLabel, RelationshipEndpoint, RelationshipType


class ResourceFetcher(Protocol):
    @property
    def base_url(self) -> str: ...

    @property
    def request_count(self) -> int: ...

    @property
    def rate_limit(self) -> RateLimitInfo | None: ...

    def repositories_url(self, since: int) -> str: ...

    def users_url(self, since: int) -> str: ...

    async def get(self, url: str) -> list[dict[str, Any]]:
        """Return one page of entities or raise ``FetchFailedError``/``RateLimitExceededError``."""
        ...


class GraphStore(Protocol):
    async def write_node(self, label: NodeLabel, properties: Mapping[str, Any]) -> None:
        """Upsert a node keyed by the label's match property."""
        ...

    async def write_relationship(
        self,
        source: RelationshipEndpoint,
        target: RelationshipEndpoint,
        relationship: RelationshipType,
    ) -> None:
        """Upsert a directed edge; raise ``GraphWriteError`` if an endpoint is missing."""
        ...

    async def read_max_repo_external_id(self) -> int: ...

    async def read_user_bookmark(self) -> int: ...

    async def update_user_bookmark(self, external_id: int) -> None: ...


__all__ = ["GraphStore", "ResourceFetcher"]
