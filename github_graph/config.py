"""Application configuration helpers."""

from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, PositiveInt


UTC = timezone.utc

UNAUTHENTICATED_REQUEST_BUDGET = 60
AUTHENTICATED_REQUEST_BUDGET = 5000


class GitHubSettings(BaseModel):
    """Configuration options for the GitHub REST API."""

    api_url: str = Field(default="https://api.github.com", description="Root of the REST API.")
    basic_auth_token: str | None = Field(
        default=None, description="Pre-encoded credential sent as 'Authorization: Basic <token>'."
    )
    request_timeout: float = Field(default=30.0, ge=1.0, description="Timeout for a single HTTP request in seconds.")
    request_budget: PositiveInt | None = Field(
        default=None,
        description="Requests allowed per run. Defaults to GitHub's hourly limit for the credential type.",
    )

    @property
    def hourly_request_budget(self) -> int:
        if self.request_budget is not None:
            return self.request_budget
        if self.basic_auth_token:
            return AUTHENTICATED_REQUEST_BUDGET
        return UNAUTHENTICATED_REQUEST_BUDGET


class Neo4jSettings(BaseModel):
    """Configuration for connecting to Neo4j."""

    uri: str = Field(default="neo4j://localhost:7687", description="Bolt or neo4j connection URL.")
    user: str = Field(default="neo4j")
    password: str = Field(default="")
    database: str | None = Field(default=None, description="Target database; the server default when unset.")


class RuntimeSettings(BaseModel):
    """Process level options."""

    mode: str = Field(default="dev", description="'dev' logs to stderr, anything else logs to log_file.")
    log_file: str = Field(default="github_graph.log")
    log_level: str = Field(default="INFO")

    @property
    def is_dev(self) -> bool:
        return self.mode == "dev"


class AppConfig(BaseModel):
    """Root configuration container."""

    github: GitHubSettings = Field(default_factory=GitHubSettings)
    neo4j: Neo4jSettings = Field(default_factory=Neo4jSettings)
    runtime: RuntimeSettings = Field(default_factory=RuntimeSettings)

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None, overrides: dict[str, Any] | None = None) -> "AppConfig":
        """Construct a configuration object from environment variables."""

        env = env if env is not None else os.environ
        overrides = overrides or {}

        budget = overrides.get("request_budget") or env.get("GITHUB_REQUEST_BUDGET")
        github = GitHubSettings(
            api_url=(overrides.get("github_api_url") or env.get("GITHUB_API_URL") or "https://api.github.com").rstrip("/"),
            basic_auth_token=overrides.get("github_token") or env.get("GITHUB_BASIC_AUTH_TOKEN") or None,
            request_timeout=float(overrides.get("github_request_timeout") or env.get("GITHUB_REQUEST_TIMEOUT", 30.0)),
            request_budget=_parse_budget(budget),
        )

        neo4j = Neo4jSettings(
            uri=overrides.get("neo4j_uri") or env.get("NEO4J_URI") or env.get("DB_URL") or "neo4j://localhost:7687",
            user=overrides.get("neo4j_user") or env.get("NEO4J_USER") or env.get("DB_USERNAME") or "neo4j",
            password=overrides.get("neo4j_password") or env.get("NEO4J_PASSWORD") or env.get("DB_PASSWORD") or "",
            database=overrides.get("neo4j_database") or env.get("NEO4J_DATABASE") or None,
        )

        runtime = RuntimeSettings(
            mode=overrides.get("mode") or env.get("MODE") or "dev",
            log_file=overrides.get("log_file") or env.get("LOG_FILE") or "github_graph.log",
            log_level=overrides.get("log_level") or env.get("LOG_LEVEL") or "INFO",
        )

        return cls(github=github, neo4j=neo4j, runtime=runtime)


def _parse_budget(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        budget = int(value)
    except (TypeError, ValueError):
        budget = 0
    if budget < 1:
        raise ValueError(f"GITHUB_REQUEST_BUDGET must be a positive integer, got {value!r}")
    return budget


@dataclass(slots=True)
class RateLimitInfo:
    """Snapshot of GitHub's rate limit state as reported by response headers."""

    limit: int
    remaining: int
    reset_at: datetime | None


def parse_rate_limit_headers(headers: Any) -> RateLimitInfo | None:
    """Build a :class:`RateLimitInfo` from ``X-RateLimit-*`` headers, if present."""

    remaining = headers.get("X-RateLimit-Remaining")
    if remaining is None:
        return None
    try:
        limit = int(headers.get("X-RateLimit-Limit") or 0)
        remaining_count = int(remaining)
    except (TypeError, ValueError):
        return None

    reset_at = None
    reset = headers.get("X-RateLimit-Reset")
    if reset:
        try:
            reset_at = datetime.fromtimestamp(int(reset), tz=UTC)
        except (TypeError, ValueError, OverflowError):
            reset_at = None
    return RateLimitInfo(limit=limit, remaining=remaining_count, reset_at=reset_at)


__all__ = [
    "AppConfig",
    "GitHubSettings",
    "Neo4jSettings",
    "RuntimeSettings",
    "RateLimitInfo",
    "parse_rate_limit_headers",
    "AUTHENTICATED_REQUEST_BUDGET",
    "UNAUTHENTICATED_REQUEST_BUDGET",
    "UTC",
]
