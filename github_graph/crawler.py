"""High level orchestration for crawling repositories and users into the graph."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Sequence

from .budget import RequestBudget
from .github_client import FetchFailedError, RateLimitExceededError
from .graph_store import GraphWriteError
from .interfaces import GraphStore, ResourceFetcher
from .models import RecordDecodeError, RepositoryRecord, UserRecord
from .schema import RelationshipEndpoint, RelationshipType, repo_endpoint, user_endpoint

LOGGER = logging.getLogger(__name__)
UTC = timezone.utc

# Failures that only cost the current entity or fan-out step.
ENTITY_ERRORS = (FetchFailedError, GraphWriteError, RecordDecodeError)


class StreamExhaustedError(RuntimeError):
    """Raised when a listing endpoint returns an empty page."""


class RepositoriesExhaustedError(StreamExhaustedError):
    pass


class UsersExhaustedError(StreamExhaustedError):
    pass


class StopReason(str, Enum):
    BUDGET_EXHAUSTED = "budget_exhausted"
    RATE_LIMITED = "rate_limited"
    USERS_EXHAUSTED = "users_exhausted"


@dataclass(slots=True)
class CrawlStats:
    nodes_written: int = 0
    relationships_written: int = 0
    failures: int = 0


@dataclass(slots=True)
class CrawlResult:
    stop_reason: StopReason
    requests_issued: int
    nodes_written: int
    relationships_written: int
    failures: int
    rate_limit_remaining: int | None
    finished_at: datetime


class GraphCrawler:
    """Pages through GitHub repositories and users and mirrors them into the graph.

    Each pass scans one page of repositories followed by one page of users.
    Every repository fans out to its owner, contributors and the owner's
    followers/following; every user fans out to its followers/following.
    Node upserts always precede the relationship that references them.
    """

    def __init__(self, fetcher: ResourceFetcher, store: GraphStore, budget: RequestBudget) -> None:
        self._fetcher = fetcher
        self._store = store
        self._budget = budget
        self._stats = CrawlStats()

    @property
    def stats(self) -> CrawlStats:
        return self._stats

    async def run(self) -> CrawlResult:
        LOGGER.info("Starting crawl with a budget of %s requests", self._budget.limit)
        stop_reason = StopReason.BUDGET_EXHAUSTED
        try:
            while self._budget.permits(self._fetcher.request_count):
                try:
                    await self.scan_repositories()
                except RepositoriesExhaustedError:
                    LOGGER.info("No more repos left to scrape. Continuing to scrape users")
                await self.scan_users()
        except RateLimitExceededError as exc:
            LOGGER.warning("Stopping crawl: %s (resets at %s)", exc, exc.reset_at)
            stop_reason = StopReason.RATE_LIMITED
        except UsersExhaustedError:
            LOGGER.info("No more users left to scrape")
            stop_reason = StopReason.USERS_EXHAUSTED
        else:
            LOGGER.info(
                "Request budget spent: %s requests issued, limit %s",
                self._fetcher.request_count,
                self._budget.limit,
            )

        self._budget.record(self._fetcher.rate_limit)
        return CrawlResult(
            stop_reason=stop_reason,
            requests_issued=self._fetcher.request_count,
            nodes_written=self._stats.nodes_written,
            relationships_written=self._stats.relationships_written,
            failures=self._stats.failures,
            rate_limit_remaining=self._budget.remaining,
            finished_at=datetime.now(tz=UTC),
        )

    async def scan_repositories(self) -> None:
        """Process the next page of repositories after the stored high-water mark."""

        since = await self._store.read_max_repo_external_id()
        page = await self._fetcher.get(self._fetcher.repositories_url(since))
        if not page:
            raise RepositoriesExhaustedError(f"No more repos to scrape after id {since}")

        LOGGER.info("Processing %s repositories after id %s", len(page), since)
        fetched_at = datetime.now(tz=UTC)
        for payload in page:
            try:
                repo = RepositoryRecord.from_api(payload, fetched_at)
                await self._write_node(repo)
            except ENTITY_ERRORS as exc:
                self._fail("Skipping repository", exc)
                continue
            await self._process_repository(repo)

    async def scan_users(self) -> None:
        """Process the next page of users after the persisted bookmark."""

        since = await self._store.read_user_bookmark()
        page = await self._fetcher.get(self._fetcher.users_url(since))
        if not page:
            raise UsersExhaustedError(f"No more users to process after id {since}")

        LOGGER.info("Processing %s users after id %s", len(page), since)
        fetched_at = datetime.now(tz=UTC)
        for payload in page:
            try:
                user = UserRecord.from_api(payload, fetched_at)
                await self._write_node(user)
            except ENTITY_ERRORS as exc:
                self._fail("Skipping user", exc)
                continue
            await self._process_follows(user)

        await self._advance_user_bookmark(page, since)

    async def _process_repository(self, repo: RepositoryRecord) -> None:
        owner: UserRecord | None = None
        owner_written = False
        try:
            owner = repo.decode_owner()
            await self._write_node(owner)
            owner_written = True
            await self._write_relationship(
                user_endpoint(owner.username), repo_endpoint(repo.name), RelationshipType.OWNS
            )
        except ENTITY_ERRORS as exc:
            self._fail(f"Skipping owner of {repo.name}", exc)

        for contributor in await self._fetch_related(repo.contributors_url, f"contributors of {repo.name}"):
            try:
                await self._write_node(contributor)
                await self._write_relationship(
                    user_endpoint(contributor.username),
                    repo_endpoint(repo.name),
                    RelationshipType.CONTRIBUTOR,
                )
            except ENTITY_ERRORS as exc:
                self._fail(f"Skipping contributor of {repo.name}", exc)

        if owner is not None and owner_written:
            await self._process_follows(owner)

    async def _process_follows(self, user: UserRecord) -> None:
        for follower in await self._fetch_related(user.followers_url, f"followers of {user.username}"):
            await self._link_follows(follower, follower=follower, followed=user)

        for followee in await self._fetch_related(user.following_url, f"following of {user.username}"):
            await self._link_follows(followee, follower=user, followed=followee)

    async def _link_follows(self, discovered: UserRecord, *, follower: UserRecord, followed: UserRecord) -> None:
        # The other endpoint has already been written by the caller.
        try:
            await self._write_node(discovered)
            await self._write_relationship(
                user_endpoint(follower.username, "follower_username"),
                user_endpoint(followed.username, "followed_username"),
                RelationshipType.FOLLOWS,
            )
        except ENTITY_ERRORS as exc:
            self._fail(f"Skipping {follower.username} -FOLLOWS-> {followed.username}", exc)

    async def _fetch_related(self, url: str | None, description: str) -> list[UserRecord]:
        if not url:
            LOGGER.warning("No URL for %s; skipping", description)
            return []
        try:
            page = await self._fetcher.get(url)
        except FetchFailedError as exc:
            self._fail(f"Could not fetch {description}", exc)
            return []

        fetched_at = datetime.now(tz=UTC)
        users: list[UserRecord] = []
        for payload in page:
            try:
                users.append(UserRecord.from_api(payload, fetched_at))
            except RecordDecodeError as exc:
                self._fail(f"Skipping entry in {description}", exc)
        return users

    async def _write_node(self, record: RepositoryRecord | UserRecord) -> None:
        await self._store.write_node(record.label, record.to_properties())
        self._stats.nodes_written += 1

    async def _write_relationship(
        self, source: RelationshipEndpoint, target: RelationshipEndpoint, relationship: RelationshipType
    ) -> None:
        await self._store.write_relationship(source, target, relationship)
        self._stats.relationships_written += 1

    async def _advance_user_bookmark(self, page: Sequence[dict[str, Any]], since: int) -> None:
        last_id = _last_external_id(page)
        if last_id is None or last_id <= since:
            LOGGER.warning("User page after id %s carried no usable ids; bookmark unchanged", since)
            return
        try:
            await self._store.update_user_bookmark(last_id)
        except GraphWriteError as exc:
            self._fail("Could not advance user bookmark", exc)
            return
        LOGGER.info("User bookmark advanced to %s", last_id)

    def _fail(self, message: str, exc: Exception) -> None:
        self._stats.failures += 1
        LOGGER.error("%s: %s", message, exc)


def _last_external_id(page: Sequence[dict[str, Any]]) -> int | None:
    ids = [
        item["id"]
        for item in page
        if isinstance(item.get("id"), int) and not isinstance(item.get("id"), bool)
    ]
    return max(ids) if ids else None


__all__ = [
    "CrawlResult",
    "CrawlStats",
    "GraphCrawler",
    "RepositoriesExhaustedError",
    "StopReason",
    "StreamExhaustedError",
    "UsersExhaustedError",
]
