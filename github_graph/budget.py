"""Request budget that bounds a single crawl run."""

from __future__ import annotations

import logging

from .config import GitHubSettings, RateLimitInfo

LOGGER = logging.getLogger(__name__)


class RequestBudget:
    """Caps the number of GitHub requests issued by one run.

    GitHub allows 60 unauthenticated or 5000 authenticated requests per
    rolling hour; the crawler stops voluntarily once its own request count
    passes the ceiling instead of waiting for the upstream to refuse it.
    """

    def __init__(self, limit: int) -> None:
        if limit < 0:
            raise ValueError("Request budget must not be negative")
        self._limit = limit
        self._info: RateLimitInfo | None = None

    @classmethod
    def from_settings(cls, settings: GitHubSettings) -> "RequestBudget":
        return cls(settings.hourly_request_budget)

    @property
    def limit(self) -> int:
        return self._limit

    def permits(self, request_count: int) -> bool:
        """Return whether a run that has issued ``request_count`` requests may continue."""

        return request_count <= self._limit

    def record(self, info: RateLimitInfo | None) -> None:
        """Keep the latest upstream rate limit snapshot."""

        if info is None:
            return
        # Store a fresh copy to avoid mutating the caller's data.
        self._info = RateLimitInfo(limit=info.limit, remaining=info.remaining, reset_at=info.reset_at)
        LOGGER.debug("GitHub reports %s of %s requests remaining", info.remaining, info.limit)

    @property
    def remaining(self) -> int | None:
        """Return the last upstream remaining count, if any was seen."""

        return self._info.remaining if self._info else None


__all__ = ["RequestBudget"]
