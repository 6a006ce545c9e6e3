"""HTTP client for GitHub's paginated REST resources."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from .config import GitHubSettings, RateLimitInfo, parse_rate_limit_headers

LOGGER = logging.getLogger(__name__)


class GitHubClientError(RuntimeError):
    """Base class for failures talking to the GitHub API."""


class FetchFailedError(GitHubClientError):
    """Raised for transport errors, unexpected HTTP statuses and undecodable bodies."""


class RateLimitExceededError(GitHubClientError):
    """Raised when GitHub refuses a request because the rate limit is spent."""

    def __init__(self, message: str, reset_at: datetime | None = None) -> None:
        super().__init__(message)
        self.reset_at = reset_at


class GitHubRestClient:
    """Fetches JSON arrays of entities and counts every request it issues."""

    def __init__(self, settings: GitHubSettings, client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._base_url = settings.api_url.rstrip("/")
        self._headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "github-graph-crawler",
        }
        if settings.basic_auth_token:
            self._headers["Authorization"] = f"Basic {settings.basic_auth_token}"
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout)
        self._owns_client = client is None
        self._request_count = 0
        self._rate_limit: RateLimitInfo | None = None

    async def __aenter__(self) -> "GitHubRestClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def request_count(self) -> int:
        return self._request_count

    @property
    def rate_limit(self) -> RateLimitInfo | None:
        return self._rate_limit

    def repositories_url(self, since: int) -> str:
        return f"{self._base_url}/repositories?since={since}"

    def users_url(self, since: int) -> str:
        return f"{self._base_url}/users?since={since}"

    async def get(self, url: str) -> list[dict[str, Any]]:
        """Fetch one page of entities from ``url``."""

        LOGGER.info("Retrieving data from %s", url)
        self._request_count += 1
        try:
            response = await self._client.get(url, headers=self._headers)
        except httpx.HTTPError as exc:
            raise FetchFailedError(f"Request to {url} failed: {exc}") from exc

        info = parse_rate_limit_headers(response.headers)
        if info is not None:
            self._rate_limit = info

        if _is_rate_limited(response):
            reset_at = info.reset_at if info else None
            LOGGER.warning("GitHub rate limit exceeded (HTTP %s) for %s", response.status_code, url)
            raise RateLimitExceededError(
                f"Rate limit exceeded, status: {response.status_code}", reset_at=reset_at
            )

        if response.status_code != httpx.codes.OK:
            raise FetchFailedError(
                f"Received non OK http status from {url}, status: {response.status_code}"
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise FetchFailedError(f"Response from {url} is not valid JSON") from exc

        if not isinstance(payload, list) or not all(isinstance(item, dict) for item in payload):
            raise FetchFailedError(f"Response from {url} is not a list of objects")
        return payload


def _is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == httpx.codes.TOO_MANY_REQUESTS:
        return True
    if response.status_code != httpx.codes.FORBIDDEN:
        return False
    if response.headers.get("X-RateLimit-Remaining") == "0":
        return True
    try:
        payload = response.json()
    except ValueError:
        return False
    message = payload.get("message") if isinstance(payload, dict) else None
    return bool(message) and "rate limit" in str(message).lower()


__all__ = [
    "FetchFailedError",
    "GitHubClientError",
    "GitHubRestClient",
    "RateLimitExceededError",
]
