"""Tests for the GitHub REST client."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from github_graph.config import GitHubSettings
from github_graph.github_client import FetchFailedError, GitHubRestClient, RateLimitExceededError


def _run_get(handler, url: str = "https://api.github.com/repositories?since=0", token: str | None = None):
    """Issue one ``get`` against a mock transport and return (client, result or exception)."""

    async def runner():
        transport = httpx.MockTransport(handler)
        async with httpx.AsyncClient(transport=transport) as async_client:
            client = GitHubRestClient(GitHubSettings(basic_auth_token=token), async_client)
            try:
                return client, await client.get(url)
            except Exception as exc:  # returned for assertions
                return client, exc

    return asyncio.run(runner())


def test_get_returns_entities_and_sends_headers():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200,
            json=[{"id": 1, "name": "demo"}],
            headers={"X-RateLimit-Limit": "60", "X-RateLimit-Remaining": "59", "X-RateLimit-Reset": "1700000000"},
        )

    client, result = _run_get(handler, token="dXNlcjpwYXNz")

    assert result == [{"id": 1, "name": "demo"}]
    assert client.request_count == 1
    assert seen[0].headers["Accept"] == "application/vnd.github.v3+json"
    assert seen[0].headers["Authorization"] == "Basic dXNlcjpwYXNz"
    assert client.rate_limit is not None
    assert client.rate_limit.remaining == 59


def test_get_omits_authorization_without_token():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    _, result = _run_get(handler)

    assert result == []
    assert "Authorization" not in seen[0].headers


def test_forbidden_with_exhausted_quota_raises_rate_limit():
    def handler(_: httpx.Request) -> httpx.Response:
        return httpx.Response(
            403,
            json={"message": "API rate limit exceeded for 127.0.0.1."},
            headers={"X-RateLimit-Limit": "60", "X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000000"},
        )

    client, error = _run_get(handler)

    assert isinstance(error, RateLimitExceededError)
    assert error.reset_at is not None
    assert client.request_count == 1


def test_too_many_requests_raises_rate_limit():
    client, error = _run_get(lambda _: httpx.Response(429, json={"message": "slow down"}))

    assert isinstance(error, RateLimitExceededError)


def test_forbidden_without_rate_limit_is_a_fetch_failure():
    _, error = _run_get(lambda _: httpx.Response(403, json={"message": "Repository access blocked"}))

    assert isinstance(error, FetchFailedError)


def test_server_error_is_a_fetch_failure():
    _, error = _run_get(lambda _: httpx.Response(500, text="boom"))

    assert isinstance(error, FetchFailedError)
    assert "500" in str(error)


def test_non_list_payload_is_a_fetch_failure():
    _, error = _run_get(lambda _: httpx.Response(200, json={"message": "Not Found"}))

    assert isinstance(error, FetchFailedError)


def test_invalid_json_is_a_fetch_failure():
    _, error = _run_get(lambda _: httpx.Response(200, text="<html>"))

    assert isinstance(error, FetchFailedError)


def test_transport_errors_are_counted():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client, error = _run_get(handler)

    assert isinstance(error, FetchFailedError)
    assert client.request_count == 1


def test_listing_urls_use_base_url():
    client = GitHubRestClient(GitHubSettings(api_url="https://ghe.example.com/api/v3/"))

    assert client.base_url == "https://ghe.example.com/api/v3"
    assert client.repositories_url(12) == "https://ghe.example.com/api/v3/repositories?since=12"
    assert client.users_url(0) == "https://ghe.example.com/api/v3/users?since=0"

    asyncio.run(client.close())


@pytest.mark.parametrize("status", [404, 422])
def test_client_errors_do_not_raise_rate_limit(status: int):
    _, error = _run_get(lambda _: httpx.Response(status, json={"message": "nope"}))

    assert isinstance(error, FetchFailedError)
    assert not isinstance(error, RateLimitExceededError)
