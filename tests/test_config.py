from __future__ import annotations

import pytest

from github_graph.config import AppConfig, parse_rate_limit_headers


def test_from_env_reads_all_sections():
    env = {
        "GITHUB_API_URL": "https://ghe.example.com/api/v3/",
        "GITHUB_BASIC_AUTH_TOKEN": "dXNlcjpwYXNz",
        "NEO4J_URI": "bolt://graph:7687",
        "NEO4J_USER": "crawler",
        "NEO4J_PASSWORD": "secret",
        "MODE": "prod",
        "LOG_FILE": "/var/log/crawler.log",
    }

    config = AppConfig.from_env(env)

    assert config.github.api_url == "https://ghe.example.com/api/v3"
    assert config.github.hourly_request_budget == 5000
    assert config.neo4j.uri == "bolt://graph:7687"
    assert config.neo4j.user == "crawler"
    assert config.neo4j.password == "secret"
    assert config.runtime.is_dev is False
    assert config.runtime.log_file == "/var/log/crawler.log"


def test_defaults_without_environment():
    config = AppConfig.from_env({"UNRELATED": "1"})

    assert config.github.api_url == "https://api.github.com"
    assert config.github.basic_auth_token is None
    assert config.github.hourly_request_budget == 60
    assert config.neo4j.uri == "neo4j://localhost:7687"
    assert config.runtime.is_dev is True


def test_overrides_take_precedence():
    config = AppConfig.from_env(
        {"NEO4J_URI": "bolt://env:7687", "GITHUB_REQUEST_BUDGET": "100"},
        overrides={"neo4j_uri": "bolt://cli:7687", "request_budget": 7},
    )

    assert config.neo4j.uri == "bolt://cli:7687"
    assert config.github.hourly_request_budget == 7


def test_parse_rate_limit_headers():
    info = parse_rate_limit_headers(
        {"X-RateLimit-Limit": "5000", "X-RateLimit-Remaining": "4999", "X-RateLimit-Reset": "1700000000"}
    )

    assert info is not None
    assert info.limit == 5000
    assert info.remaining == 4999
    assert info.reset_at is not None and info.reset_at.year == 2023


def test_parse_rate_limit_headers_without_headers():
    assert parse_rate_limit_headers({}) is None


def test_empty_mapping_is_not_replaced_by_process_environment(monkeypatch):
    monkeypatch.setenv("NEO4J_URI", "bolt://from-process:7687")

    config = AppConfig.from_env({})

    assert config.neo4j.uri == "neo4j://localhost:7687"


@pytest.mark.parametrize("value", ["0", "-5", "many"])
def test_invalid_request_budget_is_rejected(value):
    with pytest.raises(ValueError, match="GITHUB_REQUEST_BUDGET"):
        AppConfig.from_env({"GITHUB_REQUEST_BUDGET": value})
