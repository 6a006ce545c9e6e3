"""Command line interface for the GitHub graph crawler."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import typer

from .budget import RequestBudget
from .config import AppConfig, RuntimeSettings
from .crawler import CrawlResult, GraphCrawler
from .github_client import GitHubRestClient
from .graph_store import Neo4jGraphStore

LOGGER = logging.getLogger(__name__)

app = typer.Typer(add_completion=False)


def configure_logging(runtime: RuntimeSettings, level: str | None = None) -> None:
    kwargs = {}
    if not runtime.is_dev:
        kwargs = {"filename": runtime.log_file, "filemode": "a", "encoding": "utf-8"}
    level_name = (level or runtime.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        **kwargs,
    )


@app.command("init-db")
def init_db(
    neo4j_uri: Optional[str] = typer.Option(None, help="Neo4j connection URL"),
    log_level: Optional[str] = typer.Option(None, help="Logging level"),
) -> None:
    """Create uniqueness constraints for User and Repo nodes."""

    overrides = {"neo4j_uri": neo4j_uri} if neo4j_uri else {}
    config = _load_config(overrides)
    configure_logging(config.runtime, log_level)

    async def runner() -> None:
        async with Neo4jGraphStore(config.neo4j) as store:
            await store.create_schema()

    asyncio.run(runner())


@app.command("crawl")
def crawl(
    neo4j_uri: Optional[str] = typer.Option(None, help="Neo4j connection URL"),
    github_token: Optional[str] = typer.Option(
        None, envvar="GITHUB_BASIC_AUTH_TOKEN", help="Basic auth token for the GitHub API"
    ),
    budget: Optional[int] = typer.Option(None, min=1, help="Maximum number of GitHub requests"),
    log_level: Optional[str] = typer.Option(None, help="Logging level"),
) -> None:
    """Crawl repositories and users from GitHub into Neo4j."""

    overrides = {}
    if neo4j_uri:
        overrides["neo4j_uri"] = neo4j_uri
    if github_token:
        overrides["github_token"] = github_token
    if budget is not None:
        overrides["request_budget"] = budget

    config = _load_config(overrides)
    configure_logging(config.runtime, log_level)

    try:
        result = asyncio.run(_run_crawl(config))
    except Exception:
        LOGGER.exception("Crawl aborted")
        raise typer.Exit(code=1)

    typer.echo(
        f"Stopped ({result.stop_reason.value}) after {result.requests_issued} requests: "
        f"{result.nodes_written} node writes, {result.relationships_written} relationship writes, "
        f"{result.failures} failures. Remaining rate limit: {result.rate_limit_remaining}"
    )


@app.command("status")
def status(
    neo4j_uri: Optional[str] = typer.Option(None, help="Neo4j connection URL"),
    log_level: Optional[str] = typer.Option(None, help="Logging level"),
) -> None:
    """Show where the next crawl will resume."""

    overrides = {"neo4j_uri": neo4j_uri} if neo4j_uri else {}
    config = _load_config(overrides)
    configure_logging(config.runtime, log_level)

    async def runner() -> tuple[int, int]:
        async with Neo4jGraphStore(config.neo4j) as store:
            return await store.read_max_repo_external_id(), await store.read_user_bookmark()

    repo_id, user_id = asyncio.run(runner())
    typer.echo(f"Repositories resume after id {repo_id}; users resume after id {user_id}")


def _load_config(overrides: dict) -> AppConfig:
    try:
        return AppConfig.from_env(overrides=overrides)
    except ValueError as exc:
        typer.echo(f"Invalid configuration: {exc}", err=True)
        raise typer.Exit(code=2)


async def _run_crawl(config: AppConfig) -> CrawlResult:
    async with GitHubRestClient(config.github) as client:
        async with Neo4jGraphStore(config.neo4j) as store:
            crawler = GraphCrawler(client, store, RequestBudget.from_settings(config.github))
            return await crawler.run()


__all__ = ["app", "configure_logging"]
