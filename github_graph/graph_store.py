"""Persistence layer for the crawler."""

from __future__ import annotations

import logging
from typing import Any, Mapping

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction
from neo4j.exceptions import DriverError, Neo4jError

from .config import Neo4jSettings
from .schema import (
    NODE_SCHEMAS,
    READ_MAX_REPO_EXTERNAL_ID,
    READ_USER_BOOKMARK,
    UPDATE_USER_BOOKMARK,
    NodeLabel,
    NodeSchema,
    RelationshipEndpoint,
    RelationshipType,
    relationship_statement,
    validate_schemas,
)

LOGGER = logging.getLogger(__name__)


class GraphWriteError(RuntimeError):
    """Raised when a node, relationship or bookmark upsert does not take effect."""


class Neo4jGraphStore:
    """Async helper for upserting crawler data into Neo4j."""

    def __init__(
        self,
        settings: Neo4jSettings,
        driver: AsyncDriver | None = None,
        schemas: Mapping[NodeLabel, NodeSchema] = NODE_SCHEMAS,
    ) -> None:
        validate_schemas(schemas)
        self._settings = settings
        self._schemas = dict(schemas)
        self._driver = driver
        self._owns_driver = driver is None

    async def connect(self) -> None:
        if self._driver is not None:
            return
        self._driver = AsyncGraphDatabase.driver(
            self._settings.uri,
            auth=(self._settings.user, self._settings.password),
        )
        await self._driver.verify_connectivity()

    async def close(self) -> None:
        if self._driver is not None and self._owns_driver:
            await self._driver.close()
            self._driver = None

    async def __aenter__(self) -> "Neo4jGraphStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.close()

    async def create_schema(self) -> None:
        driver = self._ensure_driver()
        async with driver.session(database=self._settings.database) as session:
            for schema in self._schemas.values():
                statement = schema.unique_constraint_statement()
                LOGGER.info("Ensuring constraint: %s", statement)
                result = await session.run(statement)
                await result.consume()

    async def write_node(self, label: NodeLabel, properties: Mapping[str, Any]) -> None:
        schema = self._schemas[label]
        key = properties.get(schema.match_property)
        if key is None or key == "":
            raise GraphWriteError(
                f"Cannot write {label.value} node without {schema.match_property!r}"
            )
        params = {
            "key": key,
            "properties": {name: value for name, value in properties.items() if name in schema.properties},
        }
        statement = schema.merge_statement()
        LOGGER.debug("[WRITE_NODE] Executing query %s", statement)
        await self._write(statement, params)

    async def write_relationship(
        self,
        source: RelationshipEndpoint,
        target: RelationshipEndpoint,
        relationship: RelationshipType,
    ) -> None:
        if source.param_name == target.param_name:
            raise GraphWriteError(
                f"Relationship endpoints share parameter name {source.param_name!r}"
            )
        statement = relationship_statement(source, target, relationship)
        params = {source.param_name: source.param_value, target.param_name: target.param_value}
        LOGGER.debug("[WRITE_RELATIONSHIP] Executing query %s", statement)
        record = await self._write(statement, params)
        if record is None or not record["matched"]:
            raise GraphWriteError(
                f"Could not match endpoints for {source.label.value}({source.param_value}) "
                f"-[{relationship.value}]-> {target.label.value}({target.param_value})"
            )

    async def read_max_repo_external_id(self) -> int:
        """Return the highest repository id stored so far, or 0."""

        return await self._read_int(READ_MAX_REPO_EXTERNAL_ID)

    async def read_user_bookmark(self) -> int:
        """Return the id of the last user page processed, or 0."""

        return await self._read_int(READ_USER_BOOKMARK)

    async def update_user_bookmark(self, external_id: int) -> None:
        await self._write(UPDATE_USER_BOOKMARK, {"external_id": external_id})

    async def _write(self, statement: str, params: dict[str, Any]) -> Any:
        driver = self._ensure_driver()
        try:
            async with driver.session(database=self._settings.database) as session:
                return await session.execute_write(_run_single, statement, params)
        except (Neo4jError, DriverError) as exc:
            raise GraphWriteError(str(exc)) from exc

    async def _read_int(self, statement: str) -> int:
        driver = self._ensure_driver()
        try:
            async with driver.session(database=self._settings.database) as session:
                record = await session.execute_read(_run_single, statement, {})
        except (Neo4jError, DriverError) as exc:
            LOGGER.warning("Read failed, defaulting to 0: %s", exc)
            return 0
        if record is None:
            return 0
        value = record["external_id"]
        if value is None:
            return 0
        try:
            return int(value)
        except (TypeError, ValueError):
            LOGGER.warning("Ignoring non-numeric external_id %r", value)
            return 0

    def _ensure_driver(self) -> AsyncDriver:
        if self._driver is None:
            raise RuntimeError("Neo4j driver has not been initialized")
        return self._driver


async def _run_single(tx: AsyncManagedTransaction, statement: str, params: dict[str, Any]) -> Any:
    result = await tx.run(statement, params)
    return await result.single()


__all__ = ["GraphWriteError", "Neo4jGraphStore"]
