"""Graph schema: node labels, relationship types and the Cypher they map to."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping


class SchemaError(ValueError):
    """Raised when the node descriptor table is inconsistent."""


class NodeLabel(str, Enum):
    USER = "User"
    REPO = "Repo"


class RelationshipType(str, Enum):
    OWNS = "OWNS"
    CONTRIBUTOR = "CONTRIBUTOR"
    FOLLOWS = "FOLLOWS"


BOOKMARK_LABEL = "UserBookmark"

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(slots=True, frozen=True)
class NodeSchema:
    """Describes how a labelled node is upserted."""

    label: NodeLabel
    match_property: str
    properties: tuple[str, ...]

    def merge_statement(self) -> str:
        return (
            f"MERGE (n:{self.label.value} {{{self.match_property}: $key}}) "
            "SET n += $properties"
        )

    def unique_constraint_statement(self) -> str:
        name = f"{self.label.value.lower()}_{self.match_property}_unique"
        return (
            f"CREATE CONSTRAINT {name} IF NOT EXISTS "
            f"FOR (n:{self.label.value}) REQUIRE n.{self.match_property} IS UNIQUE"
        )


@dataclass(slots=True, frozen=True)
class RelationshipEndpoint:
    """One side of a relationship, matched by ``label.match_property = $param_name``."""

    label: NodeLabel
    match_property: str
    param_name: str
    param_value: str


NODE_SCHEMAS: dict[NodeLabel, NodeSchema] = {
    NodeLabel.USER: NodeSchema(
        label=NodeLabel.USER,
        match_property="username",
        properties=(
            "username",
            "external_id",
            "user_url",
            "followers_url",
            "following_url",
            "repos_url",
            "type",
            "site_admin",
            "fetched_at",
        ),
    ),
    NodeLabel.REPO: NodeSchema(
        label=NodeLabel.REPO,
        match_property="name",
        properties=(
            "external_id",
            "name",
            "full_name",
            "html_url",
            "url",
            "contributors_url",
            "issues_url",
            "languages_url",
            "fetched_at",
        ),
    ),
}


def validate_schemas(schemas: Mapping[NodeLabel, NodeSchema] = NODE_SCHEMAS) -> None:
    """Check the descriptor table before any statement is built from it."""

    missing = [label.value for label in NodeLabel if label not in schemas]
    if missing:
        raise SchemaError(f"No node schema for labels: {', '.join(missing)}")

    for label, schema in schemas.items():
        if schema.label is not label:
            raise SchemaError(f"Schema registered under {label.value} describes {schema.label.value}")
        for name in (schema.label.value, schema.match_property, *schema.properties):
            if not _IDENTIFIER.match(name):
                raise SchemaError(f"{name!r} is not a valid Cypher identifier")
        if schema.match_property not in schema.properties:
            raise SchemaError(
                f"Match property {schema.match_property!r} is not declared for {label.value}"
            )
        if len(set(schema.properties)) != len(schema.properties):
            raise SchemaError(f"Duplicate properties declared for {label.value}")


def relationship_statement(
    source: RelationshipEndpoint, target: RelationshipEndpoint, relationship: RelationshipType
) -> str:
    for endpoint in (source, target):
        if not _IDENTIFIER.match(endpoint.match_property) or not _IDENTIFIER.match(endpoint.param_name):
            raise SchemaError(f"Invalid relationship endpoint {endpoint!r}")
    return (
        f"MATCH (s:{source.label.value} {{{source.match_property}: ${source.param_name}}}) "
        f"MATCH (e:{target.label.value} {{{target.match_property}: ${target.param_name}}}) "
        f"MERGE (s)-[:{relationship.value}]->(e) "
        "RETURN count(*) AS matched"
    )


def user_endpoint(username: str, param_name: str = "username") -> RelationshipEndpoint:
    schema = NODE_SCHEMAS[NodeLabel.USER]
    return RelationshipEndpoint(NodeLabel.USER, schema.match_property, param_name, username)


def repo_endpoint(name: str, param_name: str = "repo_name") -> RelationshipEndpoint:
    schema = NODE_SCHEMAS[NodeLabel.REPO]
    return RelationshipEndpoint(NodeLabel.REPO, schema.match_property, param_name, name)


READ_MAX_REPO_EXTERNAL_ID = (
    f"MATCH (r:{NodeLabel.REPO.value}) WHERE r.external_id IS NOT NULL "
    "RETURN max(r.external_id) AS external_id"
)
READ_USER_BOOKMARK = f"MATCH (b:{BOOKMARK_LABEL}) RETURN b.external_id AS external_id LIMIT 1"
UPDATE_USER_BOOKMARK = f"MERGE (b:{BOOKMARK_LABEL}) SET b.external_id = $external_id"


__all__ = [
    "BOOKMARK_LABEL",
    "NODE_SCHEMAS",
    "NodeLabel",
    "NodeSchema",
    "READ_MAX_REPO_EXTERNAL_ID",
    "READ_USER_BOOKMARK",
    "RelationshipEndpoint",
    "RelationshipType",
    "SchemaError",
    "UPDATE_USER_BOOKMARK",
    "relationship_statement",
    "repo_endpoint",
    "user_endpoint",
    "validate_schemas",
]
