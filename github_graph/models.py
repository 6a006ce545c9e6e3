"""Domain models used by the crawler."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .schema import NodeLabel


UTC = timezone.utc


class RecordDecodeError(ValueError):
    """Raised when an API entity lacks a field the crawler depends on."""


@dataclass(slots=True)
class UserRecord:
    """Normalized representation of a GitHub user as returned by the REST API."""

    username: str
    external_id: int | None
    url: str | None
    followers_url: str | None
    following_url: str | None
    repos_url: str | None
    type: str | None
    site_admin: bool | None
    fetched_at: datetime

    label = NodeLabel.USER

    @classmethod
    def from_api(cls, payload: Any, fetched_at: datetime) -> "UserRecord":
        """Convert a REST user object into a :class:`UserRecord`."""

        if not isinstance(payload, dict):
            raise RecordDecodeError(f"Expected a user object, got {type(payload).__name__}")

        site_admin = payload.get("site_admin")
        return cls(
            username=_required_str(payload, "login", "user"),
            external_id=_optional_int(payload, "id", "user"),
            url=_optional_str(payload, "url"),
            followers_url=_optional_url(payload, "followers_url"),
            following_url=_optional_url(payload, "following_url"),
            repos_url=_optional_url(payload, "repos_url"),
            type=_optional_str(payload, "type"),
            site_admin=site_admin if isinstance(site_admin, bool) else None,
            fetched_at=fetched_at.astimezone(UTC),
        )

    def to_properties(self) -> dict[str, Any]:
        return _without_none(
            {
                "username": self.username,
                "external_id": self.external_id,
                "user_url": self.url,
                "followers_url": self.followers_url,
                "following_url": self.following_url,
                "repos_url": self.repos_url,
                "type": self.type,
                "site_admin": self.site_admin,
                "fetched_at": self.fetched_at,
            }
        )


@dataclass(slots=True)
class RepositoryRecord:
    """Normalized representation of a GitHub repository."""

    external_id: int
    name: str
    full_name: str | None
    html_url: str | None
    url: str | None
    contributors_url: str | None
    issues_url: str | None
    languages_url: str | None
    owner_payload: Any
    fetched_at: datetime

    label = NodeLabel.REPO

    @classmethod
    def from_api(cls, payload: Any, fetched_at: datetime) -> "RepositoryRecord":
        """Convert a REST repository object into a :class:`RepositoryRecord`."""

        if not isinstance(payload, dict):
            raise RecordDecodeError(f"Expected a repository object, got {type(payload).__name__}")

        external_id = _optional_int(payload, "id", "repository")
        if external_id is None:
            raise RecordDecodeError("repository is missing required field 'id'")
        name = _required_str(payload, "name", "repository")
        return cls(
            external_id=external_id,
            name=name,
            full_name=_optional_str(payload, "full_name"),
            html_url=_optional_str(payload, "html_url"),
            url=_optional_str(payload, "url"),
            contributors_url=_optional_url(payload, "contributors_url"),
            issues_url=_optional_url(payload, "issues_url"),
            languages_url=_optional_url(payload, "languages_url"),
            owner_payload=payload.get("owner"),
            fetched_at=fetched_at.astimezone(UTC),
        )

    def decode_owner(self) -> UserRecord:
        """Decode the nested ``owner`` object; a bad owner does not invalidate the repository."""

        if self.owner_payload is None:
            raise RecordDecodeError(f"repository {self.name!r} is missing required field 'owner'")
        try:
            return UserRecord.from_api(self.owner_payload, self.fetched_at)
        except RecordDecodeError as exc:
            raise RecordDecodeError(f"repository {self.name!r} has an invalid owner: {exc}") from exc

    def to_properties(self) -> dict[str, Any]:
        return _without_none(
            {
                "external_id": self.external_id,
                "name": self.name,
                "full_name": self.full_name,
                "html_url": self.html_url,
                "url": self.url,
                "contributors_url": self.contributors_url,
                "issues_url": self.issues_url,
                "languages_url": self.languages_url,
                "fetched_at": self.fetched_at,
            }
        )


def strip_uri_template(url: str) -> str:
    """Drop an RFC 6570 expansion suffix such as ``{/other_user}``."""

    brace = url.find("{")
    return url[:brace] if brace != -1 else url


def _required_str(payload: dict[str, Any], key: str, kind: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise RecordDecodeError(f"{kind} is missing required field {key!r}")
    return value


def _optional_str(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    return value if isinstance(value, str) and value else None


def _optional_url(payload: dict[str, Any], key: str) -> str | None:
    value = _optional_str(payload, key)
    return strip_uri_template(value) if value else None


def _optional_int(payload: dict[str, Any], key: str, kind: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    # bool is an int subclass; GitHub ids never are.
    if isinstance(value, bool) or not isinstance(value, int):
        raise RecordDecodeError(f"{kind} field {key!r} must be an integer, got {value!r}")
    return value


def _without_none(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


__all__ = ["RecordDecodeError", "RepositoryRecord", "UserRecord", "strip_uri_template"]
