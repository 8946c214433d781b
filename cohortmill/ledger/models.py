"""Typed payloads for GitHub Events API records."""

from __future__ import annotations

import datetime as dt
import typing as typ

import msgspec

from cohortmill.ledger.errors import MalformedEventError


class GitHubActor(msgspec.Struct, frozen=True):
    """Actor block of an event."""

    login: str


class GitHubRepo(msgspec.Struct, frozen=True):
    """Repository block of an event; ``name`` is ``owner/name``."""

    name: str


class GitHubEventRecord(msgspec.Struct, frozen=True):
    """Subset of a GitHub Events API object the ledger stores."""

    id: str | int
    type: str
    actor: GitHubActor
    repo: GitHubRepo
    created_at: str
    payload: dict[str, typ.Any] = msgspec.field(default_factory=dict)

    @property
    def github_id(self) -> str:
        """Event id as text."""
        return str(self.id)

    @property
    def action(self) -> str | None:
        """Payload action verb when present (``opened``, ``closed``...)."""
        value = self.payload.get("action")
        return value if isinstance(value, str) else None

    @property
    def owner(self) -> str:
        """Organization or user owning the repository."""
        return self.repo.name.split("/", 1)[0]


def _raw_id(event_json: object) -> str | None:
    if isinstance(event_json, dict):
        raw = event_json.get("id")
        return None if raw is None else str(raw)
    return None


def decode_event(event_json: object) -> GitHubEventRecord:
    """Validate an Events API object into a typed record.

    Raises
    ------
    MalformedEventError
        If required fields are missing or mistyped.

    """
    try:
        return msgspec.convert(event_json, type=GitHubEventRecord)
    except msgspec.ValidationError as exc:
        raise MalformedEventError.invalid_payload(
            str(exc), event_id=_raw_id(event_json)
        ) from exc


def parse_created_at(record: GitHubEventRecord) -> dt.datetime:
    """Parse ``created_at`` into an aware UTC datetime."""
    try:
        parsed = dt.datetime.fromisoformat(record.created_at.replace("Z", "+00:00"))
    except ValueError as exc:
        raise MalformedEventError.invalid_timestamp(
            record.created_at, event_id=record.github_id
        ) from exc
    if parsed.tzinfo is None:
        raise MalformedEventError.invalid_timestamp(
            record.created_at, event_id=record.github_id
        )
    return parsed.astimezone(dt.UTC)


__all__ = [
    "GitHubActor",
    "GitHubEventRecord",
    "GitHubRepo",
    "decode_event",
    "parse_created_at",
]
