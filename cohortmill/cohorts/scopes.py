"""Aggregation scopes for cohort reports."""

from __future__ import annotations

import dataclasses
import enum

from .errors import InvalidScopeError

COMBINED_SCOPE_TOKEN = "combined"
_ORG_PREFIX = "org:"


class ScopeKind(enum.StrEnum):
    """Granularity a cohort report is computed at."""

    REPOSITORY = "repository"
    ORGANIZATION = "organization"
    COMBINED = "combined"


@dataclasses.dataclass(frozen=True, slots=True)
class CohortScope:
    """Read-only filter over the activity ledger.

    ``key`` holds the repository full name (``owner/name``) or organization
    name; it is ``None`` for the combined ecosystem scope.
    """

    kind: ScopeKind
    key: str | None = None

    @classmethod
    def combined(cls) -> CohortScope:
        """Scope spanning every tracked repository."""
        return cls(ScopeKind.COMBINED)

    @classmethod
    def repository(cls, full_name: str) -> CohortScope:
        """Scope limited to one ``owner/name`` repository."""
        return cls(ScopeKind.REPOSITORY, full_name.strip().lower())

    @classmethod
    def organization(cls, name: str) -> CohortScope:
        """Scope limited to one organization."""
        return cls(ScopeKind.ORGANIZATION, name.strip().lower())

    @classmethod
    def parse(cls, spec: str | None) -> CohortScope:
        """Parse ``combined``, ``org:<name>`` or ``<owner>/<name>``.

        An empty or missing specification selects the combined scope.
        """
        text = (spec or "").strip()
        if not text or text.lower() == COMBINED_SCOPE_TOKEN:
            return cls.combined()
        if text.lower().startswith(_ORG_PREFIX):
            name = text[len(_ORG_PREFIX) :].strip()
            if not name or "/" in name:
                raise InvalidScopeError(spec or "")
            return cls.organization(name)
        owner, sep, name = text.partition("/")
        if not sep or not owner.strip() or not name.strip() or "/" in name:
            raise InvalidScopeError(text)
        return cls.repository(text)

    @property
    def is_combined(self) -> bool:
        """Return True for the ecosystem-wide scope."""
        return self.kind is ScopeKind.COMBINED

    @property
    def cache_token(self) -> str:
        """Stable textual form used inside cache keys and URLs."""
        match self.kind:
            case ScopeKind.COMBINED:
                return COMBINED_SCOPE_TOKEN
            case ScopeKind.ORGANIZATION:
                return f"{_ORG_PREFIX}{self.key}"
            case _:
                return str(self.key)

    def __str__(self) -> str:
        """Render the scope as its cache token."""
        return self.cache_token


__all__ = ["COMBINED_SCOPE_TOKEN", "CohortScope", "ScopeKind"]
