"""Error types raised by the activity ledger."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from cohortmill.cohorts.scopes import CohortScope


class TimezoneAwareRequiredError(ValueError):
    """Raised when datetime inputs lack timezone information."""

    def __init__(self, context: str) -> None:
        """Attach a consistent message for the failing context."""
        super().__init__(f"{context} must be timezone aware")

    @classmethod
    def for_occurrence(cls) -> TimezoneAwareRequiredError:
        """Return an error indicating occurred_at was naive."""
        return cls("occurred_at")


class LedgerUnavailableError(RuntimeError):
    """Raised when the activity ledger cannot answer a scoped query.

    The failed run writes nothing and may be retried.
    """

    def __init__(self, message: str, *, scope: str | None = None) -> None:
        """Store the scope token the query was issued for."""
        self.scope = scope
        super().__init__(message)

    @classmethod
    def query_failed(
        cls, scope: CohortScope | None, exc: BaseException
    ) -> LedgerUnavailableError:
        """Wrap a storage failure raised while querying ``scope``."""
        token = scope.cache_token if scope is not None else None
        label = token or "ledger"
        return cls(f"activity ledger query failed for {label}: {exc}", scope=token)


class MalformedEventError(ValueError):
    """Raised when a stored or incoming event cannot be interpreted."""

    def __init__(self, message: str, *, event_id: str | None = None) -> None:
        """Record the offending event id for logging."""
        self.event_id = event_id
        super().__init__(message)

    @classmethod
    def invalid_payload(
        cls, detail: str, *, event_id: str | None = None
    ) -> MalformedEventError:
        """Return an error for payloads that fail schema validation."""
        return cls(f"malformed event payload: {detail}", event_id=event_id)

    @classmethod
    def invalid_timestamp(
        cls, value: str, *, event_id: str | None = None
    ) -> MalformedEventError:
        """Return an error for unparsable or naive ``created_at`` values."""
        return cls(
            f"created_at {value!r} is not a timezone-aware ISO-8601 timestamp",
            event_id=event_id,
        )
