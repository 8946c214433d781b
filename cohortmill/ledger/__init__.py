"""Activity ledger: stored GitHub events, contributor flags and scoped reads."""

from __future__ import annotations

from .errors import (
    LedgerUnavailableError,
    MalformedEventError,
    TimezoneAwareRequiredError,
)
from .models import GitHubEventRecord, decode_event, parse_created_at
from .query import ActivityLedger, ActivityPair, SqlActivityLedger
from .recorder import EventRecorder, RecordSummary
from .storage import (
    ActivityEvent,
    Base,
    Contributor,
    TrackedOrganization,
    UTCDateTime,
    init_ledger_storage,
)
from .summary import ActivitySummary, ActivitySummaryService, MetricDelta

__all__ = [
    "ActivityEvent",
    "ActivityLedger",
    "ActivityPair",
    "ActivitySummary",
    "ActivitySummaryService",
    "Base",
    "Contributor",
    "EventRecorder",
    "GitHubEventRecord",
    "LedgerUnavailableError",
    "MalformedEventError",
    "MetricDelta",
    "RecordSummary",
    "SqlActivityLedger",
    "TimezoneAwareRequiredError",
    "TrackedOrganization",
    "UTCDateTime",
    "decode_event",
    "init_ledger_storage",
    "parse_created_at",
]
