"""Cohort reporting: aggregation, caching and batch precomputation.

Public API
----------
CohortReportService
    Computes ``states_summary`` and ``transitions`` reports for a scope.
ReportCache / SqlReportCache / InMemoryReportCache
    Cache port and adapters keyed by the full report parameters.
CohortConfig
    Precompute settings loaded from the environment.
run_precompute
    Batch computation over scopes and window sizes.
HttpCacheWarmer
    Warms the HTTP cache in front of report endpoints.

"""

from cohortmill.reporting.cache import (
    CacheKey,
    InMemoryReportCache,
    ReportCache,
    SqlReportCache,
    is_cacheable,
)
from cohortmill.reporting.config import CohortConfig
from cohortmill.reporting.errors import (
    CachedReportDecodeError,
    CohortReportingError,
    PrecomputeError,
    ReportCacheError,
)
from cohortmill.reporting.models import (
    ReportKind,
    StatesSummaryEntry,
    TransitionsEntry,
    as_plain,
    decode_report,
    encode_report,
)
from cohortmill.reporting.observability import CohortEventLogger
from cohortmill.reporting.precompute import PrecomputeSummary, run_precompute
from cohortmill.reporting.service import CohortReports, CohortReportService
from cohortmill.reporting.storage import CohortReportRecord, init_report_storage
from cohortmill.reporting.warmup import HttpCacheWarmer, WarmTarget

__all__ = [
    "CacheKey",
    "CachedReportDecodeError",
    "CohortConfig",
    "CohortEventLogger",
    "CohortReportRecord",
    "CohortReportService",
    "CohortReports",
    "CohortReportingError",
    "HttpCacheWarmer",
    "InMemoryReportCache",
    "PrecomputeError",
    "PrecomputeSummary",
    "ReportCache",
    "ReportCacheError",
    "ReportKind",
    "SqlReportCache",
    "StatesSummaryEntry",
    "TransitionsEntry",
    "WarmTarget",
    "as_plain",
    "decode_report",
    "encode_report",
    "init_report_storage",
    "is_cacheable",
    "run_precompute",
]
