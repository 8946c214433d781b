"""Batch precomputation of cohort reports for the dashboard.

A run covers every configured scope and window size over the range ending
today. A ledger or report store failure aborts only the affected
combination; the run moves on to the next one and reports what failed at
the end.
"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import typing as typ

from cohortmill.cohorts.scopes import CohortScope
from cohortmill.common.time import today_utc
from cohortmill.ledger.errors import LedgerUnavailableError
from cohortmill.logging import get_logger, log_info
from cohortmill.reporting.errors import ReportCacheError
from cohortmill.reporting.models import ReportKind
from cohortmill.reporting.observability import CohortEventLogger
from cohortmill.reporting.warmup import WarmSummary, WarmTarget

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from cohortmill.reporting.config import CohortConfig
    from cohortmill.reporting.service import CohortReportService
    from cohortmill.reporting.warmup import HttpCacheWarmer

logger = get_logger(__name__)


@dc.dataclass(frozen=True, slots=True)
class PrecomputeFailure:
    """A scope and window size whose computation failed."""

    scope: str
    window_size: int
    error: str


@dc.dataclass(frozen=True, slots=True)
class PrecomputeSummary:
    """Outcome of a precompute run.

    Attributes
    ----------
    start_date, end_date
        Range every report covers.
    computed
        Scope and window size combinations computed successfully.
    stored
        Combinations whose reports were written to the cache.
    failures
        Combinations that failed, in run order.
    warm
        Result of the HTTP cache warm-up pass.

    """

    start_date: dt.date
    end_date: dt.date
    computed: int = 0
    stored: int = 0
    failures: tuple[PrecomputeFailure, ...] = ()
    warm: WarmSummary = dc.field(default_factory=WarmSummary)

    def lines(self) -> list[str]:
        """Render a human readable summary."""
        lines = [
            f"range {self.start_date.isoformat()}..{self.end_date.isoformat()}: "
            f"{self.computed} computed, {self.stored} cached, "
            f"{len(self.failures)} failed"
        ]
        lines.extend(
            f"  failed scope={f.scope} window_size={f.window_size}: {f.error}"
            for f in self.failures
        )
        if self.warm.requested:
            lines.append(
                f"warmed {self.warm.requested} urls ({self.warm.failed} failed)"
            )
        return lines


async def run_precompute(  # noqa: PLR0913
    service: CohortReportService,
    config: CohortConfig,
    *,
    as_of: dt.date | None = None,
    scopes: cabc.Sequence[CohortScope] | None = None,
    warmer: HttpCacheWarmer | None = None,
    event_logger: CohortEventLogger | None = None,
    on_progress: cabc.Callable[[str], None] | None = None,
) -> PrecomputeSummary:
    """Compute and cache both reports for each scope and window size.

    Parameters
    ----------
    service
        Report service, normally configured with a persistent cache.
    config
        Window sizes, history length, scopes and warm-up URLs.
    as_of
        Range end (exclusive); defaults to today so every window is final.
    scopes
        Overrides ``config.scopes`` when given. With neither, only the
        combined scope is computed.
    warmer
        Optional HTTP cache warmer run after all computations.
    event_logger
        Structured logger for failures.
    on_progress
        Optional callback receiving one line per finished combination.

    """
    end_date = as_of or today_utc()
    start_date = end_date - dt.timedelta(days=config.history_days)
    event_logger = event_logger or CohortEventLogger()
    selected = tuple(scopes) if scopes is not None else config.parsed_scopes()
    selected = selected or (CohortScope.combined(),)

    computed = 0
    stored = 0
    failures: list[PrecomputeFailure] = []
    targets: list[WarmTarget] = []
    for scope in selected:
        for window_size in config.window_sizes:
            try:
                reports = await service.compute_reports(
                    start_date, end_date, window_size, scope
                )
            except (LedgerUnavailableError, ReportCacheError) as exc:
                event_logger.log_report_failed(
                    scope=scope.cache_token, window_size=window_size, error=exc
                )
                failures.append(
                    PrecomputeFailure(scope.cache_token, window_size, str(exc))
                )
                if on_progress is not None:
                    on_progress(f"{scope.cache_token} w={window_size}: failed")
                continue
            computed += 1
            stored += int(reports.stored)
            targets.extend(
                WarmTarget(kind, scope, start_date, end_date, window_size)
                for kind in ReportKind
            )
            if on_progress is not None:
                on_progress(
                    f"{scope.cache_token} w={window_size}: "
                    f"{len(reports.states)} windows"
                )

    warm = WarmSummary()
    if warmer is not None and targets:
        warm = await warmer.warm(targets)

    summary = PrecomputeSummary(
        start_date=start_date,
        end_date=end_date,
        computed=computed,
        stored=stored,
        failures=tuple(failures),
        warm=warm,
    )
    log_info(
        logger,
        "Precompute finished computed=%d stored=%d failed=%d",
        computed,
        stored,
        len(failures),
    )
    return summary


__all__ = ["PrecomputeFailure", "PrecomputeSummary", "run_precompute"]
