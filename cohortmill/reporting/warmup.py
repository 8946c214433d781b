"""Pre-warm the HTTP cache in front of the dashboard's report endpoints.

After a precompute run, each configured URL template is expanded for every
computed report and requested once. Failures are logged and counted; they
never fail the run.
"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import httpx

from cohortmill.logging import get_logger, log_info, log_warning

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from cohortmill.cohorts.scopes import CohortScope
    from cohortmill.reporting.models import ReportKind

logger = get_logger(__name__)

_HTTP_ERROR_STATUS_THRESHOLD = 400


@dc.dataclass(frozen=True, slots=True)
class WarmTarget:
    """One computed report whose endpoints should be warmed."""

    kind: ReportKind
    scope: CohortScope
    start_date: dt.date
    end_date: dt.date
    window_size: int

    def expand(self, template: str) -> str:
        """Fill a URL template with this target's parameters."""
        return template.format(
            kind=self.kind.value,
            scope=self.scope.cache_token,
            start=self.start_date.isoformat(),
            end=self.end_date.isoformat(),
            window_size=self.window_size,
        )


@dc.dataclass(frozen=True, slots=True)
class WarmSummary:
    """Outcome of a warm-up pass."""

    requested: int = 0
    failed: int = 0


class HttpCacheWarmer:
    """Issue GET requests for report endpoints.

    Parameters
    ----------
    url_templates
        Templates expanded with ``WarmTarget.expand``.
    http_client
        Optional ``httpx.AsyncClient`` for testing. If not provided, the
        instance creates and owns its own client.
    timeout_s
        Request timeout for an owned client.

    """

    def __init__(
        self,
        url_templates: cabc.Sequence[str],
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_s: float = 10.0,
    ) -> None:
        """Initialise the warmer with its URL templates."""
        self._templates = tuple(url_templates)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout_s)

    async def aclose(self) -> None:
        """Close any owned HTTP resources."""
        if self._owns_client:
            await self._client.aclose()

    async def warm(self, targets: cabc.Iterable[WarmTarget]) -> WarmSummary:
        """Request every template for every target."""
        requested = 0
        failed = 0
        for target in targets:
            for template in self._templates:
                requested += 1
                if not await self._request(target.expand(template)):
                    failed += 1
        log_info(logger, "Warmed %d report URLs (%d failed)", requested, failed)
        return WarmSummary(requested=requested, failed=failed)

    async def _request(self, url: str) -> bool:
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            log_warning(logger, "Cache warm request failed url=%s error=%s", url, exc)
            return False
        if response.status_code >= _HTTP_ERROR_STATUS_THRESHOLD:
            log_warning(
                logger,
                "Cache warm request failed url=%s status=%d",
                url,
                response.status_code,
            )
            return False
        return True


__all__ = ["HttpCacheWarmer", "WarmSummary", "WarmTarget"]
