"""Unit tests for the HTTP cache warmer."""

from __future__ import annotations

import datetime as dt

import httpx
import pytest

from cohortmill.cohorts import CohortScope
from cohortmill.reporting import HttpCacheWarmer, ReportKind, WarmTarget

TARGET = WarmTarget(
    ReportKind.STATES,
    CohortScope.parse("octo/reef"),
    dt.date(2024, 1, 1),
    dt.date(2024, 4, 1),
    30,
)


def test_expand_fills_every_placeholder() -> None:
    """Templates receive kind, scope, dates and window size."""
    url = TARGET.expand(
        "https://dash.example/{kind}?scope={scope}"
        "&from={start}&to={end}&w={window_size}"
    )

    assert url == (
        "https://dash.example/states?scope=octo/reef"
        "&from=2024-01-01&to=2024-04-01&w=30"
    )


@pytest.mark.asyncio
async def test_warm_requests_each_template_per_target() -> None:
    """Every template is requested once for every target."""
    seen: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(str(request.url))
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        warmer = HttpCacheWarmer(
            ["https://a.example/{kind}", "https://b.example/{kind}"],
            http_client=client,
        )
        transitions = WarmTarget(
            ReportKind.TRANSITIONS,
            TARGET.scope,
            TARGET.start_date,
            TARGET.end_date,
            TARGET.window_size,
        )
        summary = await warmer.warm([TARGET, transitions])
        await warmer.aclose()
        assert not client.is_closed, "borrowed clients stay open"

    assert summary.requested == 4
    assert summary.failed == 0
    assert seen == [
        "https://a.example/states",
        "https://b.example/states",
        "https://a.example/transitions",
        "https://b.example/transitions",
    ]


@pytest.mark.asyncio
async def test_failures_are_counted_not_raised() -> None:
    """Error statuses and transport errors are counted as failures."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "down.example":
            message = "connection refused"
            raise httpx.ConnectError(message, request=request)
        return httpx.Response(503)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        warmer = HttpCacheWarmer(
            ["https://down.example/{kind}", "https://busy.example/{kind}"],
            http_client=client,
        )
        summary = await warmer.warm([TARGET])

    assert (summary.requested, summary.failed) == (2, 2)
