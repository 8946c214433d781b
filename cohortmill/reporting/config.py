"""Configuration for cohort report precomputation.

Usage
-----
Create a configuration with defaults:

>>> config = CohortConfig()
>>> config.window_sizes
(7, 14, 30, 90)

Or load from environment variables:

>>> import os
>>> os.environ["COHORTMILL_WINDOW_SIZES"] = "7,28"
>>> CohortConfig.from_env().window_sizes
(7, 28)

"""

from __future__ import annotations

import dataclasses as dc
import os

from cohortmill.cohorts.scopes import CohortScope

DEFAULT_WINDOW_SIZES: tuple[int, ...] = (7, 14, 30, 90)


def _split_csv(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _parse_int(env_var: str, raw: str) -> int:
    try:
        value = int(raw)
    except ValueError as exc:
        msg = f"{env_var} must be an integer, got: {raw!r}"
        raise ValueError(msg) from exc
    if value < 1:
        msg = f"{env_var} must be positive, got: {value}"
        raise ValueError(msg)
    return value


@dc.dataclass(frozen=True, slots=True)
class CohortConfig:
    """Settings for the periodic cohort precompute job.

    Attributes
    ----------
    window_sizes
        Window lengths in days precomputed for every scope.
    history_days
        Length of the precomputed date range, ending today.
    scopes
        Scope specifications (``combined``, ``org:<name>``,
        ``<owner>/<name>``) to precompute. Empty selects the combined scope
        and every internal tracked organization.
    cache_warm_urls
        URL templates requested after a run so the HTTP cache in front of
        the dashboard is warm. Templates may use ``{kind}``, ``{scope}``,
        ``{start}``, ``{end}`` and ``{window_size}``.
    warm_timeout_s
        Per-request timeout for cache warming.

    """

    window_sizes: tuple[int, ...] = DEFAULT_WINDOW_SIZES
    history_days: int = 365
    scopes: tuple[str, ...] = ()
    cache_warm_urls: tuple[str, ...] = ()
    warm_timeout_s: float = 10.0

    def parsed_scopes(self) -> tuple[CohortScope, ...]:
        """Return ``scopes`` parsed into ``CohortScope`` values."""
        return tuple(CohortScope.parse(spec) for spec in self.scopes)

    @staticmethod
    def _parse_positive_int(env_var: str, default: int) -> int:
        """Read a positive integer env var, falling back to a default."""
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        return _parse_int(env_var, raw.strip())

    @staticmethod
    def _parse_window_sizes(env_var: str) -> tuple[int, ...]:
        raw = os.environ.get(env_var, "")
        parts = _split_csv(raw)
        if not parts:
            return DEFAULT_WINDOW_SIZES
        return tuple(dict.fromkeys(_parse_int(env_var, part) for part in parts))

    @staticmethod
    def _parse_scopes(env_var: str) -> tuple[str, ...]:
        parts = _split_csv(os.environ.get(env_var, ""))
        if not parts:
            return ()
        for part in parts:
            try:
                CohortScope.parse(part)
            except ValueError as exc:
                msg = f"{env_var} contains an invalid scope: {exc}"
                raise ValueError(msg) from exc
        return tuple(dict.fromkeys(parts))

    @staticmethod
    def _parse_timeout(env_var: str, default: float) -> float:
        raw = os.environ.get(env_var, "").strip()
        if not raw:
            return default
        try:
            value = float(raw)
        except ValueError as exc:
            msg = f"{env_var} must be a number, got: {raw!r}"
            raise ValueError(msg) from exc
        if not value > 0:
            msg = f"{env_var} must be positive, got: {value}"
            raise ValueError(msg)
        return value

    @classmethod
    def from_env(cls) -> CohortConfig:
        """Create configuration from environment variables.

        Reads ``COHORTMILL_WINDOW_SIZES``, ``COHORTMILL_HISTORY_DAYS``,
        ``COHORTMILL_SCOPES``, ``COHORTMILL_CACHE_WARM_URLS`` and
        ``COHORTMILL_WARM_TIMEOUT_S``.

        Raises
        ------
        ValueError
            If a numeric setting is not positive or a scope cannot be parsed.

        """
        return cls(
            window_sizes=cls._parse_window_sizes("COHORTMILL_WINDOW_SIZES"),
            history_days=cls._parse_positive_int("COHORTMILL_HISTORY_DAYS", 365),
            scopes=cls._parse_scopes("COHORTMILL_SCOPES"),
            cache_warm_urls=tuple(
                _split_csv(os.environ.get("COHORTMILL_CACHE_WARM_URLS", ""))
            ),
            warm_timeout_s=cls._parse_timeout("COHORTMILL_WARM_TIMEOUT_S", 10.0),
        )
