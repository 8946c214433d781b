"""Cohort state-transition engine for product-market-fit engagement dashboards."""

from __future__ import annotations

__all__: list[str] = []
